"""Receipt layout family detection."""

from __future__ import annotations

from collections.abc import Sequence

from receiptlens.domain.receipt import LineRecord
from receiptlens.receipt.format_profiles import FormatProfile


def _ordered_profiles(profiles: Sequence[FormatProfile]) -> list[FormatProfile]:
    # sorted() is stable, so equal priorities keep their configured order
    return sorted(profiles, key=lambda profile: -profile.priority)


def _matched_identifier(profile: FormatProfile, joined_text: str) -> str | None:
    for identifier in profile.identifiers:
        if identifier.lower() in joined_text:
            return identifier
    return None


def detect_format_with_reason(
    lines: Sequence[LineRecord],
    profiles: Sequence[FormatProfile],
) -> tuple[FormatProfile, str]:
    """Pick the profile for a receipt and say why.

    Profiles are checked by descending priority. A profile is selected when
    one of its identifiers occurs in the lowercased joined text, or when one
    of its structural signatures matches the classified lines. The generic
    profile is the fallback.

    Returns:
        (profile, reason) where reason names the identifier or signature.
    """
    joined_text = "\n".join(line.raw_content for line in lines).lower()
    generic: FormatProfile | None = None

    for profile in _ordered_profiles(profiles):
        if profile.is_generic:
            generic = generic or profile
            continue
        identifier = _matched_identifier(profile, joined_text)
        if identifier is not None:
            return profile, f"identifier {identifier!r}"
        for signature in profile.signatures:
            if signature.matches(lines):
                return profile, f"signature {signature.name!r}"

    if generic is None:
        raise ValueError("profile set has no generic profile")
    return generic, "fallback"


def detect_format(lines: Sequence[LineRecord], profiles: Sequence[FormatProfile]) -> FormatProfile:
    """Return the profile for a receipt (generic when nothing specific matches)."""
    profile, _ = detect_format_with_reason(lines, profiles)
    return profile
