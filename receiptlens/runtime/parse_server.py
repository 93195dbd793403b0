"""FastAPI server that parses OCR receipt text."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from receiptlens.receipt.formatter import explanation_to_dict, result_to_dict
from receiptlens.receipt.orchestrator import ReceiptParser
from receiptlens.runtime.logging import get_logger
from receiptlens.runtime.parser_rules import load_parser_rule_set

logger = get_logger(__name__)

MAX_TEXT_LENGTH = 200_000


class ParseRequest(BaseModel):
    text: str = Field(..., max_length=MAX_TEXT_LENGTH, description="OCR text of one receipt, newline-delimited")
    profile: str | None = Field(None, description="Profile name to use instead of format detection")


def create_app(parser: ReceiptParser | None = None) -> FastAPI:
    """Build the app; the parser is created on startup unless one is injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Rule errors surface here, before the first request
        app.state.parser = parser or ReceiptParser(load_parser_rule_set())
        engines = ", ".join(engine.name for engine in app.state.parser.engines)
        logger.info("Receipt parser ready (engines: %s)", engines)
        yield

    app = FastAPI(title="receiptlens", lifespan=lifespan)

    def _parser() -> ReceiptParser:
        current = getattr(app.state, "parser", None)
        if current is None:
            raise HTTPException(status_code=503, detail="parser not initialized")
        return current

    @app.post("/parse")
    def parse(request: ParseRequest) -> dict[str, Any]:
        """Parse receipt text into items."""
        result = _parser().parse(request.text, profile_hint=request.profile)
        return result_to_dict(result)

    @app.post("/explain")
    def explain(request: ParseRequest) -> dict[str, Any]:
        """Parse and return per-engine line classifications, candidates and rejections."""
        explanation = _parser().explain(request.text, profile_hint=request.profile)
        return explanation_to_dict(explanation)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
