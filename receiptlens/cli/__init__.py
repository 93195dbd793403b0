"""Command-line interface for receiptlens.

Usage:
    receiptlens parse receipt.txt
    receiptlens parse - --json < receipt.txt
    receiptlens parse receipt.txt --profile costco_warehouse
    receiptlens explain receipt.txt
    receiptlens serve [--host] [--port]
"""
