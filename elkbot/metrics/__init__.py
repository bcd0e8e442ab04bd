"""Metrics module for Prometheus monitoring."""

from .metrics import (
    API_CALLS,
    API_LATENCY,
    DOCUMENTS_WRITTEN,
    OP_ITEMS,
    OP_LATENCY,
    UNAUTHORIZED_COMMANDS,
)

__all__ = [
    "API_CALLS",
    "API_LATENCY",
    "DOCUMENTS_WRITTEN",
    "OP_ITEMS",
    "OP_LATENCY",
    "UNAUTHORIZED_COMMANDS",
]
