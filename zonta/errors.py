"""
Order/checkout error taxonomy.

Each error carries the HTTP status it maps to and a public message. The
factory-level handler renders them as ``{"ok": false, "error": {...}}``;
internal detail goes to the log only.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OrderError(Exception):
    status_code = 400
    public_message = "Request failed"

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None, **extra: Any) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.field = field
        self.extra: Dict[str, Any] = dict(extra)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": int(self.status_code), "message": self.message}
        if self.field:
            body["field"] = self.field
        body.update(self.extra)
        return body


class ValidationError(OrderError):
    status_code = 400
    public_message = "Invalid request"


class NotFoundError(OrderError):
    status_code = 404
    public_message = "Not found"


class StockUnavailableError(OrderError):
    status_code = 400
    public_message = "Insufficient stock"

    def __init__(self, available: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"Only {int(available)} items available in stock", available=int(available))
        self.available = int(available)


class SignatureVerificationError(OrderError):
    """Webhook authenticity failure. The public message never echoes the reason."""

    status_code = 400
    public_message = "Webhook signature verification failed"

    def __init__(self, reason: str = "") -> None:
        super().__init__(self.public_message)
        self.reason = reason


class DependencyError(OrderError):
    status_code = 500
    public_message = "Upstream service unavailable"

    def __init__(self, message: Optional[str] = None, *, service: str = "") -> None:
        # callers pass the internal detail; only the generic text is public
        super().__init__(self.public_message)
        self.detail = message or ""
        self.service = service


__all__ = [
    "OrderError",
    "ValidationError",
    "NotFoundError",
    "StockUnavailableError",
    "SignatureVerificationError",
    "DependencyError",
]
