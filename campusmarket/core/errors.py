"""Error taxonomy for the listing/commission/escrow core.

Every error the services raise derives from MarketError and carries a stable
code plus the HTTP status the API layer answers with. InvalidStateError is the
expected outcome of a lost race or a stale view; it always names the status the
resource is actually in so the caller can re-render.
"""

from __future__ import annotations

from typing import Any


class MarketError(Exception):
    code = "market_error"
    http_status = 400

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return {"error": body}


class ValidationError(MarketError):
    code = "validation_error"
    http_status = 422


class AuthorizationError(MarketError):
    code = "not_authorized"
    http_status = 403


class NotFoundError(MarketError):
    code = "not_found"
    http_status = 404


class InvalidStateError(MarketError):
    code = "invalid_state"
    http_status = 409

    def __init__(self, message: str, *, current_status: str | None = None, detail: dict[str, Any] | None = None):
        super().__init__(message, detail=detail)
        self.current_status = current_status

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["error"]["current_status"] = self.current_status
        return body


class AlreadyPaidError(MarketError):
    code = "already_paid"
    http_status = 409


class PaymentError(MarketError):
    code = "payment_failed"
    http_status = 502


class StorageError(MarketError):
    code = "storage_unavailable"
    http_status = 503
