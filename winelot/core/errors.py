"""Error taxonomy for the tokenization workflow and its JSON rendering."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TokenizationError(Exception):
    """
    Base error. Carries a machine-readable kind, a human-readable message,
    optional structured details and the HTTP status it maps to.
    """

    kind: str = "TokenizationError"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        if kind:
            self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(TokenizationError):
    kind = "ValidationError"
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None, kind: Optional[str] = None):
        merged = dict(details or {})
        if field:
            merged.setdefault("field", field)
        super().__init__(message, details=merged, kind=kind)
        self.field = field


class LotNotFound(TokenizationError):
    kind = "LotNotFound"
    status_code = 404


class DuplicateLot(TokenizationError):
    kind = "DuplicateLot"
    status_code = 400


class IssuerNotFound(TokenizationError):
    kind = "IssuerNotFound"
    status_code = 400


class InvalidTransition(TokenizationError):
    kind = "InvalidTransition"
    status_code = 400


class InsufficientBalance(TokenizationError):
    kind = "InsufficientBalance"
    status_code = 400


class InsufficientTokenBalance(TokenizationError):
    kind = "InsufficientTokenBalance"
    status_code = 400


class FundingUnavailable(TokenizationError):
    kind = "FundingUnavailable"
    status_code = 500


class FundingRequired(TokenizationError):
    kind = "FundingRequired"
    status_code = 500


class MissingTrustline(TokenizationError):
    kind = "MissingTrustline"
    status_code = 400


class NoPayableAmount(TokenizationError):
    kind = "NoPayableAmount"
    status_code = 400


class TransactionRejected(TokenizationError):
    kind = "TransactionRejected"
    status_code = 400


class SubmissionOutcomeUnknown(TokenizationError):
    """The ledger may or may not have applied the transaction. Not safe to rebuild blindly."""

    kind = "SubmissionOutcomeUnknown"
    status_code = 504


class Unauthorized(TokenizationError):
    kind = "Unauthorized"
    status_code = 401


class Forbidden(TokenizationError):
    kind = "Forbidden"
    status_code = 403


class DecryptionError(TokenizationError):
    kind = "DecryptionError"
    status_code = 500


class PersistenceError(TokenizationError):
    kind = "PersistenceError"
    status_code = 500


class ConfigurationError(TokenizationError):
    kind = "ConfigurationError"
    status_code = 500


# ─────────────────────────────────────────────
# LEDGER ADAPTER ERRORS
# ─────────────────────────────────────────────

class LedgerError(Exception):
    """Raised by the ledger client; translated by the lifecycle service."""


class AccountNotFound(LedgerError):
    def __init__(self, address: str):
        super().__init__(f"Account {address} does not exist on the ledger.")
        self.address = address


class InvalidEnvelope(LedgerError):
    pass


class LedgerOutcomeUnknown(LedgerError):
    """Submission sent but no verdict came back (connection lost, Horizon timeout)."""

    def __init__(self, detail: str, *, tx_hash: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.tx_hash = tx_hash


class LedgerSubmissionError(LedgerError):
    def __init__(self, detail: str, *, result_codes: Optional[Dict[str, Any]] = None, status: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.result_codes: Dict[str, Any] = dict(result_codes or {})
        self.status = status

    @property
    def transaction_code(self) -> Optional[str]:
        return self.result_codes.get("transaction")

    @property
    def operation_codes(self) -> List[str]:
        return list(self.result_codes.get("operations") or [])


# ─────────────────────────────────────────────
# HTTP RENDERING
# ─────────────────────────────────────────────

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


async def tokenization_error_handler(request: Request, exc: TokenizationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[error] %s %s kind=%s message=%s", request.method, request.url.path, exc.kind, exc.message)
    else:
        logger.info("[error] %s %s kind=%s message=%s", request.method, request.url.path, exc.kind, exc.message)

    body = exc.to_dict()
    body["request_id"] = _request_id(request)
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    fields = [".".join(str(p) for p in e.get("loc", ()) if p != "body") for e in errors]
    return JSONResponse(
        status_code=400,
        content={
            "error": ValidationError.kind,
            "message": "Invalid request: " + ", ".join(f for f in fields if f),
            "details": {"fields": fields},
            "request_id": _request_id(request),
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[error] unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred.",
            "details": {},
            "request_id": _request_id(request),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TokenizationError, tokenization_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
