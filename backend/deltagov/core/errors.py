"""
Structured error taxonomy for DeltaGov.

Every application error has:
  - A stable error code (prefixed by domain)
  - An HTTP status code
  - A human-readable message
  - An optional detail dict for machine consumers

Retryable errors also carry a ``retry_after`` hint in seconds, rendered as
the ``Retry-After`` response header. No internal state (stack traces, DB
internals) is ever surfaced to clients.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable, versioned error codes. Never reuse a retired code."""

    # Bills & versions
    BILL_NOT_FOUND = "BILL_001"
    VERSION_NOT_FOUND = "BILL_002"
    VERSION_BILL_MISMATCH = "BILL_003"

    # Diff engine & delta cache
    DIFF_INVALID_TEXT = "DIFF_001"
    DIFF_STORE_UNAVAILABLE = "DIFF_002"
    DIFF_PENDING = "DIFF_003"

    # Ingestion
    INGEST_NOT_CONFIGURED = "ING_001"
    INGEST_UPSTREAM_FAILED = "ING_002"
    INGEST_RATE_LIMITED = "ING_003"

    # Generic
    VALIDATION_ERROR = "GEN_001"
    INTERNAL_ERROR = "GEN_002"
    NOT_FOUND = "GEN_003"
    RATE_LIMITED = "GEN_004"


class AppError(Exception):
    """Base class for all application errors."""

    retryable: bool = False

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        http_status: int = 500,
        detail: dict[str, Any] | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.detail = detail or {}
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "detail": self.detail,
        }
        if self.retryable:
            body["retryable"] = True
        return {"error": body}


# ── Typed convenience subclasses ──────────────────────────────────────── #


class NotFoundError(AppError):
    def __init__(
        self, entity: str, entity_id: str | None = None, code: ErrorCode = ErrorCode.NOT_FOUND
    ) -> None:
        detail = {"entity": entity}
        if entity_id:
            detail["id"] = entity_id
        super().__init__(
            code=code,
            message=f"{entity} not found",
            http_status=404,
            detail=detail,
        )


class ValidationError(AppError):
    def __init__(
        self,
        message: str,
        detail: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            http_status=422,
            detail=detail,
        )


class ServiceUnavailableError(AppError):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: dict[str, Any] | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            http_status=503,
            detail=detail,
            retry_after=retry_after,
        )


# ── Diff engine errors ────────────────────────────────────────────────── #


class InvalidTextError(ValidationError):
    """Version content could not be decoded or encoded as UTF-8."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message="Version content is not valid UTF-8 text",
            detail={"reason": reason},
            code=ErrorCode.DIFF_INVALID_TEXT,
        )


class DeltaStoreUnavailableError(ServiceUnavailableError):
    """The delta persistence layer failed; the caller may retry."""

    retryable = True

    def __init__(self, pair_key: str, retry_after: int = 1) -> None:
        super().__init__(
            code=ErrorCode.DIFF_STORE_UNAVAILABLE,
            message="Delta storage is temporarily unavailable",
            detail={"pair_key": pair_key},
            retry_after=retry_after,
        )


class DeltaPendingError(ServiceUnavailableError):
    """Another worker holds the claim for this pair and has not finished."""

    retryable = True

    def __init__(self, pair_key: str, retry_after: int = 1) -> None:
        super().__init__(
            code=ErrorCode.DIFF_PENDING,
            message="Delta is still being computed by another worker",
            detail={"pair_key": pair_key},
            retry_after=retry_after,
        )
