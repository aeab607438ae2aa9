"""Domain errors raised by the trust engine services.

Every error carries the HTTP status it maps to at the request boundary plus a
stable machine readable ``code``. Services raise them; ``main`` translates
them into the standard ``{"success": false, ...}`` envelope.
"""
from __future__ import annotations

from typing import Any


class TrustEngineError(Exception):
    """Base error for trust engine operations; recovered at the request boundary."""

    status_code: int = 500
    code: str = "TRUST_ENGINE_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, **self.details}


class ValidationError(TrustEngineError):
    """Malformed status, vote type, role or score input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidStatusTransitionError(ValidationError):
    code = "INVALID_STATUS_TRANSITION"


class NotFoundError(TrustEngineError):
    """Unknown report or user id."""

    status_code = 404
    code = "NOT_FOUND"


class NothingToUnconfirmError(NotFoundError):
    """Unconfirm requested on a report that is not currently confirmed."""

    status_code = 409
    code = "NOTHING_TO_UNCONFIRM"


class ForbiddenError(TrustEngineError):
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(TrustEngineError):
    status_code = 409
    code = "CONFLICT"


class DuplicateVerificationError(ConflictError):
    code = "DUPLICATE_VERIFICATION"


class OptimisticLockError(ConflictError):
    """Caller supplied a stale version; it must refetch and retry."""

    code = "OPTIMISTIC_LOCK_ERROR"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Version mismatch: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class ConcurrentModificationError(ConflictError):
    """Internal retries exhausted while other writers kept bumping the version."""

    code = "CONCURRENT_MODIFICATION"


class ClusteringInProgressError(ConflictError):
    code = "CLUSTERING_IN_PROGRESS"


class ClusteringCancelledError(TrustEngineError):
    """A clustering run was cancelled before commit; its partial results were discarded."""

    status_code = 409
    code = "CLUSTERING_CANCELLED"


class PreconditionFailedError(TrustEngineError):
    """Confirmation attempted below the verification threshold."""

    status_code = 412
    code = "PRECONDITION_FAILED"


class AnalyzerError(TrustEngineError):
    """Upstream analyzer failed (timeout, transport error, malformed payload).

    Never surfaced to clients: fake detection degrades to a null score.
    """

    status_code = 502
    code = "ANALYZER_ERROR"


__all__ = [
    "TrustEngineError",
    "ValidationError",
    "InvalidStatusTransitionError",
    "NotFoundError",
    "NothingToUnconfirmError",
    "ForbiddenError",
    "ConflictError",
    "DuplicateVerificationError",
    "OptimisticLockError",
    "ConcurrentModificationError",
    "ClusteringInProgressError",
    "ClusteringCancelledError",
    "PreconditionFailedError",
    "AnalyzerError",
]
