"""
Error taxonomy shared by the generation pipeline, the practice-test session
layer and the HTTP routers.

Every failure the service distinguishes carries an ``ErrorKind``. Callers
branch on the exception type (or ``exc.kind``), never on message text.
Provider SDK exceptions are translated into this taxonomy once, at the
completion-provider boundary (see ``satcraft.services.ai``).
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    PARSE = "parse"
    VALIDATION_EXHAUSTED = "validation_exhausted"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"
    INVALID_REQUEST = "invalid_request"


class SatcraftError(Exception):
    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str = "", *, details: Optional[Any] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message, "kind": self.kind.value}
        if self.details is not None:
            out["details"] = self.details
        return out


class QuotaExceeded(SatcraftError):
    """Upstream billing/credits exhausted. Never retried locally."""
    kind = ErrorKind.QUOTA


class RateLimited(SatcraftError):
    kind = ErrorKind.RATE_LIMIT


class TransientProviderError(SatcraftError):
    """Timeouts, dropped connections and upstream 5xx responses."""
    kind = ErrorKind.TRANSIENT


class ParseFailure(SatcraftError):
    """The model returned non-JSON or a payload missing required fields."""
    kind = ErrorKind.PARSE

    def __init__(self, message: str = "", *, raw: str = "", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.raw = raw


class GenerationExhausted(SatcraftError):
    """Iteration budget spent without any candidate clearing the floor score."""
    kind = ErrorKind.VALIDATION_EXHAUSTED

    def __init__(self, message: str = "", *, issues: Optional[list[str]] = None,
                 iterations: int = 0, best_score: Optional[float] = None):
        self.issues = list(issues or [])
        self.iterations = iterations
        self.best_score = best_score
        super().__init__(message, details={
            "issues": self.issues,
            "iterations": iterations,
            "best_score": best_score,
        })


class InvalidRequest(SatcraftError):
    kind = ErrorKind.INVALID_REQUEST


class InvalidSessionTransition(InvalidRequest):
    """The session cannot accept the operation in its current phase."""


class SessionNotFound(SatcraftError):
    kind = ErrorKind.NOT_FOUND


class QuestionNotFound(SatcraftError):
    kind = ErrorKind.NOT_FOUND


class Unauthorized(SatcraftError):
    kind = ErrorKind.UNAUTHORIZED


class Forbidden(SatcraftError):
    kind = ErrorKind.FORBIDDEN


# Quota and rate-limit failures short-circuit generation; retrying will not help.
NON_RETRYABLE = (QuotaExceeded, RateLimited)
