"""Error taxonomy shared by the generation pipelines and the news layer.

Only ``DomainError`` (and its ``RateLimitError`` subclass) leaves a pipeline;
everything else is raised by the leaves and wrapped on the way out.
"""
import math
from typing import Any, Dict, Optional

CARTOON_ERROR = "CARTOON_ERROR"
NEWS_ERROR = "NEWS_ERROR"
RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
GENERIC_ERROR = "ERROR"

USER_MESSAGES = {
    NEWS_ERROR: "We had trouble fetching the news. Please try again later.",
    CARTOON_ERROR: "We could not generate your cartoon. Please try again.",
    RATE_LIMIT_ERROR: "Too many requests. Please wait a moment and try again.",
    VALIDATION_ERROR: "The information you provided is invalid. Please check and try again.",
    GENERIC_ERROR: "An unexpected error occurred. Please try again.",
}

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
RETRYABLE_CODES = {RATE_LIMIT_ERROR, NEWS_ERROR}


class NewstoonsError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(NewstoonsError):
    """Credentials or settings are missing. Never retried."""


class TransportError(NewstoonsError):
    """Network failure, non-2xx status, or an error envelope from the model."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(NewstoonsError):
    """The model answered but nothing usable could be recovered."""

    def __init__(self, message: str, reason: str = "unrecognized"):
        super().__init__(message)
        self.reason = reason


class DomainError(NewstoonsError):
    def __init__(self, message: str, code: str = GENERIC_ERROR, status_code: int = 500,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = dict(details or {})
        self.cause = cause
        if cause is not None:
            self.details.setdefault("originalError", str(cause))

    @classmethod
    def cartoon(cls, message: str, cause: Optional[BaseException] = None, **details) -> "DomainError":
        return cls(message, CARTOON_ERROR, 500, details, cause)

    @classmethod
    def news(cls, message: str, cause: Optional[BaseException] = None, **details) -> "DomainError":
        return cls(message, NEWS_ERROR, 400, details, cause)

    @classmethod
    def validation(cls, message: str, **fields) -> "DomainError":
        return cls(message, VALIDATION_ERROR, 400, {"fields": fields})


class RateLimitError(DomainError):
    """Image quota exhausted. ``retry_after`` is in seconds."""

    def __init__(self, retry_after: float, details: Optional[Dict[str, Any]] = None):
        seconds = max(0, math.ceil(retry_after))
        super().__init__(
            f"Rate limit exceeded. Try again in {seconds} seconds.",
            RATE_LIMIT_ERROR, 429, details)
        self.retry_after = retry_after


def user_message(error: BaseException) -> str:
    """Short plain-language message for display."""
    if isinstance(error, DomainError):
        return USER_MESSAGES.get(error.code, error.message)
    return USER_MESSAGES[GENERIC_ERROR]


def is_retryable(error: DomainError) -> bool:
    return error.status_code in RETRYABLE_STATUS_CODES or error.code in RETRYABLE_CODES


def error_payload(error: BaseException, debug: bool = False) -> Dict[str, Any]:
    """JSON body for an error. Technical detail is withheld unless ``debug``."""
    if isinstance(error, DomainError):
        payload: Dict[str, Any] = {
            "code": error.code,
            "message": user_message(error),
            "statusCode": error.status_code,
        }
        if isinstance(error, RateLimitError):
            payload["retryAfter"] = error.retry_after
        if debug:
            payload["detail"] = error.message
            payload["details"] = error.details
        return payload

    payload = {"code": GENERIC_ERROR, "message": user_message(error), "statusCode": 500}
    if debug:
        payload["detail"] = f"{type(error).__name__}: {error}"
    return payload
