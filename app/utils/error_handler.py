"""
Error classification for tool calls.

Maps financial API failures, transport errors and invalid tool input onto a
closed set of user-facing categories. Classified errors are returned to the
LLM as ordinary tool results; the raw failure is logged here first with full
context and never shown to the user.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from app.clients.financial_datasets_client import FinancialApiError

logger = logging.getLogger(__name__)

ACTION_UPDATE_API_KEY = "Update API key"
ACTION_ADD_CREDITS = "Add credits or update API key"
ACTION_WAIT_AND_RETRY = "Wait and retry"
ACTION_RETRY_LATER = "Retry later"
ACTION_FIX_INPUT = "Fix input"

_API_KEY_MARKERS = ("api key", "unauthorized", "forbidden")
_PAYMENT_MARKERS = ("payment", "billing", "quota", "credits")


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    CREDITS_EXHAUSTED = "credits_exhausted"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"
    UNEXPECTED = "unexpected"
    VALIDATION = "validation"


class ErrorResult(BaseModel):
    """User-safe error returned in place of a tool payload."""

    error: str
    message: str
    status: int
    action_required: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def classify_status(status: int) -> ErrorCategory:
    if status == 401:
        return ErrorCategory.AUTHENTICATION
    if status == 402:
        return ErrorCategory.CREDITS_EXHAUSTED
    if status == 404:
        return ErrorCategory.NOT_FOUND
    if status == 429:
        return ErrorCategory.RATE_LIMITED
    return ErrorCategory.API_ERROR


def create_error_response(
    title: str, message: str, status: int, action_required: Optional[str] = None
) -> ErrorResult:
    return ErrorResult(error=title, message=message, status=status, action_required=action_required)


def handle_financial_api_error(error: FinancialApiError, context: str) -> ErrorResult:
    """Log a failed API response and reduce it to its category's user message."""
    logger.error(
        "Financial API error in %s status=%s status_text=%s endpoint=%s body=%s",
        context,
        error.status,
        error.status_text,
        error.endpoint,
        error.response_text,
    )

    category = classify_status(error.status)

    if category is ErrorCategory.CREDITS_EXHAUSTED:
        return create_error_response(
            "💳 Financial data API credits exhausted",
            error.user_friendly_message,
            402,
            ACTION_ADD_CREDITS,
        )
    if category is ErrorCategory.AUTHENTICATION:
        return create_error_response(
            "🔑 Authentication failed",
            error.user_friendly_message,
            401,
            ACTION_UPDATE_API_KEY,
        )
    if category is ErrorCategory.NOT_FOUND:
        return create_error_response(
            "🔍 Resource not found",
            "The requested financial data could not be found. "
            "Please check the ticker symbol or try a different one.",
            404,
        )
    if category is ErrorCategory.RATE_LIMITED:
        return create_error_response(
            "⏱️ Rate limit exceeded",
            "Too many requests. Please wait a moment before trying again.",
            429,
            ACTION_WAIT_AND_RETRY,
        )
    return create_error_response(
        f"🚫 API error ({error.status})",
        error.user_friendly_message,
        error.status,
        ACTION_RETRY_LATER,
    )


def handle_unexpected_error(error: BaseException, context: str, status: int = 500) -> ErrorResult:
    """Transport failures and anything else the client let through."""
    logger.error("Unexpected error in %s: %r", context, error, exc_info=error)

    return create_error_response(
        "🚫 Unexpected error occurred",
        f"Failed to {context}: {error}. Please try again later.",
        status,
        ACTION_RETRY_LATER,
    )


def handle_validation_error(error: Exception, context: str) -> ErrorResult:
    if isinstance(error, ValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in error.errors()
        )
    else:
        details = str(error) or "Please check your input and try again."

    logger.warning("Validation error in %s: %s", context, details)

    return create_error_response(
        "📋 Validation Error",
        f"Invalid input for {context}: {details}",
        400,
        ACTION_FIX_INPUT,
    )


def is_api_key_error(status: Optional[int], body: Optional[str] = None) -> bool:
    """Whether the UI should prompt for a new API key."""
    if status in (401, 403):
        return True
    text = (body or "").lower()
    return any(marker in text for marker in _API_KEY_MARKERS)


def is_payment_error(status: Optional[int], body: Optional[str] = None) -> bool:
    """Whether the UI should prompt for payment / more credits."""
    if status == 402:
        return True
    text = (body or "").lower()
    return any(marker in text for marker in _PAYMENT_MARKERS)
