"""Errors that abort a completion turn before streaming starts, with their HTTP status."""

from fastapi import status


class CompletionError(Exception):
    """Base exception for completion turns."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class CompletionValidationError(CompletionError):
    """Raised when the request is malformed or references unknown entities."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConversationForbiddenError(CompletionError):
    """Raised when the caller does not own the conversation."""

    status_code = status.HTTP_403_FORBIDDEN


class TargetAccessError(CompletionError):
    """Raised when a target model or persona is not available to the caller."""

    status_code = status.HTTP_403_FORBIDDEN


class UsageLimitExceededError(CompletionError):
    """Raised when the caller has used up a monthly tier allowance."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
