"""Error taxonomy and error handling helpers for the LegalSay copilot client.

Every failure that can reach calling code is one of the typed errors below.
Transport exceptions raised by ``requests`` are converted at the call boundary
by :func:`handle_transport_errors`, so views never inspect raw exceptions.
"""

from functools import wraps
from typing import Any, Callable, Optional

import requests
from loguru import logger


# Custom Exception Classes

class CopilotError(Exception):
    """Base exception for all copilot errors."""
    pass


class InvalidInputError(CopilotError):
    """Raised before any network call when the caller supplied unusable input."""
    pass


class SessionError(CopilotError):
    """Raised when the session store is used out of order or cannot persist."""
    pass


class EmptyExtractionError(CopilotError):
    """Raised when text extraction succeeded but produced no text."""
    pass


class TransportError(CopilotError):
    """Base class for failures talking to the analysis service."""
    pass


class RequestTimeoutError(TransportError):
    """Raised when the service did not answer within the call's deadline."""

    def __init__(self, message: str = "Request timed out", timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class ServerError(TransportError):
    """Raised when the service answered with a non-2xx status."""

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class NetworkUnreachableError(TransportError):
    """Raised when the connection itself failed (DNS, refused, reset)."""
    pass


class MalformedResponseError(TransportError):
    """Raised when a 2xx payload does not have the expected shape."""
    pass


def generic_status_message(status: int) -> str:
    """Fallback message for a status code when the body carries none."""
    if status == 404:
        return "The requested resource was not found"
    if status == 413:
        return "The uploaded document is too large"
    if status == 429:
        return "Too many requests, please slow down"
    if status == 503:
        return "Service temporarily unavailable"
    if 400 <= status < 500:
        return "The request was rejected by the analysis service"
    if status >= 500:
        return "The analysis service encountered an internal error"
    return f"Unexpected response status {status}"


def user_message(error: BaseException) -> str:
    """Translate an error into the sentence shown to the user.

    Args:
        error: Any exception raised by the client or the store

    Returns:
        A short, user-facing message
    """
    if isinstance(error, RequestTimeoutError):
        return "The request timed out. Please try again."
    if isinstance(error, NetworkUnreachableError):
        return "Network connection error. Please check your internet connection and try again."
    if isinstance(error, ServerError):
        if error.status == 404:
            return "The requested resource was not found. Please try again."
        if error.status == 500:
            return "Server error occurred. Please try again later."
        if error.status == 503:
            return "Service temporarily unavailable. Please try again in a few moments."
        return f"The analysis service returned an error: {error.message}"
    if isinstance(error, MalformedResponseError):
        return "The analysis service returned an unexpected response. Please try again later."
    if isinstance(error, EmptyExtractionError):
        return "No text could be extracted from the document."
    if isinstance(error, CopilotError):
        return str(error) or "An unexpected error occurred."
    return "An unexpected error occurred. Please try again."


def classify_request_exception(error: requests.RequestException, timeout: Optional[float] = None) -> TransportError:
    """Map a ``requests`` exception onto the transport taxonomy."""
    if isinstance(error, requests.Timeout):
        return RequestTimeoutError(f"Request timed out: {error}", timeout=timeout)
    if isinstance(error, (requests.ConnectionError, requests.exceptions.ChunkedEncodingError)):
        return NetworkUnreachableError(f"Network failure: {error}")
    if isinstance(error, requests.exceptions.ContentDecodingError):
        return MalformedResponseError(f"Undecodable response body: {error}")
    return NetworkUnreachableError(f"Transport failure: {error}")


def handle_transport_errors(endpoint: str) -> Callable:
    """Decorator converting transport exceptions into typed copilot errors.

    Typed errors raised inside the wrapped call pass through untouched.
    ``requests`` exceptions are classified; anything else escaping a client
    call is a bug in response handling and surfaces as MalformedResponseError.

    Args:
        endpoint: Endpoint path used in log records

    Returns:
        Decorated function with error classification
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)

            except CopilotError:
                raise

            except requests.RequestException as e:
                classified = classify_request_exception(e)
                logger.warning(
                    f"Transport failure on {endpoint}",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(classified).__name__
                )
                raise classified from e

            except (ValueError, TypeError, KeyError) as e:
                logger.error(
                    f"Unexpected payload from {endpoint}",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__
                )
                raise MalformedResponseError(f"Unexpected payload from {endpoint}: {e}") from e

        return wrapper
    return decorator
