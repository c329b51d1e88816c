"""
Error types raised at the policy API boundary and the helper that turns
any of them into a display string for the console.
"""

from typing import Any, Mapping, Optional

import httpx

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


class ConsoleError(Exception):
    """Base class for every error the console raises on purpose"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(ConsoleError):
    """A required value was missing before any request was sent"""


class TransportError(ConsoleError):
    """The policy API could not be reached"""


class ApiError(ConsoleError):
    """The policy API answered with a non-2xx status"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(ApiError):
    """401 / 403 from the policy API"""


class NotFoundError(ApiError):
    """404 from the policy API"""


def _message_from_body(body: Any) -> Optional[str]:
    if isinstance(body, str):
        return body or None
    if isinstance(body, Mapping):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def api_error_from_response(response: httpx.Response) -> ApiError:
    """Build the ApiError subclass matching a failed response"""
    message = None
    try:
        message = _message_from_body(response.json())
    except ValueError:
        message = _message_from_body(response.text.strip())
    if not message:
        message = response.reason_phrase or f"Request failed with status {response.status_code}"

    if response.status_code in (401, 403):
        return AuthorizationError(response.status_code, message)
    if response.status_code == 404:
        return NotFoundError(response.status_code, message)
    return ApiError(response.status_code, message)


def _get(value: Any, key: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(key)
    return getattr(value, key, None)


def error_message(error: Any) -> str:
    """Normalize anything that was raised (or passed around as an error) into a display string.

    Checked in order: plain string, exception message, an HTTP-client style
    ``{"response": {"data": {"error" | "message"}}}`` shape, a bare
    ``{"message": ...}`` shape. Never raises.
    """
    try:
        if isinstance(error, str):
            return error
        if isinstance(error, ConsoleError):
            return error.message or UNKNOWN_ERROR_MESSAGE
        if isinstance(error, httpx.HTTPStatusError):
            return api_error_from_response(error.response).message
        if isinstance(error, BaseException):
            return str(error) or type(error).__name__

        if error is None:
            return UNKNOWN_ERROR_MESSAGE

        response = _get(error, "response")
        if response is not None:
            message = _message_from_body(_get(response, "data"))
            if message:
                return message

        message = _get(error, "message")
        if isinstance(message, str) and message:
            return message
    except Exception:
        return UNKNOWN_ERROR_MESSAGE
    return UNKNOWN_ERROR_MESSAGE
