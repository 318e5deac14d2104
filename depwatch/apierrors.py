"""API errors raised by cluster clients and predicates to classify them."""

from __future__ import annotations

_DEFAULT_TOO_MANY_REQUESTS_MESSAGE = (
    "the server has received too many requests and has asked us to try again later"
)


class ApiError(Exception):
    """An error returned by an API server, carrying an HTTP status code and a reason."""

    code: int = 500
    reason: str = ""

    def __init__(self, message: str, *, code: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if reason is not None:
            self.reason = reason


class NotFoundError(ApiError):
    """The requested resource does not exist."""

    code = 404
    reason = "NotFound"

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


class ForbiddenError(ApiError):
    """The caller is not allowed to perform the request."""

    code = 403
    reason = "Forbidden"

    def __init__(self, resource: str, name: str, error: Exception | str) -> None:
        if not resource:
            message = f"forbidden: {error}"
        elif name:
            message = f'{resource} "{name}" is forbidden: {error}'
        else:
            message = f"{resource} is forbidden: {error}"
        super().__init__(message)
        self.resource = resource
        self.name = name


class UnauthorizedError(ApiError):
    """The caller could not be authenticated."""

    code = 401
    reason = "Unauthorized"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "not authorized")


class TooManyRequestsError(ApiError):
    """The server throttled the request."""

    code = 429
    reason = "TooManyRequests"

    def __init__(self, message: str = "", retry_after_seconds: int = 0) -> None:
        super().__init__(message or _DEFAULT_TOO_MANY_REQUESTS_MESSAGE)
        self.retry_after_seconds = retry_after_seconds


def _matches(error: BaseException | None, reason: str, code: int) -> bool:
    if not isinstance(error, ApiError):
        return False
    if error.reason:
        return error.reason == reason
    return error.code == code


def is_not_found(error: BaseException | None) -> bool:
    """Return True if the error says a resource was not found."""
    return _matches(error, NotFoundError.reason, NotFoundError.code)


def is_forbidden(error: BaseException | None) -> bool:
    """Return True if the error says a request was forbidden."""
    return _matches(error, ForbiddenError.reason, ForbiddenError.code)


def is_unauthorized(error: BaseException | None) -> bool:
    """Return True if the error says a request was not authenticated."""
    return _matches(error, UnauthorizedError.reason, UnauthorizedError.code)


def is_too_many_requests(error: BaseException | None) -> bool:
    """Return True if the error says the server throttled the request."""
    return _matches(error, TooManyRequestsError.reason, TooManyRequestsError.code)