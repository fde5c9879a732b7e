from __future__ import annotations

import socket
from enum import Enum
from typing import Optional

import httpx
from fastapi.responses import JSONResponse


class Failure(str, Enum):
    INPUT_INVALID = "input_invalid"
    NOT_FOUND = "remote_not_found"
    FORBIDDEN = "remote_forbidden"
    UNREACHABLE = "remote_unreachable"
    TIMEOUT = "remote_timeout"
    REMOTE_ERROR = "remote_error"
    LOCAL_FAILURE = "local_failure"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]


_STATUS_CODES = {
    Failure.INPUT_INVALID: 400,
    Failure.NOT_FOUND: 404,
    Failure.FORBIDDEN: 403,
    Failure.UNREACHABLE: 503,
    Failure.TIMEOUT: 408,
    Failure.REMOTE_ERROR: 500,
    Failure.LOCAL_FAILURE: 500,
}

_DEFAULT_MESSAGES = {
    Failure.INPUT_INVALID: "Invalid input.",
    Failure.NOT_FOUND: "The URL could not be found. Please check it and try again.",
    Failure.FORBIDDEN: "Access was denied. This page cannot be downloaded.",
    Failure.UNREACHABLE: "Could not connect to the server. Please check the URL.",
    Failure.TIMEOUT: "The connection timed out. Please try again.",
    Failure.REMOTE_ERROR: "The remote request failed. Please check the URL.",
    Failure.LOCAL_FAILURE: "The file could not be generated.",
}


class ArtifactError(Exception):
    """A request failure that has already been classified.

    The message is user-facing; the underlying cause (if any) is kept on
    __cause__ for logging only.
    """

    def __init__(self, failure: Failure, message: Optional[str] = None):
        self.failure = failure
        self.explicit = message is not None
        self.message = message or failure.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.failure.status_code

    def localize(self, messages: dict[Failure, str]) -> "ArtifactError":
        """Swap the default message for an endpoint-specific one, if any."""
        if not self.explicit and self.failure in messages:
            self.message = messages[self.failure]
            self.args = (self.message,)
        return self


def _caused_by_dns_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify_status(status_code: int) -> Failure:
    """Map a remote status outside the accepted [200, 400) range."""
    if status_code == 404:
        return Failure.NOT_FOUND
    if status_code in (401, 403):
        return Failure.FORBIDDEN
    return Failure.REMOTE_ERROR


def classify_exception(exc: BaseException) -> Failure:
    if isinstance(exc, ArtifactError):
        return exc.failure
    if isinstance(exc, httpx.TimeoutException):
        return Failure.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code)
    if isinstance(exc, httpx.ConnectError):
        # An unresolvable host is reported like a missing page.
        if _caused_by_dns_failure(exc):
            return Failure.NOT_FOUND
        return Failure.UNREACHABLE
    if isinstance(exc, httpx.InvalidURL):
        return Failure.INPUT_INVALID
    if isinstance(exc, httpx.HTTPError):
        return Failure.REMOTE_ERROR
    if isinstance(exc, OSError):
        return Failure.LOCAL_FAILURE
    return Failure.REMOTE_ERROR


def error_response(err: ArtifactError) -> JSONResponse:
    return JSONResponse(
        {"error": err.failure.value, "detail": err.message},
        status_code=err.status_code,
        headers={"Cache-Control": "no-store"},
    )
