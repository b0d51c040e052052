"""
Error taxonomy for enigma and the classifier that turns it into text.

The transport layer converts every `requests` failure into one of the
TransportError subclasses below, so `classify` only has to look at a closed
set of shapes. Plain mappings carrying a `status` or `code` are read the
same way.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

import requests


class EnigmaError(Exception):
    """Base class for failures surfaced to the CLI."""

    code = "ENIGMA"


class MissingKeyError(EnigmaError):
    code = "MISSING_KEY"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or 'API key not found (MISSING_KEY). Set PPLX_API_KEY or run '
               '"enigma config --key <key> --save".'
        )


class StreamInterruptedError(EnigmaError):
    """The connection failed while an SSE body was being read."""

    code = "STREAM_INTERRUPTED"

    def __init__(self, original: str) -> None:
        super().__init__(f"Stream interrupted: {original}")
        self.original = original


class TransportError(EnigmaError):
    """Request failed without a usable HTTP status or network code."""

    code = "TRANSPORT"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        error_code: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code
        self.detail = detail or message


class NetworkError(TransportError):
    """No response at all: DNS, refused connection, timeout..."""

    code = "NETWORK"

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message, error_code=error_code)


class HTTPStatusError(TransportError):
    """Server answered with a non-2xx status."""

    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"HTTP {status}: {detail}", status=status, detail=detail)

    @property
    def code(self) -> str:  # type: ignore[override]
        return "HTTP_5XX" if self.status >= 500 else "HTTP_4XX"


def _response_detail(response: requests.Response, fallback: str) -> str:
    """Best human-readable reason from an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        err = body["error"]
        if isinstance(err, dict):
            return str(err.get("message") or json.dumps(err))
        return str(err)
    text = (response.text or "").strip()
    return text[:200] or fallback


def from_requests_error(exc: requests.RequestException) -> TransportError:
    """Map a requests exception onto the closed taxonomy."""
    response = getattr(exc, "response", None)
    if response is not None:
        return HTTPStatusError(response.status_code, _response_detail(response, str(exc)))
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return NetworkError(str(exc), type(exc).__name__)
    return TransportError(str(exc))


def classify(error: object) -> str:
    """Turn any error value into an actionable message. Never raises."""
    if isinstance(error, TransportError):
        return _classify_transport(error)
    if isinstance(error, Mapping):
        try:
            shaped = _from_mapping(error)
        except Exception:
            shaped = None
        if shaped is not None:
            return _classify_transport(shaped)

    if isinstance(error, BaseException):
        try:
            message = str(error)
        except Exception:
            message = ""
        if message:
            return message
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error)
    except (TypeError, ValueError):
        return repr(error)


def _from_mapping(error: Mapping) -> TransportError | None:
    """Read an error-shaped mapping such as {"status": 429} or {"code": "ETIMEDOUT"}."""
    status = error.get("status")
    code = error.get("code")
    detail = error.get("message") or error.get("error")
    if isinstance(status, int) and not isinstance(status, bool):
        return HTTPStatusError(status, str(detail or f"HTTP {status}"))
    if isinstance(code, str) and code:
        return NetworkError(str(detail or code), code)
    return None


def _classify_transport(error: TransportError) -> str:
    status = error.status
    if status is None and error.error_code:
        return f"Network error ({error.error_code}). Check your connection and try again."
    if status in (401, 403):
        return 'API key invalid or unauthorized. Run "enigma config --key <key> --save" to update it.'
    if status == 404:
        return "Endpoint not found. Please try again in a moment."
    if status == 429:
        return "Rate limit exceeded. Wait a moment and try again."
    if status in (500, 502, 503):
        return f"Server error ({status}). The API is temporarily unavailable."
    if status is not None:
        return f"API error ({status}): {error.detail}"
    return f"API error: {error.detail}"
