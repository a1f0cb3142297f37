"""
Error taxonomy shared by the GitHub client, the assistant bridge and the API.

Every error carries the HTTP status the API layer answers with.
"""

from typing import Optional

import httpx


class StudioError(Exception):
    """Base class for all Code Studio failures."""

    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.detail = detail


class NetworkError(StudioError):
    status_code = 502
    default_message = "Could not reach the remote service. Check your connection."


class BadRequest(StudioError):
    status_code = 400
    default_message = "The request was rejected as malformed."


class Unauthorized(StudioError):
    status_code = 401
    default_message = "Authentication failed. The credential is invalid or expired."


class Forbidden(StudioError):
    status_code = 403
    default_message = "Access denied. The credential lacks the required permissions."


class NotFound(StudioError):
    status_code = 404
    default_message = "Not found."


class Conflict(StudioError):
    status_code = 409
    default_message = "The file changed remotely. Reload it before saving again."


class SessionBusy(StudioError):
    status_code = 409
    default_message = "A file is still loading. Wait for it before editing or saving."


class RateLimited(StudioError):
    status_code = 429
    default_message = "Too many requests. Wait a moment, then try again."


class ServiceUnavailable(StudioError):
    status_code = 503
    default_message = "The remote service is having issues. Try again later."


class MalformedResponse(StudioError):
    status_code = 502
    default_message = "Received an unexpected response format."


class MissingCredential(StudioError):
    status_code = 400
    default_message = "No API key is configured."


class NoRepositorySelected(StudioError):
    status_code = 400
    default_message = "Select a repository and branch first."


class InvalidPath(StudioError):
    status_code = 400
    default_message = "Invalid path."


def error_for_status(
    response: httpx.Response, service: str = "GitHub", conflict_on_422: bool = False
) -> Optional[StudioError]:
    """
    Map a non-success response to the error taxonomy.

    Returns None for 2xx responses. The response body is only used as
    detail, never as the message, so credentials echoed by a server do not
    reach the user.
    """
    status = response.status_code
    if status < 400:
        return None

    detail = _error_detail(response)

    if status == 400:
        return BadRequest(f"{service} rejected the request.", detail)
    if status == 401:
        return Unauthorized(f"{service} authentication failed. The credential is invalid or expired.", detail)
    if status == 403:
        # GitHub signals an exhausted primary rate limit with a 403
        if response.headers.get("x-ratelimit-remaining") == "0":
            return RateLimited(f"{service} rate limit exceeded. Try again later.", detail)
        return Forbidden(f"{service} denied access. Check the credential's permissions.", detail)
    if status == 404:
        return NotFound(f"{service} resource not found.", detail)
    if status == 409:
        return Conflict(detail=detail)
    if status == 422 and conflict_on_422:
        return Conflict(detail=detail)
    if status == 429:
        return RateLimited(f"{service} rate limit exceeded. Try again later.", detail)
    if status >= 500:
        return ServiceUnavailable(f"{service} is having issues right now (HTTP {status}).", detail)
    return BadRequest(f"{service} rejected the request (HTTP {status}).", detail)


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or None
    if isinstance(data, dict):
        message = data.get("message")
        if message is None and isinstance(data.get("error"), dict):
            message = data["error"].get("message")
        if message is not None:
            return str(message)
    return None
