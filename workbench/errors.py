"""
Exceptions raised by the Workbench client.

Every failure the client surfaces derives from WorkbenchError so callers
can catch one type at the UI boundary.
"""

from __future__ import annotations

from typing import Any

GENERIC_ERROR_MESSAGE = "Request failed"


class WorkbenchError(Exception):
    """Base class for client errors."""


class ApiError(WorkbenchError):
    """Backend answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str | None = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail or GENERIC_ERROR_MESSAGE}")


class AuthenticationError(ApiError):
    """401 from the backend. Stored tokens are cleared before this is raised."""


class TransportError(WorkbenchError):
    """Connection-level failure (DNS, refused, reset, timeout)."""


class ConversationNotLoadedError(WorkbenchError):
    """A chat operation referenced a conversation that is not the loaded one."""


# ── streaming ───────────────────────────────────────────────────────────────


class EmptyPromptError(WorkbenchError):
    """Prompt is blank after trimming. Never reaches the network."""


class StreamInProgressError(WorkbenchError):
    """A send was attempted while the session already has an active stream."""


class StreamStartError(WorkbenchError):
    """The streaming POST did not yield a readable body."""


class StreamReadError(WorkbenchError):
    """The stream opened but the connection failed while reading it."""


class FrameParseError(WorkbenchError):
    """A single data: frame held invalid JSON. Recovered by the decoder."""

    def __init__(self, payload: str):
        self.payload = payload
        super().__init__(f"Malformed frame: {payload[:200]!r}")


# ── jobs ────────────────────────────────────────────────────────────────────


class JobFailedError(WorkbenchError):
    """A processing or batch job finished in the failed state."""

    def __init__(self, job_id: str, error: str | None = None):
        self.job_id = job_id
        self.error = error
        super().__init__(f"Job {job_id} failed: {error or 'unknown error'}")


class JobTimeoutError(WorkbenchError):
    """A job did not finish within the polling window."""


def error_detail(exc: BaseException, fallback: str) -> str:
    """
    Pick the message to show a user for a failed request.

    Uses the backend's detail string when there is one, otherwise the
    fallback text.
    """
    if isinstance(exc, ApiError) and exc.detail:
        return exc.detail
    return fallback


def detail_from_body(body: Any) -> str | None:
    """Extract the `detail` field from a decoded JSON error body."""
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if detail is None:
        return None
    if isinstance(detail, str):
        return detail
    # FastAPI validation errors arrive as a list of objects
    return str(detail)
