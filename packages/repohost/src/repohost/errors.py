"""Typed errors raised by the hosting API integration."""

from datetime import datetime, timezone


class RepoHostError(Exception):
    """Base class for all hosting API errors."""


class NotAuthenticated(RepoHostError):
    """A call was made while no credential is bound to the client."""

    def __init__(self, message: str = "GitHub API client is not authenticated"):
        super().__init__(message)


class NetworkFailure(RepoHostError):
    """Transport-level failure (connect, timeout, broken connection)."""

    def __init__(self, cause: Exception):
        super().__init__(f"Network failure: {cause}")
        self.cause = cause


class APIError(RepoHostError):
    """Non-success HTTP status returned by the hosting API."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


class AuthExpired(APIError):
    """401: the bound credential is no longer accepted."""

    def __init__(self, message: str = "GitHub authentication expired. Please login again."):
        super().__init__(401, message)


class RateLimitExceeded(APIError):
    """403: the request quota is exhausted until ``reset_at`` (epoch seconds)."""

    def __init__(self, reset_at: float | None = None):
        super().__init__(403, "GitHub API rate limit exceeded. Please try again later.")
        self.reset_at = reset_at

    @property
    def reset_datetime(self) -> datetime | None:
        if self.reset_at is None:
            return None
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)


class NotFound(APIError):
    """404: the path or resource does not exist."""

    def __init__(self, path: str = ""):
        super().__init__(404, f"GitHub resource not found: {path}" if path else "GitHub resource not found.")
        self.path = path


class InvalidRequest(APIError):
    """422: the API rejected the request payload."""

    def __init__(self, detail: str = "", status: int = 422):
        super().__init__(status, f"Invalid GitHub API request: {detail}" if detail else "Invalid GitHub API request.")
        self.detail = detail


class ShaConflict(InvalidRequest):
    """A write supplied a stale or missing ``sha`` for an existing path."""

    def __init__(self, path: str, detail: str = ""):
        super().__init__(detail or f"sha does not match the current version of {path}", status=409)
        self.path = path


# Statuses that are never retried
TERMINAL_ERRORS = (NotAuthenticated, AuthExpired, NotFound, InvalidRequest)


# ============ Device flow ============

class DeviceFlowError(RepoHostError):
    """Device-flow failure. Unless a subclass says otherwise, polling must stop."""


class DeviceFlowPending(DeviceFlowError):
    """The user has not completed authorization yet; keep polling."""

    def __init__(self):
        super().__init__("PENDING")


class DeviceFlowSlowDown(DeviceFlowError):
    """The server asked for a longer polling interval."""

    def __init__(self, interval: int | None = None):
        super().__init__("SLOW_DOWN")
        self.interval = interval


class DeviceFlowExpired(DeviceFlowError):
    """The device code expired before authorization completed."""

    def __init__(self, message: str = "Device flow expired. Please start again."):
        super().__init__(message)


class DeviceFlowDenied(DeviceFlowError):
    """The user denied the authorization request."""

    def __init__(self, message: str = "Authorization was denied."):
        super().__init__(message)


class DeviceFlowCancelled(DeviceFlowError):
    """The flow was cancelled while a poll was pending."""

    def __init__(self):
        super().__init__("Device flow was cancelled.")


class DeviceFlowNotStarted(DeviceFlowError):
    """poll() was called with no pending device flow."""

    def __init__(self):
        super().__init__("Device flow has not been started.")


class DeviceFlowInitError(DeviceFlowError):
    """The device-code endpoint answered with a non-success status."""

    def __init__(self, status_code: int):
        super().__init__(f"Device flow initialization failed: {status_code}")
        self.status_code = status_code
