"""GitHub token validation and OAuth device authorization flow."""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from .client import RETRYABLE_EXCEPTIONS
from .errors import (
    DeviceFlowCancelled,
    DeviceFlowDenied,
    DeviceFlowError,
    DeviceFlowExpired,
    DeviceFlowInitError,
    DeviceFlowNotStarted,
    DeviceFlowPending,
    DeviceFlowSlowDown,
    NetworkFailure,
)
from .models import DeviceFlowState, GitHubUser, TokenValidationResult

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
OAUTH_URL = "https://github.com"
DEFAULT_SCOPE = "repo user"
REQUIRED_SCOPES = ("repo", "user")
USER_AGENT = "blogcms-github-client"


async def validate_token(
    token: str,
    base_url: str = API_URL,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TokenValidationResult:
    """
    Check that ``token`` is accepted and carries the scopes we need.

    Classic tokens report their scopes in ``X-OAuth-Scopes``; when the header
    is absent (fine-grained tokens) only acceptance is checked.
    """
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "Authorization": f"Bearer {token}",
        "User-Agent": USER_AGENT,
    }
    try:
        async with httpx.AsyncClient(
            base_url=base_url, timeout=timeout, headers=headers, transport=transport
        ) as client:
            response = await client.get("/user")
    except RETRYABLE_EXCEPTIONS as e:
        logger.error("Token validation failed: %s", e)
        return TokenValidationResult(is_valid=False, error="Token validation failed due to a network error.")

    if response.status_code == 401:
        return TokenValidationResult(is_valid=False, error="Invalid token.")
    if not response.is_success:
        return TokenValidationResult(is_valid=False, error=f"GitHub API error: {response.status_code}")

    user = GitHubUser(**response.json())
    header = response.headers.get("x-oauth-scopes")
    if header is None:
        return TokenValidationResult(is_valid=True, user=user)

    scopes = [s.strip() for s in header.split(",") if s.strip()]
    missing = [req for req in REQUIRED_SCOPES if not any(req in scope for scope in scopes)]
    if missing:
        return TokenValidationResult(
            is_valid=False,
            scopes=scopes,
            error=f"Token is missing required scopes: {', '.join(REQUIRED_SCOPES)}",
        )
    return TokenValidationResult(is_valid=True, scopes=scopes, user=user)


class DeviceFlowStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class DeviceFlow:
    """
    OAuth device authorization flow.

    ``start()`` issues a device code; the caller shows ``user_code`` and
    either polls with ``poll()`` at the advertised interval or awaits
    ``wait_for_token()``. At most one flow is pending per instance.
    """

    DEVICE_CODE_PATH = "/login/device/code"
    TOKEN_PATH = "/login/oauth/access_token"
    GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

    def __init__(
        self,
        client_id: str,
        scope: str = DEFAULT_SCOPE,
        base_url: str = OAUTH_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not client_id:
            raise ValueError("GitHub client id is not configured")
        self.client_id = client_id
        self.scope = scope
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self.state: DeviceFlowState | None = None
        self.status = DeviceFlowStatus.IDLE
        self._cancelled = asyncio.Event()

    async def _post(self, path: str, data: dict[str, str]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                transport=self._transport,
            ) as client:
                return await client.post(path, data=data)
        except RETRYABLE_EXCEPTIONS as e:
            raise NetworkFailure(e) from e

    def _finish(self, status: DeviceFlowStatus) -> None:
        self.state = None
        self.status = status
        self._cancelled.set()

    async def start(self) -> DeviceFlowState:
        """Request a device code; a pending flow is cancelled first."""
        if self.status is DeviceFlowStatus.PENDING:
            logger.info("Cancelling pending device flow before starting a new one")
            self.cancel()

        response = await self._post(
            self.DEVICE_CODE_PATH, {"client_id": self.client_id, "scope": self.scope}
        )
        if not response.is_success:
            logger.error("Device flow initialization failed: %d", response.status_code)
            raise DeviceFlowInitError(response.status_code)

        data: dict[str, Any] = response.json()
        if "error" in data:
            raise DeviceFlowError(data.get("error_description") or data["error"])

        self.state = DeviceFlowState(
            device_code=data["device_code"],
            user_code=data["user_code"],
            verification_uri=data["verification_uri"],
            verification_uri_complete=data.get("verification_uri_complete"),
            expires_in=int(data["expires_in"]),
            interval=int(data.get("interval", 5)),
            started_at=self._clock(),
        )
        self.status = DeviceFlowStatus.PENDING
        self._cancelled = asyncio.Event()
        logger.info(
            "Device flow started: code=%s uri=%s expires_in=%ds",
            self.state.user_code,
            self.state.verification_uri,
            self.state.expires_in,
        )
        return self.state

    def _expire_if_due(self, state: DeviceFlowState) -> None:
        if self._clock() >= state.expires_at:
            logger.warning("Device flow expired")
            if self.state is state:
                self._finish(DeviceFlowStatus.EXPIRED)
            raise DeviceFlowExpired()

    async def poll(self) -> str:
        """
        Poll once for the access token.

        Raises DeviceFlowPending or DeviceFlowSlowDown while the user has not
        finished; any other error ends the flow.
        """
        state = self.state
        if state is None:
            raise DeviceFlowNotStarted()
        self._expire_if_due(state)

        try:
            response = await self._post(
                self.TOKEN_PATH,
                {
                    "client_id": self.client_id,
                    "device_code": state.device_code,
                    "grant_type": self.GRANT_TYPE,
                },
            )
        except NetworkFailure:
            if self.state is state:
                self._finish(DeviceFlowStatus.EXPIRED)
            raise

        # cancelled or restarted while the request was in flight
        if self.state is not state:
            raise DeviceFlowCancelled()

        if not response.is_success:
            self._finish(DeviceFlowStatus.EXPIRED)
            raise DeviceFlowError(f"Token polling failed: {response.status_code}")

        data: dict[str, Any] = response.json()
        error = data.get("error")
        if error == "authorization_pending":
            raise DeviceFlowPending()
        if error == "slow_down":
            raise DeviceFlowSlowDown(data.get("interval"))
        if error == "expired_token":
            self._finish(DeviceFlowStatus.EXPIRED)
            raise DeviceFlowExpired()
        if error == "access_denied":
            self._finish(DeviceFlowStatus.EXPIRED)
            raise DeviceFlowDenied()
        if error or not data.get("access_token"):
            self._finish(DeviceFlowStatus.EXPIRED)
            raise DeviceFlowError(data.get("error_description") or error or "Authorization failed.")

        # a token that arrives after the deadline is discarded
        self._expire_if_due(state)
        self._finish(DeviceFlowStatus.AUTHORIZED)
        logger.info("Device flow authorized")
        return data["access_token"]

    async def _pause(self, seconds: float, cancelled: asyncio.Event) -> None:
        """Sleep for ``seconds``, returning early when the flow is cancelled."""
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waker = asyncio.ensure_future(cancelled.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waker.cancel()
        if sleeper.done() and not sleeper.cancelled():
            sleeper.result()

    async def wait_for_token(self) -> str:
        """
        Poll until authorized, expired or cancelled.

        Each poll awaits the previous one, so ticks never overlap. A
        slow-down answer at least doubles the interval.
        """
        state = self.state
        if state is None:
            raise DeviceFlowNotStarted()
        cancelled = self._cancelled
        interval = float(state.interval)

        while True:
            remaining = state.expires_at - self._clock()
            await self._pause(max(min(interval, remaining), 0), cancelled)
            if self.state is not state:
                if self.status is DeviceFlowStatus.CANCELLED:
                    raise DeviceFlowCancelled()
                raise DeviceFlowNotStarted()
            try:
                return await self.poll()
            except DeviceFlowPending:
                logger.debug("Authorization pending, next poll in %.0fs", interval)
            except DeviceFlowSlowDown as e:
                interval = max(interval * 2, float(e.interval or 0), 1.0)
                logger.info("Slowing down device flow polling to %.0fs", interval)

    def cancel(self) -> None:
        """Drop any pending flow. Always succeeds."""
        if self.status is DeviceFlowStatus.PENDING:
            logger.info("Device flow cancelled")
            self._finish(DeviceFlowStatus.CANCELLED)
        else:
            self.state = None
            self._cancelled.set()
