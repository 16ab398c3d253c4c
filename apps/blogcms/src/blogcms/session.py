"""Authentication manager: owns the single live credential."""

import logging
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from repohost import (
    CredentialStore,
    DeviceFlow,
    DeviceFlowState,
    GitHubClient,
    GitHubRepository,
    GitHubUser,
    RepoHostError,
    TokenValidationResult,
    validate_token,
)

from .events import EventChannel

logger = logging.getLogger(__name__)

TokenValidator = Callable[[str], Awaitable[TokenValidationResult]]
CodeListener = Callable[[DeviceFlowState], Awaitable[None] | None]


class AuthState(BaseModel):
    """Snapshot published on every authentication change."""

    is_authenticated: bool = False
    is_loading: bool = False
    user: GitHubUser | None = None
    repositories: list[GitHubRepository] = Field(default_factory=list)
    has_write_access: bool = False
    error: str | None = None


class AuthSession:
    """
    Login, restore and logout around one GitHubClient and one CredentialStore.

    A 401 from any client call logs the session out through the client's
    auth-expired hook.
    """

    def __init__(
        self,
        client: GitHubClient,
        store: CredentialStore,
        device_flow: DeviceFlow | None = None,
        validator: TokenValidator | None = None,
    ):
        self.client = client
        self.store = store
        self.device_flow = device_flow
        self._validator = validator or validate_token
        self.state = AuthState()
        self.changes: EventChannel[AuthState] = EventChannel()
        client.add_auth_expired_hook(self._on_auth_expired)

    async def _set_state(self, **changes) -> None:
        self.state = self.state.model_copy(update=changes)
        await self.changes.emit(self.state)

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    # ============ Login ============

    async def login_with_token(self, token: str) -> bool:
        """
        Validate, persist and bind ``token``, then load the account.

        Returns False (with ``state.error`` set) when the token is rejected
        or the account cannot be loaded.
        """
        await self._set_state(is_loading=True, error=None)

        validation = await self._validator(token)
        if not validation.is_valid:
            logger.warning("Token rejected: %s", validation.error)
            await self._set_state(is_loading=False, error=validation.error or "Invalid token")
            return False

        self.store.save(token)
        self.client.initialize(token)
        try:
            await self._load_account()
        except RepoHostError as e:
            logger.error("Failed to load account: %s", e)
            self.client.destroy()
            self.store.clear()
            await self._set_state(is_authenticated=False, is_loading=False, error=str(e))
            return False

        logger.info("Logged in as %s", self.state.user.login if self.state.user else "?")
        return True

    async def login_with_device_flow(self, on_code: CodeListener | None = None) -> bool:
        """
        Run the device flow to completion and log in with the issued token.

        ``on_code`` receives the user code and verification URI to show.
        """
        if self.device_flow is None:
            raise RuntimeError("Device flow is not configured (missing client id)")

        await self._set_state(is_loading=True, error=None)
        try:
            state = await self.device_flow.start()
            if on_code is not None:
                result = on_code(state)
                if result is not None:
                    await result
            token = await self.device_flow.wait_for_token()
        except RepoHostError as e:
            logger.warning("Device flow failed: %s", e)
            await self._set_state(is_loading=False, error=str(e))
            return False

        return await self.login_with_token(token)

    async def restore(self) -> bool:
        """Bind the stored credential, if any, and reload the account."""
        token = self.store.load()
        if not token:
            return False

        self.client.initialize(token)
        await self._set_state(is_loading=True, error=None)
        try:
            await self._load_account()
        except RepoHostError as e:
            logger.warning("Stored credential could not be restored: %s", e)
            await self.logout()
            return False
        return True

    async def refresh(self) -> None:
        """Reload user, repositories and write access for the bound credential."""
        if not self.client.is_authenticated:
            return
        await self._load_account()

    async def _load_account(self) -> None:
        user = await self.client.get_current_user()
        repositories = await self.client.get_user_repositories()
        has_write_access = False
        if repositories:
            first = repositories[0]
            permission = await self.client.check_repository_permission(first.owner, first.name, user.login)
            has_write_access = permission.has_write_access

        await self._set_state(
            is_authenticated=True,
            is_loading=False,
            user=user,
            repositories=repositories,
            has_write_access=has_write_access,
            error=None,
        )

    async def check_write_permission(self, owner: str, repo: str) -> bool:
        if not self.client.is_authenticated:
            return False
        result = await self.client.check_repository_permission(owner, repo)
        await self._set_state(has_write_access=result.has_write_access)
        return result.has_write_access

    # ============ Logout ============

    async def logout(self) -> None:
        """Drop the credential everywhere. Calling it again changes nothing."""
        self.store.clear()
        self.client.destroy()
        if self.device_flow is not None:
            self.device_flow.cancel()
        if self.state != AuthState():
            logger.info("Logged out")
            self.state = AuthState()
            await self.changes.emit(self.state)

    async def _on_auth_expired(self) -> None:
        logger.warning("Credential expired, logging out")
        await self.logout()
        await self._set_state(error="GitHub authentication expired. Please login again.")
