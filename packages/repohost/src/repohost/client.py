"""GitHub API client."""

import asyncio
import base64
import binascii
import logging
import os
import time
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .credentials import CredentialStore
from .errors import (
    TERMINAL_ERRORS,
    APIError,
    AuthExpired,
    InvalidRequest,
    NetworkFailure,
    NotAuthenticated,
    NotFound,
    RateLimitExceeded,
    ShaConflict,
)
from .models import (
    CommitPerson,
    CommitResult,
    FileRecord,
    GitHubContent,
    GitHubRepository,
    GitHubUser,
    PermissionCheckResult,
    RateLimitSnapshot,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
MIN_RATE_LIMIT_WAIT = 60.0  # seconds

# Quota cache
RATE_LIMIT_TTL = 60.0  # seconds
RATE_LIMIT_THRESHOLD = 10

# Transport failures, reported as NetworkFailure
RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

SleepFn = Callable[[float], Awaitable[None]]
AuthExpiredHook = Callable[[], Awaitable[None] | None]


def get_token(token: str | None = None, store: CredentialStore | None = None) -> str | None:
    """
    Get GitHub token from various sources.

    Priority:
    1. Explicitly provided token
    2. Environment variable GH_TOKEN / GITHUB_TOKEN
    3. Encrypted credential store

    Args:
        token: Explicitly provided token
        store: Credential store holding a previously saved token

    Returns:
        GitHub token or None
    """
    if token:
        logger.debug("Using explicitly provided token")
        return token

    env_token = os.environ.get("GH_TOKEN") or os.environ.get("GITHUB_TOKEN")
    if env_token:
        logger.info("Using token from environment variable")
        return env_token

    if store is not None:
        stored = store.load()
        if stored:
            logger.info("Using token from credential store")
            return stored

    return None


def encode_content(content: str | bytes) -> str:
    """Encode text (as UTF-8) or raw bytes for the contents API."""
    raw = content.encode("utf-8") if isinstance(content, str) else content
    return base64.b64encode(raw).decode("ascii")


def decode_content(encoded: str) -> str:
    """Decode base64 content from the contents API into UTF-8 text."""
    try:
        raw = base64.b64decode("".join(encoded.split()), validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Failed to decode file content: {e}") from e


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return ""


def _commit_result(data: dict[str, Any]) -> CommitResult:
    commit = data.get("commit") or {}
    content = data.get("content") or {}
    return CommitResult(
        sha=commit.get("sha", ""),
        message=commit.get("message") or "",
        author=CommitPerson(**(commit.get("author") or {})),
        committer=CommitPerson(**(commit.get("committer") or {})),
        content_sha=content.get("sha"),
        html_url=commit.get("html_url"),
    )


class GitHubClient:
    """GitHub REST API client with quota awareness and retry support.

    Every call goes through :meth:`retry_with_backoff`, which checks the
    cached quota before each attempt and classifies failures into the
    typed errors of :mod:`repohost.errors`.
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize GitHub client. No credential is bound until :meth:`initialize`.

        Args:
            base_url: Custom base URL (defaults to GitHub API)
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per call (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Cooperative sleep used for backoff and quota waits
            clock: Wall clock returning epoch seconds
        """
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._token: str | None = None
        self._rate_limit: RateLimitSnapshot | None = None
        self._auth_expired_hooks: list[AuthExpiredHook] = []
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "blogcms-github-client",
        }
        logger.info("GitHub client ready, base_url=%s, max_retries=%d", self.base_url, max_retries)

    # ============ Credential binding ============

    def initialize(self, token: str) -> None:
        """Bind the active credential."""
        if not token:
            raise ValueError("token must not be empty")
        self._token = token
        self._rate_limit = None
        logger.debug("GitHub client initialized with token")

    def destroy(self) -> None:
        """Unbind the credential; later calls fail with NotAuthenticated."""
        self._token = None
        self._rate_limit = None
        logger.debug("GitHub client credential released")

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def add_auth_expired_hook(self, hook: AuthExpiredHook) -> None:
        """Register a callback run whenever the API answers 401."""
        self._auth_expired_hooks.append(hook)

    def _ensure_authenticated(self) -> str:
        if self._token is None:
            raise NotAuthenticated()
        return self._token

    async def _notify_auth_expired(self) -> None:
        for hook in list(self._auth_expired_hooks):
            result = hook()
            if asyncio.iscoroutine(result):
                await result

    # ============ Transport ============

    async def _request(
        self, method: str, endpoint: str, resource: str = "", **kwargs: Any
    ) -> httpx.Response:
        """Make a single HTTP request and classify the outcome."""
        token = self._ensure_authenticated()
        headers = {**self.headers, "Authorization": f"Bearer {token}"}
        logger.debug("Request: %s %s", method, endpoint)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.request(method, endpoint, **kwargs)
        except RETRYABLE_EXCEPTIONS as e:
            logger.warning("Network error on %s %s: %s", method, endpoint, e)
            raise NetworkFailure(e) from e

        logger.debug("Response: %s %s (status=%d)", method, endpoint, response.status_code)
        if response.status_code < 400:
            return response

        error = self._classify(response, resource)
        if isinstance(error, AuthExpired):
            logger.warning("GitHub rejected the credential (401)")
            await self._notify_auth_expired()
        raise error

    def _classify(self, response: httpx.Response, resource: str) -> APIError:
        status = response.status_code
        detail = _error_detail(response)
        if status == 401:
            return AuthExpired()
        if status == 403:
            reset = response.headers.get("x-ratelimit-reset")
            return RateLimitExceeded(float(reset) if reset else None)
        if status == 404:
            return NotFound(resource)
        if status == 409:
            return ShaConflict(resource, detail)
        if status == 422:
            # e.g. '"sha" wasn't supplied' when updating an existing path
            if response.request.method in ("PUT", "DELETE") and "sha" in detail.lower():
                return ShaConflict(resource, detail)
            return InvalidRequest(detail)
        return APIError(status, f"GitHub API error: {status} {detail}".rstrip())

    async def _download(self, url: str) -> str:
        """Download raw content from URL."""
        token = self._ensure_authenticated()
        logger.debug("Downloading: %s", url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={**self.headers, "Authorization": f"Bearer {token}"},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except RETRYABLE_EXCEPTIONS as e:
            raise NetworkFailure(e) from e
        if response.status_code >= 400:
            raise self._classify(response, url)
        return response.text

    # ============ Quota & retry ============

    async def get_rate_limit(self) -> RateLimitSnapshot | None:
        """Fetch current quota. Failures are logged and yield None."""
        try:
            response = await self._request("GET", "/rate_limit")
        except (NotAuthenticated, AuthExpired):
            raise
        except Exception as e:
            logger.warning("Failed to get rate limit: %s", e)
            return None
        rate = response.json()["rate"]
        return RateLimitSnapshot(
            limit=rate["limit"],
            used=rate["used"],
            remaining=rate["remaining"],
            reset=rate["reset"],
            fetched_at=self._clock(),
        )

    async def get_rate_limit_info(self) -> RateLimitSnapshot | None:
        """Return the cached quota, probing when the cache is stale."""
        self._ensure_authenticated()
        if self._rate_limit and self._rate_limit.is_fresh(self._clock(), RATE_LIMIT_TTL):
            return self._rate_limit

        snapshot = await self.get_rate_limit()
        if snapshot:
            self._rate_limit = snapshot
        return snapshot

    async def check_rate_limit(self) -> None:
        """Wait for the quota reset when few requests remain."""
        snapshot = await self.get_rate_limit_info()
        if snapshot is None or snapshot.remaining > RATE_LIMIT_THRESHOLD:
            return
        wait = snapshot.reset - self._clock()
        if wait > 0:
            logger.warning(
                "Rate limit approaching (%d remaining). Waiting %ds...",
                snapshot.remaining,
                int(wait + 0.999),
            )
            await self._sleep(wait)

    def _backoff_wait(self, base_delay: float):
        exponential = wait_exponential(multiplier=base_delay)

        def wait(retry_state) -> float:
            error = retry_state.outcome.exception()
            if isinstance(error, RateLimitExceeded):
                reset = error.reset_at
                if reset is None and self._rate_limit is not None:
                    reset = self._rate_limit.reset
                return max((reset or 0) - self._clock(), MIN_RATE_LIMIT_WAIT)
            return exponential(retry_state)

        return wait

    async def retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """
        Run ``operation`` with quota checks and retries.

        401/404/409/422 are raised immediately. 403 waits for the quota
        reset (at least 60s). Anything else backs off exponentially.
        The last error is re-raised once attempts are exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts or self.max_retries),
            wait=self._backoff_wait(self.base_delay if base_delay is None else base_delay),
            retry=retry_if_not_exception_type(TERMINAL_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        async def attempt() -> T:
            await self.check_rate_limit()
            return await operation()

        return await retrying(attempt)

    async def _call(self, method: str, endpoint: str, resource: str = "", **kwargs: Any) -> httpx.Response:
        self._ensure_authenticated()
        return await self.retry_with_backoff(
            lambda: self._request(method, endpoint, resource, **kwargs)
        )

    # ============ Account ============

    async def get_current_user(self) -> GitHubUser:
        """Get the authenticated user."""
        response = await self._call("GET", "/user")
        return GitHubUser(**response.json())

    async def get_user_repositories(self) -> list[GitHubRepository]:
        """List repositories the user can push to."""
        response = await self._call(
            "GET", "/user/repos", params={"type": "all", "sort": "updated", "per_page": 100}
        )
        repositories = [GitHubRepository(**item) for item in response.json()]
        writable = [repo for repo in repositories if repo.can_write]
        logger.debug("Repositories: %d total, %d writable", len(repositories), len(writable))
        return writable

    async def get_repository(self, owner: str, repo: str) -> GitHubRepository:
        """Get a single repository."""
        response = await self._call("GET", f"/repos/{owner}/{repo}", resource=f"{owner}/{repo}")
        return GitHubRepository(**response.json())

    async def check_repository_permission(
        self, owner: str, repo: str, username: str | None = None
    ) -> PermissionCheckResult:
        """
        Check the collaborator permission of ``username`` (default: current user).

        A 404 is reported as no access instead of an error; rate-limit
        and other failures propagate.
        """
        try:
            target = username or (await self.get_current_user()).login
            response = await self._call(
                "GET", f"/repos/{owner}/{repo}/collaborators/{target}/permission"
            )
        except NotFound as e:
            logger.warning("Permission check failed for %s/%s: %s", owner, repo, e)
            return PermissionCheckResult(has_write_access=False, permission="none")

        permission = response.json().get("permission", "none")
        if permission not in ("admin", "write", "read"):
            permission = "none"
        return PermissionCheckResult(
            has_write_access=permission in ("admin", "write"),
            permission=permission,
        )

    async def validate_connection(self) -> bool:
        """Cheap check that the bound token still works."""
        try:
            await self.get_current_user()
            return True
        except Exception as e:
            logger.debug("Connection validation failed: %s", e)
            return False

    # ============ Contents ============

    async def get_contents(
        self, owner: str, repo: str, path: str = "", ref: str | None = None
    ) -> list[GitHubContent]:
        """
        Get repository contents.

        Args:
            owner: Repository owner
            repo: Repository name
            path: Path in repository (empty for root)
            ref: Branch/tag/commit (default: repository default branch)

        Returns:
            List of GitHubContent items
        """
        data = await self._fetch_contents(owner, repo, path, ref)

        # Handle single file response
        if isinstance(data, dict):
            logger.debug("Single file response: %s", data.get("name"))
            return [GitHubContent(**data)]

        logger.debug("Directory listing: %d items", len(data))
        return [GitHubContent(**item) for item in data]

    async def _fetch_contents(self, owner: str, repo: str, path: str, ref: str | None) -> Any:
        endpoint = f"/repos/{owner}/{repo}/contents/{quote(path.strip('/'), safe='/')}"
        params = {"ref": ref} if ref else {}
        logger.info("Fetching contents: %s/%s path=%s ref=%s", owner, repo, path, ref)
        response = await self._call("GET", endpoint, resource=path, params=params)
        return response.json()

    async def get_directory_contents(
        self, owner: str, repo: str, path: str = "", ref: str | None = None
    ) -> list[GitHubContent]:
        """Single-level directory listing; a file path yields an empty list."""
        data = await self._fetch_contents(owner, repo, path, ref)
        if isinstance(data, dict):
            return []
        return [GitHubContent(**item) for item in data]

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> FileRecord:
        """
        Get file content with decoded text.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path in repository
            ref: Branch/tag/commit

        Returns:
            FileRecord with decoded content
        """
        logger.info("Fetching file content: %s/%s path=%s", owner, repo, path)
        data = await self._fetch_contents(owner, repo, path, ref)
        if not isinstance(data, dict) or data.get("type") != "file":
            logger.error("Path is not a file: %s", path)
            raise InvalidRequest(f"Path is not a file: {path}")

        item = GitHubContent(**data)
        if item.encoding == "base64" and item.content is not None:
            decoded = decode_content(item.content)
        elif item.download_url:
            # Large files come back without inline content
            decoded = await self.retry_with_backoff(lambda: self._download(item.download_url))
        else:
            logger.error("File has no content: %s", path)
            raise InvalidRequest(f"File has no content: {path}")

        logger.debug("File content fetched: %s (%d chars)", path, len(decoded))
        return FileRecord(
            name=item.name,
            path=item.path,
            sha=item.sha,
            size=item.size,
            type="file",
            content=decoded,
            encoding="utf-8",
            download_url=item.download_url,
        )

    async def get_directory_contents_recursive(
        self,
        owner: str,
        repo: str,
        path: str = "",
        ref: str | None = None,
        max_depth: int = 10,
    ) -> list[FileRecord]:
        """
        Depth-first listing of every entry below ``path``.

        Each directory costs one listing call; recursion stops after
        ``max_depth`` levels.
        """
        if max_depth <= 0:
            return []

        results: list[FileRecord] = []
        for item in await self.get_directory_contents(owner, repo, path, ref):
            if item.type not in ("file", "dir"):
                continue
            results.append(
                FileRecord(
                    name=item.name,
                    path=item.path,
                    sha=item.sha,
                    size=item.size,
                    type=item.type,
                    download_url=item.download_url,
                )
            )
            if item.type == "dir":
                logger.debug("Recursing into directory: %s", item.path)
                results.extend(
                    await self.get_directory_contents_recursive(
                        owner, repo, item.path, ref, max_depth - 1
                    )
                )
        return results

    async def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str | bytes,
        message: str,
        sha: str | None = None,
        branch: str | None = None,
    ) -> CommitResult:
        """
        Create a file, or update it when ``sha`` is given.

        Text is sent as UTF-8; bytes are sent unchanged. Updating an
        existing path without its current sha raises ShaConflict.
        """
        if not message or not message.strip():
            raise ValueError("A commit message is required")

        body: dict[str, Any] = {"message": message, "content": encode_content(content)}
        if sha:
            body["sha"] = sha
        if branch:
            body["branch"] = branch

        endpoint = f"/repos/{owner}/{repo}/contents/{quote(path.strip('/'), safe='/')}"
        logger.info("Writing file: %s/%s path=%s update=%s", owner, repo, path, bool(sha))
        response = await self._call("PUT", endpoint, resource=path, json=body)
        result = _commit_result(response.json())
        logger.debug("Committed %s as %s", path, result.sha)
        return result

    async def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        sha: str,
        message: str,
        branch: str | None = None,
    ) -> CommitResult:
        """Delete a file; ``sha`` must be the current blob sha."""
        if not message or not message.strip():
            raise ValueError("A commit message is required")
        if not sha:
            raise ShaConflict(path, "sha is required to delete a file")

        body: dict[str, Any] = {"message": message, "sha": sha}
        if branch:
            body["branch"] = branch

        endpoint = f"/repos/{owner}/{repo}/contents/{quote(path.strip('/'), safe='/')}"
        logger.info("Deleting file: %s/%s path=%s", owner, repo, path)
        response = await self._call("DELETE", endpoint, resource=path, json=body)
        return _commit_result(response.json())
