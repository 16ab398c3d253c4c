"""GitHub API data models."""

import time
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class GitHubUser(BaseModel):
    """Authenticated user."""

    id: int
    login: str
    name: str | None = None
    email: str | None = None
    avatar_url: str = ""
    html_url: str = ""
    bio: str | None = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0


class RepositoryPermissions(BaseModel):
    admin: bool = False
    maintain: bool = False
    push: bool = False
    triage: bool = False
    pull: bool = False


class GitHubRepository(BaseModel):
    """Repository as returned by the repository listing."""

    id: int
    name: str
    full_name: str
    description: str | None = None
    private: bool = False
    html_url: str = ""
    default_branch: str = "main"
    permissions: RepositoryPermissions = Field(default_factory=RepositoryPermissions)
    updated_at: str | None = None
    created_at: str | None = None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def can_write(self) -> bool:
        return self.permissions.push or self.permissions.admin


class RepositoryRef(BaseModel):
    """The single repository content operations run against."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    default_branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, full_name: str, default_branch: str = "main") -> "RepositoryRef":
        """Build from an ``owner/name`` string."""
        owner, sep, name = full_name.strip().partition("/")
        if not sep or not owner or not name:
            raise ValueError(f"Repository must be given as owner/name, got {full_name!r}")
        return cls(owner=owner, name=name, default_branch=default_branch)


class GitHubContent(BaseModel):
    """GitHub content item (file or directory)."""

    name: str
    path: str
    sha: str
    size: int = 0
    url: str = ""
    html_url: str | None = None
    download_url: str | None = None
    type: Literal["file", "dir", "symlink", "submodule"]
    content: str | None = None  # Base64 encoded content for files
    encoding: str | None = None  # Usually "base64" for files


class FileRecord(BaseModel):
    """File or directory entry; ``content`` holds decoded text when read."""

    name: str
    path: str
    sha: str
    size: int = 0
    type: Literal["file", "dir"] = "file"
    content: str | None = None
    encoding: str | None = None
    download_url: str | None = None


class CommitPerson(BaseModel):
    name: str = ""
    email: str = ""
    date: str = ""


class CommitResult(BaseModel):
    """Commit produced by a write operation."""

    sha: str
    message: str = ""
    author: CommitPerson = Field(default_factory=CommitPerson)
    committer: CommitPerson = Field(default_factory=CommitPerson)
    content_sha: str | None = None  # new blob sha of the written file, None on delete
    html_url: str | None = None


class RateLimitSnapshot(BaseModel):
    """Quota status; immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    limit: int
    used: int
    remaining: int
    reset: int  # epoch seconds
    fetched_at: float = Field(default_factory=time.time)

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset, tz=timezone.utc)

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at < ttl


class PermissionCheckResult(BaseModel):
    has_write_access: bool
    permission: Literal["admin", "write", "read", "none"]
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TokenValidationResult(BaseModel):
    is_valid: bool
    scopes: list[str] = Field(default_factory=list)
    user: GitHubUser | None = None
    error: str | None = None


class DeviceFlowState(BaseModel):
    """Pending device authorization; lives only while the flow is pending."""

    model_config = ConfigDict(frozen=True)

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str | None = None
    expires_in: int
    interval: int = 5
    started_at: float

    @property
    def expires_at(self) -> float:
        return self.started_at + self.expires_in
