"""GitHub API client utilities."""

from .auth import DeviceFlow, DeviceFlowStatus, validate_token
from .client import GitHubClient, decode_content, encode_content, get_token
from .credentials import CredentialStore
from .errors import (
    APIError,
    AuthExpired,
    DeviceFlowCancelled,
    DeviceFlowDenied,
    DeviceFlowError,
    DeviceFlowExpired,
    DeviceFlowInitError,
    DeviceFlowNotStarted,
    DeviceFlowPending,
    DeviceFlowSlowDown,
    InvalidRequest,
    NetworkFailure,
    NotAuthenticated,
    NotFound,
    RateLimitExceeded,
    RepoHostError,
    ShaConflict,
)
from .models import (
    CommitResult,
    DeviceFlowState,
    FileRecord,
    GitHubContent,
    GitHubRepository,
    GitHubUser,
    PermissionCheckResult,
    RateLimitSnapshot,
    RepositoryRef,
    TokenValidationResult,
)

__all__ = [
    "GitHubClient",
    "CredentialStore",
    "DeviceFlow",
    "DeviceFlowStatus",
    "validate_token",
    "get_token",
    "encode_content",
    "decode_content",
    "CommitResult",
    "DeviceFlowState",
    "FileRecord",
    "GitHubContent",
    "GitHubRepository",
    "GitHubUser",
    "PermissionCheckResult",
    "RateLimitSnapshot",
    "RepositoryRef",
    "TokenValidationResult",
    "RepoHostError",
    "NotAuthenticated",
    "NetworkFailure",
    "APIError",
    "AuthExpired",
    "RateLimitExceeded",
    "NotFound",
    "InvalidRequest",
    "ShaConflict",
    "DeviceFlowError",
    "DeviceFlowPending",
    "DeviceFlowSlowDown",
    "DeviceFlowExpired",
    "DeviceFlowDenied",
    "DeviceFlowCancelled",
    "DeviceFlowNotStarted",
    "DeviceFlowInitError",
]
