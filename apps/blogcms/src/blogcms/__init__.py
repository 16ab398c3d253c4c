"""Blog content management backed by a GitHub repository."""

from .app import Services, create_services
from .config import Settings
from .content import ContentService, RepositoryNotSet
from .events import EventChannel
from .images import ImageUploader
from .models import (
    BlogPost,
    ContentDirectory,
    ImageUploadError,
    ImageUploadProgress,
    ImageUploadResult,
    PostData,
    PostMetadata,
    PublishConfig,
    PublishResult,
    PublishStage,
    PublishStatus,
    UploadedImage,
    ValidationFailure,
)
from .parser import MarkdownParser, generate_slug
from .publish import PublishPipeline
from .session import AuthSession, AuthState

__all__ = [
    "Settings",
    "Services",
    "create_services",
    "ContentService",
    "RepositoryNotSet",
    "EventChannel",
    "ImageUploader",
    "MarkdownParser",
    "generate_slug",
    "PublishPipeline",
    "AuthSession",
    "AuthState",
    "BlogPost",
    "ContentDirectory",
    "ImageUploadError",
    "ImageUploadProgress",
    "ImageUploadResult",
    "PostData",
    "PostMetadata",
    "PublishConfig",
    "PublishResult",
    "PublishStage",
    "PublishStatus",
    "UploadedImage",
    "ValidationFailure",
]
