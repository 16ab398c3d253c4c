"""Blog CMS data models."""

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from repohost import CommitResult, FileRecord


class ValidationFailure(ValueError):
    """Caller-supplied data was rejected before any network call."""

    def __init__(self, errors: list[str]):
        super().__init__("Validation failed: " + ", ".join(errors))
        self.errors = errors


# ============ Content ============

class PostMetadata(BaseModel):
    """Front matter fields recognized on a post."""

    title: str | None = None
    description: str | None = None
    author: str | None = None
    date: dt.date | None = None
    tags: list[str] | None = None
    category: str | None = None
    draft: bool | None = None


class ContentDirectory(BaseModel):
    """Single-level directory listing."""

    path: str
    files: list[FileRecord] = Field(default_factory=list)
    subdirectories: list[str] = Field(default_factory=list)


class BlogPost(FileRecord):
    """Post file with parsed front matter."""

    metadata: PostMetadata = Field(default_factory=PostMetadata)
    excerpt: str | None = None
    reading_time: int | None = None  # minutes


# ============ Publishing ============

class PostData(BaseModel):
    """In-memory post to publish."""

    title: str
    content: str
    slug: str
    metadata: PostMetadata = Field(default_factory=PostMetadata)


class PublishConfig(BaseModel):
    message: str | None = None
    branch: str | None = None
    path: str | None = None


class PublishStage(str, Enum):
    VALIDATING = "validating"
    PREPARING = "preparing"
    COMMITTING = "committing"
    PUSHING = "pushing"
    DEPLOYING = "deploying"
    COMPLETED = "completed"
    FAILED = "failed"


class PublishStatus(BaseModel):
    """Snapshot of a publish run, pushed to observers on every transition."""

    stage: PublishStage
    progress: int = Field(ge=0, le=100)
    message: str
    error: str | None = None
    failed_stage: PublishStage | None = None
    commit_sha: str | None = None
    commit_url: str | None = None


class PublishResult(BaseModel):
    path: str
    created: bool
    commit: CommitResult
    status: PublishStatus


# ============ Images ============

class UploadedImage(BaseModel):
    id: str
    filename: str
    original_name: str
    size: int
    mime_type: str
    path: str
    raw_url: str
    uploaded_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    sha: str


class ImageUploadProgress(BaseModel):
    id: str
    filename: str
    progress: int = Field(ge=0, le=100)
    status: Literal["preparing", "uploading", "processing", "completed", "failed"]
    error: str | None = None


class ImageUploadError(BaseModel):
    type: Literal["size", "format", "network", "rate_limit", "upload"]
    message: str
    details: str | None = None


class ImageUploadResult(BaseModel):
    success: bool
    image: UploadedImage | None = None
    error: ImageUploadError | None = None
