"""Image upload into the blog repository."""

import logging
import mimetypes
import re
import time
import uuid
from pathlib import PurePosixPath
from typing import Callable

from repohost import FileRecord, NetworkFailure, RateLimitExceeded, RepoHostError

from .content import ContentService
from .events import EventChannel
from .models import (
    ImageUploadError,
    ImageUploadProgress,
    ImageUploadResult,
    UploadedImage,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10MB
SUPPORTED_FORMATS = ("image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp")
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp")


def _format_size(size: int) -> str:
    return f"{size / (1024 * 1024):.1f}MB"


class ImageUploader:
    """Validates images and commits them under ``images_dir``.

    Upload failures are returned as an ImageUploadResult carrying a typed
    ImageUploadError; upload() itself does not raise for them.
    """

    def __init__(
        self,
        content: ContentService,
        images_dir: str = "public/images",
        max_size: int = MAX_IMAGE_SIZE,
        supported_formats: tuple[str, ...] = SUPPORTED_FORMATS,
        unique_filenames: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.content = content
        self.images_dir = images_dir.strip("/")
        self.max_size = max_size
        self.supported_formats = supported_formats
        self.unique_filenames = unique_filenames
        self._clock = clock

    def validate(self, size: int, mime_type: str | None) -> ImageUploadError | None:
        if size > self.max_size:
            return ImageUploadError(
                type="size",
                message=f"File size exceeds {_format_size(self.max_size)} limit",
                details=f"File size: {_format_size(size)}",
            )
        if mime_type not in self.supported_formats:
            return ImageUploadError(
                type="format",
                message="Unsupported file format",
                details=f"Supported formats: {', '.join(self.supported_formats)}",
            )
        return None

    def sanitize_filename(self, filename: str) -> str:
        """Lowercase ASCII name; a millisecond timestamp is appended when unique names are on."""
        name = PurePosixPath(filename.replace("\\", "/")).name
        stem, suffix = PurePosixPath(name).stem, PurePosixPath(name).suffix.lower()
        stem = re.sub(r"[^a-z0-9._-]", "-", stem.lower())
        stem = re.sub(r"-+", "-", stem).strip("-.") or "image"
        if self.unique_filenames:
            stem = f"{stem}-{int(self._clock() * 1000)}"
        return f"{stem}{suffix}"

    def image_path(self, filename: str) -> str:
        return f"{self.images_dir}/{filename}"

    def raw_url(self, filename: str) -> str:
        repository = self.content.require_repository()
        return (
            f"https://raw.githubusercontent.com/{repository.full_name}/"
            f"{repository.default_branch}/{self.image_path(filename)}"
        )

    async def upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str | None = None,
        channel: EventChannel[ImageUploadProgress] | None = None,
    ) -> ImageUploadResult:
        """Validate and commit one image."""
        channel = channel if channel is not None else EventChannel()
        upload_id = uuid.uuid4().hex
        mime_type = mime_type or mimetypes.guess_type(filename)[0]

        async def report(progress: int, status: str, error: str | None = None) -> None:
            await channel.emit(
                ImageUploadProgress(
                    id=upload_id, filename=filename, progress=progress, status=status, error=error
                )
            )

        await report(0, "preparing")
        invalid = self.validate(len(data), mime_type)
        if invalid is not None:
            logger.warning("Rejected image %s: %s", filename, invalid.message)
            await report(0, "failed", invalid.message)
            return ImageUploadResult(success=False, error=invalid)

        stored_name = self.sanitize_filename(filename)
        path = self.image_path(stored_name)
        await report(30, "uploading")
        try:
            commit = await self.content.create_file(path, data, message=f"Upload image: {stored_name}")
        except RateLimitExceeded as e:
            reset = e.reset_datetime
            details = f"Quota resets at {reset.isoformat()}" if reset else str(e)
            error = ImageUploadError(type="rate_limit", message="GitHub API rate limit exceeded", details=details)
        except NetworkFailure as e:
            error = ImageUploadError(type="network", message="Network error during upload", details=str(e))
        except RepoHostError as e:
            error = ImageUploadError(type="upload", message="Failed to upload image", details=str(e))
        else:
            await report(90, "processing")
            image = UploadedImage(
                id=upload_id,
                filename=stored_name,
                original_name=filename,
                size=len(data),
                mime_type=mime_type,
                path=path,
                raw_url=self.raw_url(stored_name),
                sha=commit.content_sha or commit.sha,
            )
            await report(100, "completed")
            logger.info("Uploaded image %s (%d bytes)", path, len(data))
            return ImageUploadResult(success=True, image=image)

        logger.error("Image upload failed for %s: %s", filename, error.details)
        await report(0, "failed", error.message)
        return ImageUploadResult(success=False, error=error)

    async def list_images(self) -> list[FileRecord]:
        """Image files under ``images_dir``."""
        directory = await self.content.list_directory(self.images_dir)
        return [file for file in directory.files if file.name.lower().endswith(IMAGE_SUFFIXES)]
