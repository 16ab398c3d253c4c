"""Multi-stage publish workflow for a single post."""

import datetime as dt
import logging
import re
from typing import Callable

from repohost import CommitResult, FileRecord, NotFound

from .content import ContentService
from .events import EventChannel
from .models import (
    PostData,
    PublishConfig,
    PublishResult,
    PublishStage,
    PublishStatus,
    ValidationFailure,
)
from .parser import MarkdownParser, count_words

logger = logging.getLogger(__name__)

# letters, digits, Hangul syllables and hyphens
SLUG_PATTERN = re.compile(r"^[a-z0-9가-힣-]+$")


class PublishPipeline:
    """
    Turns a PostData into a committed markdown file.

    Stages run forward only:
    validating(10) -> preparing(25, 40) -> committing(60) -> pushing(80)
    -> deploying(90, 95) -> completed(100). An error before the commit
    lands moves the run to ``failed`` with progress 0 and is re-raised.
    Push and deploy are reported, not verified; the commit sha in the
    final status is what a deployment watcher should track.
    """

    def __init__(
        self,
        content: ContentService,
        parser: MarkdownParser | None = None,
        posts_dir: str = "content/posts",
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self.content = content
        self.parser = parser or content.parser
        self.posts_dir = posts_dir
        self._today = today

    # ============ Preparation ============

    def validate(self, post: PostData) -> list[str]:
        """Collect every problem with ``post``; an empty list means valid."""
        errors: list[str] = []
        if not post.title or not post.title.strip():
            errors.append("Title is required")
        if not post.content or not post.content.strip():
            errors.append("Content is required")
        if not post.slug or not post.slug.strip():
            errors.append("Slug is required")
        elif not SLUG_PATTERN.match(post.slug):
            errors.append("Slug can only contain lowercase letters, numbers, Korean characters, and hyphens")
        return errors

    def post_date(self, post: PostData) -> dt.date:
        return post.metadata.date or self._today()

    def generate_filename(self, post: PostData) -> str:
        return f"{self.post_date(post).isoformat()}-{post.slug}.md"

    def generate_path(self, post: PostData) -> str:
        return f"{self.posts_dir}/{self.generate_filename(post)}"

    def generate_markdown(self, post: PostData) -> str:
        """Front matter (title and date filled in when missing) followed by the body."""
        metadata = post.metadata.model_copy(
            update={
                "title": post.metadata.title or post.title,
                "date": self.post_date(post),
            }
        )
        return self.parser.render_document(metadata, post.content)

    def generate_commit_message(self, post: PostData) -> str:
        metadata = post.metadata
        tags = ", ".join(metadata.tags) if metadata.tags else "none"
        lines = [
            f'feat: add new blog post "{post.title}"',
            "",
            f"- Created: {self.post_date(post).isoformat()}",
            f"- Category: {metadata.category or 'uncategorized'}",
            f"- Tags: {tags}",
            f"- Word count: ~{count_words(post.content)} words",
            "",
            "Published via blogcms",
        ]
        return "\n".join(lines)

    # ============ Run ============

    async def _existing(self, path: str, branch: str | None) -> FileRecord | None:
        try:
            return await self.content.read_file(path, ref=branch)
        except NotFound:
            return None

    async def publish(
        self,
        post: PostData,
        config: PublishConfig | None = None,
        channel: EventChannel[PublishStatus] | None = None,
    ) -> PublishResult:
        """
        Publish ``post`` and report each stage on ``channel``.

        Creates the file when the path is new, otherwise updates it with
        the existing sha.
        """
        config = config or PublishConfig()
        channel = channel if channel is not None else EventChannel()
        status = PublishStatus(stage=PublishStage.VALIDATING, progress=10, message="Validating post...")

        async def advance(stage: PublishStage, progress: int, message: str, **fields) -> None:
            nonlocal status
            status = PublishStatus(stage=stage, progress=progress, message=message, **fields)
            logger.info("Publish [%s %d%%] %s", stage.value, progress, message)
            await channel.emit(status)

        try:
            await advance(PublishStage.VALIDATING, 10, "Validating post...")
            errors = self.validate(post)
            if errors:
                raise ValidationFailure(errors)

            await advance(PublishStage.PREPARING, 25, "Preparing content...")
            path = config.path or self.generate_path(post)
            markdown = self.generate_markdown(post)
            message = config.message or self.generate_commit_message(post)

            await advance(PublishStage.PREPARING, 40, "Checking for existing file...")
            existing = await self._existing(path, config.branch)

            await advance(PublishStage.COMMITTING, 60, "Committing to repository...")
            commit: CommitResult
            if existing is not None:
                commit = await self.content.update_file(
                    path, markdown, existing.sha, message=message, branch=config.branch
                )
            else:
                commit = await self.content.create_file(
                    path, markdown, message=message, branch=config.branch
                )
        except Exception as e:
            failed_stage = status.stage
            logger.error("Publish failed at %s: %s", failed_stage.value, e)
            await channel.emit(
                PublishStatus(
                    stage=PublishStage.FAILED,
                    progress=0,
                    message=status.message,
                    error=str(e),
                    failed_stage=failed_stage,
                )
            )
            raise

        # the commit has landed; from here the run can only complete
        await advance(PublishStage.PUSHING, 80, "Pushing changes...")
        await advance(PublishStage.DEPLOYING, 90, "Triggering deployment...")
        await advance(
            PublishStage.DEPLOYING,
            95,
            "Waiting for deployment...",
            commit_sha=commit.sha,
            commit_url=self.commit_url(commit),
        )
        await advance(
            PublishStage.COMPLETED,
            100,
            "Post published successfully!",
            commit_sha=commit.sha,
            commit_url=self.commit_url(commit),
        )
        return PublishResult(path=path, created=existing is None, commit=commit, status=status)

    def commit_url(self, commit: CommitResult) -> str | None:
        if commit.html_url:
            return commit.html_url
        repository = self.content.repository
        if repository is None or not commit.sha:
            return None
        return f"https://github.com/{repository.full_name}/commit/{commit.sha}"
