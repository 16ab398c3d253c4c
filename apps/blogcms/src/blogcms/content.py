"""Path-oriented content operations on the blog repository."""

import datetime as dt
import json
import logging
from pathlib import PurePosixPath
from typing import Any

from repohost import (
    AuthExpired,
    CommitResult,
    FileRecord,
    GitHubClient,
    NotAuthenticated,
    NotFound,
    RepoHostError,
    RepositoryRef,
)

from .models import BlogPost, ContentDirectory, PostMetadata
from .parser import MarkdownParser, generate_slug

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".mdx")
DEFAULT_MAX_DEPTH = 10


class RepositoryNotSet(RuntimeError):
    """A content operation ran before set_repository()."""


class ContentService:
    """Blog content stored in one GitHub repository."""

    def __init__(
        self,
        client: GitHubClient,
        repository: RepositoryRef | None = None,
        parser: MarkdownParser | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        posts_dir: str = "content/posts",
        pages_dir: str = "content/pages",
    ):
        self.client = client
        self._repository = repository
        self.parser = parser or MarkdownParser()
        self.max_depth = max_depth
        self.posts_dir = posts_dir
        self.pages_dir = pages_dir

    def set_repository(self, repository: RepositoryRef) -> None:
        """Select the repository all later operations use."""
        logger.info("Using repository %s", repository.full_name)
        self._repository = repository

    @property
    def repository(self) -> RepositoryRef | None:
        return self._repository

    def require_repository(self) -> RepositoryRef:
        if self._repository is None:
            raise RepositoryNotSet("No repository selected. Please set a current repository first.")
        return self._repository

    # ============ Reads ============

    async def list_directory(self, path: str = "content", ref: str | None = None) -> ContentDirectory:
        """
        Single-level listing split into files and subdirectory names.

        A missing directory is reported as empty.
        """
        repo = self.require_repository()
        try:
            items = await self.client.get_directory_contents(repo.owner, repo.name, path, ref)
        except NotFound:
            logger.debug("Directory does not exist yet: %s", path)
            return ContentDirectory(path=path)

        directory = ContentDirectory(path=path)
        for item in items:
            if item.type == "file":
                directory.files.append(
                    FileRecord(
                        name=item.name,
                        path=item.path,
                        sha=item.sha,
                        size=item.size,
                        type="file",
                        download_url=item.download_url,
                    )
                )
            elif item.type == "dir":
                directory.subdirectories.append(item.name)
        return directory

    async def list_directory_recursive(
        self, path: str = "content", max_depth: int | None = None, ref: str | None = None
    ) -> list[FileRecord]:
        """Every file and directory below ``path``; a missing root yields []."""
        repo = self.require_repository()
        depth = self.max_depth if max_depth is None else max_depth
        try:
            return await self.client.get_directory_contents_recursive(
                repo.owner, repo.name, path, ref=ref, max_depth=depth
            )
        except NotFound:
            logger.debug("Directory does not exist yet: %s", path)
            return []

    async def read_file(self, path: str, ref: str | None = None) -> FileRecord:
        """Read a file with decoded text content, from ``ref`` when given."""
        repo = self.require_repository()
        return await self.client.get_file_content(repo.owner, repo.name, path, ref)

    # ============ Writes ============

    async def create_file(
        self,
        path: str,
        content: str | bytes,
        message: str | None = None,
        branch: str | None = None,
    ) -> CommitResult:
        repo = self.require_repository()
        return await self.client.create_or_update_file(
            repo.owner, repo.name, path, content, message or f"Create {path}", branch=branch
        )

    async def update_file(
        self,
        path: str,
        content: str | bytes,
        sha: str,
        message: str | None = None,
        branch: str | None = None,
    ) -> CommitResult:
        repo = self.require_repository()
        return await self.client.create_or_update_file(
            repo.owner, repo.name, path, content, message or f"Update {path}", sha=sha, branch=branch
        )

    async def delete_file(
        self,
        path: str,
        sha: str,
        message: str | None = None,
        branch: str | None = None,
    ) -> CommitResult:
        repo = self.require_repository()
        return await self.client.delete_file(
            repo.owner, repo.name, path, sha, message or f"Delete {path}", branch=branch
        )

    # ============ Blog domain ============

    def extract_metadata(self, content: str) -> PostMetadata:
        return self.parser.extract_metadata(content)

    def extract_excerpt(self, content: str, max_length: int = 300) -> str:
        return self.parser.extract_excerpt(content, max_length)

    def reading_time(self, content: str) -> int:
        return self.parser.reading_time(content)

    async def get_blog_posts(self) -> list[BlogPost]:
        """
        Load every markdown post with parsed metadata, newest first.

        A post that cannot be read is listed as a draft stub named after
        its file. Listing failures other than authentication yield [].
        """
        try:
            directory = await self.list_directory(self.posts_dir)
        except (NotAuthenticated, AuthExpired):
            raise
        except RepoHostError as e:
            logger.warning("Failed to load blog posts: %s", e)
            return []

        posts: list[BlogPost] = []
        for file in directory.files:
            if not file.name.endswith(MARKDOWN_SUFFIXES):
                continue
            try:
                record = await self.read_file(file.path)
            except (NotAuthenticated, AuthExpired):
                raise
            except (RepoHostError, ValueError) as e:
                logger.warning("Failed to load post %s: %s", file.path, e)
                posts.append(
                    BlogPost(
                        **file.model_dump(),
                        metadata=PostMetadata(title=PurePosixPath(file.name).stem, draft=True),
                    )
                )
                continue

            text = record.content or ""
            posts.append(
                BlogPost(
                    **record.model_dump(),
                    metadata=self.extract_metadata(text),
                    excerpt=self.extract_excerpt(text),
                    reading_time=self.reading_time(text),
                )
            )

        posts.sort(key=lambda post: post.metadata.date or dt.date.min, reverse=True)
        logger.info("Loaded %d posts", len(posts))
        return posts

    async def get_pages(self) -> list[FileRecord]:
        """Markdown pages sorted by name; unreadable pages are listed without content."""
        try:
            directory = await self.list_directory(self.pages_dir)
        except (NotAuthenticated, AuthExpired):
            raise
        except RepoHostError as e:
            logger.warning("Failed to load pages: %s", e)
            return []

        pages: list[FileRecord] = []
        for file in directory.files:
            if not file.name.endswith(MARKDOWN_SUFFIXES):
                continue
            try:
                pages.append(await self.read_file(file.path))
            except (NotAuthenticated, AuthExpired):
                raise
            except (RepoHostError, ValueError) as e:
                logger.warning("Failed to load page %s: %s", file.path, e)
                pages.append(file)
        return sorted(pages, key=lambda page: page.name)

    async def _read_json(self, path: str, default: Any) -> Any:
        try:
            record = await self.read_file(path)
            return json.loads(record.content or "null") or default
        except (NotAuthenticated, AuthExpired):
            raise
        except (RepoHostError, ValueError) as e:
            logger.warning("Failed to load %s: %s", path, e)
            return default

    async def get_categories(self) -> list[Any]:
        """Entries of ``content/categories.json``, or [] when unavailable."""
        return await self._read_json("content/categories.json", [])

    async def get_blog_config(self) -> dict[str, Any]:
        """``content/config.json``, or {} when unavailable."""
        return await self._read_json("content/config.json", {})

    async def create_blog_post(
        self,
        title: str,
        content: str,
        metadata: PostMetadata | None = None,
        today: dt.date | None = None,
    ) -> CommitResult:
        """Create ``<posts_dir>/<date>-<slug>.md`` with generated front matter."""
        day = today or dt.date.today()
        fields = {"title": title, "date": day, "draft": False}
        if metadata is not None:
            fields.update(metadata.model_dump(exclude_none=True))
        post_metadata = PostMetadata(**fields)

        slug = generate_slug(title)
        path = f"{self.posts_dir}/{(post_metadata.date or day).isoformat()}-{slug}.md"
        text = self.parser.render_document(post_metadata, content)
        return await self.create_file(path, text, message=f"Add new blog post: {title}")
