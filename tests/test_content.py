"""Tests for blogcms.content.ContentService."""

import datetime as dt
import json

import pytest

from blogcms.content import ContentService, RepositoryNotSet
from blogcms.models import PostMetadata
from repohost import AuthExpired, NotFound

from fakes import _json


def _body(request) -> dict:
    return json.loads(request.content)


class TestListing:
    async def test_missing_directory_is_empty(self, content):
        directory = await content.list_directory("content/drafts")

        assert directory.path == "content/drafts"
        assert directory.files == []
        assert directory.subdirectories == []

    async def test_splits_files_and_subdirectories(self, content, github):
        github.put_file("content/posts/a.md", "a")
        github.put_file("content/posts/2023/b.md", "b")

        directory = await content.list_directory("content/posts")

        assert [f.name for f in directory.files] == ["a.md"]
        assert directory.subdirectories == ["2023"]

    async def test_recursive_missing_root(self, content):
        assert await content.list_directory_recursive("content/none") == []

    async def test_recursive_depth_is_configurable(self, client, repository, github):
        github.put_file("a/b/c/d.md", "deep")
        shallow = ContentService(client, repository, max_depth=2)

        entries = await shallow.list_directory_recursive("a")

        assert {e.path for e in entries} == {"a/b", "a/b/c"}

    async def test_requires_repository(self, client):
        with pytest.raises(RepositoryNotSet):
            await ContentService(client).list_directory()


class TestWrites:
    async def test_default_messages(self, content, github):
        commit = await content.create_file("notes/a.md", "한글 내용")
        record = await content.read_file("notes/a.md")
        await content.update_file("notes/a.md", "updated", record.sha)
        record = await content.read_file("notes/a.md")
        await content.delete_file("notes/a.md", record.sha)

        puts = github.content_calls("PUT")
        assert [_body(r)["message"] for r in puts] == ["Create notes/a.md", "Update notes/a.md"]
        assert _body(github.content_calls("DELETE")[0])["message"] == "Delete notes/a.md"
        assert commit.sha
        assert "notes/a.md" not in github.files

    async def test_caller_message_and_branch(self, content, github):
        github.add_branch("drafts")
        await content.create_file("x.md", "x", message="Custom", branch="drafts")

        body = _body(github.content_calls("PUT")[0])
        assert body["message"] == "Custom"
        assert body["branch"] == "drafts"

    async def test_read_missing_file_raises(self, content):
        with pytest.raises(NotFound):
            await content.read_file("content/missing.md")

    async def test_reads_from_ref(self, content, github):
        github.put_file("notes/a.md", "main")
        github.add_branch("drafts")["notes/a.md"] = b"drafts"

        assert (await content.read_file("notes/a.md", ref="drafts")).content == "drafts"
        listing = await content.list_directory("notes", ref="drafts")
        assert [f.name for f in listing.files] == ["a.md"]
        assert listing.files[0].size == len(b"drafts")
        assert github.content_calls("GET")[-1].url.params["ref"] == "drafts"


class TestBlogPosts:
    async def test_posts_newest_first(self, content, github):
        github.put_file("content/posts/old.md", "---\ntitle: Old\ndate: 2023-01-01\n---\nOld body")
        github.put_file("content/posts/new.md", "---\ntitle: New\ndate: 2024-06-01\ntags: [x]\n---\nNew body")
        github.put_file("content/posts/undated.mdx", "No front matter here")
        github.put_file("content/posts/cover.png", b"\x89PNG")

        posts = await content.get_blog_posts()

        assert [p.metadata.title for p in posts] == ["New", "Old", None]
        assert posts[0].excerpt == "New body"
        assert posts[0].reading_time == 1
        assert posts[0].metadata.tags == ["x"]

    async def test_unreadable_post_becomes_draft_stub(self, content, github):
        github.put_file("content/posts/broken.md", b"\xff\xfe not utf-8")

        posts = await content.get_blog_posts()

        assert len(posts) == 1
        assert posts[0].metadata.title == "broken"
        assert posts[0].metadata.draft is True

    async def test_impossible_date_does_not_break_listing(self, content, github):
        github.put_file("content/posts/a.md", "---\ntitle: A\ndate: 2024-02-30\n---\nBody")
        github.put_file("content/posts/b.md", "---\ntitle: Re: B\ndate: 2024-03-01\n---\nBody")

        posts = await content.get_blog_posts()

        assert [(p.metadata.title, p.metadata.date) for p in posts] == [
            ("Re: B", dt.date(2024, 3, 1)),
            ("A", None),
        ]

    async def test_no_posts_directory(self, content):
        assert await content.get_blog_posts() == []

    async def test_auth_failure_propagates(self, content, github):
        github.token = "rotated"
        with pytest.raises(AuthExpired):
            await content.get_blog_posts()

    async def test_server_error_yields_empty(self, content, github):
        github.queue.extend([_json(500, {"message": "oops"}) for _ in range(3)])
        assert await content.get_blog_posts() == []

    async def test_pages_sorted(self, content, github):
        github.put_file("content/pages/b.md", "B")
        github.put_file("content/pages/a.md", "A")

        pages = await content.get_pages()

        assert [(p.name, p.content) for p in pages] == [("a.md", "A"), ("b.md", "B")]


class TestSiteFiles:
    async def test_categories(self, content, github):
        github.put_file("content/categories.json", json.dumps([{"name": "dev"}, {"name": "life"}]))
        assert await content.get_categories() == [{"name": "dev"}, {"name": "life"}]

    async def test_missing_categories(self, content):
        assert await content.get_categories() == []

    async def test_invalid_config_json(self, content, github):
        github.put_file("content/config.json", "{not json")
        assert await content.get_blog_config() == {}

    async def test_config(self, content, github):
        github.put_file("content/config.json", '{"title": "My Blog"}')
        assert await content.get_blog_config() == {"title": "My Blog"}


class TestCreateBlogPost:
    async def test_path_and_front_matter(self, content, github):
        await content.create_blog_post(
            "Hello World",
            "First post.",
            PostMetadata(tags=["intro"]),
            today=dt.date(2024, 5, 1),
        )

        path = "content/posts/2024-05-01-hello-world.md"
        text = github.files[path].decode("utf-8")
        metadata = content.extract_metadata(text)
        assert metadata.title == "Hello World"
        assert metadata.date == dt.date(2024, 5, 1)
        assert metadata.tags == ["intro"]
        assert metadata.draft is False
        assert text.endswith("First post.")
        assert _body(github.content_calls("PUT")[0])["message"] == "Add new blog post: Hello World"
