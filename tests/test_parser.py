"""Tests for blogcms.parser: front matter, excerpts, slugs and reading time."""

import datetime as dt

import pytest

from blogcms.models import PostMetadata
from blogcms.parser import MarkdownParser, generate_slug, reading_time


@pytest.fixture
def parser():
    return MarkdownParser()


# ── metadata ────────────────────────────────────────────────────────


class TestExtractMetadata:
    def test_no_block_is_empty(self, parser):
        metadata = parser.extract_metadata("# Just a heading\n\nBody text.")
        assert metadata.model_dump(exclude_none=True) == {}

    def test_typed_fields(self, parser):
        text = (
            "---\n"
            "title: Hello World\n"
            'tags: ["a", "b"]\n'
            "date: 2024-03-05\n"
            "draft: false\n"
            "category: notes\n"
            "---\n"
            "Body"
        )
        metadata = parser.extract_metadata(text)

        assert metadata.title == "Hello World"
        assert metadata.tags == ["a", "b"]
        assert metadata.date == dt.date(2024, 3, 5)
        assert metadata.draft is False
        assert metadata.category == "notes"

    def test_invalid_date_is_omitted(self, parser):
        metadata = parser.extract_metadata('---\ntitle: T\ndate: "not-a-date"\n---\n')

        assert "date" not in metadata.model_dump(exclude_none=True)
        assert metadata.title == "T"

    def test_comma_separated_tags(self, parser):
        metadata = parser.extract_metadata("---\ntags: python, web , \n---\n")
        assert metadata.tags == ["python", "web"]

    def test_string_booleans(self, parser):
        assert parser.extract_metadata("---\ndraft: 'yes'\n---\n").draft is True
        assert parser.extract_metadata("---\ndraft: 'no'\n---\n").draft is False

    def test_unknown_keys_ignored(self, parser):
        metadata = parser.extract_metadata("---\ntitle: T\nlayout: post\nTITLE2: x\n---\n")
        assert metadata.model_dump(exclude_none=True) == {"title": "T"}

    @pytest.mark.parametrize("day", ["2024-02-30", "2024-13-45"])
    def test_impossible_date_is_omitted(self, parser, day):
        metadata = parser.extract_metadata(f"---\ntitle: T\ndate: {day}\n---\nBody")

        assert metadata.date is None
        assert metadata.title == "T"

    def test_colon_in_unquoted_value(self, parser):
        text = "---\ntitle: Re: Hello\ncategory: notes\ndate: 2024-05-06\ntags: [a, 'b']\n---\nBody"

        metadata = parser.extract_metadata(text)

        assert metadata.title == "Re: Hello"
        assert metadata.category == "notes"
        assert metadata.date == dt.date(2024, 5, 6)
        assert metadata.tags == ["a", "b"]

    def test_invalid_yaml_falls_back_to_lines(self, parser):
        metadata = parser.extract_metadata("---\ntitle: [unclosed\nauthor: \"Kim\"\n---\nBody")

        assert metadata.title == "[unclosed"
        assert metadata.author == "Kim"

    def test_block_without_fields_is_empty(self, parser):
        assert parser.extract_metadata("---\n- just\n- a list\n---\nBody") == PostMetadata()
        assert parser.extract_metadata("---\nno fields here\n---\nBody") == PostMetadata()

    def test_unterminated_block_is_empty(self, parser):
        assert parser.extract_metadata("---\ntitle: T\nBody without end") == PostMetadata()

    def test_rendered_front_matter_parses_back(self, parser):
        metadata = PostMetadata(
            title='Say "hi": 안녕',
            date=dt.date(2024, 1, 2),
            tags=["x", "y z"],
            category="misc",
            draft=True,
        )
        document = parser.render_document(metadata, "Body")

        assert parser.extract_metadata(document) == metadata
        assert document.endswith("---\n\nBody")


# ── excerpt ─────────────────────────────────────────────────────────


class TestExtractExcerpt:
    def test_first_paragraph_line_without_markup(self, parser):
        text = "---\ntitle: T\n---\n# Heading\n\nSome **bold** and `code` with a [link](https://x.y).\n\nMore."
        assert parser.extract_excerpt(text) == "Some bold and code with a link."

    def test_truncates_with_ellipsis(self, parser):
        excerpt = parser.extract_excerpt("word " * 100, max_length=20)
        assert excerpt.endswith("...")
        assert len(excerpt) <= 23

    def test_only_headings(self, parser):
        assert parser.extract_excerpt("# One\n## Two\n") == ""


# ── slug & reading time ─────────────────────────────────────────────


class TestSlugAndReadingTime:
    @pytest.mark.parametrize(
        "title, slug",
        [
            ("Hello, World!", "hello-world"),
            ("  Many   spaces -- here ", "many-spaces-here"),
            ("안녕 하세요 2024", "안녕-하세요-2024"),
            ("!!!", "untitled"),
            ("", "untitled"),
        ],
    )
    def test_generate_slug(self, title, slug):
        assert generate_slug(title) == slug

    def test_reading_time_has_floor(self):
        assert reading_time("") == 1
        assert reading_time("short post") == 1

    def test_reading_time_rounds_up(self):
        assert reading_time("word " * 401) == 3
