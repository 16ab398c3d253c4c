"""Front matter, excerpt and reading-time parsing for blog posts."""

import datetime as dt
import json
import logging
import math
import re
from typing import Any

import yaml
from markdown_it import MarkdownIt

from .models import PostMetadata

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
DEFAULT_EXCERPT_LENGTH = 300

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9가-힣\s-]")
_TRUE_VALUES = ("true", "1", "yes")


def generate_slug(title: str) -> str:
    """Lowercase, keep letters/digits/Hangul, join words with hyphens."""
    if not title or not isinstance(title, str):
        return "untitled"
    slug = _SLUG_STRIP_RE.sub("", title.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "untitled"


def count_words(text: str) -> int:
    return len(text.split())


def reading_time(content: str) -> int:
    """Minutes to read ``content``, at least 1."""
    return max(math.ceil(count_words(content) / WORDS_PER_MINUTE), 1)


def _coerce_text(value: Any) -> str | None:
    if value is None or isinstance(value, (list, dict)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_date(value: Any) -> dt.date | None:
    if isinstance(value, str):
        try:
            return dt.datetime.fromisoformat(value.strip()).date()
        except ValueError:
            logger.debug("Dropping unparseable date: %r", value)
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    return str(value).strip().lower() in _TRUE_VALUES


def _coerce_tags(value: Any) -> list[str] | None:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return None
    return [str(tag).strip() for tag in value if tag is not None and str(tag).strip()]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _parse_flat(block: str) -> dict[str, Any]:
    """
    Read ``key: value`` lines, splitting each on its first colon.

    Used when the block is not valid YAML, e.g. ``title: Re: Hello``.
    Lines without a colon and ``#`` comments are skipped.
    """
    raw: dict[str, Any] = {}
    for line in block.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        value = _unquote(value.strip())
        if value.startswith("[") and value.endswith("]"):
            raw[key.strip()] = [_unquote(tag.strip()) for tag in value[1:-1].split(",")]
        else:
            raw[key.strip()] = value
    return raw


_COERCERS = {
    "title": _coerce_text,
    "description": _coerce_text,
    "author": _coerce_text,
    "category": _coerce_text,
    "date": _coerce_date,
    "draft": _coerce_bool,
    "tags": _coerce_tags,
}


class MarkdownParser:
    """Extracts post metadata and plain-text summaries from markdown files."""

    def __init__(self):
        """Initialize markdown parser."""
        self.md = MarkdownIt()
        logger.debug("Markdown parser initialized")

    def split_front_matter(self, content: str) -> tuple[str | None, str]:
        """Return (front matter block or None, body)."""
        match = _FRONT_MATTER_RE.match(content)
        if not match:
            return None, content
        return match.group(1), content[match.end():]

    def extract_metadata(self, content: str) -> PostMetadata:
        """
        Parse the leading ``---`` block into PostMetadata.

        Unknown keys are ignored, values that cannot be coerced are
        dropped, and a missing or malformed block yields empty metadata.
        """
        block, _ = self.split_front_matter(content)
        if block is None:
            return PostMetadata()

        # BaseLoader keeps every scalar a string; dates are coerced below
        try:
            raw = yaml.load(block, Loader=yaml.BaseLoader)
        except yaml.YAMLError as e:
            logger.debug("Front matter is not valid YAML, reading it line by line: %s", e)
            raw = _parse_flat(block)
        if not isinstance(raw, dict):
            return PostMetadata()

        fields: dict[str, Any] = {}
        for key, value in raw.items():
            coerce = _COERCERS.get(str(key).strip().lower())
            if coerce is None:
                continue
            coerced = coerce(value)
            if coerced is not None:
                fields[str(key).strip().lower()] = coerced
        return PostMetadata(**fields)

    def extract_excerpt(self, content: str, max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
        """First non-heading line of the body as plain text, truncated with '...'."""
        _, body = self.split_front_matter(content)
        lines = (line.strip() for line in body.splitlines())
        first = next((line for line in lines if line and not line.startswith("#")), "")
        text = self._plain_text(first).strip()

        if len(text) <= max_length:
            return text
        return text[:max_length].strip() + "..."

    def reading_time(self, content: str) -> int:
        return reading_time(content)

    def render_front_matter(self, metadata: PostMetadata) -> str:
        """Render metadata as a ``---`` block; strings are emitted quoted."""
        lines = ["---"]
        for key in ("title", "description", "author", "date", "category"):
            value = getattr(metadata, key)
            if value is None:
                continue
            if isinstance(value, dt.date):
                value = value.isoformat()
            lines.append(f"{key}: {json.dumps(value, ensure_ascii=False)}")
        if metadata.tags:
            lines.append(f"tags: {json.dumps(metadata.tags, ensure_ascii=False)}")
        if metadata.draft is not None:
            lines.append(f"draft: {'true' if metadata.draft else 'false'}")
        lines.append("---")
        return "\n".join(lines)

    def render_document(self, metadata: PostMetadata, body: str) -> str:
        return f"{self.render_front_matter(metadata)}\n\n{body}"

    def _plain_text(self, line: str) -> str:
        """Strip inline markup (emphasis, code, links) from a single line."""
        if not line:
            return ""
        tokens = self.md.parseInline(line)
        return "".join(self._get_text(token) for token in tokens)

    def _get_text(self, inline_token: Any) -> str:
        """Extract plain text from inline token."""
        if not inline_token.children:
            return getattr(inline_token, "content", "")

        parts = []
        for child in inline_token.children:
            if child.type in ("text", "code_inline"):
                parts.append(child.content)
            elif child.type in ("softbreak", "hardbreak"):
                parts.append(" ")
            elif child.type == "image":
                parts.append(child.content)
            elif child.type == "html_inline":
                continue
            elif child.content:
                parts.append(child.content)

        return "".join(parts)
