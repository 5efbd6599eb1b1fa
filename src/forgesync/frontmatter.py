"""Frontmatter extraction — a line scanner, not a YAML parser.

A document looks like::

    ---
    claude.name: SecurityArchitect
    claude.description: "Reviews designs for security flaws"
    claude.tools:
      - Read
      - Grep
    ---
    Body text...

Only flat ``key: value`` scalars and ``key:`` + indented ``- item`` lists are
recognised. Nested mappings inside the block are ignored.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field

DELIMITER = "---"

_KEY_LINE = re.compile(r"^([^\s:]+):(.*)$")
_LIST_ITEM = re.compile(r"^\s+-\s+(.*)$")
_QUOTES = "\"'"
_PLAIN_KEY = re.compile(r"^[A-Za-z_-]+$")

FrontmatterValue = Union[str, list[str]]


class Document(BaseModel):
    """A parsed source document.

    ``frontmatter`` preserves key order; the first occurrence of a key wins.
    ``body`` is everything after the closing delimiter line, verbatim.
    """

    frontmatter: dict[str, FrontmatterValue] = Field(default_factory=dict)
    body: str = ""
    has_frontmatter: bool = False

    def scalar(self, key: str) -> str:
        """Scalar value for ``key``; empty when absent or list-shaped."""
        value = self.frontmatter.get(key)
        return value if isinstance(value, str) else ""

    def list_value(self, key: str) -> str:
        """List value for ``key`` joined with ``", "``; empty when absent or scalar."""
        value = self.frontmatter.get(key)
        return ", ".join(value) if isinstance(value, list) else ""

    def first(self, *keys: str) -> str:
        """First non-empty scalar among ``keys``."""
        for key in keys:
            value = self.scalar(key)
            if value:
                return value
        return ""


def _unquote(raw: str) -> str:
    value = raw.strip()
    if value[:1] and value[0] in _QUOTES:
        value = value[1:]
    if value[-1:] and value[-1] in _QUOTES:
        value = value[:-1]
    return value.strip()


def _split(text: str) -> tuple[Optional[list[str]], str]:
    """Split ``text`` into frontmatter lines and body.

    Two states: outside the block until the first ``---`` line, inside it
    until the second. Returns ``(None, text)`` when no delimiter pair exists.
    """
    lines = text.splitlines(keepends=True)
    inside = False
    block: list[str] = []

    for index, line in enumerate(lines):
        stripped = line.rstrip("\r\n")
        if stripped == DELIMITER:
            if inside:
                return block, "".join(lines[index + 1:])
            inside = True
            continue
        if inside:
            block.append(stripped)

    return None, text


def _scan(block: list[str]) -> dict[str, FrontmatterValue]:
    frontmatter: dict[str, FrontmatterValue] = {}
    list_key: Optional[str] = None
    collect = False
    items: list[str] = []

    for line in block:
        if list_key is not None:
            item = _LIST_ITEM.match(line)
            if item:
                if collect:
                    items.append(_unquote(item.group(1)))
                    frontmatter[list_key] = items
                continue
            if not line or line[0].isspace():
                continue
            list_key = None

        match = _KEY_LINE.match(line)
        if match is None:
            continue

        key = match.group(1)
        value = _unquote(match.group(2))
        first_seen = key not in frontmatter
        if first_seen:
            frontmatter[key] = value
        if not value:
            # A later duplicate still owns its list items; they are dropped.
            list_key, collect, items = key, first_seen, []

    return frontmatter


def parse_document(text: str) -> Document:
    """Parse document text into frontmatter and body.

    Args:
        text: Full document content.

    Returns:
        Document: Empty frontmatter and the whole text as body when the text
        has no ``---`` delimiter pair.
    """
    block, body = _split(text)
    if block is None:
        return Document(frontmatter={}, body=text, has_frontmatter=False)
    return Document(frontmatter=_scan(block), body=body, has_frontmatter=True)


def read_document(path: Path) -> Document:
    """Read and parse a document from disk.

    Raises:
        FileNotFoundError: If ``path`` does not exist or is not a regular file.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Document not found or not a regular file: {path}")
    return parse_document(path.read_text(encoding="utf-8"))


def fm_value(text: str, key: str) -> str:
    """Scalar frontmatter value for ``key``; ``""`` when absent."""
    return parse_document(text).scalar(key)


def fm_list(text: str, key: str) -> str:
    """List frontmatter value for ``key`` as ``"a, b"``; ``""`` when absent."""
    return parse_document(text).list_value(key)


def fm_body(text: str) -> str:
    """Body of ``text``: everything after the closing delimiter."""
    return parse_document(text).body


def strip_front(text: str, keep: Optional[Iterable[str]] = None) -> str:
    """Strip the frontmatter block and the leading ``# `` title from ``text``.

    Only the first ``---`` block is removed; an unclosed block swallows the
    rest of the text. The first line of the body is dropped when it is an H1
    heading. Output lines are joined with ``\\n`` and carry no trailing newline.

    Args:
        text: Document content.
        keep: Frontmatter keys to retain in a reduced block. Only plain keys
            (letters, ``_`` and ``-``) can be kept, so dotted provider keys
            such as ``claude.name`` always go.

    Returns:
        str: The stripped document.
    """
    keep_keys = {key for key in keep if key} if keep is not None else set()
    output: list[str] = []
    kept: list[str] = []
    started = inside = in_body = False

    for line in text.splitlines():
        if line == DELIMITER and not started:
            started = inside = True
            continue
        if line == DELIMITER and inside:
            inside = False
            if kept:
                output.extend([DELIMITER, *kept, DELIMITER])
            continue
        if inside:
            key, sep, _ = line.partition(":")
            if sep and _PLAIN_KEY.match(key) and key in keep_keys:
                kept.append(line)
            continue
        if not in_body and line.startswith("# "):
            in_body = True
            continue
        in_body = True
        output.append(line)

    return "\n".join(output)
