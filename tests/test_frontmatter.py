"""Tests for the frontmatter line scanner."""

from pathlib import Path
from textwrap import dedent

import pytest

from forgesync.frontmatter import (
    fm_body,
    fm_list,
    fm_value,
    parse_document,
    read_document,
    strip_front,
)

from conftest import AGENT_BODY, AGENT_DOC


class TestParseDocument:
    def test_scalars_and_lists(self):
        doc = parse_document(AGENT_DOC)
        assert doc.has_frontmatter
        assert doc.scalar("claude.name") == "SecurityArchitect"
        assert doc.scalar("claude.model") == "fast"
        assert doc.list_value("claude.tools") == "Read, Grep"

    def test_body_is_verbatim(self):
        assert parse_document(AGENT_DOC).body == AGENT_BODY

    def test_absent_key_is_empty(self):
        doc = parse_document(AGENT_DOC)
        assert doc.scalar("missing") == ""
        assert doc.list_value("missing") == ""

    def test_scalar_and_list_do_not_cross(self):
        doc = parse_document(AGENT_DOC)
        assert doc.scalar("claude.tools") == ""
        assert doc.list_value("claude.name") == ""

    def test_quotes_are_trimmed(self):
        text = dedent("""\
            ---
            description: "Quoted value"
            other: 'single'
            tools:
              - "Read"
              - 'Bash'
            ---
            """)
        doc = parse_document(text)
        assert doc.scalar("description") == "Quoted value"
        assert doc.scalar("other") == "single"
        assert doc.list_value("tools") == "Read, Bash"

    def test_first_occurrence_wins(self):
        text = "---\nname: First\nname: Second\n---\nbody\n"
        assert parse_document(text).scalar("name") == "First"

    def test_duplicate_list_key_keeps_first_items(self):
        text = "---\ntools:\n  - Read\ntools:\n  - Bash\n---\n"
        assert parse_document(text).list_value("tools") == "Read"

    def test_nested_mapping_is_ignored(self):
        text = "---\nmeta:\n  inner: value\nname: Agent\n---\n"
        doc = parse_document(text)
        assert doc.scalar("inner") == ""
        assert doc.scalar("meta") == ""
        assert doc.scalar("name") == "Agent"

    def test_no_delimiters_means_whole_text_is_body(self):
        text = "Just a body\nwith lines\n"
        doc = parse_document(text)
        assert not doc.has_frontmatter
        assert doc.frontmatter == {}
        assert doc.body == text

    def test_single_delimiter_means_no_frontmatter(self):
        text = "---\nname: Agent\nno closing line\n"
        doc = parse_document(text)
        assert doc.frontmatter == {}
        assert doc.body == text

    def test_first_delimiter_anywhere_opens_block(self):
        text = "preamble\n---\nname: Agent\n---\nbody\n"
        doc = parse_document(text)
        assert doc.scalar("name") == "Agent"
        assert doc.body == "body\n"

    def test_later_delimiters_stay_in_body(self):
        text = "---\nname: Agent\n---\nabove\n---\nbelow\n"
        assert parse_document(text).body == "above\n---\nbelow\n"

    def test_first_picks_first_non_empty(self):
        doc = parse_document("---\nname: Plain\n---\n")
        assert doc.first("claude.name", "name") == "Plain"


class TestHelpers:
    def test_fm_value(self):
        assert fm_value(AGENT_DOC, "claude.description") == "Reviews designs for security flaws"
        assert fm_value(AGENT_DOC, "nope") == ""

    def test_fm_list(self):
        assert fm_list(AGENT_DOC, "claude.tools") == "Read, Grep"

    def test_fm_body(self):
        assert fm_body(AGENT_DOC) == AGENT_BODY


class TestReadDocument:
    def test_reads_file(self, tmp_path: Path):
        path = tmp_path / "Agent.md"
        path.write_text(AGENT_DOC)
        assert read_document(path).scalar("claude.name") == "SecurityArchitect"

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            read_document(tmp_path / "missing.md")

    def test_directory_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            read_document(tmp_path)


class TestStripFront:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("---\ntitle: Hello\n---\n# My Title\nBody text", "Body text"),
            ("# My Title\nBody text", "Body text"),
            ("---\ntitle: Hello\n---\nBody text", "Body text"),
            ("", ""),
            ("---\ntitle: Hello\nno closing", ""),
            ("---\ntitle: Hello\n---\n", ""),
            ("# Title Only", ""),
            ("Just plain text\nSecond line", "Just plain text\nSecond line"),
        ],
    )
    def test_strip(self, text, expected):
        assert strip_front(text) == expected

    def test_subheadings_kept(self):
        text = "---\ntitle: Hello\n---\n# Main\n## Sub\n### SubSub\nBody"
        assert strip_front(text) == "## Sub\n### SubSub\nBody"

    def test_only_first_h1_removed(self):
        text = "---\ntitle: Hello\n---\n# First\nMiddle\n# Second\nEnd"
        assert strip_front(text) == "Middle\n# Second\nEnd"

    def test_leading_blank_lines_kept(self):
        assert strip_front("---\ntitle: Hello\n---\n\n\nBody after blanks") == "\n\nBody after blanks"

    def test_keep_listed_keys(self):
        text = "---\nname: Hello\nauthor: World\ntags: test\n---\n# Title\nBody"
        assert strip_front(text, ["name", "tags"]) == "---\nname: Hello\ntags: test\n---\nBody"

    def test_keep_nothing_matching_drops_block(self):
        text = "---\ntitle: Hello\n---\n# Title\nBody"
        assert strip_front(text, ["missing"]) == "Body"
        assert strip_front(text, [""]) == "Body"

    def test_dotted_keys_never_kept(self):
        text = "---\nclaude.name: Test\nname: Visible\n---\n# Title\nBody"
        result = strip_front(text, ["claude.name", "name"])
        assert "name: Visible" in result
        assert "claude.name" not in result

    def test_hyphen_and_underscore_keys(self):
        text = "---\nmy-key: a\nmy_key: b\nother: skip\n---\nBody"
        result = strip_front(text, ["my-key", "my_key"])
        assert result == "---\nmy-key: a\nmy_key: b\n---\nBody"
