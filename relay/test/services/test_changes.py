"""Tests for services/changes.py."""

from __future__ import annotations

from relay.services.changes import Changeset, find_changeset

ATX = """# Changelog

## Unreleased

- Work in progress

## 1.2.0

Fixed bug X.

## 1.1.0

- Added Y
"""

SETEXT = """Changelog
=========

1.2.0
-----

- Fixed bug X
- Fixed bug Z

### Internal

Refactored W.

1.1.0
-----

Added Y.
"""


class TestFindChangeset:
    def test_atx_section(self) -> None:
        assert find_changeset(ATX, "1.2.0") == Changeset("1.2.0", "Fixed bug X.")

    def test_last_section_runs_to_end(self) -> None:
        assert find_changeset(ATX, "1.1.0") == Changeset("1.1.0", "- Added Y")

    def test_missing_version(self) -> None:
        assert find_changeset(ATX, "9.9.9") is None

    def test_tag_with_v_prefix(self) -> None:
        assert find_changeset(ATX, "v1.2.0") == Changeset("1.2.0", "Fixed bug X.")

    def test_heading_with_extra_text(self) -> None:
        markdown = "## Version 2.0.0 (2024-01-01)\n\nBig release.\n"
        changeset = find_changeset(markdown, "2.0.0")
        assert changeset == Changeset("Version 2.0.0 (2024-01-01)", "Big release.")

    def test_setext_section_keeps_subheadings(self) -> None:
        changeset = find_changeset(SETEXT, "1.2.0")
        assert changeset is not None
        assert changeset.name == "1.2.0"
        assert changeset.body == "- Fixed bug X\n- Fixed bug Z\n\n### Internal\n\nRefactored W."

    def test_level_one_heading_is_not_a_section(self) -> None:
        assert find_changeset("# 1.0.0\n\nNope.\n", "1.0.0") is None

    def test_level_one_heading_ends_section(self) -> None:
        markdown = "## 1.0.0\n\nFirst.\n\n# Older releases\n\nArchive.\n"
        assert find_changeset(markdown, "1.0.0") == Changeset("1.0.0", "First.")

    def test_empty_body(self) -> None:
        assert find_changeset("## 1.0.0\n\n## 0.9.0\n\nx\n", "1.0.0") == Changeset("1.0.0", "")

    def test_prerelease_does_not_match_final(self) -> None:
        assert find_changeset("## 1.0.0-rc.1\n\nRC.\n", "1.0.0") is None

    def test_headings_inside_code_fences_are_ignored(self) -> None:
        markdown = (
            "## 1.2.0\n\nSee:\n\n```\n## 1.1.0 example\n```\nmore\n\n"
            "~~~~\n1.0.0\n-----\n~~~\n~~~~\n\n## 1.1.0\n\nOld.\n"
        )
        changeset = find_changeset(markdown, "1.2.0")
        assert changeset is not None
        assert changeset.body == (
            "See:\n\n```\n## 1.1.0 example\n```\nmore\n\n~~~~\n1.0.0\n-----\n~~~\n~~~~"
        )
        assert find_changeset(markdown, "1.1.0") == Changeset("1.1.0", "Old.")
