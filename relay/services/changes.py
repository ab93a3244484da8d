"""Changelog section lookup.

Sections start at second-level headings, written either ATX style
(``## 1.2.0``) or setext style (``1.2.0`` underlined with ``---``). A
section ends at the next heading of level one or two.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from relay.services.version import get_version

_ATX_RE = re.compile(r"^ {0,3}(#{1,2})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
_SETEXT_RE = re.compile(r"^ {0,3}(-{2,}|={2,})[ \t]*$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


@dataclass(frozen=True, slots=True)
class Changeset:
    name: str
    body: str


@dataclass(frozen=True, slots=True)
class _Heading:
    level: int
    name: str
    start: int
    body_start: int


def _closes_fence(line: str, fence: str) -> bool:
    """A closing fence repeats the opening character, at least as many times."""
    marker = _FENCE_RE.match(line)
    if marker is None or not marker.group(1).startswith(fence):
        return False
    return not line.strip().lstrip(fence[0])


def _scan_headings(lines: list[str]) -> list[_Heading]:
    headings: list[_Heading] = []
    fence: str | None = None
    i = 0
    while i < len(lines):
        line = lines[i]
        if fence is not None:
            if _closes_fence(line, fence):
                fence = None
            i += 1
            continue
        opening = _FENCE_RE.match(line)
        if opening is not None:
            fence = opening.group(1)
            i += 1
            continue

        atx = _ATX_RE.match(line)
        if atx is not None:
            headings.append(_Heading(len(atx.group(1)), atx.group(2).strip(), i, i + 1))
            i += 1
            continue

        if line.strip() and i + 1 < len(lines):
            underline = _SETEXT_RE.match(lines[i + 1])
            if underline is not None:
                level = 1 if underline.group(1).startswith("=") else 2
                headings.append(_Heading(level, line.strip(), i, i + 2))
                i += 2
                continue
        i += 1
    return headings


def _trim_blank_lines(lines: list[str]) -> str:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(line.rstrip() for line in lines[start:end])


def find_changeset(markdown: str, tag: str) -> Changeset | None:
    """Return the changelog section for ``tag``, or None.

    The version is extracted from the tag first, so ``v1.2.0`` and ``1.2.0``
    both select the ``1.2.0`` section.
    """
    version = get_version(tag) or tag
    lines = markdown.splitlines()
    headings = _scan_headings(lines)

    for idx, heading in enumerate(headings):
        if heading.level != 2:
            continue
        if heading.name != version and get_version(heading.name) != version:
            continue
        end = headings[idx + 1].start if idx + 1 < len(headings) else len(lines)
        return Changeset(name=heading.name, body=_trim_blank_lines(lines[heading.body_start : end]))
    return None
