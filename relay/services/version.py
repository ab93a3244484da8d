from __future__ import annotations

import re
from dataclasses import dataclass

from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result

VERSION_PARTS = ("major", "minor", "patch")

_NUM = r"(0|[1-9]\d*)"
_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_VERSION_RE = re.compile(rf"^{_NUM}\.{_NUM}\.{_NUM}(?:-({_IDENT}))?(?:\+({_IDENT}))?$")
_EMBEDDED_RE = re.compile(
    rf"\bv?((?:0|[1-9]\d*)\.(?:0|[1-9]\d*)\.(?:0|[1-9]\d*)(?:-{_IDENT})?(?:\+{_IDENT})?)\b"
)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    pre: str | None = None
    build: str | None = None

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += f"-{self.pre}"
        if self.build:
            text += f"+{self.build}"
        return text

    @property
    def is_prerelease(self) -> bool:
        return self.pre is not None


def parse_version(text: str) -> SemVer | None:
    m = _VERSION_RE.match(text)
    if m is None:
        return None
    return SemVer(
        int(m.group(1)),
        int(m.group(2)),
        int(m.group(3)),
        pre=m.group(4),
        build=m.group(5),
    )


def is_valid_version(text: str) -> bool:
    return parse_version(text) is not None


def get_version(text: str) -> str | None:
    """First semantic version found in ``text``, without a leading ``v``.

    ``get_version("Release v1.2.0 (beta)") == "1.2.0"``
    """
    m = _EMBEDDED_RE.search(text)
    return m.group(1) if m else None


def version_to_tag(version: str, prefix: str = "") -> str:
    return f"{prefix}{version}"


def check_version_or_part(value: str) -> Result[str, ReleaseError]:
    """Validate a CLI version argument.

    Bump parts are recognised so they get a clearer message than an
    arbitrary invalid string.
    """
    if value in VERSION_PARTS:
        return Err(ReleaseError(kind="invalid_input", message="Version part is not supported yet"))
    if not is_valid_version(value):
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f'Invalid version or version part specified: "{value}"',
            )
        )
    return Ok(value)
