from __future__ import annotations

import re
from collections.abc import Mapping

from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result
from relay.core.structured import get_str
from relay.stores.model import FilterOptions

_SLASHED_RE = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)

_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


def string_to_regexp(value: str) -> re.Pattern[str]:
    """Compile a config pattern.

    Accepts the slashed form ``/\\.whl$/i`` (flags i, m, s, x) or a bare
    pattern.

    Raises:
        re.error: Invalid pattern.
        ValueError: Unknown flag.
    """
    match = _SLASHED_RE.match(value)
    if match is None:
        return re.compile(value)

    flags = 0
    for ch in match.group(2):
        if ch not in _FLAGS:
            raise ValueError(f"unsupported regex flag: {ch}")
        flags |= _FLAGS[ch]
    return re.compile(match.group(1), flags)


def parse_filter_options(options: Mapping[str, object]) -> Result[FilterOptions, ReleaseError]:
    """Build FilterOptions from ``include_files`` / ``exclude_files``."""
    compiled: dict[str, re.Pattern[str] | None] = {}
    for key in ("include_files", "exclude_files"):
        raw = get_str(options, key)
        if raw is None:
            compiled[key] = None
            continue
        try:
            compiled[key] = string_to_regexp(raw)
        except (re.error, ValueError) as e:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f"invalid {key} pattern {raw!r}: {e}",
                )
            )

    return Ok(
        FilterOptions(
            include_names=compiled["include_files"],
            exclude_names=compiled["exclude_files"],
        )
    )
