"""Error payloads and process exit codes.

``ReleaseError`` is the single error value carried by ``Err`` across the
stores, targets and services layers. Its ``kind`` decides how callers react:

- ``configuration``: missing credentials or invalid settings (pre-flight)
- ``precondition``: unsafe repository/build state; recovery is manual
- ``not_found``: the resource does not exist yet (create/skip path)
- ``conflict``: the remote refused a merge; resolve manually
- ``transport``: network, API or subprocess failure, never retried here
- ``publish_failed``: a chained publish failed after the branch was pushed
- ``invalid_input``: bad command-line input
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

__all__ = ["ErrorCode", "ErrorKind", "ReleaseError", "exit_code_for"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable.
    """

    OK = 0
    USER_ERROR = 1
    CONFIG_ERROR = 2
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")


ErrorKind = Literal[
    "configuration",
    "precondition",
    "not_found",
    "conflict",
    "transport",
    "publish_failed",
    "invalid_input",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical error payload, rendered by the CLI without further context."""

    kind: ErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


def exit_code_for(error: ReleaseError) -> ErrorCode:
    match error.kind:
        case "configuration":
            return ErrorCode.CONFIG_ERROR
        case "transport" | "conflict":
            return ErrorCode.NETWORK_ERROR
        case "not_found":
            return ErrorCode.IO_ERROR
        case _:
            return ErrorCode.USER_ERROR
