"""Run-wide execution context.

``RunContext`` is built once at process start and passed to every
operation. Its ``dry_run`` flag never changes during a run.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relay.output.console import ConsoleProtocol

__all__ = ["DRY_RUN_ENV", "RunContext", "dry_run_from_env"]

DRY_RUN_ENV = "RELAY_DRY_RUN"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def dry_run_from_env(environ: Mapping[str, str]) -> bool:
    return environ.get(DRY_RUN_ENV, "").strip().lower() in _TRUTHY


@dataclass(frozen=True, slots=True)
class RunContext:
    console: ConsoleProtocol
    dry_run: bool = False

    def should_perform(self) -> bool:
        """True when mutating operations must actually run."""
        return not self.dry_run

    def skip(self, message: str) -> None:
        """Log a mutation that dry-run mode is not performing."""
        self.console.info(f"[dry-run] {message}")
