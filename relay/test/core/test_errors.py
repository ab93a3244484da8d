"""Tests for core/errors.py and core/context.py."""

from __future__ import annotations

from relay.core.context import DRY_RUN_ENV, RunContext, dry_run_from_env
from relay.core.errors import ErrorCode, ReleaseError, exit_code_for
from relay.output.console import MockConsole


class TestReleaseError:
    def test_pretty_with_hint(self) -> None:
        error = ReleaseError(kind="precondition", message="dirty tree", hint="git stash")
        assert error.pretty() == "dirty tree (hint: git stash)"

    def test_pretty_without_hint(self) -> None:
        assert ReleaseError(kind="transport", message="boom").pretty() == "boom"

    def test_exit_codes(self) -> None:
        def code(kind: str) -> ErrorCode:
            return exit_code_for(ReleaseError(kind=kind, message=""))  # type: ignore[arg-type]

        assert code("configuration") == ErrorCode.CONFIG_ERROR
        assert code("transport") == ErrorCode.NETWORK_ERROR
        assert code("conflict") == ErrorCode.NETWORK_ERROR
        assert code("not_found") == ErrorCode.IO_ERROR
        assert code("precondition") == ErrorCode.USER_ERROR
        assert code("publish_failed") == ErrorCode.USER_ERROR
        assert int(ErrorCode.USER_ERROR) == 1


class TestRunContext:
    def test_dry_run_from_env(self) -> None:
        assert dry_run_from_env({DRY_RUN_ENV: "1"}) is True
        assert dry_run_from_env({DRY_RUN_ENV: "True"}) is True
        assert dry_run_from_env({DRY_RUN_ENV: "0"}) is False
        assert dry_run_from_env({}) is False

    def test_should_perform(self) -> None:
        assert RunContext(console=MockConsole()).should_perform() is True
        assert RunContext(console=MockConsole(), dry_run=True).should_perform() is False

    def test_skip_logs_with_prefix(self) -> None:
        console = MockConsole()
        RunContext(console=console, dry_run=True).skip("Not pushing")
        assert console.messages == ["info: [dry-run] Not pushing"]
