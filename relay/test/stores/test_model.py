"""Tests for stores/model.py."""

from __future__ import annotations

import itertools
import re

import pytest

from relay.stores.model import Artifact, FilterOptions, RevisionInfo


class TestRevisionInfo:
    @pytest.mark.parametrize(
        ("status", "result"),
        list(itertools.product(["pending", "finished", "queued"], ["passed", "failed", "unknown"])),
    )
    def test_exactly_one_predicate_holds(self, status: str, result: str) -> None:
        info = RevisionInfo(status=status, result=result)
        flags = [info.is_built_successfully, info.is_failed, info.is_pending]
        assert flags.count(True) == 1

    def test_passed(self) -> None:
        assert RevisionInfo(status="finished", result="passed").is_built_successfully

    def test_failed(self) -> None:
        assert RevisionInfo(status="finished", result="errored").is_failed

    def test_pending(self) -> None:
        assert RevisionInfo(status="in_progress", result="passed").is_pending


class TestArtifact:
    def test_from_payload(self) -> None:
        artifact = Artifact.from_payload(
            {"name": "a.whl", "download_url": "/dl/a", "type": "application/zip"}
        )
        assert artifact == Artifact(name="a.whl", download_url="/dl/a", type="application/zip")

    def test_from_incomplete_payload(self) -> None:
        assert Artifact.from_payload({"name": "a.whl"}) is None
        assert Artifact.from_payload("nope") is None


class TestFilterOptions:
    def test_own_keys_win_over_default(self) -> None:
        own = FilterOptions(include_names=re.compile(r"\.tgz$"))
        default = FilterOptions(
            include_names=re.compile(r"\.whl$"), exclude_names=re.compile(r"debug")
        )
        merged = own.merged_over(default)
        assert merged.include_names is own.include_names
        assert merged.exclude_names is default.exclude_names

    def test_merge_without_default(self) -> None:
        own = FilterOptions(include_names=re.compile("x"))
        assert own.merged_over(None) is own

    def test_matches(self) -> None:
        options = FilterOptions(
            include_names=re.compile(r"\.whl$"), exclude_names=re.compile(r"debug")
        )
        assert options.matches(Artifact("a.whl", "/a"))
        assert not options.matches(Artifact("a-debug.whl", "/b"))
        assert not options.matches(Artifact("a.tgz", "/c"))
        assert FilterOptions().matches(Artifact("anything", "/d"))
