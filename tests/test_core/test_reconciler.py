"""Tests for bds_updater.core.reconciler module."""

import asyncio
import shutil
from pathlib import Path

import pytest

from bds_updater.core.errors import ReconciliationFailure
from bds_updater.core.merge import merge_properties
from bds_updater.core.progress import ProgressReporter
from bds_updater.core.reconciler import (
    DEFAULT_POLICIES,
    PathPolicy,
    TreeReconciler,
    decide_action,
    find_policy,
    safe_copy,
)
from bds_updater.core.types import ItemStatus, ReconciliationAction


def _write(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _failing_merge(staged: str, live: str | None) -> str:
    raise ValueError("boom")


@pytest.fixture
def roots(tmp_path: Path) -> tuple[Path, Path]:
    staging = tmp_path / "staging"
    live = tmp_path / "live"
    staging.mkdir()
    live.mkdir()
    return staging, live


def _run(staging: Path, live: Path, policies=DEFAULT_POLICIES, reporter=None):
    reconciler = TreeReconciler(staging, live, policies, reporter=reporter, tick_interval=None)
    return asyncio.run(reconciler.reconcile())


class TestPathPolicy:
    """Test policy normalization and matching."""

    def test_normalizes_path(self):
        assert PathPolicy("./config\\default\\").path == "config/default"
        assert PathPolicy("/worlds/").path == "worlds"

    def test_matches_self_and_children(self):
        policy = PathPolicy("worlds")
        assert policy.matches("worlds")
        assert policy.matches("worlds/Bedrock level/level.dat")

    def test_does_not_match_sibling_prefix(self):
        assert not PathPolicy("config").matches("config_old/file")

    def test_first_match_wins(self):
        first = PathPolicy("config/default/permissions.json", merge_properties)
        second = PathPolicy("config")
        assert find_policy([first, second], "config/default/permissions.json") is first
        assert find_policy([second, first], "config/default/permissions.json") is second

    def test_find_policy_normalizes_query(self):
        policy = PathPolicy("server.properties", merge_properties)
        assert find_policy([policy], ".\\server.properties") is policy

    def test_no_match(self):
        assert find_policy(DEFAULT_POLICIES, "bedrock_server") is None


class TestDecideAction:
    """Test leaf action selection."""

    def test_no_policy_replaces(self):
        assert decide_action(None, True) == ReconciliationAction.REPLACE

    def test_missing_live_replaces(self):
        assert decide_action(PathPolicy("a"), False) == ReconciliationAction.REPLACE
        assert decide_action(PathPolicy("a", merge_properties), False) == ReconciliationAction.REPLACE

    def test_keep(self):
        assert decide_action(PathPolicy("a"), True) == ReconciliationAction.KEEP

    def test_merge(self):
        assert decide_action(PathPolicy("a", merge_properties), True) == ReconciliationAction.MERGE


class TestSafeCopy:
    """Test replace-in-place copying."""

    def test_replaces_directory_with_file(self, tmp_path: Path):
        src = _write(tmp_path, "src.txt", "new")
        dst = tmp_path / "out" / "target"
        _write(dst, "inner.txt", "old")

        safe_copy(src, dst)

        assert dst.is_file()
        assert dst.read_text() == "new"

    def test_replaces_file_with_directory(self, tmp_path: Path):
        src = tmp_path / "srcdir"
        _write(src, "a.txt", "a")
        dst = _write(tmp_path, "dst", "old file")

        safe_copy(src, dst)

        assert (dst / "a.txt").read_text() == "a"

    def test_creates_parents(self, tmp_path: Path):
        src = _write(tmp_path, "src.txt", "x")
        dst = tmp_path / "a" / "b" / "c.txt"

        safe_copy(src, dst)

        assert dst.read_text() == "x"


class TestTreeReconciler:
    """Test full reconciliation runs."""

    def test_replace_new_and_existing_files(self, roots):
        staging, live = roots
        _write(staging, "bedrock_server", "v2")
        _write(staging, "release-notes.txt", "notes")
        _write(live, "bedrock_server", "v1")

        summary = _run(staging, live)

        assert (live / "bedrock_server").read_text() == "v2"
        assert (live / "release-notes.txt").read_text() == "notes"
        assert summary.replaced == 2

    def test_unmatched_directory_replaced_whole(self, roots):
        staging, live = roots
        _write(staging, "behavior_packs/vanilla/manifest.json", "new")
        _write(live, "behavior_packs/vanilla/manifest.json", "old")
        _write(live, "behavior_packs/stale/manifest.json", "stale")

        _run(staging, live)

        assert (live / "behavior_packs/vanilla/manifest.json").read_text() == "new"
        assert not (live / "behavior_packs/stale").exists()

    def test_keep_existing_file(self, roots):
        staging, live = roots
        _write(staging, "allowlist.json", "[]")
        _write(live, "allowlist.json", '[{"name": "steve"}]')

        summary = _run(staging, live)

        assert (live / "allowlist.json").read_text() == '[{"name": "steve"}]'
        assert summary.kept == 1

    def test_keep_policy_without_live_file_replaces(self, roots):
        staging, live = roots
        _write(staging, "allowlist.json", "[]")

        summary = _run(staging, live)

        assert (live / "allowlist.json").read_text() == "[]"
        assert summary.replaced == 1
        assert summary.kept == 0

    def test_merge_properties(self, roots):
        staging, live = roots
        _write(staging, "server.properties", "a=9\nb=2\nc=3\n")
        _write(live, "server.properties", "# mine\na=1\nb=2\n")

        summary = _run(staging, live)

        assert (live / "server.properties").read_text() == "# mine\na=1\nb=2\nc=3\n"
        assert summary.merged == 1

    def test_version_stamp_skipped(self, roots):
        staging, live = roots
        _write(staging, "version.txt", "1.0.0")
        _write(staging, "nested/version.txt", "keep me")

        _run(staging, live)

        assert not (live / "version.txt").exists()
        assert (live / "nested/version.txt").read_text() == "keep me"

    def test_keep_directory_recurses_to_leaves(self, roots):
        staging, live = roots
        _write(staging, "worlds/Bedrock level/level.dat", "fresh")
        _write(staging, "worlds/Bedrock level/new.txt", "added")
        _write(live, "worlds/Bedrock level/level.dat", "progress")
        _write(live, "worlds/Other/level.dat", "other world")

        summary = _run(staging, live)

        assert (live / "worlds/Bedrock level/level.dat").read_text() == "progress"
        assert (live / "worlds/Bedrock level/new.txt").read_text() == "added"
        assert (live / "worlds/Other/level.dat").read_text() == "other world"
        assert summary.kept == 1
        assert summary.replaced == 1

    def test_directory_containing_policy_is_scanned(self, roots):
        staging, live = roots
        _write(staging, "config/default/permissions.json", '{"allowed_modules": ["a", "b"]}')
        _write(live, "config/default/permissions.json", '{"allowed_modules": ["c"]}')
        _write(live, "config/custom/settings.json", "{}")

        _run(staging, live)

        merged = (live / "config/default/permissions.json").read_text()
        assert '"c"' in merged and '"a"' in merged and '"b"' in merged
        assert (live / "config/custom/settings.json").exists()

    def test_failure_aggregated_without_rollback(self, roots):
        staging, live = roots
        _write(staging, "bad.properties", "x=1\n")
        _write(live, "bad.properties", "y=2\n")
        _write(staging, "good.txt", "good")
        policies = [PathPolicy("bad.properties", _failing_merge)]

        with pytest.raises(ReconciliationFailure) as exc_info:
            _run(staging, live, policies)

        assert exc_info.value.items == [("bad.properties", "boom")]
        assert (live / "good.txt").read_text() == "good"
        assert (live / "bad.properties").read_text() == "y=2\n"

    def test_write_failure_names_only_failing_item(self, roots, monkeypatch):
        staging, live = roots
        _write(staging, "fails.bin", "x")
        _write(staging, "works.bin", "y")
        real_copy2 = shutil.copy2

        def flaky_copy2(src, dst, *args, **kwargs):
            if str(src).endswith("fails.bin"):
                raise PermissionError("denied")
            return real_copy2(src, dst, *args, **kwargs)

        monkeypatch.setattr(shutil, "copy2", flaky_copy2)

        with pytest.raises(ReconciliationFailure) as exc_info:
            _run(staging, live, policies=[])

        assert exc_info.value.names == ["fails.bin"]
        assert (live / "works.bin").read_text() == "y"

    def test_nested_failures_are_flattened(self, roots):
        staging, live = roots
        _write(staging, "worlds/a.cfg", "1")
        _write(live, "worlds/a.cfg", "0")
        _write(staging, "worlds/b.cfg", "1")
        _write(live, "worlds/b.cfg", "0")
        _write(staging, "top.txt", "ok")
        policies = [PathPolicy("worlds/a.cfg", _failing_merge), PathPolicy("worlds")]
        with pytest.raises(ReconciliationFailure) as exc_info:
            _run(staging, live, policies)

        assert exc_info.value.names == ["worlds/a.cfg"]
        assert (live / "worlds/b.cfg").read_text() == "0"
        assert (live / "top.txt").read_text() == "ok"

    def test_every_failure_reported(self, roots):
        staging, live = roots
        for name in ("one.cfg", "two.cfg", "three.cfg"):
            _write(staging, name, "new")
            _write(live, name, "old")
        policies = [PathPolicy("one.cfg", _failing_merge), PathPolicy("two.cfg", _failing_merge)]

        with pytest.raises(ReconciliationFailure) as exc_info:
            _run(staging, live, policies)

        assert sorted(exc_info.value.names) == ["one.cfg", "two.cfg"]
        assert (live / "three.cfg").read_text() == "new"
        assert "one.cfg: boom" in str(exc_info.value)

    def test_reporter_tracks_items(self, roots):
        staging, live = roots
        _write(staging, "allowlist.json", "[]")
        _write(live, "allowlist.json", "[1]")
        _write(staging, "bedrock_server", "bin")
        _write(staging, "bad.cfg", "x")
        _write(live, "bad.cfg", "y")
        reporter = ProgressReporter()
        policies = [PathPolicy("allowlist.json"), PathPolicy("bad.cfg", _failing_merge)]

        with pytest.raises(ReconciliationFailure):
            _run(staging, live, policies, reporter=reporter)

        assert reporter.items["allowlist.json"].kind == ReconciliationAction.KEEP
        assert reporter.items["allowlist.json"].status == ItemStatus.completed
        assert reporter.items["bedrock_server"].kind == ReconciliationAction.REPLACE
        assert reporter.items["bedrock_server"].status == ItemStatus.completed
        assert reporter.items["bad.cfg"].status == ItemStatus.error
        assert reporter.items["bad.cfg"].message == "boom"

    def test_ticker_runs_and_stops(self, roots):
        staging, live = roots
        _write(staging, "file.txt", "x")
        reconciler = TreeReconciler(staging, live, tick_interval=0.001)

        summary = asyncio.run(reconciler.reconcile())

        assert summary.replaced == 1
