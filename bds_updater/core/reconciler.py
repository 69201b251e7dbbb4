"""Reconcile a staged package tree into a live installation.

Each staged entry is matched against an ordered policy table (first
prefix match wins):

- no policy, or nothing live at that path: REPLACE the live entry
- policy without a merge strategy: KEEP the live file
- policy with a merge strategy: MERGE staged and live content

Directories covered by a keep policy, or containing a policy path, are
scanned recursively so that policies act on leaf files. All entries of
one directory level run as concurrent tasks on the event loop; the level
waits for every task, then reports all failures together. Successful
writes are never rolled back.
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from rich.console import Console

from bds_updater.core.errors import ReconciliationFailure
from bds_updater.core.merge import MergeStrategy, merge_permissions, merge_properties
from bds_updater.core.progress import ProgressReporter, run_ticker
from bds_updater.core.types import ReconciliationAction
from bds_updater.core.utils import normalize_relative_path

logger = structlog.get_logger()


@dataclass(frozen=True)
class PathPolicy:
    """Rule for one relative path and everything beneath it.

    Attributes:
        path: Relative path, normalized on construction
        merge: Merge strategy, or None to keep the live file
    """

    path: str
    merge: MergeStrategy | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", normalize_relative_path(self.path))

    def matches(self, relative: str) -> bool:
        """True if ``relative`` is this path or lies beneath it."""
        return relative == self.path or relative.startswith(self.path + "/")


DEFAULT_POLICIES: tuple[PathPolicy, ...] = (
    PathPolicy("allowlist.json"),
    PathPolicy("permissions.json"),
    PathPolicy("whitelist.json"),
    PathPolicy("server.properties", merge_properties),
    PathPolicy("config/default/permissions.json", merge_permissions),
    PathPolicy("worlds"),
    PathPolicy("development_behavior_packs"),
    PathPolicy("development_resource_packs"),
    PathPolicy("development_skin_packs"),
)


def find_policy(policies: Sequence[PathPolicy], relative: str) -> PathPolicy | None:
    """Return the first policy matching a relative path."""
    relative = normalize_relative_path(relative)
    for policy in policies:
        if policy.matches(relative):
            return policy
    return None


def decide_action(policy: PathPolicy | None, live_exists: bool) -> ReconciliationAction:
    """Pick the action for a leaf entry."""
    if policy is None or not live_exists:
        return ReconciliationAction.REPLACE
    if policy.merge is None:
        return ReconciliationAction.KEEP
    return ReconciliationAction.MERGE


def _read_text(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def safe_copy(src: Path, dst: Path) -> None:
    """Copy ``src`` to ``dst``, replacing whatever occupies ``dst``.

    The staging tree stays intact so a failed run can be retried without
    downloading the archive again.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    _remove(dst)
    if src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst)


@dataclass
class ReconcileSummary:
    """Per-action counts of a reconciliation run."""

    replaced: int = 0
    kept: int = 0
    merged: int = 0
    failed: list[str] = field(default_factory=list)

    def record(self, action: ReconciliationAction) -> None:
        if action == ReconciliationAction.REPLACE:
            self.replaced += 1
        elif action == ReconciliationAction.KEEP:
            self.kept += 1
        else:
            self.merged += 1


class TreeReconciler:
    """Merges a staging directory into a live installation directory.

    Args:
        staging_root: Freshly extracted package tree
        live_root: Operator's installation directory
        policies: Ordered policy table, first match wins
        reporter: Progress display, a silent one if None
        skip_names: Top-level staging names that are never reconciled
        tick_interval: Spinner interval in seconds, None to disable
    """

    def __init__(
        self,
        staging_root: Path,
        live_root: Path,
        policies: Sequence[PathPolicy] = DEFAULT_POLICIES,
        reporter: ProgressReporter | None = None,
        skip_names: Sequence[str] = ("version.txt",),
        tick_interval: float | None = 0.2,
    ):
        self.staging_root = Path(staging_root)
        self.live_root = Path(live_root)
        self.policies = tuple(policies)
        self.reporter = reporter or ProgressReporter(Console(quiet=True))
        self.skip_names = frozenset(skip_names)
        self.tick_interval = tick_interval
        self.summary = ReconcileSummary()

    def _contains_policy(self, relative: str) -> bool:
        prefix = relative + "/"
        return any(policy.path.startswith(prefix) for policy in self.policies)

    async def reconcile(self) -> ReconcileSummary:
        """Reconcile the whole staging tree.

        Returns:
            Counts of replaced, kept and merged items

        Raises:
            ReconciliationFailure: If any item failed; lists every failure
        """
        self.summary = ReconcileSummary()
        self.reporter.start()
        ticker: asyncio.Task[None] | None = None
        if self.tick_interval is not None:
            ticker = asyncio.create_task(run_ticker(self.reporter, self.tick_interval))

        try:
            await self._reconcile_dir("")
        except ReconciliationFailure as e:
            self.summary.failed = e.names
            logger.warning("reconcile_failed", failed=len(e.items))
            raise
        finally:
            if ticker is not None:
                ticker.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await ticker
            self.reporter.finish()

        logger.info(
            "reconcile_finished",
            replaced=self.summary.replaced,
            kept=self.summary.kept,
            merged=self.summary.merged,
        )
        return self.summary

    async def _reconcile_dir(self, relative_dir: str) -> None:
        staged_dir = self.staging_root / relative_dir if relative_dir else self.staging_root
        units: list[tuple[str, asyncio.Task[None]]] = []

        for entry in sorted(staged_dir.iterdir(), key=lambda p: p.name):
            if not relative_dir and entry.name in self.skip_names:
                continue

            relative = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
            policy = find_policy(self.policies, relative)

            if entry.is_dir() and (
                (policy is not None and policy.merge is None)
                or (policy is None and self._contains_policy(relative))
            ):
                units.append((relative, asyncio.create_task(self._reconcile_dir(relative))))
                continue

            live = self.live_root / relative
            action = decide_action(policy, live.exists())
            self.reporter.add_item(relative, action)

            if action == ReconciliationAction.KEEP:
                self.summary.record(action)
                self.reporter.complete_item(relative)
                continue

            units.append((relative, asyncio.create_task(self._apply(relative, action, policy))))

        if not units:
            return

        results = await asyncio.gather(*(task for _, task in units), return_exceptions=True)

        errors: list[tuple[str, str]] = []
        for (name, _), result in zip(units, results):
            if isinstance(result, ReconciliationFailure):
                errors.extend(result.items)
            elif isinstance(result, Exception):
                errors.append((name, str(result) or type(result).__name__))
            elif isinstance(result, BaseException):
                raise result

        if errors:
            raise ReconciliationFailure(errors)

    async def _apply(
        self,
        relative: str,
        action: ReconciliationAction,
        policy: PathPolicy | None,
    ) -> None:
        staged = self.staging_root / relative
        live = self.live_root / relative

        self.reporter.start_processing(relative)
        # Let sibling tasks start before doing blocking file I/O
        await asyncio.sleep(0)

        try:
            if action == ReconciliationAction.MERGE:
                assert policy is not None and policy.merge is not None
                new_text = _read_text(staged)
                old_text = _read_text(live) if live.is_file() else None
                merged = policy.merge(new_text, old_text)
                live.parent.mkdir(parents=True, exist_ok=True)
                _write_text(live, merged)
            else:
                safe_copy(staged, live)
        except Exception as e:
            logger.debug("reconcile_item_failed", item=relative, action=action.value, error=str(e))
            self.reporter.error_item(relative, str(e) or type(e).__name__)
            raise

        self.summary.record(action)
        self.reporter.complete_item(relative)


async def reconcile(
    staging_root: Path,
    live_root: Path,
    policies: Sequence[PathPolicy] = DEFAULT_POLICIES,
    reporter: ProgressReporter | None = None,
) -> ReconcileSummary:
    """Reconcile ``staging_root`` into ``live_root`` with a policy table."""
    reconciler = TreeReconciler(staging_root, live_root, policies, reporter=reporter)
    return await reconciler.reconcile()
