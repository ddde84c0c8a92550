"""Status synchronization service.

Keeps a per-workspace cache of StatusSnapshots fresh under bursty demand.

Per workspace, a refresh goes ``idle -> debouncing -> fetching -> idle``:
requests during the debounce window restart the timer and share one
result; the fetch first runs a cheap porcelain check against the cached
snapshot and only does the full fetch when something differs. Fetches for
different workspaces run concurrently up to a global cap; a workspace
never has two fetches running at once. Outbound events are buffered for a
short window and flushed as batches followed by individual events.

All scheduling state lives on the synchronizer and is only touched from
the event loop that drives it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from hunksync.domain.diff import DiffStats
from hunksync.domain.settings import SyncSettings
from hunksync.domain.status import AheadBehind, PorcelainSummary, StatusSnapshot, StatusState
from hunksync.domain.workspace import Workspace, WorkspaceResolver
from hunksync.infrastructure.git.runner import (
    GitCommandError,
    GitOperation,
    GitRequest,
    GitResponse,
    ProcessInvoker,
)
from hunksync.services.diff_capture import DiffCaptureService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RebaseKind(Enum):
    """Rebase operations with a known effect on status."""

    # This branch was rebased onto its upstream
    FROM_UPSTREAM = "from_upstream"
    # The upstream branch was rebased onto this branch
    TO_UPSTREAM = "to_upstream"


class StatusListener:
    """Receives status events. Override the methods you need."""

    def on_loading(self, workspace_id: str) -> None:
        pass

    def on_updated(self, workspace_id: str, snapshot: StatusSnapshot) -> None:
        pass

    def on_loading_batch(self, workspace_ids: list[str]) -> None:
        pass

    def on_updated_batch(self, updates: list[tuple[str, StatusSnapshot]]) -> None:
        pass

    def on_loading_cancelled(self, workspace_id: str) -> None:
        pass


class _EventKind(Enum):
    LOADING = "loading"
    UPDATED = "updated"


@dataclass
class _PendingEvent:
    kind: _EventKind
    snapshot: StatusSnapshot | None = None


@dataclass
class _CacheEntry:
    snapshot: StatusSnapshot
    checked_at: float


@dataclass
class _PendingRefresh:
    handle: asyncio.TimerHandle
    waiters: list[asyncio.Future] = field(default_factory=list)


class _FetchCancelled(Exception):
    pass


class StatusSynchronizer:
    """Owns the status cache and all refresh scheduling.

    Args:
        diff_capture: Used for quick working-tree stats
        runner: Runs the porcelain/rev-list queries
        resolver: Maps workspace ids to paths and upstream branches
        settings: Timing and concurrency limits
        clock: Monotonic clock in seconds, injectable for tests
    """

    def __init__(
        self,
        diff_capture: DiffCaptureService,
        runner: ProcessInvoker,
        resolver: WorkspaceResolver,
        settings: SyncSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.diff_capture = diff_capture
        self.runner = runner
        self.resolver = resolver
        self.settings = settings or SyncSettings()
        self._clock = clock

        self._cache: dict[str, _CacheEntry] = {}
        self._debounce: dict[str, _PendingRefresh] = {}
        self._cancel_tokens: dict[str, set[asyncio.Event]] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_operations)
        self._listeners: list[StatusListener] = []

        self._pending_events: dict[str, _PendingEvent] = {}
        self._throttle_handle: asyncio.TimerHandle | None = None

        self._initial_queue: list[str] = []
        self._initial_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # --------------------------------------------------------
    # Subscription
    # --------------------------------------------------------

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --------------------------------------------------------
    # Cache
    # --------------------------------------------------------

    def cached_status(self, workspace_id: str) -> StatusSnapshot | None:
        entry = self._cache.get(workspace_id)
        return entry.snapshot if entry else None

    def clear_cache(self, workspace_id: str) -> None:
        """Forget the cached snapshot so the next read fetches fresh."""
        self._cache.pop(workspace_id, None)

    def clear_all_cache(self) -> None:
        self._cache.clear()

    async def get_status(self, workspace_id: str) -> StatusSnapshot | None:
        """Return the cached snapshot if younger than the TTL, else fetch one."""
        entry = self._cache.get(workspace_id)
        if entry and self._is_fresh(entry):
            return entry.snapshot

        token = self._register_token(workspace_id)
        try:
            snapshot = await self._limited(self._fetch_status(workspace_id, token))
        finally:
            self._release_token(workspace_id, token)
        if snapshot is not None and self._store(workspace_id, snapshot, token):
            return snapshot
        return None

    # --------------------------------------------------------
    # Refresh
    # --------------------------------------------------------

    async def refresh(self, workspace_id: str) -> StatusSnapshot | None:
        """Request a debounced refresh.

        Emits ``loading`` immediately. Every call made while the same
        debounce window is open resolves with the single result of the
        fetch that finally runs.

        Returns:
            The fresh (or still-valid cached) snapshot, or None if the
            workspace is unknown or the refresh was cancelled
        """
        self._emit_throttled(workspace_id, _EventKind.LOADING)

        loop = asyncio.get_running_loop()
        waiters: list[asyncio.Future] = []
        pending = self._debounce.pop(workspace_id, None)
        if pending is not None:
            pending.handle.cancel()
            waiters = pending.waiters
            logger.debug("Debounce restarted for %s", workspace_id)
        else:
            logger.debug("Debounce started for %s", workspace_id)

        future: asyncio.Future = loop.create_future()
        waiters.append(future)
        handle = loop.call_later(self.settings.debounce_seconds, self._debounce_elapsed, workspace_id)
        self._debounce[workspace_id] = _PendingRefresh(handle=handle, waiters=waiters)
        return await future

    async def refresh_all(self, workspace_ids: list[str]) -> tuple[int, int]:
        """Refresh many workspaces through the debounced path.

        Returns:
            Tuple of (succeeded, failed); a refresh yielding no snapshot or
            an ``unknown`` one counts as failed
        """
        for workspace_id in workspace_ids:
            self._emit_throttled(workspace_id, _EventKind.LOADING)

        results = await asyncio.gather(
            *(self.refresh(workspace_id) for workspace_id in workspace_ids),
            return_exceptions=True,
        )

        succeeded = sum(
            1 for r in results if isinstance(r, StatusSnapshot) and r.state != StatusState.UNKNOWN
        )
        failed = len(results) - succeeded
        logger.info("Refreshed %d workspaces: %d succeeded, %d failed", len(results), succeeded, failed)
        return succeeded, failed

    async def queue_initial_load(self, workspace_id: str) -> StatusSnapshot | None:
        """Enqueue a newly opened workspace for staggered loading.

        Returns immediately with whatever is cached; the fresh snapshot is
        delivered through events.
        """
        entry = self._cache.get(workspace_id)
        if entry and self._is_fresh(entry):
            return entry.snapshot

        if workspace_id not in self._initial_queue:
            self._initial_queue.append(workspace_id)
            self._emit_throttled(workspace_id, _EventKind.LOADING)

        if self._initial_task is None or self._initial_task.done():
            self._initial_task = asyncio.get_running_loop().create_task(self._drain_initial_queue())

        return entry.snapshot if entry else None

    async def wait_for_initial_load(self) -> None:
        """Wait until the initial-load queue is drained."""
        if self._initial_task is not None:
            await self._initial_task

    # --------------------------------------------------------
    # Rebase fast paths
    # --------------------------------------------------------

    async def update_after_rebase(self, workspace_id: str, kind: RebaseKind) -> StatusSnapshot | None:
        """Update a snapshot analytically after a rebase completes.

        FROM_UPSTREAM clears the behind count and re-reads dirty state with
        the cheap check. TO_UPSTREAM clears the behind count and the dirty
        state. Without a cached snapshot, while a rebase is still stopped,
        or on any error, this falls back to a full refresh.
        """
        entry = self._cache.get(workspace_id)
        if entry is None:
            return await self.refresh(workspace_id)

        workspace = self.resolver.get(workspace_id)
        if workspace is None:
            return None

        cached = entry.snapshot
        token = self._register_token(workspace_id)
        try:
            if kind == RebaseKind.FROM_UPSTREAM:
                if self._is_rebasing(workspace):
                    logger.info("Rebase still in progress for %s, running full refresh", workspace_id)
                    return await self.refresh(workspace_id)
                summary = await self._porcelain_summary(workspace)
                stats = DiffStats()
                if summary.has_changes:
                    stats = await self.diff_capture.working_diff_stats(str(workspace.path), workspace_id)
            else:
                summary = PorcelainSummary()
                stats = DiffStats()

            snapshot = StatusSnapshot.build(
                summary,
                AheadBehind(ahead=cached.ahead, behind=0),
                additions=stats.additions,
                deletions=stats.deletions,
                files_changed=stats.files_changed,
                commit_additions=cached.commit_additions,
                commit_deletions=cached.commit_deletions,
                commit_files_changed=cached.commit_files_changed,
                total_commits=cached.total_commits,
            )
        except Exception:
            logger.warning("Fast status update failed for %s, running full refresh", workspace_id, exc_info=True)
            return await self.refresh(workspace_id)
        finally:
            self._release_token(workspace_id, token)

        if not self._store(workspace_id, snapshot, token):
            return None
        self._emit_throttled(workspace_id, _EventKind.UPDATED, snapshot)
        logger.info("Updated status after %s rebase for %s", kind.value, workspace_id)
        return snapshot

    async def update_after_upstream_change(
        self,
        workspace_ids: list[str],
        updated_by: str | None = None,
    ) -> None:
        """Update workspaces after their shared upstream branch moved.

        The workspace that moved the upstream gets the TO_UPSTREAM fast
        path. Other cached workspaces only have ahead/behind recomputed;
        uncached ones get a full refresh.
        """

        async def update_one(workspace_id: str) -> None:
            if workspace_id == updated_by:
                await self.update_after_rebase(workspace_id, RebaseKind.TO_UPSTREAM)
                return

            entry = self._cache.get(workspace_id)
            workspace = self.resolver.get(workspace_id)
            if entry is None or workspace is None:
                await self.refresh(workspace_id)
                return

            token = self._register_token(workspace_id)
            try:
                counts = await self._ahead_behind(workspace)
            except Exception:
                logger.warning("Ahead/behind update failed for %s", workspace_id, exc_info=True)
                await self.refresh(workspace_id)
                return
            finally:
                self._release_token(workspace_id, token)

            snapshot = entry.snapshot.with_ahead_behind(counts)
            if self._store(workspace_id, snapshot, token):
                self._emit_throttled(workspace_id, _EventKind.UPDATED, snapshot)

        await asyncio.gather(*(update_one(workspace_id) for workspace_id in workspace_ids))
        logger.info("Updated %d workspaces after upstream change", len(workspace_ids))

    # --------------------------------------------------------
    # Cancellation
    # --------------------------------------------------------

    def cancel(self, workspace_id: str) -> None:
        """Cancel pending and in-flight work for a workspace.

        Results of in-flight and queued fetches are discarded, the debounce
        timer is cleared (its waiters resolve to None) and listeners are told
        that loading ended.
        """
        for token in self._cancel_tokens.pop(workspace_id, set()):
            token.set()

        pending = self._debounce.pop(workspace_id, None)
        if pending is not None:
            pending.handle.cancel()
            _resolve(pending.waiters, None)

        if workspace_id in self._initial_queue:
            self._initial_queue.remove(workspace_id)

        event = self._pending_events.get(workspace_id)
        if event is not None and event.kind == _EventKind.LOADING:
            del self._pending_events[workspace_id]

        for listener in list(self._listeners):
            self._notify(listener.on_loading_cancelled, workspace_id)

    def close_workspace(self, workspace_id: str) -> None:
        """Cancel everything for a workspace and drop its cache entry."""
        self.cancel(workspace_id)
        self.clear_cache(workspace_id)

    def shutdown(self) -> None:
        """Cancel every outstanding fetch and clear all timers."""
        for tokens in self._cancel_tokens.values():
            for token in tokens:
                token.set()
        self._cancel_tokens.clear()
        self._inflight.clear()

        for pending in self._debounce.values():
            pending.handle.cancel()
            _resolve(pending.waiters, None)
        self._debounce.clear()

        if self._throttle_handle is not None:
            self._throttle_handle.cancel()
            self._throttle_handle = None
        self._pending_events.clear()

        self._initial_queue.clear()
        if self._initial_task is not None and not self._initial_task.done():
            self._initial_task.cancel()
        for task in list(self._tasks):
            task.cancel()

    # --------------------------------------------------------
    # Cheap check
    # --------------------------------------------------------

    async def has_status_changed(self, workspace_id: str) -> bool:
        """Compare a fresh porcelain summary with the cached snapshot.

        Returns True when there is no cached snapshot, when any dirty flag or
        count differs, when a clean workspace's ahead/behind moved, or when
        the check itself fails. A workspace whose path no longer exists is
        reported unchanged.
        """
        entry = self._cache.get(workspace_id)
        if entry is None:
            return True

        workspace = self.resolver.get(workspace_id)
        if workspace is None:
            return True
        if not workspace.exists:
            logger.warning("Workspace path does not exist: %s", workspace.path)
            return False

        try:
            summary = await self._porcelain_summary(workspace)
            if not entry.snapshot.matches_summary(summary):
                return True
            if not summary.has_changes:
                counts = await self._ahead_behind(workspace)
                if counts.ahead != entry.snapshot.ahead or counts.behind != entry.snapshot.behind:
                    return True
            return False
        except Exception:
            logger.debug("Cheap status check failed for %s", workspace_id, exc_info=True)
            return True

    # --------------------------------------------------------
    # Scheduling internals
    # --------------------------------------------------------

    def _debounce_elapsed(self, workspace_id: str) -> None:
        pending = self._debounce.pop(workspace_id, None)
        if pending is None:
            return
        logger.debug("Debounce complete for %s", workspace_id)
        task = asyncio.get_running_loop().create_task(self._run_refresh(workspace_id, pending.waiters))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_refresh(self, workspace_id: str, waiters: list[asyncio.Future]) -> None:
        token = self._register_token(workspace_id)
        previous = self._inflight.get(workspace_id)
        current = asyncio.current_task()
        self._inflight[workspace_id] = current
        result: StatusSnapshot | None = None
        try:
            # One fetch per workspace at a time; a later refresh runs after the earlier one
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            if not token.is_set():
                result = await self._limited(self._refresh_now(workspace_id, token))
        except asyncio.CancelledError:
            _resolve(waiters, None)
            raise
        except Exception:
            logger.error("Refresh failed for %s", workspace_id, exc_info=True)
        finally:
            self._release_token(workspace_id, token)
            if self._inflight.get(workspace_id) is current:
                del self._inflight[workspace_id]
        _resolve(waiters, result)

    async def _refresh_now(self, workspace_id: str, token: asyncio.Event) -> StatusSnapshot | None:
        if not await self.has_status_changed(workspace_id):
            if token.is_set():
                return None
            cached = self.cached_status(workspace_id)
            if cached is not None:
                # Clears the loading indicator
                self._emit_throttled(workspace_id, _EventKind.UPDATED, cached)
            return cached

        snapshot = await self._fetch_status(workspace_id, token)
        if snapshot is None or not self._store(workspace_id, snapshot, token):
            return None
        self._emit_throttled(workspace_id, _EventKind.UPDATED, snapshot)
        return snapshot

    async def _drain_initial_queue(self) -> None:
        while self._initial_queue:
            batch_size = min(self.settings.max_concurrent_operations, len(self._initial_queue))
            batch = self._initial_queue[:batch_size]
            del self._initial_queue[:batch_size]

            await asyncio.gather(
                *(self._limited(self._initial_load_one(workspace_id)) for workspace_id in batch),
                return_exceptions=True,
            )

            if self._initial_queue:
                await asyncio.sleep(self.settings.initial_load_stagger_seconds)

    async def _initial_load_one(self, workspace_id: str) -> None:
        token = self._register_token(workspace_id)
        try:
            snapshot = await self._fetch_status(workspace_id, token)
        finally:
            self._release_token(workspace_id, token)
        if snapshot is not None and self._store(workspace_id, snapshot, token):
            self._emit_throttled(workspace_id, _EventKind.UPDATED, snapshot)

    async def _limited(self, operation: Awaitable[T]) -> T:
        async with self._semaphore:
            return await operation

    def _is_fresh(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.checked_at < self.settings.cache_ttl_seconds

    def _store(self, workspace_id: str, snapshot: StatusSnapshot, token: asyncio.Event | None = None) -> bool:
        """Cache a snapshot unless the work that produced it was cancelled."""
        if token is not None and token.is_set():
            logger.debug("Discarding status for cancelled workspace %s", workspace_id)
            return False
        self._cache[workspace_id] = _CacheEntry(snapshot=snapshot, checked_at=self._clock())
        return True

    # --------------------------------------------------------
    # Events
    # --------------------------------------------------------

    def _emit_throttled(
        self,
        workspace_id: str,
        kind: _EventKind,
        snapshot: StatusSnapshot | None = None,
    ) -> None:
        self._pending_events[workspace_id] = _PendingEvent(kind=kind, snapshot=snapshot)
        if self._throttle_handle is None:
            self._throttle_handle = asyncio.get_running_loop().call_later(
                self.settings.event_throttle_seconds, self._flush_events
            )

    def _flush_events(self) -> None:
        events = dict(self._pending_events)
        self._pending_events.clear()
        self._throttle_handle = None

        loading = [wid for wid, e in events.items() if e.kind == _EventKind.LOADING]
        updated = [
            (wid, e.snapshot)
            for wid, e in events.items()
            if e.kind == _EventKind.UPDATED and e.snapshot is not None
        ]

        listeners = list(self._listeners)
        if loading:
            for listener in listeners:
                self._notify(listener.on_loading_batch, loading)
        if updated:
            for listener in listeners:
                self._notify(listener.on_updated_batch, updated)

        for listener in listeners:
            for workspace_id in loading:
                self._notify(listener.on_loading, workspace_id)
            for workspace_id, snapshot in updated:
                self._notify(listener.on_updated, workspace_id, snapshot)

    def _notify(self, callback: Callable[..., None], *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Status listener %r failed", callback)

    # --------------------------------------------------------
    # Fetch
    # --------------------------------------------------------

    def _register_token(self, workspace_id: str) -> asyncio.Event:
        token = asyncio.Event()
        self._cancel_tokens.setdefault(workspace_id, set()).add(token)
        return token

    def _release_token(self, workspace_id: str, token: asyncio.Event) -> None:
        tokens = self._cancel_tokens.get(workspace_id)
        if tokens is None:
            return
        tokens.discard(token)
        if not tokens:
            del self._cancel_tokens[workspace_id]

    async def _fetch_status(self, workspace_id: str, token: asyncio.Event) -> StatusSnapshot | None:
        """Run the full status fetch.

        Returns None for an unknown or missing workspace and for a
        cancelled fetch; any other failure becomes an ``unknown`` snapshot.
        """
        try:
            workspace = self.resolver.get(workspace_id)
            if workspace is None:
                return None
            if not workspace.exists:
                logger.warning("Workspace path does not exist for %s: %s", workspace_id, workspace.path)
                return None
            return await self._collect(workspace, token)
        except _FetchCancelled:
            logger.debug("Status fetch cancelled for %s", workspace_id)
            return None
        except Exception:
            if token.is_set():
                return None
            logger.error("Status fetch failed for %s", workspace_id, exc_info=True)
            return StatusSnapshot.unknown()

    async def _collect(self, workspace: Workspace, token: asyncio.Event) -> StatusSnapshot:
        _check(token)
        summary = await self._porcelain_summary(workspace)
        _check(token)

        stats = DiffStats()
        if summary.has_changes:
            try:
                stats = await self.diff_capture.working_diff_stats(str(workspace.path), workspace.id)
            except GitCommandError as e:
                logger.warning("Could not compute diff stats for %s: %s", workspace.id, e)
            _check(token)

        counts = await self._ahead_behind(workspace)
        _check(token)

        commit_stats = DiffStats()
        if counts.ahead > 0:
            commit_stats = await self._commit_stats(workspace)
            _check(token)

        total_commits = await self._total_commits(workspace, counts.ahead)
        _check(token)

        return StatusSnapshot.build(
            summary,
            counts,
            additions=stats.additions,
            deletions=stats.deletions,
            files_changed=stats.files_changed,
            commit_additions=commit_stats.additions,
            commit_deletions=commit_stats.deletions,
            commit_files_changed=commit_stats.files_changed,
            total_commits=total_commits,
            is_rebasing=self._is_rebasing(workspace),
        )

    # --------------------------------------------------------
    # Git queries
    # --------------------------------------------------------

    def _upstream(self, workspace: Workspace) -> str:
        return workspace.upstream or self.settings.default_upstream

    async def _git(self, workspace: Workspace, args: list[str], operation: str) -> tuple[GitRequest, GitResponse]:
        request = GitRequest(
            cwd=str(workspace.path),
            argv=("git", *args),
            op=GitOperation.READ,
            workspace_id=workspace.id,
            meta={"source": "status", "operation": operation},
        )
        return request, await self.runner.run(request)

    async def _porcelain_summary(self, workspace: Workspace) -> PorcelainSummary:
        request, response = await self._git(workspace, ["status", "--porcelain"], "status-porcelain")
        if not response.ok:
            raise GitCommandError(request, response)
        return PorcelainSummary.from_porcelain(response.stdout)

    async def _ahead_behind(self, workspace: Workspace) -> AheadBehind:
        _, response = await self._git(
            workspace,
            ["rev-list", "--left-right", "--count", f"{self._upstream(workspace)}...HEAD"],
            "ahead-behind",
        )
        if not response.ok:
            logger.debug("ahead/behind unavailable for %s: %s", workspace.id, response.stderr.strip())
            return AheadBehind()
        return AheadBehind.from_rev_list(response.stdout)

    async def _commit_stats(self, workspace: Workspace) -> DiffStats:
        _, response = await self._git(
            workspace, ["diff", "--shortstat", f"{self._upstream(workspace)}...HEAD"], "commit-shortstat"
        )
        if not response.ok:
            return DiffStats()
        return DiffStats.from_shortstat(response.stdout)

    async def _total_commits(self, workspace: Workspace, ahead: int) -> int:
        _, response = await self._git(
            workspace, ["rev-list", "--count", f"{self._upstream(workspace)}..HEAD"], "rev-list-count"
        )
        if not response.ok:
            return ahead
        try:
            return int(response.stdout.strip()) or ahead
        except ValueError:
            return ahead

    def _is_rebasing(self, workspace: Workspace) -> bool:
        git_dir = workspace.git_dir()
        return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()


def _check(token: asyncio.Event) -> None:
    if token.is_set():
        raise _FetchCancelled()


def _resolve(waiters: list[asyncio.Future], result: StatusSnapshot | None) -> None:
    for waiter in waiters:
        if not waiter.done():
            waiter.set_result(result)
