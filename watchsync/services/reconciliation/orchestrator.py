# watchsync/services/reconciliation/orchestrator.py
"""
Runs one reconciliation cycle for one channel:

    feed -> mirror -> (remote) -> diff -> guard -> execute -> persist summary

Whole-cycle failures (feed down, duplicate SKUs, safety guard, unreadable
remote state) stop the cycle before any write. Per-action failures are
recorded in the summary and never stop sibling actions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from watchsync.core.enums import AlertSeverity, CycleOutcome
from watchsync.core.exceptions import (
    ChannelNotFoundError,
    CycleAbortedError,
    DuplicateSkuInFeedError,
    FeedUnavailableError,
    RemoteStateUnavailableError,
    SafetyThresholdExceededError,
)
from watchsync.integrations.base import ChannelAdapter, FeedProvider
from watchsync.services.mirror_store import MirrorStore
from watchsync.services.notification_service import AlertSink
from watchsync.services.reconciliation.backoff import PacingPolicy, RetryPolicy, Sleeper, real_sleep
from watchsync.services.reconciliation.differencer import Differencer, find_duplicate_skus
from watchsync.services.reconciliation.executor import ActionExecutor
from watchsync.services.reconciliation.safety_guard import SafetyGuard
from watchsync.services.reconciliation.types import (
    CanonicalItem,
    CycleSummary,
    ExecutionBudget,
    MirrorRecord,
    RemoteListingRef,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class ChannelRuntime:
    """Everything the orchestrator needs to reconcile one channel."""
    adapter: ChannelAdapter
    feed: FeedProvider
    max_destructive_per_cycle: int
    max_divergence: Optional[int] = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    pacing: PacingPolicy = field(default_factory=PacingPolicy)

    @property
    def channel_id(self) -> str:
        return self.adapter.channel_id


class ReconciliationOrchestrator:

    def __init__(
        self,
        store: MirrorStore,
        alerts: AlertSink,
        runs_per_hour: int = 4,
        sleeper: Sleeper = real_sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.alerts = alerts
        self.runs_per_hour = runs_per_hour
        self._sleeper = sleeper
        self._clock = clock
        self._channels: Dict[str, ChannelRuntime] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register(self, runtime: ChannelRuntime) -> None:
        self._channels[runtime.channel_id] = runtime
        self._locks.setdefault(runtime.channel_id, asyncio.Lock())
        logger.info(f"Registered channel {runtime.channel_id}")

    @property
    def channels(self) -> List[str]:
        return sorted(self._channels)

    def get_channel(self, channel_id: str) -> ChannelRuntime:
        try:
            return self._channels[channel_id]
        except KeyError:
            raise ChannelNotFoundError(f"Unknown channel: {channel_id}") from None

    def is_running(self, channel_id: str) -> bool:
        lock = self._locks.get(channel_id)
        return bool(lock and lock.locked())

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def run_cycle(self, channel_id: str, budget: Optional[ExecutionBudget] = None) -> CycleSummary:
        runtime = self.get_channel(channel_id)
        summary = CycleSummary(channel=channel_id)

        if budget is not None:
            now = self._clock()
            if not budget.allows(now, self.runs_per_hour):
                summary.budget = budget.rolled(now)
                logger.info(
                    f"[{channel_id}] Skipping cycle: {summary.budget.count} of {self.runs_per_hour} "
                    f"runs already used this hour"
                )
                return summary.finish(CycleOutcome.SKIPPED, "execution budget for this hour used up")
            summary.budget = budget.register(now)

        async with self._locks[channel_id]:
            return await self._run(runtime, summary, sku=None)

    async def run_single_sku(self, channel_id: str, sku: str) -> CycleSummary:
        """Same pipeline restricted to one SKU. The safety guard is skipped."""
        runtime = self.get_channel(channel_id)
        summary = CycleSummary(channel=channel_id, single_sku=sku)
        async with self._locks[channel_id]:
            return await self._run(runtime, summary, sku=sku)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    async def _run(self, runtime: ChannelRuntime, summary: CycleSummary, sku: Optional[str]) -> CycleSummary:
        channel_id = runtime.channel_id
        logger.info(f"[{channel_id}] Starting cycle {summary.run_id}" + (f" for SKU {sku}" if sku else ""))

        try:
            await self._reconcile(runtime, summary, sku)
        except FeedUnavailableError as exc:
            summary.finish(CycleOutcome.FEED_DOWN, str(exc))
            logger.warning(f"[{channel_id}] Feed down, cycle skipped: {exc}")
            await self._alert(AlertSeverity.WARNING, f"[{channel_id}] Feed unavailable, sync skipped", str(exc))
        except CycleAbortedError as exc:
            summary.finish(CycleOutcome.ABORTED, str(exc))
            logger.error(f"[{channel_id}] Cycle aborted: {exc}")
            await self._alert(AlertSeverity.ERROR, self._abort_title(channel_id, exc), self._abort_detail(exc))
        else:
            summary.finish(CycleOutcome.COMPLETED)
            if summary.failed:
                await self._alert(
                    AlertSeverity.WARNING,
                    f"[{channel_id}] Cycle finished with {len(summary.failed)} failed actions",
                    "\n".join(f"{f.kind.value} {f.sku}: {f.error}" for f in summary.failed),
                )

        await self._persist(summary)
        logger.info(summary.describe())
        return summary

    async def _reconcile(self, runtime: ChannelRuntime, summary: CycleSummary, sku: Optional[str]) -> None:
        adapter = runtime.adapter
        channel_id = runtime.channel_id

        feed_items = await self._fetch_feed(runtime.feed)
        mirror = await self.store.load(channel_id)

        if not feed_items and mirror:
            # Never infer a global delist from an empty feed
            raise FeedUnavailableError(
                f"Feed returned zero items while {len(mirror)} records are tracked"
            )

        duplicates = find_duplicate_skus(feed_items)
        if duplicates:
            raise DuplicateSkuInFeedError(duplicates)

        remote_refs = await self._fetch_remote(adapter)

        if sku is not None:
            feed_items, mirror, remote_refs = self._restrict(sku, feed_items, mirror, remote_refs)

        changes = Differencer(adapter.status_policy).diff(feed_items, mirror, remote_refs)
        logger.info(f"[{channel_id}] Change set: {changes.counts()}")

        if sku is None:
            previous_active = sum(1 for r in mirror.values() if r.is_active and r.remote_id)
            remote_active = None
            if remote_refs is not None:
                remote_active = sum(1 for ref in remote_refs if adapter.status_policy.is_remote_active(ref))
            guard = SafetyGuard(runtime.max_destructive_per_cycle, runtime.max_divergence)
            decision = guard.check(changes, previous_active, remote_active)
            if not decision.allowed:
                raise SafetyThresholdExceededError(decision.reason, decision.skus)

        executor = ActionExecutor(
            adapter,
            self.store,
            self.alerts,
            retry_policy=runtime.retry_policy,
            pacing=runtime.pacing,
            sleeper=self._sleeper,
        )
        for action in changes.actions():
            result = await executor.execute(action, mirror.get(action.sku))
            summary.record(result)

    async def _fetch_feed(self, feed: FeedProvider) -> List[CanonicalItem]:
        try:
            ready = await feed.is_ready()
        except Exception as exc:
            raise FeedUnavailableError(f"Feed readiness check failed: {exc}") from exc
        if not ready:
            raise FeedUnavailableError("Feed is not ready (refresh still running)")

        try:
            return list(await feed.fetch_snapshot())
        except FeedUnavailableError:
            raise
        except Exception as exc:
            raise FeedUnavailableError(f"Feed fetch failed: {exc}") from exc

    async def _fetch_remote(self, adapter: ChannelAdapter) -> Optional[List[RemoteListingRef]]:
        if not adapter.supports_listing:
            return None
        try:
            refs = await adapter.list_remote()
        except Exception as exc:
            raise RemoteStateUnavailableError(
                f"Can't reconcile: listing read from {adapter.channel_id} failed: {exc}"
            ) from exc
        if refs is None:
            raise RemoteStateUnavailableError(
                f"Can't reconcile: {adapter.channel_id} returned no listing data"
            )
        logger.info(f"[{adapter.channel_id}] Remote listing count: {len(refs)}")
        return list(refs)

    @staticmethod
    def _restrict(
        sku: str,
        feed_items: List[CanonicalItem],
        mirror: Mapping[str, MirrorRecord],
        remote_refs: Optional[List[RemoteListingRef]],
    ):
        feed_items = [item for item in feed_items if item.sku == sku]
        record = mirror.get(sku)
        restricted_mirror = {sku: record} if record is not None else {}
        if remote_refs is not None:
            remote_id = record.remote_id if record is not None else None
            remote_refs = [
                ref for ref in remote_refs
                if ref.sku == sku or (remote_id is not None and ref.remote_id == remote_id)
            ]
        if not feed_items and record is None:
            logger.info(f"SKU {sku} wasn't found in feed or mirror")
        return feed_items, restricted_mirror, remote_refs

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------
    async def _persist(self, summary: CycleSummary) -> None:
        try:
            await self.store.record_cycle(summary)
        except Exception as exc:
            logger.error(f"[{summary.channel}] Failed to persist cycle summary {summary.run_id}: {exc}")

    async def _alert(self, severity: AlertSeverity, title: str, detail: str) -> None:
        try:
            await self.alerts.alert(severity, title, detail)
        except Exception as exc:
            logger.error(f"Alert delivery failed for {title!r}: {exc}")

    @staticmethod
    def _abort_title(channel_id: str, exc: CycleAbortedError) -> str:
        if isinstance(exc, DuplicateSkuInFeedError):
            return f"[{channel_id}] Feed has duplicate SKUs, sync aborted"
        if isinstance(exc, SafetyThresholdExceededError):
            return f"[{channel_id}] Safety threshold exceeded, sync aborted"
        if isinstance(exc, RemoteStateUnavailableError):
            return f"[{channel_id}] Remote listing read failed, sync aborted"
        return f"[{channel_id}] Sync aborted"

    @staticmethod
    def _abort_detail(exc: CycleAbortedError) -> str:
        skus = getattr(exc, "skus", None)
        if isinstance(exc, DuplicateSkuInFeedError):
            return "Duplicate SKUs:\n" + "\n".join(f"Sku: {s}" for s in skus)
        return str(exc)
