# watchsync/services/reconciliation/executor.py
"""
Applies SyncActions to one channel, one at a time.

Each action is isolated: whatever goes wrong is turned into a Failed result
for that SKU and the caller moves on to the next action. Only transient
channel errors are retried, and only within the action that hit them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from watchsync.core.enums import ActionKind, AlertSeverity, RetentionPolicy, SyncStatus
from watchsync.core.exceptions import (
    AlreadyConvergedError,
    PermanentChannelError,
    TransientChannelError,
)
from watchsync.integrations.base import ChannelAdapter
from watchsync.services.mirror_store import MirrorStore
from watchsync.services.notification_service import AlertSink
from watchsync.services.reconciliation.backoff import PacingPolicy, RetryPolicy, Sleeper, real_sleep
from watchsync.services.reconciliation.state_machine import begin_publish, transition
from watchsync.services.reconciliation.types import (
    ActionResult,
    DeactivateAction,
    InsertAction,
    MirrorRecord,
    PurgeAction,
    ReactivateAction,
    SyncAction,
    UpdateAction,
)

logger = logging.getLogger(__name__)


@dataclass
class RemoteOutcome:
    value: Any = None
    attempts: int = 1
    converged: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ActionExecutor:

    def __init__(
        self,
        adapter: ChannelAdapter,
        store: MirrorStore,
        alerts: AlertSink,
        retry_policy: Optional[RetryPolicy] = None,
        pacing: Optional[PacingPolicy] = None,
        sleeper: Sleeper = real_sleep,
    ):
        self.adapter = adapter
        self.channel = adapter.channel_id
        self.store = store
        self.alerts = alerts
        self.retry_policy = retry_policy or RetryPolicy()
        self.pacing = pacing or PacingPolicy()
        self._sleep = sleeper
        self._last_remote_kind: Optional[ActionKind] = None

    async def execute(self, action: SyncAction, record: Optional[MirrorRecord] = None) -> ActionResult:
        handlers = {
            ActionKind.INSERT: self._insert,
            ActionKind.UPDATE: self._update,
            ActionKind.DEACTIVATE: self._deactivate,
            ActionKind.REACTIVATE: self._reactivate,
            ActionKind.PURGE: self._purge,
        }
        try:
            result = await handlers[action.kind](action, record)
        except Exception as exc:
            # Mirror write or state error after the remote call; next cycle reconciles it
            logger.exception(f"[{self.channel}] {action.kind.value} {action.sku} failed locally")
            result = ActionResult.failed(action, f"{type(exc).__name__}: {exc}")

        await self._report(action, result)
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------
    async def _insert(self, action: InsertAction, record: Optional[MirrorRecord]) -> ActionResult:
        item = action.item
        if record is None or record.sync_status is SyncStatus.DEACTIVATED:
            record = MirrorRecord(channel=self.channel, sku=item.sku)
        in_flight = begin_publish(record)
        in_flight.attributes = dict(item.attributes)

        logger.info(f"[{self.channel}] Listing item: {item.sku}")
        outcome = await self._call_remote(action, lambda: self.adapter.create(item))
        if outcome.ok and (outcome.converged or not outcome.value):
            outcome.error = "Channel reports the item is already listed" if outcome.converged \
                else "Channel returned no listing id"

        if not outcome.ok:
            await self.store.upsert(transition(in_flight, SyncStatus.PUBLISH_FAILED, error=outcome.error))
            return ActionResult.failed(action, outcome.error, attempts=outcome.attempts)

        published = transition(in_flight, SyncStatus.PUBLISHED)
        published.remote_id = str(outcome.value)
        await self.store.upsert(published)
        return ActionResult.ok(action, attempts=outcome.attempts, remote_id=published.remote_id)

    async def _update(self, action: UpdateAction, record: Optional[MirrorRecord]) -> ActionResult:
        remote_id = action.remote_id or (record.remote_id if record else None)
        if record is None or remote_id is None:
            return ActionResult.failed(action, "No published mirror record to update")

        in_flight = begin_publish(record)
        outcome = await self._call_remote(action, lambda: self.adapter.update(remote_id, dict(action.new)))
        if not outcome.ok:
            # Cached attributes stay as they were so the change is detected again next cycle
            await self.store.upsert(transition(in_flight, SyncStatus.PUBLISH_FAILED, error=outcome.error))
            return ActionResult.failed(action, outcome.error, attempts=outcome.attempts)

        published = transition(in_flight, SyncStatus.PUBLISHED)
        published.attributes = dict(action.new)
        published.remote_id = remote_id
        await self.store.upsert(published)
        return ActionResult.ok(action, attempts=outcome.attempts, already_converged=outcome.converged,
                               remote_id=remote_id)

    async def _deactivate(self, action: DeactivateAction, record: Optional[MirrorRecord]) -> ActionResult:
        if action.remote_id is None:
            # Never reached the channel; only the local record needs to go
            outcome = RemoteOutcome(attempts=0, converged=True)
        else:
            logger.info(f"[{self.channel}] Ending listing {action.remote_id} for {action.sku}: {action.reason}")
            outcome = await self._call_remote(action, lambda: self.adapter.deactivate(action.remote_id))

        if not outcome.ok:
            if record is not None:
                await self.store.upsert(record.copy(last_error=outcome.error))
            return ActionResult.failed(action, outcome.error, attempts=outcome.attempts)

        if outcome.converged and action.remote_id is not None:
            logger.info(f"[{self.channel}] {action.sku} ({action.remote_id}) was already ended")

        if record is not None:
            if self.adapter.retention is RetentionPolicy.ARCHIVE and action.remote_id is not None:
                await self.store.upsert(transition(record, SyncStatus.DEACTIVATED))
            else:
                await self.store.delete(self.channel, action.sku)
        return ActionResult.ok(action, attempts=outcome.attempts, already_converged=outcome.converged,
                               remote_id=action.remote_id)

    async def _reactivate(self, action: ReactivateAction, record: Optional[MirrorRecord]) -> ActionResult:
        if record is None:
            return ActionResult.failed(action, "No mirror record to reactivate")

        in_flight = begin_publish(record)
        outcome = await self._call_remote(
            action, lambda: self.adapter.reactivate(action.remote_id, dict(action.attributes))
        )
        if not outcome.ok:
            # Stays deactivated; reactivation is attempted again next cycle
            await self.store.upsert(record.copy(last_error=outcome.error))
            return ActionResult.failed(action, outcome.error, attempts=outcome.attempts)

        published = transition(in_flight, SyncStatus.PUBLISHED)
        published.attributes = dict(action.attributes)
        published.remote_id = action.remote_id
        await self.store.upsert(published)
        return ActionResult.ok(action, attempts=outcome.attempts, already_converged=outcome.converged,
                               remote_id=action.remote_id)

    async def _purge(self, action: PurgeAction, record: Optional[MirrorRecord]) -> ActionResult:
        await self.store.delete(self.channel, action.sku)
        return ActionResult.ok(action, attempts=0)

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------
    async def _call_remote(self, action: SyncAction, call: Callable[[], Awaitable[Any]]) -> RemoteOutcome:
        await self._pace(action.kind)

        attempt = 0
        while True:
            attempt += 1
            try:
                value = await call()
                return RemoteOutcome(value=value, attempts=attempt)
            except AlreadyConvergedError as exc:
                logger.info(f"[{self.channel}] {action.kind.value} {action.sku}: already converged ({exc})")
                return RemoteOutcome(attempts=attempt, converged=True)
            except TransientChannelError as exc:
                if not self.retry_policy.should_retry(attempt):
                    logger.error(
                        f"[{self.channel}] {action.kind.value} {action.sku}: giving up after "
                        f"{attempt}/{self.retry_policy.max_attempts} attempts: {exc}"
                    )
                    return RemoteOutcome(attempts=attempt, error=str(exc))
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    f"[{self.channel}] {action.kind.value} {action.sku}: transient error on attempt "
                    f"{attempt}/{self.retry_policy.max_attempts} ({exc}); sleeping {delay:.1f}s before retrying"
                )
                await self._sleep(delay)
            except PermanentChannelError as exc:
                logger.error(f"[{self.channel}] {action.kind.value} {action.sku}: rejected: {exc}")
                return RemoteOutcome(attempts=attempt, error=str(exc))
            except Exception as exc:
                logger.exception(f"[{self.channel}] {action.kind.value} {action.sku}: unexpected error")
                return RemoteOutcome(attempts=attempt, error=f"{type(exc).__name__}: {exc}")

    async def _pace(self, kind: ActionKind) -> None:
        if self.pacing.enabled and self._last_remote_kind is kind:
            await self._sleep(self.pacing.next_delay())
        self._last_remote_kind = kind

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    async def _report(self, action: SyncAction, result: ActionResult) -> None:
        if result.applied:
            severity = AlertSeverity.INFO
            title = f"[{self.channel}] {action.kind.value} applied for SKU {action.sku}"
            detail = f"SKU: {action.sku}\nAction: {action.kind.value}\nAttempts: {result.attempts}"
            if result.already_converged:
                detail += "\nChannel was already in the requested state"
        else:
            severity = AlertSeverity.ERROR
            title = f"[{self.channel}] {action.kind.value} failed for SKU {action.sku}"
            detail = f"SKU: {action.sku}\nAction: {action.kind.value}\nError: {result.error}"

        try:
            await self.alerts.alert(severity, title, detail)
        except Exception as exc:
            logger.error(f"Alert delivery failed for {action.sku}: {exc}")
