# watchsync/services/reconciliation/state_machine.py
"""
Allowed sync-status transitions for a mirror record.

    New -> WaitingPublish -> Published <-> ChangedWaitingUpdate
    Published / ChangedWaitingUpdate / WaitingPublish -> PublishFailed
    PublishFailed -> WaitingPublish            (retried next cycle)
    any live state -> Deactivated
    Deactivated -> WaitingPublish              (reactivation, archive retention only)

A SKU that comes back after its record was deleted starts again at New.
"""

from typing import Dict, FrozenSet, Optional

from watchsync.core.enums import SyncStatus
from watchsync.core.exceptions import InvalidTransitionError
from watchsync.services.reconciliation.types import MirrorRecord, utc_now

S = SyncStatus

TRANSITIONS: Dict[SyncStatus, FrozenSet[SyncStatus]] = {
    S.NEW: frozenset({S.WAITING_PUBLISH, S.DEACTIVATED}),
    S.WAITING_PUBLISH: frozenset({S.PUBLISHED, S.PUBLISH_FAILED, S.DEACTIVATED}),
    S.PUBLISHED: frozenset({S.CHANGED_WAITING_UPDATE, S.PUBLISH_FAILED, S.DEACTIVATED}),
    S.CHANGED_WAITING_UPDATE: frozenset({S.PUBLISHED, S.PUBLISH_FAILED, S.DEACTIVATED}),
    S.PUBLISH_FAILED: frozenset({S.WAITING_PUBLISH, S.DEACTIVATED}),
    S.DEACTIVATED: frozenset({S.WAITING_PUBLISH}),
}


def can_transition(current: SyncStatus, target: SyncStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(
    record: MirrorRecord,
    target: SyncStatus,
    *,
    error: Optional[str] = None,
) -> MirrorRecord:
    """Return a copy of record moved to target. Raises InvalidTransitionError."""
    if not can_transition(record.sync_status, target):
        raise InvalidTransitionError(
            f"{record.channel}/{record.sku}: {record.sync_status.value} -> {target.value} not allowed"
        )
    updated = record.copy(sync_status=target)
    if target is S.PUBLISH_FAILED:
        updated.last_error = error
    elif target in (S.PUBLISHED, S.DEACTIVATED):
        updated.last_error = None
        updated.last_synced_at = utc_now()
    return updated


def begin_publish(record: MirrorRecord) -> MirrorRecord:
    """Move a record into the in-flight state for a create, update or reactivation."""
    if record.sync_status is S.PUBLISHED:
        return transition(record, S.CHANGED_WAITING_UPDATE)
    if record.sync_status in (S.CHANGED_WAITING_UPDATE, S.WAITING_PUBLISH):
        # Left in flight by an interrupted cycle
        return record.copy()
    return transition(record, S.WAITING_PUBLISH)
