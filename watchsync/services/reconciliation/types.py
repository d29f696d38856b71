# watchsync/services/reconciliation/types.py
"""
Value types passed between the differencer, safety guard, executor and
orchestrator.

Feed items and remote refs are frozen for the duration of a cycle. Mirror
records are plain dataclasses: the executor works on copies and only the
mirror store persists them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from watchsync.core.enums import ActionKind, CycleOutcome, SyncStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CanonicalItem:
    """One listing as read from the feed."""
    sku: str
    attributes: Mapping[str, Any]
    feed_status: str = ""

    def __post_init__(self):
        # Copy so later mutation of the caller's dict can't leak into the cycle
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))


@dataclass
class MirrorRecord:
    """What the engine last synced for one SKU on one channel."""
    channel: str
    sku: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    sync_status: SyncStatus = SyncStatus.NEW
    remote_id: Optional[str] = None
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.sync_status.is_active

    def copy(self, **changes) -> "MirrorRecord":
        changes.setdefault("attributes", dict(self.attributes))
        return replace(self, **changes)


@dataclass(frozen=True)
class RemoteListingRef:
    """Minimal live state read back from a channel."""
    remote_id: str
    sku: Optional[str] = None
    remote_status: str = ""


@dataclass(frozen=True)
class AttributeChange:
    old: Mapping[str, Any]
    new: Mapping[str, Any]
    remote_id: Optional[str] = None

    @property
    def changed_fields(self) -> List[str]:
        keys = list(self.old.keys()) + [k for k in self.new.keys() if k not in self.old]
        return [k for k in keys if self.old.get(k) != self.new.get(k)]


@dataclass(frozen=True)
class DeactivationTarget:
    remote_id: Optional[str]
    reason: str
    orphan: bool = False


@dataclass(frozen=True)
class ReactivationTarget:
    remote_id: str
    attributes: Mapping[str, Any]


@dataclass
class ChangeSet:
    """
    Actions needed to reconcile one channel with the feed, keyed by SKU.

    A SKU appears in at most one of the sets.
    """
    to_insert: Dict[str, CanonicalItem] = field(default_factory=dict)
    to_update: Dict[str, AttributeChange] = field(default_factory=dict)
    to_deactivate: Dict[str, DeactivationTarget] = field(default_factory=dict)
    to_reactivate: Dict[str, ReactivationTarget] = field(default_factory=dict)
    to_purge: Dict[str, str] = field(default_factory=dict)

    @property
    def destructive_count(self) -> int:
        return len(self.to_deactivate)

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_deactivate
                    or self.to_reactivate or self.to_purge)

    def all_skus(self) -> List[str]:
        skus: List[str] = []
        for bucket in (self.to_deactivate, self.to_reactivate, self.to_insert,
                       self.to_update, self.to_purge):
            skus.extend(bucket.keys())
        return skus

    def actions(self) -> List["SyncAction"]:
        """Actions in execution order: ends first, then reactivations, creates, updates, purges."""
        result: List[SyncAction] = []
        for sku in sorted(self.to_deactivate):
            target = self.to_deactivate[sku]
            result.append(DeactivateAction(sku=sku, remote_id=target.remote_id, reason=target.reason))
        for sku in sorted(self.to_reactivate):
            target = self.to_reactivate[sku]
            result.append(ReactivateAction(sku=sku, remote_id=target.remote_id, attributes=target.attributes))
        for sku in sorted(self.to_insert):
            result.append(InsertAction(item=self.to_insert[sku]))
        for sku in sorted(self.to_update):
            change = self.to_update[sku]
            result.append(UpdateAction(sku=sku, old=change.old, new=change.new, remote_id=change.remote_id))
        for sku in sorted(self.to_purge):
            result.append(PurgeAction(sku=sku, reason=self.to_purge[sku]))
        return result

    def counts(self) -> Dict[str, int]:
        return {
            "insert": len(self.to_insert),
            "update": len(self.to_update),
            "deactivate": len(self.to_deactivate),
            "reactivate": len(self.to_reactivate),
            "purge": len(self.to_purge),
        }


@dataclass(frozen=True)
class InsertAction:
    item: CanonicalItem
    kind = ActionKind.INSERT

    @property
    def sku(self) -> str:
        return self.item.sku


@dataclass(frozen=True)
class UpdateAction:
    sku: str
    old: Mapping[str, Any]
    new: Mapping[str, Any]
    remote_id: Optional[str] = None
    kind = ActionKind.UPDATE


@dataclass(frozen=True)
class DeactivateAction:
    sku: str
    remote_id: Optional[str]
    reason: str = ""
    kind = ActionKind.DEACTIVATE


@dataclass(frozen=True)
class ReactivateAction:
    sku: str
    remote_id: str
    attributes: Mapping[str, Any]
    kind = ActionKind.REACTIVATE


@dataclass(frozen=True)
class PurgeAction:
    sku: str
    reason: str = ""
    kind = ActionKind.PURGE


SyncAction = Union[InsertAction, UpdateAction, DeactivateAction, ReactivateAction, PurgeAction]


@dataclass(frozen=True)
class ActionResult:
    sku: str
    kind: ActionKind
    applied: bool
    error: Optional[str] = None
    attempts: int = 1
    already_converged: bool = False
    remote_id: Optional[str] = None

    @classmethod
    def ok(cls, action: SyncAction, attempts: int = 1, already_converged: bool = False,
           remote_id: Optional[str] = None) -> "ActionResult":
        return cls(sku=action.sku, kind=action.kind, applied=True, attempts=attempts,
                   already_converged=already_converged, remote_id=remote_id)

    @classmethod
    def failed(cls, action: SyncAction, error: str, attempts: int = 1) -> "ActionResult":
        return cls(sku=action.sku, kind=action.kind, applied=False, error=error, attempts=attempts)


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: Optional[str] = None
    skus: tuple = ()

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(allowed=True)

    @classmethod
    def abort(cls, reason: str, skus=()) -> "GuardDecision":
        return cls(allowed=False, reason=reason, skus=tuple(sorted(skus)))


@dataclass(frozen=True)
class ExecutionBudget:
    """
    How many cycles have run in the current clock hour.

    Passed into and returned from the orchestrator instead of living in a
    process-wide counter.
    """
    hour: int = -1
    count: int = 0

    def rolled(self, now: datetime) -> "ExecutionBudget":
        if now.hour != self.hour:
            return ExecutionBudget(hour=now.hour, count=0)
        return self

    def allows(self, now: datetime, runs_per_hour: int) -> bool:
        if runs_per_hour <= 0:
            return False
        return self.rolled(now).count < runs_per_hour

    def register(self, now: datetime) -> "ExecutionBudget":
        current = self.rolled(now)
        return ExecutionBudget(hour=current.hour, count=current.count + 1)


@dataclass(frozen=True)
class FailedAction:
    sku: str
    kind: ActionKind
    error: str


@dataclass
class CycleSummary:
    """Outcome of one reconciliation cycle for one channel."""
    channel: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    inserted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deactivated: List[str] = field(default_factory=list)
    reactivated: List[str] = field(default_factory=list)
    purged: List[str] = field(default_factory=list)
    failed: List[FailedAction] = field(default_factory=list)
    abort_reason: Optional[str] = None
    single_sku: Optional[str] = None
    budget: Optional[ExecutionBudget] = None

    @property
    def aborted(self) -> bool:
        return self.outcome is CycleOutcome.ABORTED

    @property
    def feed_down(self) -> bool:
        return self.outcome is CycleOutcome.FEED_DOWN

    def record(self, result: ActionResult) -> None:
        if not result.applied:
            self.failed.append(FailedAction(sku=result.sku, kind=result.kind, error=result.error or ""))
            return
        bucket = {
            ActionKind.INSERT: self.inserted,
            ActionKind.UPDATE: self.updated,
            ActionKind.DEACTIVATE: self.deactivated,
            ActionKind.REACTIVATE: self.reactivated,
            ActionKind.PURGE: self.purged,
        }[result.kind]
        bucket.append(result.sku)

    def finish(self, outcome: Optional[CycleOutcome] = None, reason: Optional[str] = None) -> "CycleSummary":
        if outcome is not None:
            self.outcome = outcome
        if reason is not None:
            self.abort_reason = reason
        self.finished_at = utc_now()
        return self

    def counts(self) -> Dict[str, int]:
        return {
            "inserted": len(self.inserted),
            "updated": len(self.updated),
            "deactivated": len(self.deactivated),
            "reactivated": len(self.reactivated),
            "purged": len(self.purged),
            "failed": len(self.failed),
        }

    def describe(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.counts().items())
        text = f"[{self.channel}] cycle {self.run_id} {self.outcome.value}: {counts}"
        if self.abort_reason:
            text += f" ({self.abort_reason})"
        return text
