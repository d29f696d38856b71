# watchsync/services/reconciliation/differencer.py
"""
Computes the ChangeSet for one channel from the feed snapshot, the mirror
snapshot and (when the channel can enumerate) the live remote listings.

Pure: no I/O, no clock, no randomness. Same inputs give an equal ChangeSet.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from watchsync.core.enums import SyncStatus
from watchsync.core.exceptions import DuplicateSkuInFeedError
from watchsync.integrations.base import ChannelStatusPolicy
from watchsync.services.reconciliation.types import (
    AttributeChange,
    CanonicalItem,
    ChangeSet,
    DeactivationTarget,
    MirrorRecord,
    ReactivationTarget,
    RemoteListingRef,
)

logger = logging.getLogger(__name__)

ORPHAN_KEY_PREFIX = "remote:"


def find_duplicate_skus(feed_items: Iterable[CanonicalItem]) -> List[str]:
    counts = Counter(item.sku for item in feed_items)
    return sorted(sku for sku, count in counts.items() if count > 1)


def orphan_key(ref: RemoteListingRef) -> str:
    """Key used for a remote listing nobody on our side knows about."""
    return ref.sku or f"{ORPHAN_KEY_PREFIX}{ref.remote_id}"


class Differencer:
    """Feed vs mirror (vs remote) comparison for a single channel."""

    def __init__(self, policy: Optional[ChannelStatusPolicy] = None):
        self.policy = policy or ChannelStatusPolicy()

    def diff(
        self,
        feed_items: Sequence[CanonicalItem],
        mirror_records: Mapping[str, MirrorRecord],
        remote_refs: Optional[Iterable[RemoteListingRef]] = None,
    ) -> ChangeSet:
        duplicates = find_duplicate_skus(feed_items)
        if duplicates:
            raise DuplicateSkuInFeedError(duplicates)

        feed_by_sku: Dict[str, CanonicalItem] = {item.sku: item for item in feed_items}
        remote_list = list(remote_refs) if remote_refs is not None else None
        remote_by_id: Dict[str, RemoteListingRef] = (
            {ref.remote_id: ref for ref in remote_list} if remote_list is not None else {}
        )

        changes = ChangeSet()

        for sku, item in feed_by_sku.items():
            record = mirror_records.get(sku)
            if record is None:
                self._diff_new(item, changes)
            elif record.sync_status is SyncStatus.DEACTIVATED:
                self._diff_deactivated(item, record, remote_list, remote_by_id, changes)
            else:
                self._diff_active(item, record, changes)

        for sku, record in mirror_records.items():
            if sku in feed_by_sku:
                continue
            if record.sync_status is SyncStatus.DEACTIVATED:
                # Retained record: drop it once the remote confirms it's gone too
                if remote_list is not None and (
                    record.remote_id is None or record.remote_id not in remote_by_id
                ):
                    changes.to_purge[sku] = "absent from feed and remote"
                continue
            changes.to_deactivate[sku] = DeactivationTarget(
                remote_id=record.remote_id, reason="no longer on feed"
            )

        if remote_list is not None:
            self._diff_orphans(remote_list, mirror_records, changes)

        return changes

    def _diff_new(self, item: CanonicalItem, changes: ChangeSet) -> None:
        if self.policy.is_terminal(item.feed_status):
            logger.debug(f"Not inserting {item.sku}: feed status is {item.feed_status!r}")
            return
        changes.to_insert[item.sku] = item

    def _diff_active(self, item: CanonicalItem, record: MirrorRecord, changes: ChangeSet) -> None:
        # Deactivation wins over any pending update
        if self.policy.is_terminal(item.feed_status):
            changes.to_deactivate[item.sku] = DeactivationTarget(
                remote_id=record.remote_id, reason=f"feed status {item.feed_status}"
            )
            return

        if record.remote_id is None:
            # Never made it onto the channel: create again
            if record.sync_status in (SyncStatus.PUBLISH_FAILED, SyncStatus.NEW, SyncStatus.WAITING_PUBLISH):
                changes.to_insert[item.sku] = item
            return

        new_attributes = dict(item.attributes)
        if record.sync_status is SyncStatus.PUBLISH_FAILED or not self.policy.attributes_equal(
            record.attributes, new_attributes
        ):
            change = AttributeChange(old=dict(record.attributes), new=new_attributes, remote_id=record.remote_id)
            logger.debug(f"{item.sku} changed: {', '.join(change.changed_fields) or 'retry after failure'}")
            changes.to_update[item.sku] = change

    def _diff_deactivated(
        self,
        item: CanonicalItem,
        record: MirrorRecord,
        remote_list: Optional[List[RemoteListingRef]],
        remote_by_id: Mapping[str, RemoteListingRef],
        changes: ChangeSet,
    ) -> None:
        if self.policy.is_terminal(item.feed_status):
            return

        ref = remote_by_id.get(record.remote_id) if record.remote_id else None
        if ref is not None:
            if self.policy.is_remote_accepting(ref):
                changes.to_reactivate[item.sku] = ReactivationTarget(
                    remote_id=record.remote_id, attributes=dict(item.attributes)
                )
            else:
                logger.info(
                    f"{item.sku} is back on the feed but remote status is "
                    f"{ref.remote_status!r}; waiting for approval"
                )
            return

        # Remote has no memory of it (or can't tell us): treat as a brand-new listing
        changes.to_insert[item.sku] = item

    def _diff_orphans(
        self,
        remote_list: List[RemoteListingRef],
        mirror_records: Mapping[str, MirrorRecord],
        changes: ChangeSet,
    ) -> None:
        known_remote_ids = {r.remote_id for r in mirror_records.values() if r.remote_id}
        for ref in remote_list:
            if not self.policy.is_remote_active(ref):
                continue
            if ref.remote_id in known_remote_ids:
                continue
            if ref.sku and ref.sku in mirror_records:
                logger.warning(
                    f"Remote listing {ref.remote_id} claims SKU {ref.sku} which the mirror "
                    f"tracks as {mirror_records[ref.sku].remote_id}; leaving it alone"
                )
                continue

            key = orphan_key(ref)
            if key in changes.to_deactivate:
                key = f"{ORPHAN_KEY_PREFIX}{ref.remote_id}"
            # An orphan whose SKU is also new on the feed is ended first, never created on top of
            changes.to_insert.pop(key, None)
            changes.to_deactivate[key] = DeactivationTarget(
                remote_id=ref.remote_id, reason="active on channel but not tracked", orphan=True
            )


def diff(
    feed_items: Sequence[CanonicalItem],
    mirror_records: Mapping[str, MirrorRecord],
    remote_refs: Optional[Iterable[RemoteListingRef]] = None,
    policy: Optional[ChannelStatusPolicy] = None,
) -> ChangeSet:
    return Differencer(policy).diff(feed_items, mirror_records, remote_refs)
