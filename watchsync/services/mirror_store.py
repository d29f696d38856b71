# watchsync/services/mirror_store.py
"""
Persistence of mirror records and cycle history.

Every write is its own transaction so a record is updated atomically per
SKU, and a failure on one SKU never rolls back a sibling.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from watchsync.core.enums import SyncStatus
from watchsync.models.mirror_record import MirrorListing
from watchsync.models.sync_cycle import SyncCycle
from watchsync.services.reconciliation.types import CycleSummary, MirrorRecord

logger = logging.getLogger(__name__)


class MirrorStore(ABC):

    @abstractmethod
    async def load(self, channel: str) -> Dict[str, MirrorRecord]:
        """All records for a channel keyed by SKU"""
        pass

    @abstractmethod
    async def upsert(self, record: MirrorRecord) -> None:
        pass

    @abstractmethod
    async def delete(self, channel: str, sku: str) -> None:
        pass

    async def record_cycle(self, summary: CycleSummary) -> None:
        pass


def summary_details(summary: CycleSummary) -> dict:
    return {
        "inserted": list(summary.inserted),
        "updated": list(summary.updated),
        "deactivated": list(summary.deactivated),
        "reactivated": list(summary.reactivated),
        "purged": list(summary.purged),
        "failed": [
            {"sku": f.sku, "kind": f.kind.value, "error": f.error} for f in summary.failed
        ],
    }


class SqlMirrorStore(MirrorStore):
    """Mirror store backed by the `mirror_records` / `sync_cycles` tables."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def load(self, channel: str) -> Dict[str, MirrorRecord]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(MirrorListing).where(MirrorListing.channel == channel)
            )
            return {row.sku: self._to_record(row) for row in result.scalars().all()}

    async def upsert(self, record: MirrorRecord) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    select(MirrorListing).where(
                        MirrorListing.channel == record.channel,
                        MirrorListing.sku == record.sku,
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = MirrorListing(channel=record.channel, sku=record.sku)
                    session.add(row)
                row.attributes = dict(record.attributes)
                row.sync_status = record.sync_status.value
                row.remote_id = record.remote_id
                row.last_error = record.last_error
                row.last_synced_at = record.last_synced_at
        logger.debug(f"Upserted mirror record {record.channel}/{record.sku} ({record.sync_status.value})")

    async def delete(self, channel: str, sku: str) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                await session.execute(
                    delete(MirrorListing).where(
                        MirrorListing.channel == channel,
                        MirrorListing.sku == sku,
                    )
                )
        logger.debug(f"Deleted mirror record {channel}/{sku}")

    async def record_cycle(self, summary: CycleSummary) -> None:
        async with self._session_maker() as session:
            async with session.begin():
                session.add(SyncCycle(
                    run_id=summary.run_id,
                    channel=summary.channel,
                    outcome=summary.outcome.value,
                    single_sku=summary.single_sku,
                    details=summary_details(summary),
                    abort_reason=summary.abort_reason,
                    started_at=summary.started_at,
                    finished_at=summary.finished_at,
                ))

    @staticmethod
    def _to_record(row: MirrorListing) -> MirrorRecord:
        return MirrorRecord(
            channel=row.channel,
            sku=row.sku,
            attributes=dict(row.attributes or {}),
            sync_status=SyncStatus(row.sync_status),
            remote_id=row.remote_id,
            last_error=row.last_error,
            last_synced_at=row.last_synced_at,
        )


class InMemoryMirrorStore(MirrorStore):
    """Dictionary-backed store for dry runs and tests."""

    def __init__(self, records: Optional[List[MirrorRecord]] = None):
        self._records: Dict[Tuple[str, str], MirrorRecord] = {}
        self.cycles: List[CycleSummary] = []
        self.writes = 0
        for record in records or []:
            self._records[(record.channel, record.sku)] = record.copy()

    async def load(self, channel: str) -> Dict[str, MirrorRecord]:
        return {
            sku: record.copy()
            for (record_channel, sku), record in self._records.items()
            if record_channel == channel
        }

    async def upsert(self, record: MirrorRecord) -> None:
        self._records[(record.channel, record.sku)] = record.copy()
        self.writes += 1

    async def delete(self, channel: str, sku: str) -> None:
        self._records.pop((channel, sku), None)
        self.writes += 1

    async def record_cycle(self, summary: CycleSummary) -> None:
        self.cycles.append(summary)

    def get(self, channel: str, sku: str) -> Optional[MirrorRecord]:
        record = self._records.get((channel, sku))
        return record.copy() if record else None

    def snapshot(self, channel: str) -> Dict[str, SyncStatus]:
        return {
            sku: record.sync_status
            for (record_channel, sku), record in self._records.items()
            if record_channel == channel
        }
