"""
Response schemas for the sync API.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from watchsync.services.reconciliation.types import CycleSummary


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )


class FailedActionOut(BaseSchema):
    sku: str
    kind: str
    error: str


class CycleSummaryOut(BaseSchema):
    run_id: str
    channel: str
    outcome: str
    single_sku: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    counts: Dict[str, int]
    inserted: List[str] = []
    updated: List[str] = []
    deactivated: List[str] = []
    reactivated: List[str] = []
    purged: List[str] = []
    failed: List[FailedActionOut] = []
    abort_reason: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: CycleSummary) -> "CycleSummaryOut":
        return cls(
            run_id=summary.run_id,
            channel=summary.channel,
            outcome=summary.outcome.value,
            single_sku=summary.single_sku,
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            counts=summary.counts(),
            inserted=list(summary.inserted),
            updated=list(summary.updated),
            deactivated=list(summary.deactivated),
            reactivated=list(summary.reactivated),
            purged=list(summary.purged),
            failed=[FailedActionOut(sku=f.sku, kind=f.kind.value, error=f.error) for f in summary.failed],
            abort_reason=summary.abort_reason,
        )


class ChannelOut(BaseSchema):
    channel: str
    retention: str
    supports_listing: bool
    running: bool
