# watchsync/models/sync_cycle.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text

from watchsync.database import Base


class SyncCycle(Base):
    """
    One reconciliation cycle for one channel.
    Permanent audit log of what each run decided and did.
    """
    __tablename__ = "sync_cycles"

    id = Column(Integer, primary_key=True, index=True)
    run_id = Column(String, nullable=False, unique=True, index=True)
    channel = Column(String, nullable=False, index=True)

    outcome = Column(String, nullable=False, index=True)  # completed, aborted, feed_down, skipped
    single_sku = Column(String, nullable=True)

    # {"inserted": [...], "updated": [...], ..., "failed": [{"sku", "kind", "error"}]}
    details = Column(JSON, nullable=False, default=dict)
    abort_reason = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (f"<SyncCycle(run_id={self.run_id}, channel='{self.channel}', "
                f"outcome='{self.outcome}')>")
