# watchsync/models/mirror_record.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, UniqueConstraint
from sqlalchemy.sql import func

from watchsync.database import Base
from watchsync.core.enums import SyncStatus


class MirrorListing(Base):
    """
    Last-synced state of one SKU on one channel.

    Each channel owns its own partition (the `channel` column); the
    reconciliation engine is the only writer.
    """
    __tablename__ = "mirror_records"
    __table_args__ = (
        UniqueConstraint("channel", "sku", name="uq_mirror_records_channel_sku"),
    )

    id = Column(Integer, primary_key=True, index=True)
    channel = Column(String, nullable=False, index=True)
    sku = Column(String, nullable=False, index=True)

    # Cached copy of the feed attributes as last pushed to the channel
    attributes = Column(JSON, nullable=False, default=dict)

    sync_status = Column(String, nullable=False, default=SyncStatus.NEW.value, index=True)
    remote_id = Column(String, nullable=True, index=True)
    last_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (f"<MirrorListing(channel='{self.channel}', sku='{self.sku}', "
                f"status='{self.sync_status}', remote_id={self.remote_id})>")
