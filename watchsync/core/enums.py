"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ChannelName(str, Enum):
    EBAY = "EBAY"
    CATALOG = "CATALOG"
    WHATSAPP = "WHATSAPP"


class SyncStatus(str, Enum):
    """Lifecycle of one SKU's mirror record on one channel."""
    NEW = "new"                                        # Seen on the feed, nothing sent yet
    WAITING_PUBLISH = "waiting_publish"                # Create (or re-push) in flight
    PUBLISHED = "published"                            # Remote matches the cached attributes
    CHANGED_WAITING_UPDATE = "changed_waiting_update"  # Update in flight
    PUBLISH_FAILED = "publish_failed"                  # Last create/update failed, retried next cycle
    DEACTIVATED = "deactivated"                        # Listing ended on the channel

    @property
    def is_active(self) -> bool:
        return self is not SyncStatus.DEACTIVATED


class ActionKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"
    PURGE = "purge"


class RetentionPolicy(str, Enum):
    """What happens to a mirror record once its listing is ended."""
    DELETE = "delete"
    ARCHIVE = "archive"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FEED_DOWN = "feed_down"
    SKIPPED = "skipped"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
