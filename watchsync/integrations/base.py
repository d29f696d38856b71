from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional

from watchsync.core.enums import RetentionPolicy
from watchsync.services.reconciliation.types import CanonicalItem, RemoteListingRef

AttributeNormalizer = Callable[[Mapping[str, Any]], Dict[str, Any]]


def _lowered(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.strip().lower() for v in values)


class ChannelStatusPolicy:
    """
    Channel-specific status rules the differencer consults.

    Feed statuses and remote statuses are compared case-insensitively.
    Attribute comparison is exact unless a normalizer is supplied.
    """

    def __init__(
        self,
        terminal_feed_statuses: Iterable[str] = ("sold", "on memo"),
        remote_active_statuses: Iterable[str] = ("active",),
        remote_accepting_statuses: Iterable[str] = ("approved",),
        normalizer: Optional[AttributeNormalizer] = None,
    ):
        self.terminal_feed_statuses = _lowered(terminal_feed_statuses)
        self.remote_active_statuses = _lowered(remote_active_statuses)
        self.remote_accepting_statuses = _lowered(remote_accepting_statuses)
        self._normalizer = normalizer

    def is_terminal(self, feed_status: Optional[str]) -> bool:
        return (feed_status or "").strip().lower() in self.terminal_feed_statuses

    def is_remote_active(self, ref: RemoteListingRef) -> bool:
        return (ref.remote_status or "").strip().lower() in self.remote_active_statuses

    def is_remote_accepting(self, ref: RemoteListingRef) -> bool:
        return (ref.remote_status or "").strip().lower() in self.remote_accepting_statuses

    def normalize(self, attributes: Mapping[str, Any]) -> Dict[str, Any]:
        if self._normalizer is None:
            return dict(attributes)
        return self._normalizer(attributes)

    def attributes_equal(self, left: Mapping[str, Any], right: Mapping[str, Any]) -> bool:
        return self.normalize(left) == self.normalize(right)


class ChannelAdapter(ABC):
    """
    The capability set the reconciliation engine needs from a sales channel.

    Implementations raise TransientChannelError for failures worth retrying,
    PermanentChannelError for rejections, and AlreadyConvergedError when the
    channel is already in the requested state.
    """

    channel_id: str = ""
    supports_listing: bool = False
    retention: RetentionPolicy = RetentionPolicy.DELETE

    def __init__(self, status_policy: Optional[ChannelStatusPolicy] = None):
        self.status_policy = status_policy or ChannelStatusPolicy()

    @abstractmethod
    async def create(self, item: CanonicalItem) -> str:
        """Create the listing, returning the channel's identifier for it"""
        pass

    @abstractmethod
    async def update(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        """Push changed attributes to an existing listing"""
        pass

    @abstractmethod
    async def deactivate(self, remote_id: str) -> None:
        """End / delist the listing"""
        pass

    @abstractmethod
    async def reactivate(self, remote_id: str, attributes: Mapping[str, Any]) -> None:
        """Bring an ended listing back with current price/quantity"""
        pass

    async def list_remote(self) -> Optional[List[RemoteListingRef]]:
        """Enumerate live listings. None means the channel can't enumerate."""
        return None

    async def aclose(self) -> None:
        pass


class FeedProvider(ABC):
    """Source of the canonical snapshot for a cycle."""

    async def is_ready(self) -> bool:
        return True

    @abstractmethod
    async def fetch_snapshot(self) -> List[CanonicalItem]:
        """Return the feed in feed order. Raises FeedUnavailableError."""
        pass
