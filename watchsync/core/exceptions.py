from typing import Iterable, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ConfigurationError(BaseServiceError):
    """Raised when settings needed to build a component are missing or invalid."""
    pass

class SyncError(BaseServiceError):
    """Base exception for reconciliation errors."""
    pass

class CycleAbortedError(SyncError):
    """Raised when a whole cycle must stop before any mutation."""
    pass

class FeedUnavailableError(CycleAbortedError):
    """Raised when the feed can't be read or reports it isn't ready."""
    pass

class DuplicateSkuInFeedError(CycleAbortedError):
    """Raised when one feed snapshot carries the same SKU more than once."""

    def __init__(self, skus: Iterable[str]):
        self.skus: List[str] = sorted(set(skus))
        super().__init__(f"Feed has duplicate SKUs: {', '.join(self.skus)}")

class SafetyThresholdExceededError(CycleAbortedError):
    """Raised when the destructive action count or remote divergence looks anomalous."""

    def __init__(self, reason: str, skus: Optional[Iterable[str]] = None):
        self.reason = reason
        self.skus: List[str] = sorted(skus or [])
        super().__init__(reason)

class RemoteStateUnavailableError(CycleAbortedError):
    """Raised when listing enumeration fails for a channel that supports it."""
    pass

class InvalidTransitionError(SyncError):
    """Raised when a mirror record is moved along an edge the state machine doesn't allow."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform service errors."""
    pass

class ChannelNotFoundError(PlatformServiceError):
    """Raised when a channel id isn't registered."""
    pass

class ChannelError(PlatformServiceError):
    """Base exception for errors reported by a remote channel."""
    pass

class TransientChannelError(ChannelError):
    """Rate limits, timeouts, dropped sessions. Retried per policy."""
    pass

class PermanentChannelError(ChannelError):
    """Validation errors and rejections. Never retried."""
    pass

class AlreadyConvergedError(ChannelError):
    """The channel is already in the requested state (e.g. listing already ended)."""
    pass
