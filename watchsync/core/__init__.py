"""
Core module exports.
"""
from .enums import (
    ActionKind,
    AlertSeverity,
    ChannelName,
    CycleOutcome,
    RetentionPolicy,
    SyncStatus,
)

from .exceptions import (
    BaseServiceError,
    ConfigurationError,
    SyncError,
    CycleAbortedError,
    FeedUnavailableError,
    DuplicateSkuInFeedError,
    SafetyThresholdExceededError,
    RemoteStateUnavailableError,
    InvalidTransitionError,
    PlatformServiceError,
    ChannelNotFoundError,
    ChannelError,
    TransientChannelError,
    PermanentChannelError,
    AlreadyConvergedError,
)
