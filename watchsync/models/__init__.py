from .mirror_record import MirrorListing
from .sync_cycle import SyncCycle

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'MirrorListing',
    'SyncCycle',
]
