"""ORM models exposed by the sync engine."""
from .cache_entry import CacheEntry
from .queued_op import QueuedOp

__all__ = ["CacheEntry", "QueuedOp"]
