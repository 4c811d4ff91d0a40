"""
Storage - shared key-value store adapters
"""

from .shared_store import (
    StoreRecord,
    SharedStore,
    MemorySharedStore,
    FileSharedStore,
)

__all__ = ["StoreRecord", "SharedStore", "MemorySharedStore", "FileSharedStore"]
