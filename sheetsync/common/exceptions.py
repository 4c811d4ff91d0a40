"""
Custom Exception Classes for SheetSync

Hierarchical exception structure for error handling across components.
"""


class SheetSyncError(Exception):
    """Base exception for all SheetSync errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(SheetSyncError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class TransportError(SheetSyncError):
    """Remote document fetch failed (unreachable or non-success status)"""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        status: int | str | None = None,
    ):
        self.document_id = document_id
        self.status = status
        super().__init__(f"Transport Error: {message}", recoverable=True)


class StoreError(SheetSyncError):
    """Shared store unreachable or transaction failed"""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(f"Store Error: {message}", recoverable=True)


class BroadcastError(SheetSyncError):
    """Broadcast publish or subscribe failed"""

    def __init__(self, message: str, topic: str | None = None):
        self.topic = topic
        super().__init__(f"Broadcast Error: {message}", recoverable=True)
