"""
Sheet Service - live sheet values

Responsibilities:
- Parse exported sheet documents into typed values
- Refresh values through local, shared store and remote tiers
- Apply peer broadcasts
- Notify observers of value changes
"""

from .manager import SheetManager, open_sheet
from .sync import RefreshResult, RefreshStatus, SheetSync, sheet_key
from .values import UpdateSource, ValueStore

__all__ = [
    "SheetManager",
    "open_sheet",
    "RefreshResult",
    "RefreshStatus",
    "SheetSync",
    "sheet_key",
    "UpdateSource",
    "ValueStore",
]
