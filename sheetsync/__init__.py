"""
SheetSync - live typed values from a shared spreadsheet

Keeps named, typed values in sync across many server processes. One
process per refresh interval fetches the sheet; the others read it from
the shared store or receive it over the broadcast channel.
"""

from .services.sheets import (
    SheetManager,
    open_sheet,
    RefreshResult,
    RefreshStatus,
    UpdateSource,
)

__version__ = "1.0.0"

__all__ = [
    "SheetManager",
    "open_sheet",
    "RefreshResult",
    "RefreshStatus",
    "UpdateSource",
    "__version__",
]
