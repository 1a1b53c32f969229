from chefdeck.sync.api_client import InventoryAPIClient
from chefdeck.sync.archive_reader import ArchiveMonth, ArchiveReader
from chefdeck.sync.engine import InventoryEngine
from chefdeck.sync.exceptions import (
    FinalizeError,
    InventoryAPIError,
    InventoryError,
    InventoryNotFoundError,
    InventoryValidationError,
    SheetLockedError,
)

__all__ = [
    "InventoryAPIClient",
    "ArchiveMonth",
    "ArchiveReader",
    "InventoryEngine",
    "FinalizeError",
    "InventoryAPIError",
    "InventoryError",
    "InventoryNotFoundError",
    "InventoryValidationError",
    "SheetLockedError",
]
