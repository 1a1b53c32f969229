from typing import Optional
from chefdeck.schemas.inventory.inventory_cycle import LockHolder


class InventoryError(Exception):
    """Base class for inventory client errors."""
    pass


class InventoryAPIError(InventoryError):
    """Transport failure, error status or malformed document from the inventory service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InventoryValidationError(InventoryError):
    """Caller input or state precondition rejected before anything was sent."""
    pass


class InventoryNotFoundError(InventoryError):
    pass


class SheetLockedError(InventoryError):
    """The sheet is being counted by someone else."""

    def __init__(self, holder: Optional[LockHolder]):
        name = holder.display_name if holder else "another user"
        super().__init__(f"Sheet is in use by {name}")
        self.holder = holder


class FinalizeError(InventoryError):
    """Finalize aborted; the message says which half (archive or reset) failed."""
    pass
