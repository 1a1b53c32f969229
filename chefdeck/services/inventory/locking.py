from dataclasses import dataclass
from typing import Optional
from chefdeck.schemas.inventory.inventory_cycle import InventorySheet, LockHolder


@dataclass(frozen=True)
class LockResult:
    granted: bool
    holder: Optional[LockHolder] = None


def evaluate_lock(sheet: InventorySheet, user: LockHolder) -> LockResult:
    """
    Decide a lock request against the sheet's current holder.

    Granted when the sheet is free or already held by the same user id
    (re-acquire is idempotent). Otherwise the current holder is returned.
    """
    holder = sheet.locked_by
    if holder is None or holder.id == user.id:
        return LockResult(granted=True, holder=user)
    return LockResult(granted=False, holder=holder)
