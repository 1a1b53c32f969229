from typing import Optional
from uuid import uuid4
from chefdeck.models.shared.enums import SheetStatus
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle
from chefdeck.utils.date_time_serializer import current_millis


def build_archive_cycle(
    cycle: InventoryCycle,
    archive_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> InventoryCycle:
    """
    Clone the working cycle into a finalized archive record.

    Only items with a positive count survive, sheets left empty are dropped
    and the clone gets its own id.
    """
    sheets = []
    for sheet in cycle.sheets:
        items = [item.model_copy(deep=True) for item in sheet.items if item.actual is not None and item.actual > 0]
        if items:
            sheets.append(sheet.model_copy(update={"items": items, "locked_by": None}, deep=True))

    return cycle.model_copy(
        update={
            "id": archive_id or str(uuid4()),
            "date": now_ms if now_ms is not None else current_millis(),
            "is_finalized": True,
            "sheets": sheets,
        },
        deep=True,
    )


def reset_working_cycle(cycle: InventoryCycle) -> InventoryCycle:
    """Reopen every sheet for the next count: status active, no lock, no quantities."""
    sheets = []
    for sheet in cycle.sheets:
        items = [item.model_copy(update={"actual": None}, deep=True) for item in sheet.items]
        sheets.append(sheet.model_copy(
            update={"items": items, "status": SheetStatus.ACTIVE, "locked_by": None},
            deep=True,
        ))
    return cycle.model_copy(update={"sheets": sheets, "is_finalized": False}, deep=True)
