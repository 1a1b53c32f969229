from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from chefdeck.models.shared.enums import SheetStatus


class DocumentModel(BaseModel):
    """Wire document: camelCase aliases, unknown keys dropped, unset values omitted."""
    class Config:
        populate_by_name = True
        extra = "ignore"

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class LockHolder(DocumentModel):
    id: int
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"#{self.id}"


class InventoryItem(DocumentModel):
    id: str = Field(..., min_length=1)
    name: str
    unit: str
    code: Optional[str] = None
    # None means "not counted yet", 0 is a real count
    actual: Optional[float] = Field(default=None, ge=0)
    comment: Optional[str] = None

    @property
    def product_key(self) -> tuple:
        return (self.name, self.unit)

    @property
    def is_counted(self) -> bool:
        return self.actual is not None


class InventorySheet(DocumentModel):
    id: str = Field(..., min_length=1)
    title: str
    items: List[InventoryItem] = Field(default_factory=list)
    status: SheetStatus = SheetStatus.ACTIVE
    locked_by: Optional[LockHolder] = Field(default=None, alias="lockedBy")
    updated_by: Optional[str] = Field(default=None, alias="updatedBy")
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")

    def find_item(self, item_id: str) -> Optional[InventoryItem]:
        return next((item for item in self.items if item.id == item_id), None)

    @property
    def counted_items(self) -> int:
        return sum(1 for item in self.items if item.is_counted)

    @property
    def progress_percent(self) -> int:
        if not self.items:
            return 0
        return round(self.counted_items / len(self.items) * 100)


class InventoryCycle(DocumentModel):
    id: str = Field(..., min_length=1)
    date: int  # Epoch milliseconds
    sheets: List[InventorySheet] = Field(default_factory=list)
    is_finalized: bool = Field(default=False, alias="isFinalized")
    created_by: Optional[str] = Field(default=None, alias="createdBy")

    def find_sheet(self, sheet_id: str) -> Optional[InventorySheet]:
        return next((sheet for sheet in self.sheets if sheet.id == sheet_id), None)

    @property
    def all_submitted(self) -> bool:
        return bool(self.sheets) and all(s.status == SheetStatus.SUBMITTED for s in self.sheets)


# === Lock manager ===

class LockRequest(DocumentModel):
    cycle_id: str = Field(..., alias="cycleId")
    sheet_id: str = Field(..., alias="sheetId")
    user: LockHolder


class UnlockRequest(DocumentModel):
    cycle_id: str = Field(..., alias="cycleId")
    sheet_id: str = Field(..., alias="sheetId")


class LockResponse(DocumentModel):
    success: bool
    locked_by: Optional[LockHolder] = Field(default=None, alias="lockedBy")


class OperationResult(DocumentModel):
    success: bool = True
    count: Optional[int] = None
    deleted: Optional[int] = None
