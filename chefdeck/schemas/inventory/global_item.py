from pydantic import Field
from typing import List
from chefdeck.schemas.inventory.inventory_cycle import DocumentModel


class GlobalInventoryItem(DocumentModel):
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    unit: str

    class Config:
        from_attributes = True
        populate_by_name = True
        extra = "ignore"

    @property
    def product_key(self) -> tuple:
        return (self.name, self.unit)


class GlobalItemsUpsert(DocumentModel):
    items: List[GlobalInventoryItem] = Field(default_factory=list)
