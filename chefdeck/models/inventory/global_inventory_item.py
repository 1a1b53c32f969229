from sqlalchemy import Column, String, UniqueConstraint
from chefdeck.db.base import BaseModel

class GlobalInventoryItem(BaseModel):
    __tablename__ = 'global_inventory_items'
    __table_args__ = (
        UniqueConstraint('bot_id', 'code', name='uq_global_inventory_items_bot_code'),
    )

    bot_id = Column(String(100), nullable=False, index=True)
    code = Column(String(100), nullable=False)
    name = Column(String(500), nullable=False)
    unit = Column(String(50), nullable=False)
