from sqlalchemy import Column, String, Boolean, BigInteger, JSON, UniqueConstraint
from chefdeck.db.base import BaseModel

class InventoryCycle(BaseModel):
    __tablename__ = 'inventory_cycles'
    __table_args__ = (
        UniqueConstraint('bot_id', 'cycle_id', name='uq_inventory_cycles_bot_cycle'),
    )

    bot_id = Column(String(100), nullable=False, index=True)  # Tenant
    cycle_id = Column(String(64), nullable=False)  # Client-generated uuid
    date = Column(BigInteger, nullable=False)  # Epoch milliseconds
    sheets = Column(JSON, nullable=False, default=list)  # Whole sheet documents
    is_finalized = Column(Boolean, default=False, nullable=False, index=True)
    created_by = Column(String(255))
