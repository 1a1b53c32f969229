import logging
from typing import Dict, List
from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from chefdeck.models.inventory.global_inventory_item import GlobalInventoryItem as GlobalInventoryItemRow
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.services.concurrency import run_with_retry

logger = logging.getLogger(__name__)


class GlobalItemService:
    """Tenant product catalog"""

    def __init__(self, db: AsyncSession, bot_id: str):
        self.db = db
        self.bot_id = bot_id

    async def get_items(self) -> List[GlobalInventoryItem]:
        result = await self.db.execute(
            select(GlobalInventoryItemRow)
            .where(GlobalInventoryItemRow.bot_id == self.bot_id)
            .order_by(GlobalInventoryItemRow.name, GlobalInventoryItemRow.code)
        )
        return [GlobalInventoryItem.model_validate(row) for row in result.scalars().all()]

    async def upsert_items(self, items: List[GlobalInventoryItem]) -> int:
        """Insert or update catalog rows by product code; the last duplicate wins"""
        by_code: Dict[str, GlobalInventoryItem] = {}
        for item in items:
            by_code[item.code.strip()] = item
        if not by_code:
            return 0

        async def _op():
            result = await self.db.execute(
                select(GlobalInventoryItemRow).where(and_(
                    GlobalInventoryItemRow.bot_id == self.bot_id,
                    GlobalInventoryItemRow.code.in_(list(by_code.keys())),
                ))
            )
            existing = {row.code: row for row in result.scalars().all()}
            for code, item in by_code.items():
                row = existing.get(code)
                if row is None:
                    self.db.add(GlobalInventoryItemRow(
                        bot_id=self.bot_id, code=code, name=item.name.strip(), unit=item.unit.strip()
                    ))
                else:
                    row.name = item.name.strip()
                    row.unit = item.unit.strip()
            await self.db.commit()

        await run_with_retry(self.db, _op)
        logger.info(f"📚 Catalog upsert for tenant {self.bot_id}: {len(by_code)} items")
        return len(by_code)
