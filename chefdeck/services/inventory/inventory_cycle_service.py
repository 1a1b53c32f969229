import logging
from typing import List, Optional
from sqlalchemy import and_, delete, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from chefdeck.core.exceptions import ConflictError, NotFoundError
from chefdeck.models.inventory.inventory_cycle import InventoryCycle as InventoryCycleRow
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle
from chefdeck.services.concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def row_to_cycle(row: InventoryCycleRow) -> InventoryCycle:
    return InventoryCycle.model_validate({
        "id": row.cycle_id,
        "date": row.date,
        "sheets": row.sheets or [],
        "isFinalized": row.is_finalized,
        "createdBy": row.created_by,
    })


class InventoryCycleService:
    """Whole-document storage of inventory cycles for one tenant"""

    def __init__(self, db: AsyncSession, bot_id: str):
        self.db = db
        self.bot_id = bot_id

    async def get_cycles(self) -> List[InventoryCycle]:
        result = await self.db.execute(
            select(InventoryCycleRow)
            .where(InventoryCycleRow.bot_id == self.bot_id)
            .order_by(desc(InventoryCycleRow.date))
        )
        return [row_to_cycle(row) for row in result.scalars().all()]

    async def get_cycle_row(self, cycle_id: str, for_update: bool = False) -> Optional[InventoryCycleRow]:
        query = select(InventoryCycleRow).where(and_(
            InventoryCycleRow.bot_id == self.bot_id,
            InventoryCycleRow.cycle_id == cycle_id,
        ))
        if for_update:
            query = lock_for_update(query)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_cycle(self, cycle_id: str) -> InventoryCycle:
        row = await self.get_cycle_row(cycle_id)
        if not row:
            raise NotFoundError(f"Inventory cycle {cycle_id} not found")
        return row_to_cycle(row)

    async def upsert_cycle(self, cycle: InventoryCycle) -> InventoryCycle:
        """
        Replace the stored document with the same id, or insert it.

        Archived cycles are read-only and a tenant never has two working
        cycles at once.
        """
        document = cycle.to_document()

        async def _op():
            row = await self.get_cycle_row(cycle.id, for_update=True)
            if row is not None and row.is_finalized:
                raise ConflictError(f"Inventory cycle {cycle.id} is archived and cannot be changed")

            if not cycle.is_finalized:
                other = await self.db.execute(
                    select(InventoryCycleRow.cycle_id).where(and_(
                        InventoryCycleRow.bot_id == self.bot_id,
                        InventoryCycleRow.is_finalized == False,
                        InventoryCycleRow.cycle_id != cycle.id,
                    ))
                )
                active_id = other.scalars().first()
                if active_id:
                    raise ConflictError(f"Another inventory cycle ({active_id}) is already active")

            if row is None:
                row = InventoryCycleRow(bot_id=self.bot_id, cycle_id=cycle.id)
                self.db.add(row)

            row.date = document["date"]
            row.sheets = document.get("sheets", [])
            row.is_finalized = document.get("isFinalized", False)
            row.created_by = document.get("createdBy")
            await self.db.commit()
            return row

        try:
            row = await run_with_retry(self.db, _op)
        except ConflictError:
            await self.db.rollback()
            raise

        logger.info(
            f"📦 Cycle {cycle.id} saved for tenant {self.bot_id} "
            f"({len(cycle.sheets)} sheets, finalized={cycle.is_finalized})"
        )
        return row_to_cycle(row)

    async def clear_archive(self) -> int:
        """Delete every finalized cycle of the tenant; the working cycle stays"""
        result = await self.db.execute(
            delete(InventoryCycleRow).where(and_(
                InventoryCycleRow.bot_id == self.bot_id,
                InventoryCycleRow.is_finalized == True,
            ))
        )
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info(f"🗑️ Cleared {deleted} archived cycles for tenant {self.bot_id}")
        return deleted
