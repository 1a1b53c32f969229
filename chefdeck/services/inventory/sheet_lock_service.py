import logging
from typing import Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from chefdeck.core.exceptions import ConflictError, NotFoundError
from chefdeck.models.inventory.inventory_cycle import InventoryCycle as InventoryCycleRow
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle, InventorySheet, LockHolder
from chefdeck.services.inventory.inventory_cycle_service import InventoryCycleService, row_to_cycle
from chefdeck.services.inventory.locking import LockResult, evaluate_lock

logger = logging.getLogger(__name__)


class SheetLockService:
    """
    Advisory per-sheet write lock.

    The holder is stored inside the sheet document itself, so every change of
    lock state is a read-modify-write of the cycle row in one transaction.
    Locks never expire: a lock left behind by a closed client stays until
    someone calls release.
    """

    def __init__(self, db: AsyncSession, bot_id: str):
        self.db = db
        self.bot_id = bot_id
        self.cycle_service = InventoryCycleService(db, bot_id)

    async def _load(self, cycle_id: str, sheet_id: str) -> Tuple[InventoryCycleRow, InventoryCycle, InventorySheet]:
        row = await self.cycle_service.get_cycle_row(cycle_id, for_update=True)
        if not row:
            raise NotFoundError(f"Inventory cycle {cycle_id} not found")
        cycle = row_to_cycle(row)
        if cycle.is_finalized:
            raise ConflictError(f"Inventory cycle {cycle_id} is archived")
        sheet = cycle.find_sheet(sheet_id)
        if not sheet:
            raise NotFoundError(f"Sheet {sheet_id} not found in cycle {cycle_id}")
        return row, cycle, sheet

    async def _save(self, row: InventoryCycleRow, cycle: InventoryCycle):
        row.sheets = cycle.to_document().get("sheets", [])
        await self.db.commit()

    async def acquire(self, cycle_id: str, sheet_id: str, user: LockHolder) -> LockResult:
        try:
            row, cycle, sheet = await self._load(cycle_id, sheet_id)
            result = evaluate_lock(sheet, user)
            if not result.granted:
                await self.db.rollback()
                logger.info(
                    f"🔒 Sheet {sheet_id} lock refused for user {user.id}: held by {result.holder.id}"
                )
                return result

            if sheet.locked_by != user:
                sheet.locked_by = user
                await self._save(row, cycle)
            else:
                await self.db.rollback()
            logger.info(f"🔐 Sheet {sheet_id} of cycle {cycle_id} locked by user {user.id}")
            return result
        except Exception:
            await self.db.rollback()
            raise

    async def release(self, cycle_id: str, sheet_id: str) -> None:
        """Clear the lock whoever holds it (holder on submit, or admin override)"""
        try:
            row, cycle, sheet = await self._load(cycle_id, sheet_id)
            if sheet.locked_by is None:
                await self.db.rollback()
                return
            previous = sheet.locked_by
            sheet.locked_by = None
            await self._save(row, cycle)
            logger.info(f"🔓 Sheet {sheet_id} of cycle {cycle_id} released (was user {previous.id})")
        except Exception:
            await self.db.rollback()
            raise
