import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from chefdeck.api.dependencies import get_tenant_id
from chefdeck.core.database import get_async_session
from chefdeck.core.exceptions import BaseAppException
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem, GlobalItemsUpsert
from chefdeck.schemas.inventory.inventory_cycle import (
    InventoryCycle,
    LockRequest,
    LockResponse,
    OperationResult,
    UnlockRequest,
)
from chefdeck.services.inventory.global_item_service import GlobalItemService
from chefdeck.services.inventory.inventory_cycle_service import InventoryCycleService
from chefdeck.services.inventory.sheet_lock_service import SheetLockService
from chefdeck.utils.inventory_exporter import XLSX_MEDIA_TYPE, InventoryWorkbookExporter

router = APIRouter()
logger = logging.getLogger(__name__)


def _server_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"❌ Failed to {action}: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")


@router.get("", response_model=List[InventoryCycle], response_model_by_alias=True, response_model_exclude_none=True)
async def get_inventory_cycles(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """All cycles of the tenant, working cycle and archive together"""
    service = InventoryCycleService(db, tenant_id)
    return await service.get_cycles()


@router.post("/cycle", response_model=OperationResult, response_model_exclude_none=True)
async def upsert_inventory_cycle(
    cycle: InventoryCycle,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Replace (or create) a whole cycle document"""
    try:
        service = InventoryCycleService(db, tenant_id)
        await service.upsert_cycle(cycle)
        return OperationResult(success=True)
    except BaseAppException:
        raise
    except Exception as e:
        raise _server_error("save inventory cycle", e)


@router.post("/lock", response_model=LockResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def lock_sheet(
    lock_request: LockRequest,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Take the sheet for counting; refused with the current holder when busy"""
    try:
        service = SheetLockService(db, tenant_id)
        result = await service.acquire(lock_request.cycle_id, lock_request.sheet_id, lock_request.user)
        return LockResponse(success=result.granted, locked_by=result.holder)
    except BaseAppException:
        raise
    except Exception as e:
        raise _server_error("lock sheet", e)


@router.post("/unlock", response_model=OperationResult, response_model_exclude_none=True)
async def unlock_sheet(
    unlock_request: UnlockRequest,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Release the sheet lock regardless of the holder"""
    try:
        service = SheetLockService(db, tenant_id)
        await service.release(unlock_request.cycle_id, unlock_request.sheet_id)
        return OperationResult(success=True)
    except BaseAppException:
        raise
    except Exception as e:
        raise _server_error("unlock sheet", e)


@router.get("/global-items", response_model=List[GlobalInventoryItem])
async def get_global_items(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Product catalog of the tenant"""
    service = GlobalItemService(db, tenant_id)
    return await service.get_items()


@router.post("/global-items/upsert", response_model=OperationResult, response_model_exclude_none=True)
async def upsert_global_items(
    payload: GlobalItemsUpsert,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Bulk import of catalog rows"""
    try:
        service = GlobalItemService(db, tenant_id)
        count = await service.upsert_items(payload.items)
        return OperationResult(success=True, count=count)
    except BaseAppException:
        raise
    except Exception as e:
        raise _server_error("import catalog", e)


@router.delete("/archive/all", response_model=OperationResult, response_model_exclude_none=True)
async def clear_inventory_archive(
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Delete every finalized cycle of the tenant"""
    try:
        service = InventoryCycleService(db, tenant_id)
        deleted = await service.clear_archive()
        return OperationResult(success=True, deleted=deleted)
    except Exception as e:
        raise _server_error("clear inventory archive", e)


@router.get("/cycle/{cycle_id}/export")
async def export_inventory_cycle(
    cycle_id: str,
    db: AsyncSession = Depends(get_async_session),
    tenant_id: str = Depends(get_tenant_id)
):
    """Spreadsheet with the summary sheet and one sheet per station"""
    cycle = await InventoryCycleService(db, tenant_id).get_cycle(cycle_id)
    catalog = [] if cycle.is_finalized else await GlobalItemService(db, tenant_id).get_items()

    exporter = InventoryWorkbookExporter()
    try:
        content = exporter.build_workbook(cycle, catalog)
    except Exception as e:
        raise _server_error("export inventory cycle", e)

    filename = exporter.export_filename(cycle)
    return StreamingResponse(
        content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
