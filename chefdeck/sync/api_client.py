import logging
from typing import Any, List, Optional
import httpx
from pydantic import TypeAdapter, ValidationError
from chefdeck.core.config import settings
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem, GlobalItemsUpsert
from chefdeck.schemas.inventory.inventory_cycle import (
    InventoryCycle, LockHolder, LockRequest, LockResponse, UnlockRequest, OperationResult
)
from chefdeck.services.inventory.locking import LockResult
from chefdeck.sync.exceptions import InventoryAPIError

logger = logging.getLogger(__name__)

_cycles_adapter = TypeAdapter(List[InventoryCycle])
_items_adapter = TypeAdapter(List[GlobalInventoryItem])


class InventoryAPIClient:
    """Async HTTP client for the inventory service, scoped to one tenant"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        bot_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_id = bot_id or settings.DEFAULT_TENANT
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            headers={settings.TENANT_HEADER: self.bot_id},
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ {method} {path} failed: {str(e)}")
            raise InventoryAPIError(f"{method} {path} failed: {str(e)}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail", response.text) if isinstance(body, dict) else response.text
            logger.warning(f"⚠️ {method} {path} -> {response.status_code}: {detail}")
            raise InventoryAPIError(f"{method} {path} -> {response.status_code}: {detail}", status_code=response.status_code)
        return response

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        response = await self._send(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise InventoryAPIError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from e

    @staticmethod
    def _validate(adapter_or_model, payload: Any, what: str):
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(payload)
            return adapter_or_model.model_validate(payload)
        except ValidationError as e:
            raise InventoryAPIError(f"Malformed {what}: {str(e)}") from e

    # === Cycle store ===

    async def list_cycles(self) -> List[InventoryCycle]:
        payload = await self._json("GET", "/inventory")
        return self._validate(_cycles_adapter, payload, "cycle list")

    async def upsert_cycle(self, cycle: InventoryCycle) -> None:
        await self._json("POST", "/inventory/cycle", json=cycle.to_document())

    async def clear_archive(self) -> int:
        payload = await self._json("DELETE", "/inventory/archive/all")
        return self._validate(OperationResult, payload, "clear-archive result").deleted or 0

    # === Lock manager ===

    async def lock(self, cycle_id: str, sheet_id: str, user: LockHolder) -> LockResult:
        body = LockRequest(cycle_id=cycle_id, sheet_id=sheet_id, user=user)
        payload = await self._json("POST", "/inventory/lock", json=body.to_document())
        result = self._validate(LockResponse, payload, "lock response")
        return LockResult(granted=result.success, holder=result.locked_by)

    async def unlock(self, cycle_id: str, sheet_id: str) -> None:
        body = UnlockRequest(cycle_id=cycle_id, sheet_id=sheet_id)
        await self._json("POST", "/inventory/unlock", json=body.to_document())

    # === Catalog ===

    async def list_global_items(self) -> List[GlobalInventoryItem]:
        payload = await self._json("GET", "/inventory/global-items")
        return self._validate(_items_adapter, payload, "catalog")

    async def upsert_global_items(self, items: List[GlobalInventoryItem]) -> int:
        body = GlobalItemsUpsert(items=items)
        payload = await self._json("POST", "/inventory/global-items/upsert", json=body.to_document())
        return self._validate(OperationResult, payload, "catalog upsert result").count or 0
