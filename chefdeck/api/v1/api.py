from fastapi import APIRouter
from chefdeck.api.v1.endpoints.inventory import inventory_cycles

api_router = APIRouter()

# Inventory routes
api_router.include_router(inventory_cycles.router, prefix="/inventory", tags=["Inventory"])
