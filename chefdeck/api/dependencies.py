from fastapi import Request
from chefdeck.core.request_context import resolve_tenant_id
import logging

logger = logging.getLogger(__name__)

async def get_tenant_id(request: Request) -> str:
    """Tenant scope of the request (bot id); every inventory query is filtered by it"""
    tenant_id = resolve_tenant_id(request)
    request.state.tenant_id = tenant_id
    return tenant_id
