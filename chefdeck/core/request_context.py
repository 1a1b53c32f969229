from typing import Optional, Dict
from fastapi import Request
from chefdeck.core.config import settings

HDR_REQUEST_ID = "X-Request-Id"

def resolve_tenant_id(request: Request) -> str:
    """Tenant (bot) id from the tenant header, then the query string, then the default."""
    tenant_id = request.headers.get(settings.TENANT_HEADER) or request.query_params.get(settings.TENANT_QUERY_PARAM)
    tenant_id = (tenant_id or "").strip()
    return tenant_id or settings.DEFAULT_TENANT

def get_request_context(request: Request) -> Dict[str, Optional[str]]:
    """
    Extracts endpoint, client IP, tenant and request_id from the FastAPI Request.
    """
    ip_address = request.client.host if request.client else None
    endpoint = f"{request.method} {request.url.path}"
    return {
        "ip_address": ip_address,
        "endpoint": endpoint,
        "tenant_id": resolve_tenant_id(request),
        "request_id": request.headers.get(HDR_REQUEST_ID),
    }
