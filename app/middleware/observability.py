from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_QUIET_PATHS = {"/", "/health"}


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id por request y una línea de log al terminar."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        set_request_context(request_id=request_id, tenant_id=_tenant_from_request(request))

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # path_params solo existe después del ruteo
            tenant_id = _tenant_from_request(request)
            set_request_context(tenant_id=tenant_id)
            if request.url.path not in _QUIET_PATHS or status_code >= 400:
                logger.log(
                    logging.WARNING if status_code >= 500 else logging.INFO,
                    "request completed",
                    extra={
                        "tenant_id": tenant_id,
                        "endpoint": request.url.path,
                        "method": request.method,
                        "status_code": status_code,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    },
                )
            clear_request_context()


def _tenant_from_request(request: Request) -> str | None:
    tenant = request.path_params.get("tenant_id") or request.query_params.get("tenant_id")
    if tenant:
        return str(tenant)
    return request.headers.get("X-Tenant-ID")
