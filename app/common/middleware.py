"""
Middleware for handling multi-tenancy
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts tenant_id from X-Company-ID header
    and sets it on request.state for use in endpoint handlers
    """

    # Paths that don't require tenant context
    EXEMPT_PREFIXES = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
        "/pricing",
    ]
    EXEMPT_EXACT = ["/"]

    def is_exempt(self, path: str) -> bool:
        if path in self.EXEMPT_EXACT:
            return True
        return any(path.startswith(prefix) for prefix in self.EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self.is_exempt(request.url.path):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get("X-Company-ID")

        if not tenant_header:
            return Response(
                content='{"detail":"Missing X-Company-ID header"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            return Response(
                content='{"detail":"Invalid X-Company-ID format. Must be a valid UUID"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        request.state.tenant_id = tenant_id
        logger.debug(f"Request to {request.url.path} with tenant_id: {tenant_id}")

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = str(tenant_id)

        return response
