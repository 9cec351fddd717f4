"""Admin API key authentication for the operator endpoints.

Every state-changing endpoint (manual fetch, start/stop collection,
pending-update review, conflict resolution, overrides, seeding) depends
on :func:`require_admin_api_key`, which checks the ``X-Admin-API-Key``
header against ``ADMIN_API_KEY`` with a constant-time comparison.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

ADMIN_KEY_HEADER = "X-Admin-API-Key"

_api_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def require_admin_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """FastAPI dependency guarding the admin routes.

    Development deployments without a configured key are let through
    with a warning; production deployments without one refuse every
    admin call (503).  A missing header is 401, a wrong key 403.
    """
    configured_key = settings.admin_api_key

    if not configured_key:
        if not settings.is_production:
            logger.warning("auth.admin_key_not_configured", path=request.url.path)
            return ""
        logger.error("auth.admin_key_not_configured_production")
        raise HTTPException(status_code=503, detail="Admin authentication is not configured.")

    if not api_key:
        logger.warning("auth.missing_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(
            status_code=401,
            detail=f"Missing {ADMIN_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        logger.warning("auth.invalid_api_key", path=request.url.path, client_ip=_client_ip(request))
        raise HTTPException(status_code=403, detail="Invalid API key.")

    logger.info("auth.admin_request", path=request.url.path, method=request.method)
    return api_key
