"""Tenant authentication for search endpoints.

Tokens are issued by the task service; this service only verifies them and
extracts the tenant and user claims.
"""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tasksearch.config import get_settings
from tasksearch.search.orchestrator import TenantContext

logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


async def get_tenant_context(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-ID")] = None,
) -> TenantContext:
    """Get the caller's tenant context from the bearer token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    tenant_id = payload.get("tenant_id") or payload.get("tenantId")
    user_id = payload.get("sub") or payload.get("userId")
    if not tenant_id or not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    structlog.contextvars.bind_contextvars(tenant_id=str(tenant_id))

    return TenantContext(
        tenant_id=str(tenant_id),
        user_id=str(user_id),
        header_tenant_id=(x_tenant_id or "").strip() or None,
    )


# Type alias for dependency injection
CurrentTenant = Annotated[TenantContext, Depends(get_tenant_context)]
