"""
Mshahara Payroll - FastAPI Dependencies

Shared dependencies for authentication, database sessions and the
tenant ownership gate.

Every tenant-scoped router declares ``require_tenant_access`` once at the
router level, so no individual route re-implements the ownership check.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Path, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.services.tenant_access_service import TenantAccessService
from app.utils.error_handling import AuthorizationException
from app.utils.security import verify_access_token

logger = logging.getLogger(__name__)


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_caller_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> uuid.UUID:
    """
    Get the caller id from the JWT access token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        HTTPException: If the token is missing or invalid
    """
    token = None

    # Try Bearer header first
    if credentials:
        token = credentials.credentials
    else:
        # Fallback to cookie
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    caller_id = payload.get("sub")
    if not caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return uuid.UUID(caller_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid caller ID in token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_tenant_access(
    tenant_id: uuid.UUID = Path(..., description="Tenant ID"),
    caller_id: uuid.UUID = Depends(get_current_caller_id),
    db: AsyncSession = Depends(get_async_session),
) -> uuid.UUID:
    """
    Refuse the request unless the caller may act on the tenant.

    The refusal is the same whether or not the tenant exists.
    """
    access = TenantAccessService(db)
    if not await access.is_authorized(tenant_id, caller_id):
        logger.warning(f"Caller {caller_id} denied access to tenant {tenant_id}")
        raise AuthorizationException("You do not have access to this tenant's payroll")
    return caller_id
