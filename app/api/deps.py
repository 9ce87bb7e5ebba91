from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.schemas.auth import Actor, UserRole
from app.services.exceptions import OrderCoreError


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Dependency to get the acting user.
    Validates the JWT issued by the identity service and builds the actor
    descriptor from its claims. No user lookup is made.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    claims = verify_access_token(credentials.credentials)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        return Actor(
            id=uuid.UUID(claims["sub"]),
            name=claims.get("name") or claims["sub"],
            role=claims["role"],
            shop_name=claims.get("shop_name"),
            depot_id=claims.get("depot_id"),
            loyalty_status=claims.get("loyalty_status") or "standard",
        )
    except (ValueError, ValidationError):
        logger.warning(f"Invalid actor claims in token: sub={claims.get('sub')} role={claims.get('role')}")
        raise credentials_exception


def require_roles(*roles: UserRole):
    """
    Dependency factory to require one of the given roles.

    Usage:
        @router.post("/check-in")
        async def check_in(actor: Annotated[Actor, Depends(require_roles(UserRole.DEPOT_AGENT))]):
            ...
    """
    async def role_dependency(
        actor: Annotated[Actor, Depends(get_current_actor)]
    ) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Required role: {', '.join(r.value for r in roles)}"
            )
        return actor

    return role_dependency


def raise_http(error: OrderCoreError) -> None:
    """Translate a domain error into an HTTPException."""
    raise HTTPException(
        status_code=error.status_code,
        detail={"message": error.message, **error.details},
    )


# Type aliases for cleaner endpoint signatures
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
DB = Annotated[AsyncSession, Depends(get_db)]
Customer = Annotated[Actor, Depends(require_roles(UserRole.CUSTOMER))]
Seller = Annotated[Actor, Depends(require_roles(UserRole.SELLER))]
Admin = Annotated[Actor, Depends(require_roles(UserRole.SUPERADMIN))]
DepotStaff = Annotated[Actor, Depends(require_roles(UserRole.DEPOT_AGENT, UserRole.DEPOT_MANAGER))]
DeliveryAgent = Annotated[Actor, Depends(require_roles(UserRole.DELIVERY_AGENT))]
