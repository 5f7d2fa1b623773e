"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.mailer import Mailer, get_mailer
from app.core.redis_client import CacheManager, get_cache_manager
from app.core.security import decode_access_token
from app.database import get_db
from app.schemas.users import Identity, UserRole
from app.services.identity_service import IdentityService

# Security; anonymous callers are allowed through to guest booking
security = HTTPBearer(auto_error=False)


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> UUID | None:
    """
    Extract and validate user ID from JWT token.

    Args:
        credentials: Bearer token credentials, if sent

    Returns:
        User ID from token, or None when no token was sent

    Raises:
        HTTPException: If token is invalid or expired
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise _credentials_error()

    try:
        return UUID(user_id_str)
    except ValueError:
        raise _credentials_error("Invalid user ID format")


async def get_optional_user(
    user_id: Annotated[UUID | None, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Identity | None:
    """
    Get the calling identity, or None for anonymous requests.

    Raises:
        HTTPException: If the user no longer exists or is deactivated
    """
    if user_id is None:
        return None

    user = await IdentityService(db).find_identity_by_id(user_id)

    if not user:
        raise _credentials_error("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


async def get_current_user(
    user: Annotated[Identity | None, Depends(get_optional_user)],
) -> Identity:
    """Get the calling identity, requiring authentication."""
    if user is None:
        raise _credentials_error("Not authenticated")
    return user


async def require_admin(current_user: Annotated[Identity, Depends(get_current_user)]) -> Identity:
    """
    Dependency to ensure current user has admin role.

    Raises:
        HTTPException: If user is not admin
    """
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def require_doctor(current_user: Annotated[Identity, Depends(get_current_user)]) -> Identity:
    """Dependency to ensure current user has doctor role."""
    if current_user.role != UserRole.DOCTOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Doctor access required",
        )
    return current_user


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[Identity, Depends(get_current_user)]
OptionalUser = Annotated[Identity | None, Depends(get_optional_user)]
AdminUser = Annotated[Identity, Depends(require_admin)]
DoctorUser = Annotated[Identity, Depends(require_doctor)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
