"""User endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.dependencies import AdminUser, CurrentUser, DatabaseSession
from app.schemas.users import IdentityCreate, UserResponse
from app.services.identity_service import IdentityService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(current_user: CurrentUser):
    """Get current user's account."""
    return UserResponse.model_validate(current_user.model_dump())


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(data: IdentityCreate, admin_user: AdminUser, db: DatabaseSession):
    """Create a user with its role profile (admin only)."""
    try:
        identity = await IdentityService(db).create_identity(data)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e
    return UserResponse.model_validate(identity.model_dump())


@router.patch("/{user_id}/reactivate", response_model=UserResponse)
async def reactivate_user(user_id: UUID, admin_user: AdminUser, db: DatabaseSession):
    """
    Reactivate an account (admin only).

    The cancellation count and last cancellation date are reset.
    """
    identity = await IdentityService(db).reactivate(user_id)
    return UserResponse.model_validate(identity.model_dump())


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: UUID, admin_user: AdminUser, db: DatabaseSession):
    """Delete an account and every appointment referencing it (admin only)."""
    deleted = await IdentityService(db).delete_identity(user_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
