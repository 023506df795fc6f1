from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.core.dependencies import get_user_service, get_current_user
from app.core.errors import ServiceError, ErrorCode
from app.services.user import UserService
from app.db.schema import User, UserRole
from app.models.user import UserRead, UserCreate


router = APIRouter()


@router.get(
    "/me",
    response_model=UserRead,
    summary="Current Actor",
    description="Returns the actor resolved from the access token."
)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    response_model=UserRead,
    summary="Provision Actor",
    description="Admin-only. Registers an actor known to the identity provider."
)
def provision_user(
    user_in: UserCreate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    if current_user.role != UserRole.ADMIN:
        raise ServiceError(ErrorCode.FORBIDDEN, "Only admins can provision users.")

    try:
        return service.create_user(user_in)
    except ValueError as e:
        logger.warning(f"Provisioning rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
