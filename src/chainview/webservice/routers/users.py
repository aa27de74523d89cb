"""Current API user endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status

from chainview.db.repository import USERS_COLLECTION, EntityRepository
from chainview.webservice.deps import get_current_user, get_repository
from chainview.webservice.schemas.common import ProfileUpdateRequest
from chainview.webservice.services.auth import public_user, update_profile

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=Dict[str, Any])
def get_profile(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Get the logged-in user."""
    return public_user(user)


@router.patch("/profile", response_model=Dict[str, Any])
async def patch_profile(
    payload: ProfileUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Change the logged-in user's email, password or name."""
    updated = await update_profile(
        repository, user, email=payload.email, password=payload.password, name=payload.name
    )
    return public_user(updated)


@router.delete("/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(
    user: Dict[str, Any] = Depends(get_current_user),
    repository: EntityRepository = Depends(get_repository),
) -> Response:
    """Delete the logged-in user."""
    await repository.delete_by(USERS_COLLECTION, {"_id": user["_id"]})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
