"""Registration and login endpoints."""

from fastapi import APIRouter, Depends, status

from chainview.db.repository import EntityRepository
from chainview.webservice.deps import get_repository
from chainview.webservice.schemas.common import AuthResponse, LoginRequest, RegisterRequest, TokenInfo
from chainview.webservice.services.auth import authenticate, issue_token, public_user, register_user

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(user) -> AuthResponse:
    access_token, expires_at = issue_token(str(user["_id"]))
    return AuthResponse(token=TokenInfo(accessToken=access_token, expiresIn=expires_at), user=public_user(user))


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, repository: EntityRepository = Depends(get_repository)) -> AuthResponse:
    """Create an API user and return a token for it."""
    user = await register_user(repository, payload.email, payload.password, name=payload.name)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, repository: EntityRepository = Depends(get_repository)) -> AuthResponse:
    """Exchange email and password for a token."""
    user = await authenticate(repository, payload.email, payload.password)
    return _auth_response(user)
