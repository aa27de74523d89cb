"""Shared request/response schemas for webservice endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^\S+@\S+\.\S+$"


class FieldViolation(BaseModel):
    """One invalid field."""

    field: str
    location: str
    messages: List[str]


class ErrorResponse(BaseModel):
    """Error response envelope."""

    code: str
    message: str
    errors: List[FieldViolation] | None = None
    retryable: bool | None = None


class RegisterRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=128)


class ProfileUpdateRequest(BaseModel):
    """Fields a user may change on their own profile; omitted fields stay as they are."""

    email: str | None = Field(default=None, pattern=EMAIL_PATTERN, max_length=254)
    password: str | None = Field(default=None, min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class TokenInfo(BaseModel):
    """Bearer token and its expiry."""

    tokenType: Literal["Bearer"] = "Bearer"
    accessToken: str
    expiresIn: datetime


class AuthResponse(BaseModel):
    token: TokenInfo
    user: Dict[str, Any]


class AccountKeys(BaseModel):
    owner: str = Field(..., min_length=1)
    active: str = Field(..., min_length=1)


class FaucetRequest(BaseModel):
    """Faucet account request, logged once the node knows the account."""

    name: str = Field(..., pattern=r"^[.12345a-z]+$", min_length=1, max_length=13)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    wants_tokens: bool = False
    keys: AccountKeys


class TransactionCreateRequest(BaseModel):
    """Actions to push; ref block and expiration are filled from the chain head."""

    actions: Union[Dict[str, Any], List[Dict[str, Any]]]
    signatures: List[str] = Field(default_factory=list)
    scope: List[str] | None = None
