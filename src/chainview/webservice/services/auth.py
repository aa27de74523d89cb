"""Password hashing, JWT issuance and the user store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt
from bson import ObjectId
from bson.errors import InvalidId

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.commons.errors import Conflict, Unauthorized
from chainview.configs import BCRYPT_ROUNDS, JWT_ALGORITHM, JWT_EXPIRATION_MINUTES, JWT_SECRET
from chainview.db.repository import USERS_COLLECTION, EntityRepository

USER_FIELDS = ("id", "name", "email", "picture", "role", "createdAt")

logger = ChainviewLogger()


def _password_bytes(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes.
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("ascii"))
    except ValueError:
        return False


def issue_token(user_id: str, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Return an access token for ``user_id`` and its expiry."""
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=JWT_EXPIRATION_MINUTES)
    payload = {"sub": str(user_id), "iat": now, "exp": expires_at}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM), expires_at


def decode_token(token: str) -> str:
    """Return the subject of a valid token.

    Raises
    ------
    Unauthorized
        When the token is expired, malformed or signed with another secret.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "sub"]})
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired.") from None
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token.") from None
    return payload["sub"]


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Whitelist a stored user for responses; the password hash never leaves."""
    out = {}
    for name in USER_FIELDS:
        value = str(user["_id"]) if name == "id" else user.get(name)
        if value is not None:
            out[name] = value
    return out


async def register_user(repository: EntityRepository, email: str, password: str, name: Optional[str] = None):
    email = email.strip().lower()
    document = {
        "email": email,
        "password": hash_password(password),
        "role": "user",
        "createdAt": datetime.now(timezone.utc),
    }
    if name:
        document["name"] = name.strip()
    if await repository.find_one_by(USERS_COLLECTION, {"email": email}) is not None:
        raise _duplicate_email()
    try:
        user = await repository.insert(USERS_COLLECTION, document)
    except Conflict:
        raise _duplicate_email() from None
    logger.info(f"Registered user {user['_id']}.")
    return user


def _duplicate_email() -> Conflict:
    return Conflict(
        "Validation Error",
        errors=[{"field": "email", "location": "body", "messages": ['"email" already exists']}],
    )


async def authenticate(repository: EntityRepository, email: str, password: str) -> Dict[str, Any]:
    user = await repository.find_one_by(USERS_COLLECTION, {"email": email.strip().lower()})
    if user is None or not verify_password(password, user.get("password", "")):
        raise Unauthorized("Incorrect email or password")
    return user


async def load_user(repository: EntityRepository, user_id: str) -> Dict[str, Any]:
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise Unauthorized("Invalid token.") from None
    user = await repository.find_one_by(USERS_COLLECTION, {"_id": oid})
    if user is None:
        raise Unauthorized("User no longer exists.")
    return user


async def update_profile(
    repository: EntityRepository,
    user: Dict[str, Any],
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """Apply the given profile changes; a new password is hashed again."""
    changes: Dict[str, Any] = {}
    if email is not None:
        email = email.strip().lower()
        if email != user.get("email"):
            if await repository.find_one_by(USERS_COLLECTION, {"email": email}) is not None:
                raise _duplicate_email()
            changes["email"] = email
    if password is not None:
        changes["password"] = hash_password(password)
    if name is not None:
        changes["name"] = name.strip()
    if not changes:
        return user

    try:
        updated = await repository.update_by(USERS_COLLECTION, {"_id": user["_id"]}, changes)
    except Conflict:
        raise _duplicate_email() from None
    if updated is None:
        raise Unauthorized("User no longer exists.")
    logger.info(f"Updated user {user['_id']}: {sorted(changes)}.")
    return updated
