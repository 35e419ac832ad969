"""Authentication for web API: JWT, password hashing, role checks."""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

import config
from squares.errors import AuthenticationError, NotFoundError, PermissionDeniedError
from squares.models.entities import User
from squares.services.store import ItemStore
from squares.services.users import ensure_initial_admin, find_user_by_username, get_user

logger = logging.getLogger("squares.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def _prepare_password(password: str) -> str:
    """Bcrypt has a 72-byte limit. Pre-hash longer passwords with SHA256."""
    encoded = password.encode("utf-8")
    if len(encoded) > 72:
        return hashlib.sha256(encoded).hexdigest()
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(_prepare_password(password))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_prepare_password(plain), hashed)


def create_access_token(user: User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRE_DAYS)
    payload = {
        "sub": user.id,
        "username": user.username,
        "displayName": user.display_name,
        "userType": user.user_type,
        "exp": expire,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Verified claims, or None if the signature, expiry or required claims fail."""
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.InvalidTokenError:
        return None


def get_store() -> ItemStore:
    return ItemStore()


async def authenticate(token: Optional[str], store: ItemStore) -> User:
    """Return the user named by a verified token. Raises AuthenticationError otherwise."""
    if not token:
        raise AuthenticationError("Authentication required")
    payload = decode_token(token)
    if not payload:
        raise AuthenticationError("Invalid or expired token")
    try:
        return await get_user(store, payload["sub"])
    except NotFoundError as e:
        raise AuthenticationError("Invalid or expired token") from e


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    x_auth_token: Optional[str] = Header(None, alias="X-Auth-Token"),
    store: ItemStore = Depends(get_store),
) -> User:
    """Require authenticated user. Accepts Authorization: Bearer or X-Auth-Token (fallback for proxies that strip Authorization)."""
    token = credentials.credentials if credentials and credentials.credentials else x_auth_token
    return await authenticate(token, store)


def require_admin(user: User) -> User:
    """Require admin role. Raises 403 if insufficient."""
    if user.user_type != "admin":
        raise PermissionDeniedError("Admin access required")
    return user


async def require_admin_user(
    user: User = Depends(require_user),
) -> User:
    """Dependency: require logged-in admin."""
    return require_admin(user)


async def authenticate_credentials(store: ItemStore, username: str, password: str) -> User:
    """Check a username/password pair. The first login of the configured initial admin creates it."""
    doc = await find_user_by_username(store, username)
    if doc is None and (
        config.INITIAL_ADMIN_PASSWORD
        and username == config.INITIAL_ADMIN_USERNAME
        and password == config.INITIAL_ADMIN_PASSWORD
    ):
        doc = await ensure_initial_admin(store, hash_password)
        logger.info("Initial admin %s bootstrapped", username)
    if doc is None or not doc.get("passwordHash") or not verify_password(password, doc["passwordHash"]):
        raise AuthenticationError("Invalid username or password")
    return User.model_validate(doc)
