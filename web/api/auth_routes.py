"""Auth API routes: register, login, current user, logout."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from squares.models.entities import Document, User
from squares.services.store import ItemStore
from squares.services.users import register_user
from web.api.responses import success
from web.auth import authenticate_credentials, create_access_token, get_store, hash_password, require_user

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(Document):
    """Registration form. Missing fields are reported per field by register_user."""

    username: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None


@router.post("/register")
async def register(body: RegisterRequest, store: ItemStore = Depends(get_store)):
    """Create a player account and sign it in."""
    user = await register_user(store, body.to_document(), hash_password)
    token = create_access_token(user)
    return success({"user": user.to_document(), "token": token}, "User created successfully")


@router.post("/login")
async def login(body: LoginRequest, store: ItemStore = Depends(get_store)):
    """Authenticate and return JWT."""
    user = await authenticate_credentials(store, body.username, body.password)
    return success({"user": user.to_document(), "token": create_access_token(user)}, "Login successful")


@router.get("/me")
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return success(user.to_document())


@router.post("/logout")
async def logout(user: User = Depends(require_user)):
    # Tokens are stateless; the client discards its copy
    return success({}, "Logged out")
