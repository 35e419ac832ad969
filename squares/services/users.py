"""User accounts: registration, lookups, and a player's squares and requests."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Optional

import config
from squares.errors import ConditionFailedError, NotFoundError, ValidationError
from squares.models.entities import Square, SquareRequest, User, UserType, now_iso
from squares.services.pagination import decode_cursor, paginated, parse_limit
from squares.services.store import ItemStore, Page, Record
from squares.validation import sanitize_display_name, validate_register_form

logger = logging.getLogger("squares.users")

PROFILE = "PROFILE"


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def username_claim_pk(username: str) -> str:
    return f"USERNAME#{username.lower()}"


async def _index_has(store: ItemStore, index: str, value: str) -> bool:
    page = await store.query_index(index, value, limit=1)
    return bool(page.items)


async def get_user(store: ItemStore, user_id: str) -> User:
    doc = await store.get(user_pk(user_id), PROFILE)
    if doc is None:
        raise NotFoundError("User not found")
    return User.model_validate(doc)


async def find_user_by_username(store: ItemStore, username: str) -> Optional[dict[str, Any]]:
    """Stored user document (including passwordHash) or None."""
    page = await store.query_index("UsernameIndex", username.lower(), limit=1)
    return page.items[0] if page.items else None


async def create_user(
    store: ItemStore,
    username: str,
    email: str,
    display_name: str,
    password_hash: str,
    user_type: UserType = "player",
) -> User:
    """Write a user profile. The username is claimed with a conditional put first."""
    ts = now_iso()
    user = User(
        id=str(uuid.uuid4()),
        username=username,
        email=email,
        display_name=display_name,
        user_type=user_type,
        created_at=ts,
        updated_at=ts,
    )
    try:
        await store.put(
            Record(pk=username_claim_pk(username), sk="CLAIM", data={"userId": user.id}),
            if_not_exists=True,
        )
    except ConditionFailedError as e:
        raise ValidationError("Registration failed", {"username": "Username is already taken"}) from e
    doc = user.to_document()
    doc["passwordHash"] = password_hash
    try:
        await store.put(
            Record(
                pk=user_pk(user.id),
                sk=PROFILE,
                data=doc,
                entity_id=user.id,
                gsi1pk=f"USER#{user_type}",
                gsi1sk=ts,
                email=email.lower(),
                username=username.lower(),
                display_name=display_name.lower(),
            ),
            if_not_exists=True,
        )
    except Exception:
        logger.exception("Creating user %s failed; releasing the username", username)
        await store.delete(username_claim_pk(username), "CLAIM", expect={"userId": user.id})
        raise
    logger.info("User %s created (%s)", username, user_type)
    return user


async def register_user(store: ItemStore, data: dict[str, Any], hash_password: Callable[[str], str]) -> User:
    """Validate a registration form and create a player.

    Email and display name uniqueness is checked by lookup before the insert, so two
    simultaneous registrations can still both pass; the username is claimed atomically.
    """
    errors = validate_register_form(data)
    if errors:
        raise ValidationError("Registration failed", errors)
    username = data["username"].strip()
    email = data["email"].strip()
    display_name = sanitize_display_name(data["displayName"])
    if len(display_name) < 2:
        raise ValidationError("Registration failed", {"displayName": "Display name must be 2-30 characters"})

    if await _index_has(store, "EmailIndex", email.lower()):
        raise ValidationError("Registration failed", {"email": "An account with this email already exists"})
    if await _index_has(store, "DisplayNameIndex", display_name.lower()):
        raise ValidationError("Registration failed", {"displayName": "Display name is already taken"})
    if await _index_has(store, "UsernameIndex", username.lower()):
        raise ValidationError("Registration failed", {"username": "Username is already taken"})

    return await create_user(store, username, email, display_name, hash_password(data["password"]))


async def _player_page(
    store: ItemStore, user_id: str, prefix: str, limit: Any, cursor: Optional[str]
) -> Page:
    try:
        page = await store.query_index(
            "GSI2",
            f"PLAYER#{user_id}",
            sk_prefix=prefix,
            limit=parse_limit(limit),
            start_key=decode_cursor(cursor),
            forward=False,
        )
    except ValueError as e:
        raise ValidationError("Invalid cursor", {"cursor": "Cursor does not match this listing"}) from e
    return page


async def get_user_squares(
    store: ItemStore, user_id: str, limit: Any = None, cursor: Optional[str] = None
) -> dict[str, Any]:
    """Squares a player holds (requested or approved), newest first."""
    page = await _player_page(store, user_id, "SQUARE#", limit, cursor)
    return paginated(page, [Square.model_validate(d).to_document() for d in page.items])


async def get_user_requests(
    store: ItemStore, user_id: str, limit: Any = None, cursor: Optional[str] = None
) -> dict[str, Any]:
    """Every request a player has made, newest first."""
    page = await _player_page(store, user_id, "REQUEST#", limit, cursor)
    return paginated(page, [SquareRequest.model_validate(d).to_document() for d in page.items])


async def ensure_initial_admin(store: ItemStore, hash_password: Callable[[str], str]) -> Optional[dict[str, Any]]:
    """Create the bootstrap admin account if configured and missing. Returns its stored document."""
    if not config.INITIAL_ADMIN_PASSWORD:
        return None
    existing = await find_user_by_username(store, config.INITIAL_ADMIN_USERNAME)
    if existing is not None:
        return existing
    try:
        await create_user(
            store,
            config.INITIAL_ADMIN_USERNAME,
            config.INITIAL_ADMIN_EMAIL,
            config.INITIAL_ADMIN_USERNAME,
            hash_password(config.INITIAL_ADMIN_PASSWORD),
            user_type="admin",
        )
    except ValidationError:
        logger.info("Initial admin %s was created concurrently", config.INITIAL_ADMIN_USERNAME)
    return await find_user_by_username(store, config.INITIAL_ADMIN_USERNAME)
