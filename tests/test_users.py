"""Service-level tests for user creation and the username claim."""
import pytest

from squares.errors import ValidationError
from squares.services import users
from squares.services.store import ItemStore


@pytest.mark.asyncio
async def test_username_claim_is_case_insensitive(store):
    await users.create_user(store, "Frank", "frank@example.com", "Frank", "hash")
    with pytest.raises(ValidationError) as exc:
        await users.create_user(store, "frank", "other@example.com", "Frankie", "hash")
    assert "username" in exc.value.details


@pytest.mark.asyncio
async def test_failed_profile_write_releases_username(store, monkeypatch):
    """A registration that dies after claiming the username does not lock the name forever."""
    original = ItemStore.put

    async def failing_put(self, record, **kwargs):
        if record.sk == users.PROFILE:
            raise RuntimeError("store unavailable")
        return await original(self, record, **kwargs)

    monkeypatch.setattr(ItemStore, "put", failing_put)
    with pytest.raises(RuntimeError):
        await users.create_user(store, "grace", "grace@example.com", "Grace", "hash")
    assert await store.get(users.username_claim_pk("grace"), "CLAIM") is None

    monkeypatch.undo()
    user = await users.create_user(store, "grace", "grace@example.com", "Grace", "hash")
    assert user.username == "grace"
    assert await users.find_user_by_username(store, "GRACE") is not None
