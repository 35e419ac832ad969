"""Pytest configuration and fixtures for API and service tests."""
import os

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from squares.models.base import drop_db, init_db
from squares.services.store import ItemStore
from web.api.main import app


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for every test (ASGI lifespan doesn't run with httpx)."""
    await drop_db()
    await init_db()
    yield


@pytest.fixture
def store():
    return ItemStore()


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def auth_headers(client):
    """Login as admin and return Authorization headers for protected endpoints."""
    r = await client.post(
        "/auth/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    token = r.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


async def register(client, username, display_name=None, password="password123"):
    """Register a player; returns (user, headers)."""
    r = await client.post(
        "/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "displayName": display_name or username.capitalize(),
            "password": password,
        },
    )
    assert r.status_code == 200, f"Register failed: {r.text}"
    data = r.json()["data"]
    return data["user"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
async def player(client):
    return await register(client, "alice", "Alice")


@pytest.fixture
async def other_player(client):
    return await register(client, "bob", "Bob")


def game_payload(**overrides):
    payload = {
        "name": "Championship Squares",
        "sport": "football",
        "homeTeam": "Eagles",
        "awayTeam": "Chiefs",
        "gameDate": (datetime.now(timezone.utc) + timedelta(days=7)).isoformat(),
        "payoutStructure": {"firstQuarter": 20, "secondQuarter": 20, "thirdQuarter": 20, "finalScore": 40},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def game(client, auth_headers):
    r = await client.post("/games", json=game_payload(), headers=auth_headers)
    assert r.status_code == 200, f"Create game failed: {r.text}"
    return r.json()["data"]
