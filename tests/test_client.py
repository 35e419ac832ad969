"""Tests for the API client, auth session and state containers against the in-process app."""
import httpx
import pytest

from conftest import game_payload
from squares.client.api_client import ApiClient, ApiClientError
from squares.client.hooks import AdminGame, GamesList, GameState, SquareRequests
from squares.client.session import AuthSession
from web.api.main import app


@pytest.fixture
async def api():
    async with ApiClient("http://test", transport=httpx.ASGITransport(app=app)) as client:
        yield client


@pytest.fixture
async def admin_api():
    async with ApiClient("http://test", transport=httpx.ASGITransport(app=app)) as client:
        await AuthSession(client).login("admin", "testpass123")
        yield client


@pytest.mark.asyncio
async def test_error_normalization(api):
    with pytest.raises(ApiClientError) as exc:
        await api.get_game("missing")
    assert exc.value.status_code == 404
    assert exc.value.message == "Resource not found"

    with pytest.raises(ApiClientError) as exc:
        await api.create_game(game_payload())
    assert exc.value.message == "Authentication required"

    with pytest.raises(ApiClientError) as exc:
        await api.register({"username": "x"})
    assert exc.value.status_code == 400
    assert exc.value.message == "Registration failed"
    assert "email" in exc.value.details


@pytest.mark.asyncio
async def test_network_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with ApiClient("http://test", transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(ApiClientError) as exc:
            await client.health()
    assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_session_register_login_logout(api, tmp_path):
    token_file = tmp_path / "token"
    session = AuthSession(api, token_path=token_file)
    assert await session.initialize() is None
    assert session.is_loading is False

    user = await session.register(
        {"username": "dana", "email": "dana@example.com", "displayName": "Dana", "password": "password123"}
    )
    assert user["username"] == "dana"
    assert session.is_authenticated
    assert token_file.read_text() == session.token

    restored = AuthSession(api, token_path=token_file)
    api.token = None
    assert (await restored.initialize())["username"] == "dana"

    await restored.logout()
    assert not restored.is_authenticated
    assert restored.token is None
    assert not token_file.exists()


@pytest.mark.asyncio
async def test_session_discards_rejected_token(api, tmp_path):
    token_file = tmp_path / "token"
    token_file.write_text("not-a-real-token")
    session = AuthSession(api, token_path=token_file)
    assert await session.initialize() is None
    assert not token_file.exists()
    assert session.token is None


@pytest.mark.asyncio
async def test_failed_login_records_nothing(api):
    session = AuthSession(api)
    with pytest.raises(ApiClientError):
        await session.login("nobody", "password123")
    assert not session.is_authenticated
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_games_list_pagination(admin_api):
    admin = AdminGame(admin_api)
    for i in range(3):
        await admin.create_game(game_payload(name=f"Paged pool {i}"))

    games = GamesList(admin_api, limit=2)
    first = await games.load()
    assert len(first) == 2
    assert games.has_more
    more = await games.load_more()
    assert len(more) == 1
    assert not games.has_more
    assert await games.load_more() == []
    assert games.count == 3

    collected = [g["id"] async for g in GamesList(admin_api, limit=1).iter_all()]
    assert len(collected) == len(set(collected)) == 3

    assert await games.update_filters(status="active") == []
    assert games.error is None


@pytest.mark.asyncio
async def test_load_failure_sets_error(api):
    state = GameState(api, "missing")
    assert await state.refetch() is None
    assert state.error == "Resource not found"
    assert state.is_loading is False


@pytest.mark.asyncio
async def test_request_and_approve_flow(admin_api, api):
    game = await AdminGame(admin_api).create_game(game_payload())

    session = AuthSession(api)
    await session.register({"username": "eve", "email": "eve@example.com", "displayName": "Eve", "password": "password123"})

    state = GameState(api, game["id"])
    assert state.board() is None
    await state.refetch()
    assert len(state.squares) == 100
    await state.request_square(4, 2)
    square = next(s for s in state.squares if (s["row"], s["col"]) == (4, 2))
    assert square["status"] == "requested"

    board = state.board(current_user_id=session.user["id"])
    cell = board["cells"][4][2]
    assert cell.is_owner and cell.can_click
    assert cell.label == "Eve"
    assert board["counts"] == {"available": 99, "requested": 1, "approved": 0}
    assert board["rowNumbers"] is None
    assert state.board()["cells"][4][2].is_owner is False

    with pytest.raises(ApiClientError):
        await state.request_square(4, 2)
    assert state.error

    requests = SquareRequests(admin_api, game["id"])
    pending = await requests.refetch()
    assert len(pending) == 1
    await requests.approve(pending[0]["id"])
    assert requests.requests == []

    global_requests = SquareRequests(admin_api)
    assert await global_requests.refetch() == []


@pytest.mark.asyncio
async def test_admin_game_requires_selection(admin_api):
    with pytest.raises(ValueError):
        await AdminGame(admin_api).assign_numbers()
