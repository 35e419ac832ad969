"""State containers over ApiClient: loaded data plus loading and error flags.

Loads record a failure in `error` and return None (or an empty list). Mutations record
it and re-raise. Calls are independent: nothing is deduplicated, cancelled or retried,
so two overlapping calls on one container both go to the server.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Optional

from squares.client.api_client import ApiClient, ApiClientError
from squares.models.entities import Game
from squares.services.grid import build_board


class _State:
    def __init__(self, client: ApiClient):
        self.client = client
        self.is_loading = False
        self.error: Optional[str] = None

    async def _call(self, call: Awaitable[dict[str, Any]]) -> Any:
        """Await an API call and return its envelope data. Raises ApiClientError."""
        self.is_loading = True
        self.error = None
        try:
            response = await call
            if not response.get("success"):
                raise ApiClientError(response.get("error") or "API call failed")
            return response.get("data")
        except ApiClientError as e:
            self.error = e.message
            raise
        finally:
            self.is_loading = False

    async def _load(self, call: Awaitable[dict[str, Any]]) -> Any:
        try:
            return await self._call(call)
        except ApiClientError:
            return None


class GameState(_State):
    """One game with its squares, and the player's request/cancel actions."""

    def __init__(self, client: ApiClient, game_id: str):
        super().__init__(client)
        self.game_id = game_id
        self.game: Optional[dict[str, Any]] = None
        self.squares: list[dict[str, Any]] = []

    async def refetch(self) -> Optional[dict[str, Any]]:
        self.game = await self._load(self.client.get_game(self.game_id))
        if self.error is None:
            self.squares = await self._load(self.client.get_game_squares(self.game_id)) or []
        return self.game

    async def request_square(self, row: int, col: int) -> dict[str, Any]:
        request = await self._call(self.client.request_square(self.game_id, row, col))
        await self.refetch()
        return request

    async def cancel_square_request(self, square_id: str) -> dict[str, Any]:
        square = await self._call(self.client.cancel_square_request(self.game_id, square_id))
        await self.refetch()
        return square

    def board(self, current_user_id: Optional[str] = None, show_numbers: bool = True) -> Optional[dict[str, Any]]:
        """The loaded squares laid out for this viewer (see build_board). None until the game has loaded."""
        if self.game is None:
            return None
        return build_board(Game.model_validate(self.game), self.squares, current_user_id, show_numbers)


class GamesList(_State):
    """Cursor-paginated game listing with a status filter."""

    def __init__(self, client: ApiClient, status: Optional[str] = None, limit: int = 20):
        super().__init__(client)
        self.filters: dict[str, Any] = {"status": status}
        self.limit = limit
        self.games: list[dict[str, Any]] = []
        self.next_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    @property
    def count(self) -> int:
        return len(self.games)

    async def _page(self, cursor: Optional[str]) -> Optional[dict[str, Any]]:
        return await self._load(
            self.client.get_games(status=self.filters.get("status"), limit=self.limit, cursor=cursor)
        )

    async def load(self) -> list[dict[str, Any]]:
        """First page; replaces anything loaded before."""
        page = await self._page(None)
        if page is None:
            return []
        self.games = list(page["items"])
        self.next_cursor = page.get("nextCursor")
        return self.games

    async def load_more(self) -> list[dict[str, Any]]:
        """Next page appended to games. Returns only the new items."""
        if not self.has_more:
            return []
        page = await self._page(self.next_cursor)
        if page is None:
            return []
        self.games.extend(page["items"])
        self.next_cursor = page.get("nextCursor")
        return page["items"]

    async def iter_all(self) -> AsyncIterator[dict[str, Any]]:
        for game in await self.load():
            yield game
        while self.has_more:
            items = await self.load_more()
            if self.error is not None:
                return
            for game in items:
                yield game

    async def update_filters(self, **filters: Any) -> list[dict[str, Any]]:
        self.filters.update(filters)
        return await self.load()


class AdminGame(_State):
    """Admin actions on one game (or on a new one, for create)."""

    def __init__(self, client: ApiClient, game_id: Optional[str] = None):
        super().__init__(client)
        self.game_id = game_id
        self.game: Optional[dict[str, Any]] = None

    def _require_game(self) -> str:
        if not self.game_id:
            raise ValueError("No game selected")
        return self.game_id

    async def create_game(self, data: dict[str, Any]) -> dict[str, Any]:
        self.game = await self._call(self.client.create_game(data))
        self.game_id = self.game["id"]
        return self.game

    async def update_game(self, data: dict[str, Any]) -> dict[str, Any]:
        self.game = await self._call(self.client.update_game(self._require_game(), data))
        return self.game

    async def delete_game(self) -> dict[str, Any]:
        return await self._call(self.client.delete_game(self._require_game()))

    async def assign_numbers(self) -> dict[str, Any]:
        self.game = await self._call(self.client.assign_numbers(self._require_game()))
        return self.game

    async def update_game_status(self, status: str) -> dict[str, Any]:
        self.game = await self._call(self.client.update_game_status(self._require_game(), status))
        return self.game

    async def update_game_scores(self, scores: dict[str, Any]) -> dict[str, Any]:
        self.game = await self._call(self.client.update_game_scores(self._require_game(), scores))
        return self.game

    async def remove_square(self, square_id: str) -> dict[str, Any]:
        return await self._call(self.client.remove_square_from_player(self._require_game(), square_id))


class SquareRequests(_State):
    """Pending requests for one game, or across all games, with approve/reject."""

    def __init__(self, client: ApiClient, game_id: Optional[str] = None):
        super().__init__(client)
        self.game_id = game_id
        self.requests: list[dict[str, Any]] = []

    async def refetch(self) -> list[dict[str, Any]]:
        data = await self._load(self.client.get_square_requests(self.game_id, status="pending"))
        if data is None:
            return self.requests
        self.requests = data if isinstance(data, list) else data["items"]
        return self.requests

    async def approve(self, request_id: str) -> dict[str, Any]:
        request = await self._call(self.client.approve_square_request(request_id))
        await self.refetch()
        return request

    async def reject(self, request_id: str, reason: Optional[str] = None) -> dict[str, Any]:
        request = await self._call(self.client.reject_square_request(request_id, reason))
        await self.refetch()
        return request
