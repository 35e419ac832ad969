"""API routes for games, squares, square requests and players."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, StrictInt

from squares.errors import PermissionDeniedError
from squares.models.entities import Document, User, now_iso
from squares.services import games, users
from squares.services.store import ItemStore
from web.api.responses import success
from web.auth import get_store, require_admin_user, require_user

router = APIRouter(tags=["squares"])


class GameForm(Document):
    """Game fields as submitted. Presence, lengths and the payout total are checked by the games service."""

    name: Optional[str] = None
    sport: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    game_date: Optional[str] = None
    payout_structure: Optional[dict[str, Any]] = None


class GameUpdateForm(GameForm):
    model_config = ConfigDict(extra="forbid")


class SquarePosition(BaseModel):
    row: StrictInt
    col: StrictInt


class StatusUpdate(BaseModel):
    status: str


class ScoresUpdate(BaseModel):
    scores: dict[str, Any]


class RejectRequest(BaseModel):
    reason: Optional[str] = None


@router.get("/health")
async def health():
    return success({"status": "healthy", "timestamp": now_iso()})


# --- Games ---


@router.get("/games")
async def list_games(
    status: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    store: ItemStore = Depends(get_store),
):
    """Games by status (default setup), latest game date first. Paginated with limit/cursor."""
    return success(await games.list_games(store, status, limit, cursor))


@router.post("/games")
async def create_game(
    body: GameForm,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    game = await games.create_game(store, body.to_document(), created_by=admin.id)
    return success(game.to_document(), "Game created successfully")


@router.get("/games/{game_id}")
async def get_game(game_id: str, store: ItemStore = Depends(get_store)):
    game = await games.get_game(store, game_id)
    return success(game.to_document())


@router.put("/games/{game_id}")
async def update_game(
    game_id: str,
    body: GameUpdateForm,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    game = await games.update_game(store, game_id, body.model_dump(by_alias=True, exclude_unset=True))
    return success(game.to_document(), "Game updated")


@router.delete("/games/{game_id}")
async def delete_game(game_id: str, admin: User = Depends(require_admin_user), store: ItemStore = Depends(get_store)):
    removed = await games.delete_game(store, game_id)
    return success({"deleted": removed}, "Game deleted")


@router.post("/games/{game_id}/assign-numbers")
async def assign_numbers(
    game_id: str, admin: User = Depends(require_admin_user), store: ItemStore = Depends(get_store)
):
    game = await games.assign_numbers(store, game_id)
    return success(game.to_document(), "Numbers assigned")


@router.put("/games/{game_id}/status")
async def update_status(
    game_id: str,
    body: StatusUpdate,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    game = await games.update_status(store, game_id, body.status)
    return success(game.to_document(), "Game status updated")


@router.put("/games/{game_id}/scores")
async def update_scores(
    game_id: str,
    body: ScoresUpdate,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    game = await games.update_scores(store, game_id, body.scores)
    return success(game.to_document(), "Scores updated")


@router.get("/games/{game_id}/winners")
async def get_winners(game_id: str, store: ItemStore = Depends(get_store)):
    winners = await games.get_winners(store, game_id)
    return success([w.to_document() for w in winners])


# --- Squares ---


@router.get("/games/{game_id}/squares")
async def get_squares(game_id: str, store: ItemStore = Depends(get_store)):
    squares = await games.get_squares(store, game_id)
    return success([s.to_document() for s in squares])


@router.post("/games/{game_id}/squares/request")
async def request_square(
    game_id: str,
    body: SquarePosition,
    user: User = Depends(require_user),
    store: ItemStore = Depends(get_store),
):
    request = await games.request_square(
        store,
        game_id,
        body.row,
        body.col,
        player_id=user.id,
        player_display_name=user.display_name,
    )
    return success(request.to_document(), "Square request created")


@router.delete("/games/{game_id}/squares/{square_id}/cancel")
async def cancel_request(
    game_id: str, square_id: str, user: User = Depends(require_user), store: ItemStore = Depends(get_store)
):
    square = await games.cancel_request(store, game_id, square_id, user.id)
    return success(square.to_document(), "Request cancelled")


@router.delete("/games/{game_id}/squares/{square_id}/remove")
async def remove_square(
    game_id: str, square_id: str, admin: User = Depends(require_admin_user), store: ItemStore = Depends(get_store)
):
    square = await games.remove_square(store, game_id, square_id)
    return success(square.to_document(), "Square removed from player")


# --- Square requests ---


@router.get("/games/{game_id}/requests")
async def list_game_requests(
    game_id: str,
    status: Optional[str] = None,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    requests = await games.list_game_requests(store, game_id, status)
    return success([r.to_document() for r in requests])


@router.get("/requests")
async def list_requests(
    status: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    """Requests across all games by status (default pending), oldest first."""
    return success(await games.list_requests(store, status, limit, cursor))


@router.post("/requests/{request_id}/approve")
async def approve_request(
    request_id: str, admin: User = Depends(require_admin_user), store: ItemStore = Depends(get_store)
):
    request = await games.approve_request(store, request_id)
    return success(request.to_document(), "Request approved")


@router.post("/requests/{request_id}/reject")
async def reject_request(
    request_id: str,
    body: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin_user),
    store: ItemStore = Depends(get_store),
):
    request = await games.reject_request(store, request_id, body.reason if body else None)
    return success(request.to_document(), "Request rejected")


@router.post("/admin/reconcile")
async def reconcile(admin: User = Depends(require_admin_user), store: ItemStore = Depends(get_store)):
    summary = await games.reconcile_orphaned_requests(store)
    return success(summary, "Reconciliation complete")


# --- Players ---


def _check_self_or_admin(user: User, user_id: str) -> None:
    if user.id != user_id and user.user_type != "admin":
        raise PermissionDeniedError("You can only view your own squares and requests")


@router.get("/users/{user_id}/squares")
async def get_user_squares(
    user_id: str,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    user: User = Depends(require_user),
    store: ItemStore = Depends(get_store),
):
    _check_self_or_admin(user, user_id)
    return success(await users.get_user_squares(store, user_id, limit, cursor))


@router.get("/users/{user_id}/requests")
async def get_user_requests(
    user_id: str,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    user: User = Depends(require_user),
    store: ItemStore = Depends(get_store),
):
    _check_self_or_admin(user, user_id)
    return success(await users.get_user_requests(store, user_id, limit, cursor))
