"""Game and square lifecycle: grid creation, square requests, approvals, number assignment, scores.

Squares and their requests live in the game's partition. Writes touching a square and
its request are two single-item writes, ordered so that a failure part-way leaves
either a pending request intent (swept by reconcile_orphaned_requests) or a request
the square still points at.
"""
from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

import config
from squares.errors import (
    ConditionFailedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    from_pydantic,
)
from squares.formatters import format_square_position, parse_square_key
from squares.models.entities import (
    GAME_STATUSES,
    GRID_SIZE,
    Document,
    Game,
    GameScores,
    PayoutStructure,
    Sport,
    Square,
    SquareRequest,
    Winner,
    now_iso,
    square_id,
)
from squares.services.pagination import decode_cursor, paginated, parse_limit
from squares.services.store import ItemStore, Record
from squares.services.winners import compute_winners
from squares.validation import parse_datetime, sanitize_input, validate_game_form, validate_score_update

logger = logging.getLogger("squares.games")

DETAILS = "DETAILS"
# Game status while its squares are being written; never listed or served
INITIALIZING = "initializing"

EDITABLE_FIELDS = ("name", "sport", "homeTeam", "awayTeam", "gameDate", "payoutStructure")
STATUS_TRANSITIONS = {"active": ("completed",)}


def game_pk(game_id: str) -> str:
    return f"GAME#{game_id}"


def square_sk(row: int, col: int) -> str:
    return f"SQUARE#{row}#{col}"


def request_sk(request_id: str) -> str:
    return f"REQUEST#{request_id}"


class GameInput(Document):
    name: str
    sport: Sport
    home_team: str
    away_team: str
    game_date: str
    payout_structure: PayoutStructure


def _check_position(row: Any, col: Any) -> tuple[int, int]:
    details = {}
    for field, value in (("row", row), ("col", col)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < GRID_SIZE:
            details[field] = f"{field} must be a whole number from 0 to {GRID_SIZE - 1}"
    if details:
        raise ValidationError("Invalid square position", details)
    return row, col


def _square_record(game_id: str, row: int, col: int, ts: str) -> Record:
    square = Square(id=square_id(game_id, row, col), game_id=game_id, row=row, col=col)
    doc = square.to_document()
    doc["createdAt"] = ts
    return Record(
        pk=game_pk(game_id),
        sk=square_sk(row, col),
        data=doc,
        entity_id=square.id,
        gsi1pk="SQUARE#available",
        gsi1sk=ts,
    )


def _parse_game_input(data: dict[str, Any]) -> GameInput:
    errors = validate_game_form(data)
    if errors:
        raise ValidationError("Invalid game", errors)
    try:
        form = GameInput.model_validate(data)
    except PydanticValidationError as e:
        raise from_pydantic(e, "Invalid game") from e
    if form.payout_structure.total != 100:
        raise ValidationError("Invalid game", {"payoutStructure": "Payout percentages must total 100%"})
    return form


# --- Games ---


async def create_game(store: ItemStore, data: dict[str, Any], created_by: Optional[str] = None) -> Game:
    """Create a game with its 100 squares. The game is only listed once every square exists."""
    form = _parse_game_input(data)
    game_id = str(uuid.uuid4())
    ts = now_iso()
    game = Game(
        id=game_id,
        name=sanitize_input(form.name),
        sport=form.sport,
        home_team=sanitize_input(form.home_team),
        away_team=sanitize_input(form.away_team),
        game_date=form.game_date,
        status="setup",
        payout_structure=form.payout_structure,
        created_by=created_by,
        created_at=ts,
        updated_at=ts,
    )
    pk = game_pk(game_id)
    doc = game.to_document()
    doc["status"] = INITIALIZING
    await store.put(
        Record(pk=pk, sk=DETAILS, data=doc, entity_id=game_id, gsi1pk=f"GAME#{INITIALIZING}", gsi1sk=game.game_date),
        if_not_exists=True,
    )
    try:
        records = [_square_record(game_id, row, col, ts) for row in range(GRID_SIZE) for col in range(GRID_SIZE)]
        await store.batch_put(records, batch_size=config.BATCH_WRITE_SIZE)
        created = await store.count(pk, "SQUARE#")
        if created != GRID_SIZE * GRID_SIZE:
            raise RuntimeError(f"Game {game_id} has {created} squares after creation")
        await store.update(
            pk, DETAILS, {"status": "setup"}, expect={"status": INITIALIZING}, keys={"gsi1pk": "GAME#setup"}
        )
    except Exception:
        logger.exception("Creating game %s failed; removing partial records", game_id)
        await store.delete_partition(pk)
        raise
    logger.info("Game %s created: %s vs %s", game_id, game.home_team, game.away_team)
    return game


async def get_game(store: ItemStore, game_id: str) -> Game:
    doc = await store.get(game_pk(game_id), DETAILS)
    if doc is None or doc.get("status") == INITIALIZING:
        raise NotFoundError("Game not found")
    return Game.model_validate(doc)


async def list_games(
    store: ItemStore,
    status: Optional[str] = None,
    limit: Any = None,
    cursor: Optional[str] = None,
) -> dict[str, Any]:
    """One page of games with the given status (default setup), latest game date first."""
    status = status or "setup"
    if status not in GAME_STATUSES:
        raise ValidationError("Invalid status", {"status": f"Status must be one of {', '.join(GAME_STATUSES)}"})
    try:
        page = await store.query_index(
            "GSI1",
            f"GAME#{status}",
            limit=parse_limit(limit),
            start_key=decode_cursor(cursor),
            forward=False,
        )
    except ValueError as e:
        raise ValidationError("Invalid cursor", {"cursor": "Cursor does not match this listing"}) from e
    return paginated(page)


async def update_game(store: ItemStore, game_id: str, data: dict[str, Any]) -> Game:
    """Edit game details. Only allowed while the game is in setup."""
    game = await get_game(store, game_id)
    if game.status != "setup":
        raise InvalidStateError("Game details can only be changed during setup")
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError("Invalid game", {name: "Field cannot be changed" for name in unknown})
    current = game.to_document()
    merged = {name: current.get(name) for name in EDITABLE_FIELDS}
    merged.update(data)
    form = _parse_game_input(merged)
    changes = {
        "name": sanitize_input(form.name),
        "sport": form.sport,
        "homeTeam": sanitize_input(form.home_team),
        "awayTeam": sanitize_input(form.away_team),
        "gameDate": form.game_date,
        "payoutStructure": form.payout_structure.to_document(),
        "updatedAt": now_iso(),
    }
    try:
        doc = await store.update(
            game_pk(game_id), DETAILS, changes, expect={"status": "setup"}, keys={"gsi1sk": form.game_date}
        )
    except ConditionFailedError as e:
        raise InvalidStateError("Game details can only be changed during setup") from e
    return Game.model_validate(doc)


async def delete_game(store: ItemStore, game_id: str) -> int:
    """Delete a game with its squares and requests. Returns the number of items removed."""
    await get_game(store, game_id)
    removed = await store.delete_partition(game_pk(game_id))
    logger.info("Game %s deleted (%d items)", game_id, removed)
    return removed


async def update_status(store: ItemStore, game_id: str, status: str) -> Game:
    """Move a game along setup -> active -> completed. Activation happens through assign_numbers."""
    if status not in GAME_STATUSES:
        raise ValidationError("Invalid status", {"status": f"Status must be one of {', '.join(GAME_STATUSES)}"})
    game = await get_game(store, game_id)
    if game.status == status:
        raise InvalidStateError(f"Game is already {status}")
    if game.status == "setup" and status == "active":
        raise InvalidStateError("Assign numbers to activate the game")
    if status not in STATUS_TRANSITIONS.get(game.status, ()):
        raise InvalidStateError(f"Cannot change game status from {game.status} to {status}")
    try:
        doc = await store.update(
            game_pk(game_id),
            DETAILS,
            {"status": status, "updatedAt": now_iso()},
            expect={"status": game.status},
            keys={"gsi1pk": f"GAME#{status}"},
        )
    except ConditionFailedError as e:
        raise InvalidStateError("Game status changed; reload and try again") from e
    logger.info("Game %s status %s -> %s", game_id, game.status, status)
    return Game.model_validate(doc)


def _permutation(rng: Optional[random.Random]) -> list[int]:
    digits = list(range(GRID_SIZE))
    (rng or random).shuffle(digits)
    return digits


async def assign_numbers(store: ItemStore, game_id: str, rng: Optional[random.Random] = None) -> Game:
    """Assign random row and column digits and activate the game. Never reassigns."""
    game = await get_game(store, game_id)
    if game.row_numbers or game.col_numbers:
        raise InvalidStateError("Numbers have already been assigned")
    if game.status != "setup":
        raise InvalidStateError("Numbers can only be assigned while the game is in setup")
    row_numbers = _permutation(rng)
    col_numbers = _permutation(rng)
    try:
        doc = await store.update(
            game_pk(game_id),
            DETAILS,
            {"rowNumbers": row_numbers, "colNumbers": col_numbers, "status": "active", "updatedAt": now_iso()},
            expect={"status": "setup", "rowNumbers": None, "colNumbers": None},
            keys={"gsi1pk": "GAME#active"},
        )
    except ConditionFailedError as e:
        raise InvalidStateError("Numbers have already been assigned") from e
    logger.info("Game %s numbers assigned; game is active", game_id)
    return Game.model_validate(doc)


async def update_scores(store: ItemStore, game_id: str, scores: dict[str, Any]) -> Game:
    """Record period scores. Once both final scores are in, an active game is completed."""
    if not isinstance(scores, dict) or not scores:
        raise ValidationError("Invalid scores", {"scores": "Scores are required"})
    known = {to_camel(name) for name in GameScores.model_fields}
    errors = {key: "Unknown score field" for key in scores if key not in known}
    errors.update(validate_score_update({k: v for k, v in scores.items() if k in known}))
    if errors:
        raise ValidationError("Invalid scores", errors)
    game = await get_game(store, game_id)
    if game.status == "setup":
        raise InvalidStateError("Scores can only be recorded once the game is active")
    merged = {**game.scores.to_document(), **GameScores.model_validate(scores).to_document()}
    changes: dict[str, Any] = {"scores": merged, "updatedAt": now_iso()}
    keys = None
    if game.status == "active" and merged.get("homeFinal") is not None and merged.get("awayFinal") is not None:
        changes["status"] = "completed"
        keys = {"gsi1pk": "GAME#completed"}
    try:
        doc = await store.update(game_pk(game_id), DETAILS, changes, expect={"status": game.status}, keys=keys)
    except ConditionFailedError as e:
        raise InvalidStateError("Game status changed; reload and try again") from e
    if changes.get("status") == "completed":
        logger.info("Game %s completed", game_id)
    return Game.model_validate(doc)


# --- Squares ---


async def get_squares(store: ItemStore, game_id: str) -> list[Square]:
    await get_game(store, game_id)
    docs = await store.query(game_pk(game_id), "SQUARE#")
    return [Square.model_validate(doc) for doc in docs]


async def _get_square(store: ItemStore, game_id: str, row: int, col: int) -> dict[str, Any]:
    doc = await store.get(game_pk(game_id), square_sk(row, col))
    if doc is None:
        raise NotFoundError("Square not found")
    return doc


def _position_from_key(game_id: str, key: str) -> tuple[int, int]:
    """Accepts "<row>-<col>" or the full square id "<gameId>-<row>-<col>"."""
    prefix = f"{game_id}-"
    position = parse_square_key(key[len(prefix):] if key.startswith(prefix) else key)
    if position is None:
        raise ValidationError("Invalid square", {"squareId": "Square id must look like <row>-<col>"})
    return position


async def _release_square(store: ItemStore, game_id: str, row: int, col: int, request_id: str) -> bool:
    """Return a square to available if it is still held by request_id."""
    try:
        await store.update(
            game_pk(game_id),
            square_sk(row, col),
            {"status": "available"},
            expect={"requestId": request_id},
            remove=("playerId", "playerDisplayName", "requestId", "requestedAt", "approvedAt"),
            keys={"gsi1pk": "SQUARE#available", "gsi1sk": now_iso(), "gsi2pk": None, "gsi2sk": None},
        )
    except ConditionFailedError:
        logger.warning("Square %s in game %s is not held by request %s; left unchanged", (row, col), game_id, request_id)
        return False
    return True


async def request_square(
    store: ItemStore,
    game_id: str,
    row: Any,
    col: Any,
    player_id: str,
    player_display_name: str,
) -> SquareRequest:
    """Create a pending request for an available square and mark the square requested."""
    row, col = _check_position(row, col)
    game = await get_game(store, game_id)
    if game.status != "setup":
        raise InvalidStateError("Squares can only be requested while the game is in setup")
    square = await _get_square(store, game_id, row, col)
    if square.get("status") != "available":
        raise InvalidStateError(f"{format_square_position(row, col)} is not available")

    pk = game_pk(game_id)
    request_id = str(uuid.uuid4())
    ts = now_iso()
    request = SquareRequest(
        id=request_id,
        game_id=game_id,
        square_id=square_id(game_id, row, col),
        row=row,
        col=col,
        player_id=player_id,
        player_display_name=player_display_name,
        status="pending",
        requested_at=ts,
    )
    # Intent first: a crash after this leaves a pending request the square does not point at
    await store.put(
        Record(
            pk=pk,
            sk=request_sk(request_id),
            data=request.to_document(),
            entity_id=request_id,
            gsi1pk="REQUEST#pending",
            gsi1sk=ts,
            gsi2pk=f"PLAYER#{player_id}",
            gsi2sk=f"REQUEST#{ts}",
        ),
        if_not_exists=True,
    )
    try:
        await store.update(
            pk,
            square_sk(row, col),
            {
                "status": "requested",
                "playerId": player_id,
                "playerDisplayName": player_display_name,
                "requestId": request_id,
                "requestedAt": ts,
            },
            expect={"status": "available"},
            keys={"gsi1pk": "SQUARE#requested", "gsi1sk": ts, "gsi2pk": f"PLAYER#{player_id}", "gsi2sk": f"SQUARE#{ts}"},
        )
    except ConditionFailedError as e:
        await store.delete(pk, request_sk(request_id))
        raise InvalidStateError(f"{format_square_position(row, col)} is not available") from e
    logger.info("Player %s requested %s in game %s", player_id, format_square_position(row, col), game_id)
    return request


async def cancel_request(store: ItemStore, game_id: str, key: str, player_id: str) -> Square:
    """Let a player withdraw their own pending request."""
    row, col = _position_from_key(game_id, key)
    game = await get_game(store, game_id)
    if game.status != "setup":
        raise InvalidStateError("Requests can only be cancelled while the game is in setup")
    square = await _get_square(store, game_id, row, col)
    if square.get("status") != "requested" or square.get("playerId") != player_id:
        raise InvalidStateError("Only your own pending requests can be cancelled")
    request_id = square["requestId"]
    await _close_request(store, game_id, request_id, "pending", "Cancelled by player")
    await _release_square(store, game_id, row, col, request_id)
    return Square.model_validate(await _get_square(store, game_id, row, col))


async def remove_square(store: ItemStore, game_id: str, key: str) -> Square:
    """Free a requested or approved square; its request is marked rejected."""
    row, col = _position_from_key(game_id, key)
    await get_game(store, game_id)
    square = await _get_square(store, game_id, row, col)
    request_id = square.get("requestId")
    if square.get("status") == "available" or not request_id:
        raise InvalidStateError(f"{format_square_position(row, col)} is not assigned to a player")
    request = await store.get(game_pk(game_id), request_sk(request_id))
    if request is not None and request.get("status") != "rejected":
        await _close_request(store, game_id, request_id, request["status"], "Removed by admin")
    await _release_square(store, game_id, row, col, request_id)
    logger.info("Square %s in game %s freed by admin", (row, col), game_id)
    return Square.model_validate(await _get_square(store, game_id, row, col))


# --- Square requests ---


async def get_request(store: ItemStore, request_id: str) -> dict[str, Any]:
    """Find a request by id alone; the game and position come from the stored request."""
    page = await store.query_index("IdIndex", request_id, limit=1)
    doc = page.items[0] if page.items else None
    if doc is None or "squareId" not in doc:
        raise NotFoundError("Request not found")
    return doc


async def _close_request(
    store: ItemStore, game_id: str, request_id: str, expected_status: str, reason: Optional[str]
) -> dict[str, Any]:
    ts = now_iso()
    changes: dict[str, Any] = {"status": "rejected", "processedAt": ts}
    if reason:
        changes["rejectionReason"] = reason
    try:
        return await store.update(
            game_pk(game_id),
            request_sk(request_id),
            changes,
            expect={"status": expected_status},
            keys={"gsi1pk": "REQUEST#rejected", "gsi1sk": ts},
        )
    except ConditionFailedError as e:
        raise InvalidStateError(f"Request is no longer {expected_status}") from e


async def approve_request(store: ItemStore, request_id: str) -> SquareRequest:
    """Approve a pending request and its square."""
    request = await get_request(store, request_id)
    if request["status"] != "pending":
        raise InvalidStateError(f"Request is already {request['status']}")
    game_id, row, col = request["gameId"], request["row"], request["col"]
    pk = game_pk(game_id)
    ts = now_iso()
    try:
        updated = await store.update(
            pk,
            request_sk(request_id),
            {"status": "approved", "processedAt": ts},
            expect={"status": "pending"},
            keys={"gsi1pk": "REQUEST#approved", "gsi1sk": ts},
        )
    except ConditionFailedError as e:
        raise InvalidStateError("Request is no longer pending") from e
    try:
        await store.update(
            pk,
            square_sk(row, col),
            {"status": "approved", "approvedAt": ts},
            expect={"status": "requested", "requestId": request_id},
            keys={"gsi1pk": "SQUARE#approved", "gsi1sk": ts},
        )
    except ConditionFailedError as e:
        logger.warning("Square %s in game %s is not held by request %s; reverting approval", (row, col), game_id, request_id)
        try:
            await store.update(
                pk,
                request_sk(request_id),
                {"status": "pending"},
                expect={"status": "approved"},
                remove=("processedAt",),
                keys={"gsi1pk": "REQUEST#pending", "gsi1sk": request["requestedAt"]},
            )
        except ConditionFailedError:
            logger.exception("Could not revert approval of request %s", request_id)
        raise InvalidStateError("Square is no longer held by this request") from e
    logger.info("Request %s approved (%s, game %s)", request_id, format_square_position(row, col), game_id)
    return SquareRequest.model_validate(updated)


async def reject_request(store: ItemStore, request_id: str, reason: Optional[str] = None) -> SquareRequest:
    """Reject a pending request and return its square to available."""
    request = await get_request(store, request_id)
    if request["status"] != "pending":
        raise InvalidStateError(f"Request is already {request['status']}")
    updated = await _close_request(store, request["gameId"], request_id, "pending", reason)
    await _release_square(store, request["gameId"], request["row"], request["col"], request_id)
    logger.info("Request %s rejected", request_id)
    return SquareRequest.model_validate(updated)


async def list_game_requests(store: ItemStore, game_id: str, status: Optional[str] = None) -> list[SquareRequest]:
    """All requests for one game, newest first, optionally filtered by status."""
    await get_game(store, game_id)
    docs = await store.query(game_pk(game_id), "REQUEST#")
    if status:
        docs = [d for d in docs if d.get("status") == status]
    docs.sort(key=lambda d: d.get("requestedAt", ""), reverse=True)
    return [SquareRequest.model_validate(d) for d in docs]


async def list_requests(
    store: ItemStore,
    status: Optional[str] = None,
    limit: Any = None,
    cursor: Optional[str] = None,
) -> dict[str, Any]:
    """One page of requests across games with the given status (default pending), oldest first."""
    status = status or "pending"
    if status not in ("pending", "approved", "rejected"):
        raise ValidationError("Invalid status", {"status": "Status must be one of pending, approved, rejected"})
    try:
        page = await store.query_index(
            "GSI1", f"REQUEST#{status}", limit=parse_limit(limit), start_key=decode_cursor(cursor)
        )
    except ValueError as e:
        raise ValidationError("Invalid cursor", {"cursor": "Cursor does not match this listing"}) from e
    return paginated(page)


async def _all_from_index(store: ItemStore, index: str, value: str) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    start_key = None
    while True:
        page = await store.query_index(index, value, limit=config.MAX_PAGE_SIZE, start_key=start_key)
        items.extend(page.items)
        if page.last_key is None:
            return items
        start_key = page.last_key


async def reconcile_orphaned_requests(
    store: ItemStore,
    now: Optional[datetime] = None,
    grace_seconds: Optional[int] = None,
) -> dict[str, int]:
    """Repair square/request pairs left inconsistent by an interrupted multi-write.

    - pending requests older than the grace period whose square does not point back
      at them are rejected;
    - approved requests whose square is still only requested get the square approved.
    """
    now = now or datetime.now(timezone.utc)
    grace = config.RECONCILE_GRACE_SECONDS if grace_seconds is None else grace_seconds
    cutoff = now - timedelta(seconds=grace)
    summary = {"rejected": 0, "completed": 0}

    for request in await _all_from_index(store, "GSI1", "REQUEST#pending"):
        requested_at = parse_datetime(request.get("requestedAt", ""))
        if requested_at is not None and requested_at > cutoff:
            continue
        square = await store.get(game_pk(request["gameId"]), square_sk(request["row"], request["col"]))
        if square is not None and square.get("requestId") == request["id"]:
            continue
        try:
            await _close_request(store, request["gameId"], request["id"], "pending", "Orphaned request")
        except InvalidStateError:
            continue
        summary["rejected"] += 1

    for request in await _all_from_index(store, "GSI1", "REQUEST#approved"):
        pk = game_pk(request["gameId"])
        square = await store.get(pk, square_sk(request["row"], request["col"]))
        if square is None or square.get("requestId") != request["id"] or square.get("status") != "requested":
            continue
        try:
            await store.update(
                pk,
                square_sk(request["row"], request["col"]),
                {"status": "approved", "approvedAt": request.get("processedAt") or now_iso()},
                expect={"status": "requested", "requestId": request["id"]},
                keys={"gsi1pk": "SQUARE#approved"},
            )
        except ConditionFailedError:
            continue
        summary["completed"] += 1

    if summary["rejected"] or summary["completed"]:
        logger.warning("Reconciled square requests: %s", summary)
    return summary


async def get_winners(store: ItemStore, game_id: str) -> list[Winner]:
    game = await get_game(store, game_id)
    squares = await store.query(game_pk(game_id), "SQUARE#")
    return compute_winners(game, squares)
