"""Map a game's flat square list onto its 10x10 board and derive what a viewer can do with each cell."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Union

from squares.formatters import format_display_name, square_key
from squares.models.entities import GRID_SIZE, Game, Square

SquareLike = Union[Square, dict[str, Any]]


@dataclass
class GridCell:
    row: int
    col: int
    status: str
    player_id: Optional[str]
    player_display_name: Optional[str]
    is_owner: bool
    can_interact: bool
    can_click: bool
    label: str
    cursor: str  # pointer / default / not-allowed


def _as_square(square: SquareLike) -> Square:
    return square if isinstance(square, Square) else Square.model_validate(square)


def build_grid(game_id: str, squares: list[SquareLike]) -> list[list[Square]]:
    """10x10 rows of squares. Positions missing from `squares` are filled with available placeholders."""
    by_position = {}
    for square in squares:
        sq = _as_square(square)
        by_position[square_key(sq.row, sq.col)] = sq
    grid = []
    for row in range(GRID_SIZE):
        cells = []
        for col in range(GRID_SIZE):
            key = square_key(row, col)
            cells.append(by_position.get(key) or Square(id=key, game_id=game_id, row=row, col=col))
        grid.append(cells)
    return grid


def cell_state(
    square: Square,
    game_status: str,
    current_user_id: Optional[str] = None,
    row_number: Optional[int] = None,
    col_number: Optional[int] = None,
) -> GridCell:
    # An anonymous viewer never owns a square, even an unclaimed one
    is_owner = current_user_id is not None and square.player_id == current_user_id
    can_interact = current_user_id is not None and game_status == "setup"
    can_click = can_interact and (
        square.status == "available" or (square.status == "requested" and is_owner)
    )

    if square.player_display_name:
        label = format_display_name(square.player_display_name)
    elif row_number is not None and col_number is not None:
        label = f"{col_number}{row_number}"
    else:
        label = ""

    if can_click:
        cursor = "pointer"
    elif square.status != "available":
        cursor = "default"
    else:
        cursor = "not-allowed"

    return GridCell(
        row=square.row,
        col=square.col,
        status=square.status,
        player_id=square.player_id,
        player_display_name=square.player_display_name,
        is_owner=is_owner,
        can_interact=can_interact,
        can_click=can_click,
        label=label,
        cursor=cursor,
    )


def build_board(
    game: Game,
    squares: list[SquareLike],
    current_user_id: Optional[str] = None,
    show_numbers: bool = True,
) -> dict[str, Any]:
    """Grid of cell states plus the number headers and per-status counts."""
    numbers = show_numbers and bool(game.row_numbers) and bool(game.col_numbers)
    grid = build_grid(game.id, squares)
    cells = [
        [
            cell_state(
                square,
                game.status,
                current_user_id,
                game.row_numbers[square.row] if numbers else None,
                game.col_numbers[square.col] if numbers else None,
            )
            for square in row
        ]
        for row in grid
    ]
    counts = Counter(cell.status for row in cells for cell in row)
    return {
        "cells": cells,
        "rowNumbers": game.row_numbers if numbers else None,
        "colNumbers": game.col_numbers if numbers else None,
        "counts": {status: counts.get(status, 0) for status in ("available", "requested", "approved")},
    }
