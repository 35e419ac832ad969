"""Database and document models."""
from squares.models.base import Base, drop_db, init_db
from squares.models.item import INDEXES, Item
from squares.models.entities import (  # noqa: F401 - re-exported
    GRID_SIZE,
    Game,
    GameScores,
    PayoutStructure,
    Square,
    SquareRequest,
    User,
    Winner,
    WinningNumbers,
)

__all__ = [
    "Base",
    "Item",
    "INDEXES",
    "GRID_SIZE",
    "Game",
    "GameScores",
    "PayoutStructure",
    "Square",
    "SquareRequest",
    "User",
    "Winner",
    "WinningNumbers",
    "drop_db",
    "init_db",
]
