"""Pydantic documents for users, games, squares and square requests.

Documents are stored and served in camelCase, the same shape the web client consumes.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

GRID_SIZE = 10

UserType = Literal["player", "admin"]
Sport = Literal["football", "basketball", "soccer"]
GameStatus = Literal["setup", "active", "completed"]
SquareStatus = Literal["available", "requested", "approved"]
RequestStatus = Literal["pending", "approved", "rejected"]
WinnerPeriod = Literal["Q1", "Q2", "Q3", "Final"]

SPORTS: tuple[str, ...] = ("football", "basketball", "soccer")
GAME_STATUSES: tuple[str, ...] = ("setup", "active", "completed")


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Serialise to the stored/served camelCase form, dropping unset optionals."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class User(Document):
    id: str
    username: str
    email: str
    display_name: str
    user_type: UserType = "player"
    created_at: str
    updated_at: str


class PayoutStructure(Document):
    first_quarter: int = Field(ge=0, le=100)
    second_quarter: int = Field(ge=0, le=100)
    third_quarter: int = Field(ge=0, le=100)
    final_score: int = Field(ge=0, le=100)

    @property
    def total(self) -> int:
        return self.first_quarter + self.second_quarter + self.third_quarter + self.final_score


class GameScores(Document):
    home_q1: Optional[int] = None
    away_q1: Optional[int] = None
    home_q2: Optional[int] = None
    away_q2: Optional[int] = None
    home_q3: Optional[int] = None
    away_q3: Optional[int] = None
    home_q4: Optional[int] = None
    away_q4: Optional[int] = None
    home_final: Optional[int] = None
    away_final: Optional[int] = None


class Game(Document):
    id: str
    name: str
    sport: Sport
    home_team: str
    away_team: str
    game_date: str
    status: GameStatus = "setup"
    payout_structure: PayoutStructure
    row_numbers: Optional[list[int]] = None  # home team digits, index = grid row
    col_numbers: Optional[list[int]] = None  # away team digits, index = grid col
    scores: GameScores = Field(default_factory=GameScores)
    created_by: Optional[str] = None
    created_at: str
    updated_at: str


class Square(Document):
    id: str
    game_id: str
    row: int = Field(ge=0, lt=GRID_SIZE)
    col: int = Field(ge=0, lt=GRID_SIZE)
    status: SquareStatus = "available"
    player_id: Optional[str] = None
    player_display_name: Optional[str] = None
    request_id: Optional[str] = None
    requested_at: Optional[str] = None
    approved_at: Optional[str] = None


class SquareRequest(Document):
    id: str
    game_id: str
    square_id: str
    row: int = Field(ge=0, lt=GRID_SIZE)
    col: int = Field(ge=0, lt=GRID_SIZE)
    player_id: str
    player_display_name: str
    status: RequestStatus = "pending"
    requested_at: str
    processed_at: Optional[str] = None
    rejection_reason: Optional[str] = None


class WinningNumbers(Document):
    home: int
    away: int


class Winner(Document):
    period: WinnerPeriod
    home_score: int
    away_score: int
    winning_numbers: WinningNumbers
    row: int
    col: int
    player_id: Optional[str] = None
    player_display_name: Optional[str] = None
    payout: int


def square_id(game_id: str, row: int, col: int) -> str:
    return f"{game_id}-{row}-{col}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
