"""Winning squares per scoring period, from the assigned numbers and recorded scores."""
from __future__ import annotations

from typing import Any, Union

from squares.errors import InvalidStateError
from squares.formatters import last_digit
from squares.models.entities import Game, Square, Winner, WinningNumbers

# period, home score field, away score field, payout field
PERIODS = (
    ("Q1", "home_q1", "away_q1", "first_quarter"),
    ("Q2", "home_q2", "away_q2", "second_quarter"),
    ("Q3", "home_q3", "away_q3", "third_quarter"),
    ("Final", "home_final", "away_final", "final_score"),
)


def compute_winners(game: Game, squares: list[Union[Square, dict[str, Any]]]) -> list[Winner]:
    """One Winner per period with both scores recorded.

    The winning row is where rowNumbers holds the home score's last digit, the column
    where colNumbers holds the away score's. Only an approved square has an owner.
    """
    if not game.row_numbers or not game.col_numbers:
        raise InvalidStateError("Numbers have not been assigned yet")
    by_position = {}
    for square in squares:
        sq = square if isinstance(square, Square) else Square.model_validate(square)
        by_position[(sq.row, sq.col)] = sq

    winners = []
    for period, home_field, away_field, payout_field in PERIODS:
        home = getattr(game.scores, home_field)
        away = getattr(game.scores, away_field)
        if home is None or away is None:
            continue
        home_digit, away_digit = last_digit(home), last_digit(away)
        row = game.row_numbers.index(home_digit)
        col = game.col_numbers.index(away_digit)
        square = by_position.get((row, col))
        owned = square is not None and square.status == "approved"
        winners.append(
            Winner(
                period=period,
                home_score=home,
                away_score=away,
                winning_numbers=WinningNumbers(home=home_digit, away=away_digit),
                row=row,
                col=col,
                player_id=square.player_id if owned else None,
                player_display_name=square.player_display_name if owned else None,
                payout=getattr(game.payout_structure, payout_field),
            )
        )
    return winners
