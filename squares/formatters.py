"""Presentation helpers for dates, statuses, scores and squares."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from squares.validation import parse_datetime

GAME_STATUS_LABELS = {"setup": "Setup", "active": "Active", "completed": "Completed"}
SPORT_LABELS = {"football": "🏈 Football", "basketball": "🏀 Basketball", "soccer": "⚽ Soccer"}
WINNER_PERIOD_LABELS = {
    "Q1": "1st Quarter",
    "Q2": "2nd Quarter",
    "Q3": "3rd Quarter",
    "Final": "Final Score",
}


def format_date(value: str) -> str:
    """e.g. 'Sun, Jan 7, 2024, 06:30 PM'."""
    dt = parse_datetime(value)
    if dt is None:
        return value
    return f"{dt:%a}, {dt:%b} {dt.day}, {dt.year}, {dt:%I:%M %p}"


def format_date_short(value: str) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return value
    return f"{dt:%b} {dt.day}, {dt:%I:%M %p}"


def format_game_status(status: str) -> str:
    return GAME_STATUS_LABELS.get(status, "Unknown")


def format_sport(sport: str) -> str:
    return SPORT_LABELS.get(sport, sport)


def format_score(score: Optional[int]) -> str:
    return str(score) if score is not None else "-"


def last_digit(score: int) -> int:
    return score % 10


def format_square_position(row: int, col: int) -> str:
    return f"Row {row}, Col {col}"


def square_key(row: int, col: int) -> str:
    return f"{row}-{col}"


def parse_square_key(key: str) -> Optional[tuple[int, int]]:
    """Inverse of square_key. None unless both parts are grid digits."""
    parts = key.split("-")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return None
    row, col = int(parts[0]), int(parts[1])
    if row > 9 or col > 9:
        return None
    return row, col


def format_winner_period(period: str) -> str:
    return WINNER_PERIOD_LABELS.get(period, period)


def format_payout(amount: int) -> str:
    return f"{amount}%"


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n > 1 else ''} ago"


def format_time_ago(value: str, now: Optional[datetime] = None) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return value
    now = now or datetime.now(timezone.utc)
    seconds = int((now - dt).total_seconds())
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return _plural(seconds // 60, "minute")
    if seconds < 86400:
        return _plural(seconds // 3600, "hour")
    return _plural(seconds // 86400, "day")


def format_display_name(display_name: str) -> str:
    return f"{display_name[:12]}..." if len(display_name) > 15 else display_name


def format_api_error(error: object) -> str:
    if isinstance(error, str):
        return error
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    if isinstance(error, Exception) and str(error):
        return str(error)
    return "An unexpected error occurred"
