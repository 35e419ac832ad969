"""Form field validation. Form validators return {field: message}; empty means valid."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")

SCORE_MIN = 0
SCORE_MAX = 999


def validate_email(email: str) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.match(email))


def validate_username(username: str) -> bool:
    return isinstance(username, str) and bool(USERNAME_RE.match(username))


def validate_display_name(display_name: str) -> bool:
    return isinstance(display_name, str) and 2 <= len(display_name) <= 30


def validate_password(password: str) -> bool:
    return isinstance(password, str) and len(password) >= 8


def _text_field(data: Mapping[str, Any], field: str, label: str, errors: dict[str, str]) -> Optional[str]:
    """The field's value when it is non-empty text. Records 'required' or 'must be text' otherwise."""
    value = data.get(field)
    if value is None or value == "":
        errors[field] = f"{label} is required"
        return None
    if not isinstance(value, str):
        errors[field] = f"{label} must be text"
        return None
    return value


def validate_register_form(data: Mapping[str, Any]) -> dict[str, str]:
    """Validate registration fields. confirmPassword is only checked when present."""
    errors: dict[str, str] = {}

    username = _text_field(data, "username", "Username", errors)
    if username is not None and not validate_username(username):
        errors["username"] = "Username must be 3-20 characters, letters, numbers, and underscores only"

    email = _text_field(data, "email", "Email", errors)
    if email is not None and not validate_email(email):
        errors["email"] = "Please enter a valid email address"

    display_name = _text_field(data, "displayName", "Display name", errors)
    if display_name is not None and not validate_display_name(display_name):
        errors["displayName"] = "Display name must be 2-30 characters"

    password = _text_field(data, "password", "Password", errors)
    if password is not None and not validate_password(password):
        errors["password"] = "Password must be at least 8 characters"

    if "confirmPassword" in data:
        if not data.get("confirmPassword"):
            errors["confirmPassword"] = "Please confirm your password"
        elif password != data.get("confirmPassword"):
            errors["confirmPassword"] = "Passwords do not match"

    return errors


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse an ISO date/datetime; naive values are taken as UTC. None if unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def validate_payout_structure(payout: Mapping[str, Any] | None) -> Optional[str]:
    """Return an error message unless the payout percentages total exactly 100."""
    if not isinstance(payout, Mapping) or not payout:
        return "Payout structure is required"
    try:
        total = sum(int(v) for v in payout.values())
    except (TypeError, ValueError):
        return "Payout percentages must be numbers"
    if total != 100:
        return "Payout percentages must total 100%"
    return None


def validate_game_form(data: Mapping[str, Any], now: Optional[datetime] = None) -> dict[str, str]:
    errors: dict[str, str] = {}

    name = _text_field(data, "name", "Game name", errors)
    if name is not None and not 3 <= len(name) <= 100:
        errors["name"] = "Game name must be 3-100 characters"

    _text_field(data, "sport", "Sport", errors)

    home_team = _text_field(data, "homeTeam", "Home team", errors)
    if home_team is not None and not 2 <= len(home_team) <= 50:
        errors["homeTeam"] = "Team name must be 2-50 characters"

    away_team = _text_field(data, "awayTeam", "Away team", errors)
    if away_team is not None and not 2 <= len(away_team) <= 50:
        errors["awayTeam"] = "Team name must be 2-50 characters"

    if home_team and home_team == away_team:
        errors["awayTeam"] = "Home and away teams must be different"

    game_date = _text_field(data, "gameDate", "Game date", errors)
    if game_date is not None:
        parsed = parse_datetime(game_date)
        if parsed is None:
            errors["gameDate"] = "Game date must be a valid date"
        elif parsed < (now or datetime.now(timezone.utc)):
            errors["gameDate"] = "Game date must be in the future"

    payout_error = validate_payout_structure(data.get("payoutStructure"))
    if payout_error:
        errors["payoutStructure"] = payout_error

    return errors


def validate_score_update(data: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            errors[key] = "Score must be a whole number"
        elif value < SCORE_MIN or value > SCORE_MAX:
            errors[key] = "Score must be between 0 and 999"
    return errors


def sanitize_input(value: str) -> str:
    return re.sub(r"[<>]", "", value.strip())


def sanitize_display_name(display_name: str) -> str:
    return re.sub(r"[<>&\"']", "", display_name.strip())
