"""Tests for board building and per-cell affordances."""
from squares.models.entities import Game, Square
from squares.services.grid import build_board, build_grid, cell_state


def _game(**overrides):
    data = {
        "id": "g1",
        "name": "Pool",
        "sport": "football",
        "homeTeam": "Eagles",
        "awayTeam": "Chiefs",
        "gameDate": "2030-01-01T00:00:00+00:00",
        "status": "setup",
        "payoutStructure": {"firstQuarter": 25, "secondQuarter": 25, "thirdQuarter": 25, "finalScore": 25},
        "createdAt": "2029-01-01T00:00:00+00:00",
        "updatedAt": "2029-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return Game.model_validate(data)


def test_build_grid_fills_missing_positions():
    grid = build_grid("g1", [{"id": "g1-2-3", "gameId": "g1", "row": 2, "col": 3, "status": "approved"}])
    assert len(grid) == 10 and all(len(row) == 10 for row in grid)
    assert grid[2][3].status == "approved"
    assert grid[0][0].status == "available"
    assert grid[0][0].id == "0-0"


def test_anonymous_viewer_owns_nothing():
    """A square with no player is not 'owned' by a viewer with no id."""
    cell = cell_state(Square(id="s", game_id="g1", row=0, col=0), "setup", None)
    assert cell.is_owner is False
    assert cell.can_interact is False
    assert cell.can_click is False
    assert cell.cursor == "not-allowed"


def test_owner_can_click_own_requested_square():
    square = Square(id="s", game_id="g1", row=0, col=0, status="requested", player_id="u1", player_display_name="Al")
    assert cell_state(square, "setup", "u1").can_click is True
    other = cell_state(square, "setup", "u2")
    assert other.can_click is False
    assert other.cursor == "default"


def test_no_interaction_after_setup():
    square = Square(id="s", game_id="g1", row=0, col=0)
    cell = cell_state(square, "active", "u1")
    assert cell.can_interact is False
    assert cell.can_click is False


def test_label_truncates_long_names_and_falls_back_to_numbers():
    square = Square(
        id="s", game_id="g1", row=0, col=0, status="approved", player_id="u1",
        player_display_name="Bartholomew Longname",
    )
    assert cell_state(square, "active", None).label == "Bartholomew ..."
    empty = Square(id="s", game_id="g1", row=0, col=0)
    assert cell_state(empty, "active", None, row_number=4, col_number=7).label == "74"
    assert cell_state(empty, "active", None).label == ""


def test_build_board_counts_and_numbers():
    game = _game(status="active", rowNumbers=list(range(10)), colNumbers=list(reversed(range(10))))
    squares = [
        {"id": "g1-0-0", "gameId": "g1", "row": 0, "col": 0, "status": "approved", "playerId": "u1", "playerDisplayName": "Al"},
        {"id": "g1-0-1", "gameId": "g1", "row": 0, "col": 1, "status": "requested", "playerId": "u2", "playerDisplayName": "Bo"},
    ]
    board = build_board(game, squares, current_user_id="u1")
    assert board["counts"] == {"available": 98, "requested": 1, "approved": 1}
    assert board["cells"][0][0].is_owner is True
    assert board["cells"][1][2].label == "71"

    hidden = build_board(game, squares, show_numbers=False)
    assert hidden["rowNumbers"] is None
    assert hidden["cells"][1][2].label == ""
