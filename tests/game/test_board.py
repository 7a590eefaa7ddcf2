"""Unit tests for connect4/game/board.py"""

import pytest

from connect4.core.exceptions import InvalidBoardError
from connect4.game.board import (
    BOARD_SIZE,
    COLUMNS,
    EMPTY_BOARD,
    ROWS,
    apply_move,
    assert_valid_board,
    cell_index,
    check_win,
    drop_row,
    is_full,
)


def board_from_rows(*rows: str) -> str:
    """Build a board from (up to) 6 strings of 7 characters, top row first. Missing top rows are empty."""
    padded = ["0" * COLUMNS] * (ROWS - len(rows)) + list(rows)
    return "".join(padded)


def place(board: str, row: int, column: int, player: int) -> str:
    index = cell_index(row, column)
    return board[:index] + str(player) + board[index + 1 :]


# Filled without any four in a row (21 chips each): alternating columns, row parity flips between rows 1-2 and 4-5
DRAWN_BOARD = board_from_rows(
    "1212121",
    "1212121",
    "2121212",
    "2121212",
    "2121212",
    "1212121",
)


# -- BOARD SHAPE --
def test_empty_board_is_valid() -> None:
    assert len(EMPTY_BOARD) == BOARD_SIZE == 42
    assert_valid_board(EMPTY_BOARD)


@pytest.mark.parametrize(
    "invalid_board",
    [
        "0" * 41,  # too short
        "0" * 43,  # too long
        "0" * 41 + "3",  # unknown marker
        "0" * 41 + "x",
        "",
    ],
)
def test_invalid_boards_are_rejected(invalid_board: str) -> None:
    with pytest.raises(InvalidBoardError):
        assert_valid_board(invalid_board)


def test_apply_move_rejects_malformed_board() -> None:
    with pytest.raises(InvalidBoardError):
        apply_move("0" * 41, 3, 1)


# -- GRAVITY --
def test_drop_row_on_empty_board_is_bottom_row() -> None:
    for column in range(COLUMNS):
        assert drop_row(EMPTY_BOARD, column) == ROWS - 1


@pytest.mark.parametrize("column", [-1, 7, 100])
def test_drop_row_out_of_range(column: int) -> None:
    assert drop_row(EMPTY_BOARD, column) is None


def test_drop_row_stacks_up() -> None:
    board = EMPTY_BOARD
    expected_rows = [5, 4, 3, 2, 1, 0]
    for expected in expected_rows:
        assert drop_row(board, 2) == expected
        result = apply_move(board, 2, 1)
        assert result is not None
        board, row = result
        assert row == expected
    # the column is now full
    assert drop_row(board, 2) is None
    assert apply_move(board, 2, 2) is None


def test_apply_move_changes_exactly_one_cell() -> None:
    """Either None (full column) or a board that differs in exactly one position, at the gravity row."""
    board = board_from_rows("0000000", "0000000", "0001000", "0002100", "0121200", "2112120")
    for column in range(COLUMNS):
        expected_row = drop_row(board, column)
        result = apply_move(board, column, 2)
        if expected_row is None:
            assert result is None
            continue
        assert result is not None
        new_board, row = result
        assert row == expected_row
        differences = [i for i, (before, after) in enumerate(zip(board, new_board)) if before != after]
        assert differences == [cell_index(row, column)]
        assert new_board[cell_index(row, column)] == "2"


def test_apply_move_does_not_touch_input() -> None:
    board = EMPTY_BOARD
    result = apply_move(board, 0, 1)
    assert result is not None
    assert board == EMPTY_BOARD
    assert result[0] != board


def test_bottom_left_cell_is_row_5_column_0() -> None:
    """Row-major from the top: the last row of the string is the bottom of the grid."""
    result = apply_move(EMPTY_BOARD, 0, 1)
    assert result is not None
    new_board, row = result
    assert row == 5
    assert new_board == "0" * 35 + "1" + "0" * 6


# -- WIN DETECTION --
def test_horizontal_win() -> None:
    board = board_from_rows("0111100")
    assert check_win(board, 5, 1, 1)
    assert check_win(board, 5, 4, 1)
    assert not check_win(board, 5, 4, 2)


def test_vertical_win() -> None:
    board = board_from_rows("0020000", "0020000", "0020000", "0020000")
    assert check_win(board, 2, 2, 2)
    assert check_win(board, 5, 2, 2)


def test_diagonal_down_right_win() -> None:
    board = EMPTY_BOARD
    for step in range(4):
        board = place(board, 2 + step, 1 + step, 1)
    assert check_win(board, 2, 1, 1)
    assert check_win(board, 4, 3, 1)


def test_diagonal_down_left_win() -> None:
    board = EMPTY_BOARD
    for step in range(4):
        board = place(board, 2 + step, 6 - step, 2)
    assert check_win(board, 5, 3, 2)
    assert check_win(board, 3, 5, 2)


def test_win_in_the_middle_of_the_line() -> None:
    """The last chip does not need to be at the end of the line."""
    board = board_from_rows("1101000")
    board = place(board, 5, 2, 1)
    assert check_win(board, 5, 2, 1)


def test_three_in_a_row_blocked_on_both_sides_is_not_a_win() -> None:
    board = board_from_rows("2111200")
    assert not check_win(board, 5, 2, 1)


@pytest.mark.parametrize(
    "row, column",
    [(0, 0), (0, 6), (5, 0), (5, 6)],
)
def test_corners_do_not_index_out_of_bounds(row: int, column: int) -> None:
    board = place(EMPTY_BOARD, row, column, 1)
    assert not check_win(board, row, column, 1)


def test_win_accepts_string_player() -> None:
    board = board_from_rows("2222000")
    assert check_win(board, 5, 3, "2")


# -- FULL BOARD --
def test_is_full() -> None:
    assert not is_full(EMPTY_BOARD)
    assert is_full(DRAWN_BOARD)
    assert not is_full(DRAWN_BOARD[:-1] + "0")


def test_drawn_board_has_no_winner_anywhere() -> None:
    for row in range(ROWS):
        for column in range(COLUMNS):
            player = DRAWN_BOARD[cell_index(row, column)]
            assert not check_win(DRAWN_BOARD, row, column, player)
