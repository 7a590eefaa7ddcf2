"""
The board implements all rules that only concern the grid itself.

A board is a flat string of 42 markers, 6 rows x 7 columns, row-major with the top row first:
'0' is an empty cell, '1' and '2' are the chips of player 1 and player 2.
The same string is stored in the database and sent over the wire, so it is never mutated in place.
"""

import re
from typing import Optional

from connect4.core.exceptions import InvalidBoardError

ROWS = 6
COLUMNS = 7
BOARD_SIZE = ROWS * COLUMNS
EMPTY = "0"
EMPTY_BOARD = EMPTY * BOARD_SIZE
CONNECT = 4

_VALID_BOARD = re.compile(rf"^[012]{{{BOARD_SIZE}}}$")

# (row step, column step): horizontal, vertical, diagonal down-right, diagonal down-left
DIRECTIONS: tuple[tuple[int, int], ...] = ((0, 1), (1, 0), (1, 1), (1, -1))


def cell_index(row: int, column: int) -> int:
    return row * COLUMNS + column


def is_within_bounds(row: int, column: int) -> bool:
    return 0 <= row < ROWS and 0 <= column < COLUMNS


def assert_valid_board(board: str) -> None:
    if len(board) != BOARD_SIZE:
        raise InvalidBoardError(f"Invalid board length: {len(board)}, expected {BOARD_SIZE}")
    if not _VALID_BOARD.match(board):
        raise InvalidBoardError(f"Invalid board characters: {board!r}")


def drop_row(board: str, column: int) -> Optional[int]:
    """Lowest empty row in the column (gravity). None if the column does not exist or is full."""
    if not 0 <= column < COLUMNS:
        return None
    for row in range(ROWS - 1, -1, -1):
        if board[cell_index(row, column)] == EMPTY:
            return row
    return None


def apply_move(board: str, column: int, player: int) -> Optional[tuple[str, int]]:
    """
    Drop a chip for `player` into `column`.

    Returns the new board and the landing row, or None if the column is full.
    The shape of the board is checked before and after placing the chip.
    """
    assert_valid_board(board)
    row = drop_row(board, column)
    if row is None:
        return None
    index = cell_index(row, column)
    new_board = board[:index] + str(player) + board[index + 1 :]
    assert_valid_board(new_board)
    return new_board, row


def _count_direction(board: str, row: int, column: int, symbol: str, d_row: int, d_col: int) -> int:
    """Consecutive `symbol` cells starting next to (row, column), walking one way along an axis."""
    count = 0
    for step in range(1, CONNECT):
        r = row + d_row * step
        c = column + d_col * step
        if not is_within_bounds(r, c) or board[cell_index(r, c)] != symbol:
            break
        count += 1
    return count


def check_win(board: str, row: int, column: int, player: int | str) -> bool:
    """True if the chip at (row, column) completes a line of 4 for `player` on any axis."""
    symbol = str(player)
    for d_row, d_col in DIRECTIONS:
        count = 1
        count += _count_direction(board, row, column, symbol, d_row, d_col)
        count += _count_direction(board, row, column, symbol, -d_row, -d_col)
        if count >= CONNECT:
            return True
    return False


def is_full(board: str) -> bool:
    return EMPTY not in board
