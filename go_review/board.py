"""
Coordinate conversion between SGF and GTP notation.

SGF encodes a point as two lowercase letters (column, row), both 0-based
from the top-left corner. GTP (and the KataGo analysis engine) uses a
column letter A-T with I skipped, and a row number counted from 1 at the
bottom of the board.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .errors import ConversionError

# GTP column letters (I is skipped in Go)
GTP_COLUMNS = "ABCDEFGHJKLMNOPQRST"

# SGF point letters, one per line of a board up to 19x19
SGF_LETTERS = "abcdefghijklmnopqrs"

MAX_BOARD_SIZE = 19
MIN_BOARD_SIZE = 2

PASS = "pass"

# FF[3] encodes a pass as "tt" on boards up to 19x19
SGF_LEGACY_PASS = "tt"

BLACK = "B"
WHITE = "W"
PLAYERS = (BLACK, WHITE)


def opponent(player: str) -> str:
    """Return the other player ('B' <-> 'W')."""
    if player == BLACK:
        return WHITE
    if player == WHITE:
        return BLACK
    raise ValueError(f"Unknown player: {player!r}")


def _check_board_size(board_size: int) -> None:
    if not (MIN_BOARD_SIZE <= board_size <= MAX_BOARD_SIZE):
        raise ConversionError(
            f"Board size must be {MIN_BOARD_SIZE}-{MAX_BOARD_SIZE}, got {board_size}"
        )


@dataclass(frozen=True)
class BoardCoordinate:
    """
    A validated point in GTP notation, or the pass sentinel.

    column is 0-based from the left (index into GTP_COLUMNS), row is 1-based
    from the bottom. Both are None for a pass.
    """
    column: Optional[int]
    row: Optional[int]
    board_size: int = MAX_BOARD_SIZE

    @classmethod
    def pass_move(cls, board_size: int = MAX_BOARD_SIZE) -> 'BoardCoordinate':
        return cls(column=None, row=None, board_size=board_size)

    @classmethod
    def parse(cls, gtp_coord: str, board_size: int = MAX_BOARD_SIZE) -> 'BoardCoordinate':
        """
        Parse a GTP coordinate such as "Q16" (case-insensitive) or "pass".

        Raises:
            ConversionError: If the token is malformed or off the board
        """
        _check_board_size(board_size)
        token = (gtp_coord or "").strip()
        if token.lower() == PASS:
            return cls.pass_move(board_size)
        if len(token) < 2:
            raise ConversionError(f"Invalid GTP coordinate: {gtp_coord!r}")

        letter = token[0].upper()
        if letter not in GTP_COLUMNS:
            raise ConversionError(f"Invalid column letter in {gtp_coord!r}")
        try:
            row = int(token[1:])
        except ValueError:
            raise ConversionError(f"Invalid GTP coordinate: {gtp_coord!r}")

        column = GTP_COLUMNS.index(letter)
        if not (0 <= column < board_size and 1 <= row <= board_size):
            raise ConversionError(
                f"Coordinate {gtp_coord!r} out of bounds for {board_size}x{board_size}"
            )
        return cls(column=column, row=row, board_size=board_size)

    @property
    def is_pass(self) -> bool:
        return self.column is None

    def __str__(self) -> str:
        if self.is_pass:
            return PASS
        return f"{GTP_COLUMNS[self.column]}{self.row}"


def sgf_to_gtp(sgf_coord: Optional[str], board_size: int = MAX_BOARD_SIZE) -> BoardCoordinate:
    """
    Convert an SGF point (e.g. "pd") to a GTP coordinate (e.g. Q16).

    An empty value is a pass. The raw column index is shifted past 'I'
    by the GTP column table; the row is inverted so that SGF row 0 (top)
    becomes GTP row board_size.

    Args:
        sgf_coord: Two lowercase letters, or empty for a pass
        board_size: Size of the board (2-19)

    Returns:
        BoardCoordinate

    Raises:
        ConversionError: If the point is malformed or off the board
    """
    _check_board_size(board_size)
    if not sgf_coord:
        return BoardCoordinate.pass_move(board_size)
    if sgf_coord == SGF_LEGACY_PASS:
        return BoardCoordinate.pass_move(board_size)

    if len(sgf_coord) != 2:
        raise ConversionError(f"Invalid SGF point: {sgf_coord!r}")

    col_char, row_char = sgf_coord[0], sgf_coord[1]
    if not ("a" <= col_char <= "z" and "a" <= row_char <= "z"):
        raise ConversionError(f"Invalid SGF point: {sgf_coord!r}")

    column = ord(col_char) - ord("a")
    row = board_size - (ord(row_char) - ord("a"))

    if not (0 <= column < board_size and 1 <= row <= board_size):
        raise ConversionError(
            f"SGF point {sgf_coord!r} out of bounds for {board_size}x{board_size}"
        )
    return BoardCoordinate(column=column, row=row, board_size=board_size)


def gtp_to_sgf(coord: Union[BoardCoordinate, str], board_size: int = MAX_BOARD_SIZE) -> str:
    """
    Convert a GTP coordinate back to an SGF point.

    A pass becomes the empty string.

    Raises:
        ConversionError: If the coordinate is malformed or off the board
    """
    if isinstance(coord, str):
        coord = BoardCoordinate.parse(coord, board_size)
    elif coord.board_size != board_size:
        raise ConversionError(
            f"Coordinate {coord} belongs to a {coord.board_size}x{coord.board_size} board, "
            f"not {board_size}x{board_size}"
        )

    if coord.is_pass:
        return ""
    return f"{SGF_LETTERS[coord.column]}{SGF_LETTERS[board_size - coord.row]}"
