"""
Move extraction from parsed SGF game records.

Walks the main line of a RecordNode tree and produces the initial
(handicap) stones and the ordered list of played moves in GTP notation,
together with the game settings the analysis engine needs.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .board import BLACK, WHITE, BoardCoordinate, MAX_BOARD_SIZE, MIN_BOARD_SIZE, sgf_to_gtp
from .errors import ConversionError, FormatError
from .sgf_parser import RecordNode, count_variations, load_record

logger = logging.getLogger(__name__)

DEFAULT_KOMI = 7.5
DEFAULT_RULES = "tromp-taylor"

# Root properties used for initial stones, one per player
SETUP_PROPERTIES = (("AB", BLACK), ("AW", WHITE))

METADATA_PROPERTIES = [
    ("PB", "black_player"),
    ("PW", "white_player"),
    ("DT", "date"),
    ("RE", "result"),
    ("EV", "event"),
    ("GN", "game_name"),
]


@dataclass(frozen=True)
class InitialStone:
    """A stone placed before the first move."""
    player: str
    coordinate: BoardCoordinate

    def to_pair(self) -> List[str]:
        return [self.player, str(self.coordinate)]


@dataclass(frozen=True)
class Move:
    """A played move. ply is the 1-based position in the game."""
    player: str
    coordinate: BoardCoordinate
    ply: int
    sgf: str = ""

    def to_pair(self) -> List[str]:
        return [self.player, str(self.coordinate)]

    def __str__(self) -> str:
        return f"{self.player} {self.coordinate}"


@dataclass(frozen=True)
class GameRecord:
    """Everything the analysis needs from one game record."""
    board_size: int = MAX_BOARD_SIZE
    komi: float = DEFAULT_KOMI
    rules: str = DEFAULT_RULES
    initial_stones: Tuple[InitialStone, ...] = ()
    moves: Tuple[Move, ...] = ()
    metadata: Dict[str, str] = field(default_factory=dict)


def _read_board_size(root: RecordNode) -> int:
    value = root.get("SZ")
    if value is None:
        return MAX_BOARD_SIZE
    # Rectangular boards are written "19:13"
    if ":" in value:
        raise FormatError(f"rectangular board sizes are not supported: SZ[{value}]")
    try:
        size = int(value.strip())
    except ValueError:
        raise FormatError(f"invalid board size property: SZ[{value}]")
    if not (MIN_BOARD_SIZE <= size <= MAX_BOARD_SIZE):
        raise FormatError(f"unsupported board size: SZ[{value}]")
    return size


def _read_komi(root: RecordNode) -> float:
    value = root.get("KM")
    if value is None or not value.strip():
        return DEFAULT_KOMI
    try:
        return float(value.strip())
    except ValueError:
        raise FormatError(f"invalid komi property: KM[{value}]")


def extract_moves(
    root: RecordNode,
    board_size: int = MAX_BOARD_SIZE,
) -> Tuple[List[InitialStone], List[Move]]:
    """
    Extract initial stones and main-line moves from a record tree.

    Args:
        root: Root node of the game record
        board_size: Size of the board used for coordinate conversion

    Returns:
        (initial_stones, moves) with moves in ply order

    Raises:
        ConversionError: If a stone or move coordinate is invalid
        FormatError: If a node carries both a black and a white move
    """
    initial_stones = []
    for prop, player in SETUP_PROPERTIES:
        for value in root.get_all(prop):
            try:
                coordinate = sgf_to_gtp(value, board_size)
            except ConversionError as e:
                raise ConversionError(f"invalid initial stone {prop}[{value}]: {e}")
            if coordinate.is_pass:
                raise ConversionError(f"invalid initial stone {prop}[{value}]: empty point")
            initial_stones.append(InitialStone(player=player, coordinate=coordinate))

    moves = []
    for node in root.main_line():
        players = [player for player in (BLACK, WHITE) if node.has(player)]
        if not players:
            continue
        if len(players) > 1:
            raise FormatError(
                f"node has moves for both players: B[{node.get('B')}] W[{node.get('W')}]"
            )

        player = players[0]
        value = node.get(player, "")
        try:
            coordinate = sgf_to_gtp(value, board_size)
        except ConversionError as e:
            raise ConversionError(f"invalid move {player}[{value}] at ply {len(moves) + 1}: {e}")
        moves.append(Move(player=player, coordinate=coordinate, ply=len(moves) + 1, sgf=value))

    return initial_stones, moves


def extract_game(root: RecordNode, board_size: Optional[int] = None) -> GameRecord:
    """
    Extract the settings, stones and moves of a parsed game record.

    Args:
        root: Root node of the game record
        board_size: Board size to use instead of the record's SZ property

    Returns:
        GameRecord (board size defaults to 19, komi to 7.5, rules to
        tromp-taylor when the record does not say)
    """
    if board_size is None:
        board_size = _read_board_size(root)
    komi = _read_komi(root)
    rules = (root.get("RU") or "").strip() or DEFAULT_RULES

    metadata = {}
    for prop, key in METADATA_PROPERTIES:
        value = root.get(prop)
        if value:
            metadata[key] = value

    variations = count_variations(root)
    if variations:
        logger.debug(f"Ignoring {variations} variation(s) off the main line")

    initial_stones, moves = extract_moves(root, board_size)

    return GameRecord(
        board_size=board_size,
        komi=komi,
        rules=rules,
        initial_stones=tuple(initial_stones),
        moves=tuple(moves),
        metadata=metadata,
    )


def load_game(file_path: str, board_size: Optional[int] = None) -> GameRecord:
    """
    Load an SGF file from disk and extract its game record.

    Args:
        file_path: Path to the SGF file
        board_size: Board size to use instead of the record's SZ property

    Returns:
        GameRecord (same as extract_game)
    """
    return extract_game(load_record(file_path), board_size)
