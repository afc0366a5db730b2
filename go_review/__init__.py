"""
Go Move Review

Finds the worst moves of Go game records (SGF) by replaying them through
the KataGo analysis engine and measuring each move's win rate drop.
"""

__version__ = "0.1.0"

from .errors import ReviewError, FormatError, ConversionError, ProtocolError, ProcessError
from .board import BoardCoordinate, sgf_to_gtp, gtp_to_sgf
from .sgf_parser import RecordNode, parse_record, load_record
from .sgf_handler import GameRecord, InitialStone, Move, extract_game, extract_moves, load_game
from .evaluator import MoveEvaluation, evaluate_moves, worst_moves
from .reviewer import GameReview, MoveReviewer, format_review

__all__ = [
    "ReviewError",
    "FormatError",
    "ConversionError",
    "ProtocolError",
    "ProcessError",
    "BoardCoordinate",
    "sgf_to_gtp",
    "gtp_to_sgf",
    "RecordNode",
    "parse_record",
    "load_record",
    "GameRecord",
    "InitialStone",
    "Move",
    "extract_game",
    "extract_moves",
    "load_game",
    "MoveEvaluation",
    "evaluate_moves",
    "worst_moves",
    "GameReview",
    "MoveReviewer",
    "format_review",
]
