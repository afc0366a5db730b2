"""
Move evaluation and ranking.

Folds per-ply engine responses into MoveEvaluation records (win rate after
each move and the drop it caused) and selects the worst moves.
"""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .board import BLACK, PLAYERS, WHITE, opponent
from .config import AnalysisConfig, ReportConfig
from .errors import ProtocolError
from .katago_analysis import AnalysisResponse, MoveInfo, PlyAnalysis
from .sgf_handler import GameRecord

logger = logging.getLogger(__name__)

GOOD = "good"
QUESTIONABLE = "questionable"
BAD = "bad"
CLASSIFICATIONS = (GOOD, QUESTIONABLE, BAD)


@dataclass(frozen=True)
class MoveEvaluation:
    """How much a played move changed the mover's win rate."""
    ply: int
    player: str              # 'B' or 'W'
    move: str                # GTP coordinate, e.g. "Q16" or "pass"
    winrate_before: float    # Mover's win rate before the move
    winrate_after: float     # Mover's win rate after the move
    winrate_drop: float      # winrate_before - winrate_after
    best_move: Optional[str] = None
    best_variation: Tuple[str, ...] = ()
    classification: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['best_variation'] = list(self.best_variation)
        return data

    def __repr__(self) -> str:
        return (
            f"MoveEvaluation({self.ply}: {self.player} {self.move}, "
            f"wr={self.winrate_after:.1%}, "
            f"drop={self.winrate_drop:+.1%})"
        )


# ============================================================================
# Win Rate Perspective
# ============================================================================

def side_to_move(game: GameRecord, ply: int) -> str:
    """Player to move in the position after `ply` moves, as the engine sees it."""
    if ply == 0:
        return game.moves[0].player if game.moves else BLACK
    return opponent(game.moves[ply - 1].player)


def to_black_perspective(winrate: float, reported_as: str, to_move: str) -> float:
    """
    Convert an engine win rate to Black's point of view.

    Args:
        winrate: Win rate as reported by KataGo
        reported_as: KataGo's reportAnalysisWinratesAs (BLACK, WHITE, SIDETOMOVE)
        to_move: Player to move in the analyzed position
    """
    if reported_as == "BLACK":
        return winrate
    if reported_as == "WHITE":
        return 1.0 - winrate
    if reported_as == "SIDETOMOVE":
        return winrate if to_move == BLACK else 1.0 - winrate
    raise ValueError(f"Unknown win rate perspective: {reported_as!r}")


def for_player(black_winrate: float, player: str) -> float:
    return black_winrate if player == BLACK else 1.0 - black_winrate


def best_candidate(
    response: AnalysisResponse,
    to_move: str,
    reported_as: str,
) -> Optional[MoveInfo]:
    """
    Return the candidate with the highest win rate for the side to move.

    moveInfos arrive in the engine's own order; ties keep that order.
    """
    if not response.move_infos:
        return None
    ranked = sorted(
        response.move_infos,
        key=lambda info: for_player(
            to_black_perspective(info.winrate, reported_as, to_move), to_move
        ),
        reverse=True,
    )
    return ranked[0]


# ============================================================================
# Evaluation
# ============================================================================

def classify(drop: float, report_config: ReportConfig) -> str:
    """Classify a win rate drop as good, questionable or bad."""
    if drop <= report_config.good_threshold:
        return GOOD
    if drop >= report_config.bad_threshold:
        return BAD
    return QUESTIONABLE


def evaluate_moves(
    game: GameRecord,
    analyses: Sequence[PlyAnalysis],
    analysis_config: AnalysisConfig,
    report_config: Optional[ReportConfig] = None,
) -> List[MoveEvaluation]:
    """
    Build one MoveEvaluation per played move, in ply order.

    The win rate after move k is the top candidate's win rate in the
    position after k moves. The win rate before move 1 comes from the ply-0
    analysis, or from analysis_config.fixed_baseline (the first mover's win
    rate) when that is set.

    Raises:
        ProtocolError: If the analysis for a required ply is missing
    """
    if not game.moves:
        return []

    reported_as = analysis_config.report_winrates_as
    responses = {analysis.ply: analysis.response for analysis in analyses}

    # Black-perspective win rate and best candidate of each analyzed position
    position_winrate: Dict[int, Optional[float]] = {}
    position_best: Dict[int, Optional[MoveInfo]] = {}

    if analysis_config.fixed_baseline is not None:
        position_winrate[0] = for_player(analysis_config.fixed_baseline, game.moves[0].player)
        position_best[0] = None

    for ply in range(len(game.moves) + 1):
        if ply in position_winrate:
            continue
        response = responses.get(ply)
        if response is None:
            raise ProtocolError(f"no analysis received for ply {ply}")
        to_move = side_to_move(game, ply)
        best = best_candidate(response, to_move, reported_as)
        position_best[ply] = best
        if best is None:
            position_winrate[ply] = None
        else:
            position_winrate[ply] = to_black_perspective(best.winrate, reported_as, to_move)

    evaluations = []
    previous = position_winrate[0]
    if previous is None:
        logger.warning("Baseline analysis has no candidates, assuming an even game")
        previous = 0.5

    for move in game.moves:
        after = position_winrate[move.ply]
        if after is None:
            logger.warning(f"No candidates after ply {move.ply}, reusing previous win rate")
            after = previous

        before_for_mover = for_player(previous, move.player)
        after_for_mover = for_player(after, move.player)
        drop = before_for_mover - after_for_mover

        best = position_best.get(move.ply - 1)
        evaluation = MoveEvaluation(
            ply=move.ply,
            player=move.player,
            move=str(move.coordinate),
            winrate_before=before_for_mover,
            winrate_after=after_for_mover,
            winrate_drop=drop,
            best_move=best.move if best is not None else None,
            best_variation=tuple(best.pv) if best is not None else (),
        )
        if report_config is not None:
            evaluation = replace(evaluation, classification=classify(drop, report_config))
        evaluations.append(evaluation)
        previous = after

    return evaluations


# ============================================================================
# Ranking
# ============================================================================

def worst_moves(
    evaluations: Sequence[MoveEvaluation],
    n: int = 3,
    player: Optional[str] = None,
) -> List[MoveEvaluation]:
    """
    Select the n moves with the largest win rate drop.

    Sorted by drop descending; equal drops keep the earlier ply first.

    Args:
        evaluations: Evaluations in any order
        n: Number of moves to return
        player: Restrict to 'B' or 'W' (None for both)
    """
    if player is not None and player not in PLAYERS:
        raise ValueError(f"player must be 'B' or 'W', got {player!r}")
    candidates = [e for e in evaluations if player is None or e.player == player]
    ranked = sorted(candidates, key=lambda e: (-e.winrate_drop, e.ply))
    return ranked[:n]


def summarize(evaluations: Sequence[MoveEvaluation]) -> Dict[str, Dict[str, Any]]:
    """
    Per-player counts of each classification plus the average drop.

    Returns:
        {"B": {"moves": 60, "good": 40, "questionable": 15, "bad": 5,
               "average_drop": 0.012}, "W": {...}}
    """
    summary: Dict[str, Dict[str, Any]] = {}
    for player in (BLACK, WHITE):
        own = [e for e in evaluations if e.player == player]
        counts: Dict[str, Any] = {"moves": len(own)}
        for label in CLASSIFICATIONS:
            counts[label] = sum(1 for e in own if e.classification == label)
        counts["average_drop"] = (
            sum(e.winrate_drop for e in own) / len(own) if own else 0.0
        )
        summary[player] = counts
    return summary
