"""
Go Move Review - Main business logic layer.

Integrates:
- SGF parsing and move extraction
- KataGo analysis of every move-prefix
- Win rate drop evaluation and worst-move ranking

Provides a simple API for reviewing whole game records.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tqdm import tqdm

from .config import AppConfig, load_config
from .evaluator import MoveEvaluation, evaluate_moves, summarize, worst_moves
from .katago_analysis import AnalysisSequencer, KataGoAnalysisEngine
from .sgf_handler import GameRecord, load_game

logger = logging.getLogger(__name__)


@dataclass
class GameReview:
    """Complete review of one game record."""
    path: str
    game: GameRecord
    evaluations: List[MoveEvaluation] = field(default_factory=list)
    worst_moves: List[MoveEvaluation] = field(default_factory=list)

    def summary(self) -> Dict[str, Dict[str, Any]]:
        return summarize(self.evaluations)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'path': self.path,
            'board_size': self.game.board_size,
            'komi': self.game.komi,
            'rules': self.game.rules,
            'metadata': dict(self.game.metadata),
            'initial_stones': [stone.to_pair() for stone in self.game.initial_stones],
            'move_count': len(self.game.moves),
            'evaluations': [e.to_dict() for e in self.evaluations],
            'worst_moves': [e.to_dict() for e in self.worst_moves],
            'summary': self.summary(),
        }


class MoveReviewer:
    """
    Main reviewer class that integrates all components.

    Flow:
    1. Load the SGF file and extract initial stones and moves
    2. Apply configured rules/komi overrides
    3. Analyze every move-prefix with KataGo (one query at a time)
    4. Evaluate win rate drops and rank the worst moves

    Usage:
        reviewer = MoveReviewer(config=load_config())
        review = reviewer.review_file("game.sgf")
        print(format_review(review))
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[AppConfig] = None,
        engine_factory: Optional[Callable[[], KataGoAnalysisEngine]] = None,
    ):
        """
        Initialize the reviewer.

        Args:
            config_path: Path to config.yaml file
            config: Pre-loaded AppConfig (overrides config_path)
            engine_factory: Builds the engine for each game (defaults to KataGo from config)
        """
        if config is not None:
            self.config = config
        else:
            self.config = load_config(config_path)

        self.sequencer = AnalysisSequencer(
            self.config.katago,
            self.config.analysis,
            engine_factory=engine_factory,
        )

    def apply_overrides(self, game: GameRecord) -> GameRecord:
        """Replace record rules/komi with configured values where set."""
        analysis = self.config.analysis
        changes = {}
        if analysis.rules is not None:
            changes['rules'] = analysis.rules
        if analysis.komi is not None:
            changes['komi'] = analysis.komi
        return dataclasses.replace(game, **changes) if changes else game

    def review_game(
        self,
        game: GameRecord,
        path: str = "",
        show_progress: bool = False,
    ) -> GameReview:
        """
        Analyze and evaluate an already extracted game.

        Args:
            game: Extracted game record
            path: Source path, used for display only
            show_progress: Show a tqdm progress bar over analyzed plies

        Returns:
            GameReview
        """
        game = self.apply_overrides(game)
        logger.info(
            f"Reviewing {path or 'game'}: {len(game.moves)} moves, "
            f"{len(game.initial_stones)} initial stones, "
            f"{game.board_size}x{game.board_size}, komi {game.komi}, rules {game.rules}"
        )

        with tqdm(
            total=self.sequencer.query_count(game),
            desc=Path(path).name if path else "review",
            unit="ply",
            disable=not show_progress,
            leave=False,
        ) as bar:
            analyses = self.sequencer.run(game, progress=bar.update)

        report = self.config.report
        evaluations = evaluate_moves(game, analyses, self.config.analysis, report)
        worst = worst_moves(evaluations, report.worst_count, report.player)

        return GameReview(
            path=path,
            game=game,
            evaluations=evaluations,
            worst_moves=worst,
        )

    def review_file(self, file_path: str, show_progress: bool = False) -> GameReview:
        """
        Load, analyze and evaluate one SGF file.

        Raises:
            ReviewError: Any FormatError, ConversionError, ProtocolError or
                         ProcessError aborts the review of this file
            OSError: If the file cannot be read
        """
        game = load_game(file_path, self.config.analysis.board_size)
        return self.review_game(game, path=file_path, show_progress=show_progress)

    def __repr__(self) -> str:
        return f"MoveReviewer(katago={self.config.katago.katago_path})"


def _percent(value: float) -> str:
    return f"{value * 100:5.1f}%"


def format_review(review: GameReview, show_variations: bool = False) -> str:
    """
    Format a GameReview as a human-readable string.

    Args:
        review: Review to format
        show_variations: Include the engine's preferred line for each worst move

    Returns:
        Formatted string
    """
    game = review.game
    metadata = game.metadata
    lines = [
        "=" * 50,
        f"Move Review: {review.path or 'game'}",
        "=" * 50,
    ]

    if 'black_player' in metadata or 'white_player' in metadata:
        lines.append(
            f"Black: {metadata.get('black_player', '?')} | "
            f"White: {metadata.get('white_player', '?')}"
        )
    if 'result' in metadata:
        lines.append(f"Result: {metadata['result']}")

    lines.extend([
        f"Board: {game.board_size}x{game.board_size} | Komi: {game.komi} | Rules: {game.rules}",
        f"Moves: {len(game.moves)} | Initial stones: {len(game.initial_stones)}",
        "",
    ])

    if not review.worst_moves:
        lines.append("No moves to review.")
    else:
        lines.append(f"Worst {len(review.worst_moves)} Moves:")
        for i, e in enumerate(review.worst_moves, 1):
            line = (
                f"  {i}. #{e.ply:<3d} {e.player} {e.move:4s} | "
                f"WinRate: {_percent(e.winrate_before)} -> {_percent(e.winrate_after)} | "
                f"Drop: {e.winrate_drop * 100:+5.1f}%"
            )
            if e.classification:
                line += f" | {e.classification}"
            if e.best_move:
                line += f" | Best: {e.best_move}"
            lines.append(line)
            if show_variations and e.best_variation:
                lines.append(f"       Variation: {' '.join(e.best_variation)}")

        lines.append("")
        for player, counts in review.summary().items():
            lines.append(
                f"{player}: {counts['moves']} moves | "
                f"good {counts['good']} | questionable {counts['questionable']} | "
                f"bad {counts['bad']} | avg drop {counts['average_drop'] * 100:+.1f}%"
            )

    lines.append("=" * 50)
    return "\n".join(lines)
