"""
Unit tests for move evaluation and ranking.

Tests:
- Win rate perspective conversion
- Drop computation from per-ply analyses
- Worst move ranking, ties and player filter
- Classification and per-player summary
"""

import pytest
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from go_review.config import AnalysisConfig, ReportConfig
from go_review.errors import ProtocolError
from go_review.evaluator import (
    BAD,
    GOOD,
    QUESTIONABLE,
    MoveEvaluation,
    best_candidate,
    classify,
    evaluate_moves,
    side_to_move,
    summarize,
    to_black_perspective,
    worst_moves,
)
from go_review.katago_analysis import AnalysisResponse, MoveInfo, PlyAnalysis
from go_review.sgf_handler import extract_game
from go_review.sgf_parser import parse_record

# B Q16, W D4, B R4
THREE_MOVES = "(;SZ[19];B[pd];W[dp];B[qp])"

# Black win rate of the position after each ply
BLACK_WINRATES = [0.50, 0.45, 0.60, 0.59]


def make_eval(ply, player, drop):
    return MoveEvaluation(
        ply=ply,
        player=player,
        move="Q16",
        winrate_before=0.5,
        winrate_after=0.5 - drop,
        winrate_drop=drop,
    )


def analysis(ply, *candidates):
    """PlyAnalysis with (move, winrate, pv) candidates."""
    return PlyAnalysis(
        ply=ply,
        response=AnalysisResponse(
            id=str(ply + 1),
            move_infos=[MoveInfo(move=m, winrate=w, pv=list(pv)) for m, w, pv in candidates],
        ),
    )


def analyses_from(winrates, convert=lambda wr, ply: wr):
    return [analysis(ply, ("Q16", convert(wr, ply), ["Q16"])) for ply, wr in enumerate(winrates)]


class TestPerspective:

    def test_to_black_perspective(self):
        assert to_black_perspective(0.7, "BLACK", "W") == 0.7
        assert to_black_perspective(0.7, "WHITE", "B") == pytest.approx(0.3)
        assert to_black_perspective(0.7, "SIDETOMOVE", "B") == 0.7
        assert to_black_perspective(0.7, "SIDETOMOVE", "W") == pytest.approx(0.3)

    def test_unknown_perspective(self):
        with pytest.raises(ValueError):
            to_black_perspective(0.5, "PLAYER", "B")

    def test_side_to_move(self):
        game = extract_game(parse_record(THREE_MOVES))
        assert [side_to_move(game, ply) for ply in range(4)] == ["B", "W", "B", "W"]

    def test_side_to_move_white_first(self):
        game = extract_game(parse_record("(;SZ[19]AB[dd][pp];W[pd])"))
        assert side_to_move(game, 0) == "W"
        assert side_to_move(game, 1) == "B"

    def test_best_candidate_for_white(self):
        """White to move prefers the lowest Black win rate."""
        response = AnalysisResponse(
            id="1",
            move_infos=[MoveInfo(move="R4", winrate=0.47), MoveInfo(move="C3", winrate=0.45)],
        )
        assert best_candidate(response, "W", "BLACK").move == "C3"
        assert best_candidate(response, "B", "BLACK").move == "R4"

    def test_best_candidate_ties_keep_engine_order(self):
        response = AnalysisResponse(
            id="1",
            move_infos=[MoveInfo(move="R4", winrate=0.5), MoveInfo(move="C3", winrate=0.5)],
        )
        assert best_candidate(response, "B", "BLACK").move == "R4"

    def test_best_candidate_empty(self):
        assert best_candidate(AnalysisResponse(id="1"), "B", "BLACK") is None


class TestEvaluateMoves:

    def setup_method(self):
        self.game = extract_game(parse_record(THREE_MOVES))

    def check_drops(self, evaluations):
        assert [e.ply for e in evaluations] == [1, 2, 3]
        assert [e.player for e in evaluations] == ["B", "W", "B"]
        assert [e.move for e in evaluations] == ["Q16", "D4", "R4"]
        assert [e.winrate_drop for e in evaluations] == [
            pytest.approx(0.05), pytest.approx(0.15), pytest.approx(0.01),
        ]

    def test_black_perspective(self):
        evaluations = evaluate_moves(self.game, analyses_from(BLACK_WINRATES), AnalysisConfig())
        self.check_drops(evaluations)

        white_move = evaluations[1]
        assert white_move.winrate_before == pytest.approx(0.55)
        assert white_move.winrate_after == pytest.approx(0.40)

    def test_white_perspective(self):
        analyses = analyses_from(BLACK_WINRATES, lambda wr, ply: 1.0 - wr)
        evaluations = evaluate_moves(
            self.game, analyses, AnalysisConfig(report_winrates_as="WHITE")
        )
        self.check_drops(evaluations)

    def test_side_to_move_perspective(self):
        analyses = analyses_from(
            BLACK_WINRATES, lambda wr, ply: wr if ply % 2 == 0 else 1.0 - wr
        )
        evaluations = evaluate_moves(
            self.game, analyses, AnalysisConfig(report_winrates_as="SIDETOMOVE")
        )
        self.check_drops(evaluations)

    def test_analyses_in_any_order(self):
        analyses = list(reversed(analyses_from(BLACK_WINRATES)))
        self.check_drops(evaluate_moves(self.game, analyses, AnalysisConfig()))

    def test_best_move_comes_from_position_before(self):
        analyses = [
            analysis(0, ("D4", 0.48, ["D4"]), ("Q16", 0.50, ["Q16", "D4"])),
            analysis(1, ("R4", 0.47, ["R4"]), ("C3", 0.45, ["C3", "R16"])),
            analysis(2, ("R4", 0.60, ["R4"])),
            analysis(3, ("C16", 0.59, ["C16"])),
        ]
        evaluations = evaluate_moves(self.game, analyses, AnalysisConfig())

        assert evaluations[0].best_move == "Q16"
        assert evaluations[0].best_variation == ("Q16", "D4")
        assert evaluations[1].best_move == "C3"
        assert evaluations[1].winrate_drop == pytest.approx(0.15)
        assert evaluations[2].best_move == "R4"

    def test_fixed_baseline(self):
        analyses = analyses_from(BLACK_WINRATES)[1:]
        evaluations = evaluate_moves(
            self.game, analyses, AnalysisConfig(fixed_baseline=0.5)
        )
        self.check_drops(evaluations)
        assert evaluations[0].best_move is None

    def test_fixed_baseline_is_first_movers_winrate(self):
        game = extract_game(parse_record("(;SZ[19]AB[dd][pp];W[pd])"))
        analyses = [analysis(1, ("D4", 0.75, ["D4"]))]
        evaluations = evaluate_moves(game, analyses, AnalysisConfig(fixed_baseline=0.3))

        assert evaluations[0].winrate_before == pytest.approx(0.3)
        assert evaluations[0].winrate_after == pytest.approx(0.25)
        assert evaluations[0].winrate_drop == pytest.approx(0.05)

    def test_missing_ply(self):
        analyses = analyses_from(BLACK_WINRATES)
        del analyses[2]
        with pytest.raises(ProtocolError):
            evaluate_moves(self.game, analyses, AnalysisConfig())

    def test_no_candidates_reuses_previous(self):
        analyses = analyses_from(BLACK_WINRATES)
        analyses[2] = analysis(2)
        evaluations = evaluate_moves(self.game, analyses, AnalysisConfig())

        assert evaluations[1].winrate_drop == pytest.approx(0.0)
        assert evaluations[2].winrate_before == pytest.approx(0.45)
        assert evaluations[2].winrate_drop == pytest.approx(-0.14)

    def test_baseline_without_candidates(self):
        analyses = analyses_from(BLACK_WINRATES)
        analyses[0] = analysis(0)
        evaluations = evaluate_moves(self.game, analyses, AnalysisConfig())
        assert evaluations[0].winrate_before == 0.5

    def test_empty_game(self):
        game = extract_game(parse_record("(;SZ[19]KM[7.5])"))
        assert evaluate_moves(game, [], AnalysisConfig()) == []

    def test_classification(self):
        evaluations = evaluate_moves(
            self.game, analyses_from(BLACK_WINRATES), AnalysisConfig(), ReportConfig()
        )
        assert [e.classification for e in evaluations] == [QUESTIONABLE, BAD, GOOD]

    def test_no_classification_without_report_config(self):
        evaluations = evaluate_moves(self.game, analyses_from(BLACK_WINRATES), AnalysisConfig())
        assert all(e.classification == "" for e in evaluations)


class TestWorstMoves:

    def setup_method(self):
        self.evaluations = [
            make_eval(1, "B", 0.1),
            make_eval(2, "W", 0.5),
            make_eval(3, "B", 0.3),
            make_eval(4, "W", 0.5),
        ]

    def test_ranking_and_ties(self):
        worst = worst_moves(self.evaluations, 2)
        assert [e.ply for e in worst] == [2, 4]

    def test_ranking_full(self):
        worst = worst_moves(self.evaluations, 4)
        assert [e.ply for e in worst] == [2, 4, 3, 1]

    def test_input_order_does_not_matter(self):
        worst = worst_moves(list(reversed(self.evaluations)), 3)
        assert [e.ply for e in worst] == [2, 4, 3]

    def test_player_filter(self):
        assert [e.ply for e in worst_moves(self.evaluations, 3, "B")] == [3, 1]
        assert [e.ply for e in worst_moves(self.evaluations, 1, "W")] == [2]

    def test_invalid_player(self):
        with pytest.raises(ValueError):
            worst_moves(self.evaluations, 3, "X")

    def test_short_game(self):
        assert len(worst_moves(self.evaluations[:1], 3)) == 1
        assert worst_moves([], 3) == []

    def test_negative_drops_are_ranked(self):
        evaluations = [make_eval(1, "B", -0.2), make_eval(2, "W", -0.1)]
        assert [e.ply for e in worst_moves(evaluations, 3)] == [2, 1]


class TestClassifyAndSummarize:

    @pytest.mark.parametrize("drop,expected", [
        (-0.1, GOOD),
        (0.0, GOOD),
        (0.02, GOOD),
        (0.05, QUESTIONABLE),
        (0.10, BAD),
        (0.4, BAD),
    ])
    def test_classify(self, drop, expected):
        assert classify(drop, ReportConfig()) == expected

    def test_summarize(self):
        evaluations = [
            MoveEvaluation(1, "B", "Q16", 0.5, 0.49, 0.01, classification=GOOD),
            MoveEvaluation(2, "W", "D4", 0.51, 0.3, 0.21, classification=BAD),
            MoveEvaluation(3, "B", "R4", 0.7, 0.65, 0.05, classification=QUESTIONABLE),
        ]
        summary = summarize(evaluations)

        assert summary["B"]["moves"] == 2
        assert summary["B"]["good"] == 1
        assert summary["B"]["questionable"] == 1
        assert summary["B"]["bad"] == 0
        assert summary["B"]["average_drop"] == pytest.approx(0.03)
        assert summary["W"]["bad"] == 1

    def test_summarize_empty(self):
        summary = summarize([])
        assert summary["B"]["moves"] == 0
        assert summary["W"]["average_drop"] == 0.0

    def test_to_dict(self):
        evaluation = MoveEvaluation(
            1, "B", "Q16", 0.5, 0.45, 0.05, best_move="D4", best_variation=("D4", "Q16")
        )
        data = evaluation.to_dict()
        assert data["best_variation"] == ["D4", "Q16"]
        assert data["winrate_drop"] == 0.05
