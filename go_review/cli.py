"""
Command-line interface for Go Move Review.

Usage:
    # Review a game with KataGo on PATH
    python -m go_review.cli game.sgf --model kata1.bin.gz --katago-config analysis.cfg

    # Several games, worst 5 moves of Black, JSON output
    python -m go_review.cli a.sgf b.sgf --worst 5 --player B --json

    # Legacy behaviour: assume a 50% win rate before the first move
    python -m go_review.cli game.sgf --fixed-baseline 0.5
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import AppConfig, load_config
from .errors import ReviewError
from .reviewer import GameReview, MoveReviewer, format_review

logger = logging.getLogger(__name__)


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="go-review",
        description="Find the worst moves of Go games (SGF) using the KataGo analysis engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Review one game
  %(prog)s game.sgf --model kata1.bin.gz --katago-config analysis.cfg

  # Worst 5 moves by White, with the engine's preferred variations
  %(prog)s game.sgf --worst 5 --player W --variations

  # Override komi and rules from the record
  %(prog)s game.sgf --komi 6.5 --rules japanese

  # Machine-readable output for several games
  %(prog)s games/*.sgf --json

  # Pass KataGo flags through (use = for values starting with a dash)
  %(prog)s game.sgf --katago-arg=-override-config --katago-arg=numSearchThreads=4
        """
    )

    parser.add_argument(
        "files",
        nargs="+",
        metavar="SGF",
        help="Game record files to review"
    )

    # Analysis parameters
    analysis = parser.add_argument_group("analysis")
    analysis.add_argument(
        "--rules",
        type=str,
        default=None,
        help="Rules passed to KataGo (default: from record, else tromp-taylor)"
    )
    analysis.add_argument(
        "--komi", "-k",
        type=float,
        default=None,
        help="Komi value (default: from record, else 7.5)"
    )
    analysis.add_argument(
        "--size", "-s",
        type=int,
        default=None,
        help="Board size (default: from record, else 19)"
    )
    analysis.add_argument(
        "--visits", "-V",
        type=int,
        default=None,
        help="Maximum KataGo visits per position"
    )
    analysis.add_argument(
        "--fixed-baseline",
        type=float,
        default=None,
        metavar="WINRATE",
        help="Use this win rate before the first move instead of querying KataGo"
    )

    # Output shaping
    output = parser.add_argument_group("output")
    output.add_argument(
        "--worst", "-n",
        type=int,
        default=None,
        help="Number of worst moves to report (default: 3)"
    )
    output.add_argument(
        "--player", "-p",
        type=str.upper,
        choices=["B", "W"],
        default=None,
        help="Only rank moves by this player"
    )
    output.add_argument(
        "--good-threshold",
        type=float,
        default=None,
        help="Largest win rate drop still classified as good (default: 0.02)"
    )
    output.add_argument(
        "--bad-threshold",
        type=float,
        default=None,
        help="Smallest win rate drop classified as bad (default: 0.10)"
    )
    output.add_argument(
        "--variations",
        action="store_true",
        default=None,
        help="Show the engine's preferred variation for each worst move"
    )
    output.add_argument(
        "--json",
        action="store_true",
        help="Output reviews as JSON"
    )

    # Engine invocation
    engine = parser.add_argument_group("engine")
    engine.add_argument(
        "--katago",
        type=str,
        default=None,
        help="Path to the KataGo executable"
    )
    engine.add_argument(
        "--katago-arg",
        action="append",
        default=None,
        metavar="ARG",
        help=(
            "Extra argument passed to KataGo (repeatable); "
            "write --katago-arg=-flag for values starting with '-'"
        )
    )
    engine.add_argument(
        "--model",
        type=str,
        default=None,
        help="Path to the KataGo model file"
    )
    engine.add_argument(
        "--katago-config",
        type=str,
        default=None,
        help="Path to the KataGo analysis config file"
    )
    engine.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for each KataGo response (default: no limit)"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config.yaml file"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (debug logging, including KataGo stderr)"
    )

    return parser.parse_args(args)


def apply_args(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a new config with command line values layered on top."""
    return config.with_overrides(
        katago={
            "katago_path": args.katago,
            "model_path": args.model,
            "config_path": args.katago_config,
            "extra_args": tuple(args.katago_arg) if args.katago_arg else None,
        },
        analysis={
            "rules": args.rules,
            "komi": args.komi,
            "board_size": args.size,
            "max_visits": args.visits,
            "fixed_baseline": args.fixed_baseline,
            "exchange_timeout": args.timeout,
        },
        report={
            "worst_count": args.worst,
            "player": args.player,
            "good_threshold": args.good_threshold,
            "bad_threshold": args.bad_threshold,
            "show_variations": args.variations,
        },
    )


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        stream=sys.stderr,
    )


def run_reviews(reviewer: MoveReviewer, args: argparse.Namespace) -> int:
    """Review every file, isolating failures. Returns the exit status."""
    show_progress = not (args.no_progress or args.json)
    reviews: List[GameReview] = []
    failures = 0

    for path in args.files:
        try:
            review = reviewer.review_file(path, show_progress=show_progress)
        except ReviewError as e:
            print(f"Error in {path}: {e}", file=sys.stderr)
            failures += 1
            continue
        except OSError as e:
            print(f"Error in {path}: cannot read file: {e}", file=sys.stderr)
            failures += 1
            continue

        if args.json:
            reviews.append(review)
        else:
            print(format_review(review, reviewer.config.report.show_variations))

    if args.json:
        print(json.dumps([r.to_dict() for r in reviews], indent=2))

    if failures:
        logger.info(f"{failures} of {len(args.files)} file(s) failed")
    return 1 if failures else 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)
    setup_logging(parsed.verbose)

    # Load config
    try:
        config = apply_args(load_config(parsed.config), parsed)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Please create a config.yaml file or specify --config path.", file=sys.stderr)
        return 1
    except (ValueError, TypeError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    reviewer = MoveReviewer(config=config)
    try:
        return run_reviews(reviewer, parsed)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
