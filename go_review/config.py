"""
Configuration management for Go Move Review.

Loads configuration from config.yaml and provides typed, immutable access.
The configuration is built once at startup and passed explicitly; overrides
(e.g. from the command line) produce a new value via with_overrides().
Supports both Mac (Darwin) and Linux platforms with automatic detection.
"""

import dataclasses
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

# Values accepted by KataGo's reportAnalysisWinratesAs setting
WINRATE_PERSPECTIVES = ("BLACK", "WHITE", "SIDETOMOVE")


def get_platform() -> str:
    """
    Detect the current operating system.

    Returns:
        'mac' for macOS/Darwin, 'linux' for Linux
    """
    system = platform.system().lower()
    if system == 'darwin':
        return 'mac'
    elif system == 'linux':
        return 'linux'
    else:
        # Default to linux for other Unix-like systems
        return 'linux'


@dataclass(frozen=True)
class KataGoConfig:
    """KataGo analysis engine invocation."""
    katago_path: str = "katago"
    model_path: str = ""
    config_path: str = ""
    extra_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisConfig:
    """Analysis parameters. rules/komi/board_size of None defer to the record."""
    rules: Optional[str] = None
    komi: Optional[float] = None
    board_size: Optional[int] = None
    max_visits: int = 500
    report_winrates_as: str = "BLACK"
    fixed_baseline: Optional[float] = None
    exchange_timeout: Optional[float] = None


@dataclass(frozen=True)
class ReportConfig:
    """Output shaping parameters."""
    worst_count: int = 3
    good_threshold: float = 0.02
    bad_threshold: float = 0.10
    show_variations: bool = False
    player: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    katago: KataGoConfig = field(default_factory=KataGoConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    def with_overrides(self, **sections) -> 'AppConfig':
        """
        Return a copy with some fields of some sections replaced.

        Usage:
            config.with_overrides(analysis={"komi": 6.5}, report={"worst_count": 5})

        Keys whose value is None are left untouched.
        """
        replaced = {}
        for name, values in sections.items():
            current = getattr(self, name)
            changes = {k: v for k, v in values.items() if v is not None}
            replaced[name] = dataclasses.replace(current, **changes)
        result = dataclasses.replace(self, **replaced)
        validate_config(result)
        return result


def validate_config(config: AppConfig) -> None:
    """
    Check cross-field constraints.

    Raises:
        ValueError: If the configuration is inconsistent
    """
    analysis = config.analysis
    report = config.report

    if analysis.report_winrates_as not in WINRATE_PERSPECTIVES:
        raise ValueError(
            f"report_winrates_as must be one of {WINRATE_PERSPECTIVES}, "
            f"got {analysis.report_winrates_as!r}"
        )
    if analysis.max_visits < 1:
        raise ValueError(f"max_visits must be positive, got {analysis.max_visits}")
    if analysis.board_size is not None and not (2 <= analysis.board_size <= 19):
        raise ValueError(f"board_size must be 2-19, got {analysis.board_size}")
    if analysis.fixed_baseline is not None and not (0.0 <= analysis.fixed_baseline <= 1.0):
        raise ValueError(f"fixed_baseline must be within 0-1, got {analysis.fixed_baseline}")
    if analysis.exchange_timeout is not None and analysis.exchange_timeout <= 0:
        raise ValueError(f"exchange_timeout must be positive, got {analysis.exchange_timeout}")

    if report.worst_count < 1:
        raise ValueError(f"worst_count must be positive, got {report.worst_count}")
    if report.player is not None and report.player not in ("B", "W"):
        raise ValueError(f"player must be 'B' or 'W', got {report.player!r}")
    if report.good_threshold > report.bad_threshold:
        raise ValueError(
            f"good_threshold ({report.good_threshold}) must not exceed "
            f"bad_threshold ({report.bad_threshold})"
        )


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def _find_config_file() -> Optional[Path]:
    search_paths = [
        Path.cwd() / "config.yaml",
        get_project_root() / "config.yaml",
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


def _optional(data: dict, key: str, cast):
    value = data.get(key)
    return None if value is None else cast(value)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml. If None, searches in:
                     1. Current directory
                     2. Project root (relative to this file)
                     and falls back to defaults if neither exists.

    Returns:
        AppConfig instance

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
        ValueError: If config file is invalid
    """
    if config_path is None:
        found = _find_config_file()
        if found is None:
            return AppConfig()
        path = found
    else:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

    if not data:
        raise ValueError(f"Config file is empty: {path}")
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    base_dir = path.resolve().parent

    # Resolve relative paths against the config file's directory
    def resolve_path(p: str) -> str:
        if not p:
            return p
        candidate = Path(p)
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        return str(candidate.resolve())

    katago_data = data.get("katago") or {}

    # Check for multi-platform config (has 'mac' or 'linux' subsections)
    if 'mac' in katago_data or 'linux' in katago_data:
        current_platform = get_platform()
        platform_data = katago_data.get(current_platform) or {}
        if not platform_data:
            raise ValueError(f"No config found for platform '{current_platform}'")
        katago_data = platform_data

    katago_path = katago_data.get("katago_path", "katago")
    # A bare executable name is looked up on PATH, not resolved
    if "/" in katago_path or "\\" in katago_path:
        katago_path = resolve_path(katago_path)

    katago_config = KataGoConfig(
        katago_path=katago_path,
        model_path=resolve_path(katago_data.get("model_path", "")),
        config_path=resolve_path(katago_data.get("config_path", "")),
        extra_args=tuple(str(a) for a in katago_data.get("extra_args", []) or []),
    )

    # Parse analysis config (optional, has defaults)
    analysis_data = data.get("analysis") or {}
    analysis_config = AnalysisConfig(
        rules=_optional(analysis_data, "rules", str),
        komi=_optional(analysis_data, "komi", float),
        board_size=_optional(analysis_data, "board_size", int),
        max_visits=int(analysis_data.get("max_visits", 500)),
        report_winrates_as=str(analysis_data.get("report_winrates_as", "BLACK")).upper(),
        fixed_baseline=_optional(analysis_data, "fixed_baseline", float),
        exchange_timeout=_optional(analysis_data, "exchange_timeout", float),
    )

    # Parse report config (optional, has defaults)
    report_data = data.get("report") or {}
    report_config = ReportConfig(
        worst_count=int(report_data.get("worst_count", 3)),
        good_threshold=float(report_data.get("good_threshold", 0.02)),
        bad_threshold=float(report_data.get("bad_threshold", 0.10)),
        show_variations=bool(report_data.get("show_variations", False)),
        player=_optional(report_data, "player", lambda p: str(p).upper()),
    )

    config = AppConfig(
        katago=katago_config,
        analysis=analysis_config,
        report=report_config,
    )
    validate_config(config)
    return config
