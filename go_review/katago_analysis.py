"""
KataGo analysis engine communication module.

Drives KataGo's JSON line protocol ("katago analysis") with exactly one
query in flight at a time:
- An adapter thread owns the engine's stdin/stdout and is fed through a
  single-slot request queue; answers come back on a single-slot response queue.
  The queues only buffer, they do not hand off synchronously: put() returns
  before the adapter has taken the request, and exchange() blocking on the
  response is what keeps a second query from being sent early
- Warnings KataGo prints on their own line ahead of a result are logged and
  skipped; the next result or error line answers the query
- A separate daemon thread drains stderr into the log so the engine never
  blocks on a full pipe
- The process is terminated on every exit path via the context manager
"""

import atexit
import logging
import subprocess
import threading
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import AnalysisConfig, KataGoConfig
from .errors import ProcessError, ProtocolError
from .sgf_handler import GameRecord

logger = logging.getLogger(__name__)

# Sentinel closing the request channel
_CLOSE = object()

SHUTDOWN_TIMEOUT = 5.0


# ============================================================================
# Wire Models
# ============================================================================

class AnalysisQuery(BaseModel):
    """One analysis request line."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    initial_stones: List[List[str]] = Field(default_factory=list, alias="initialStones")
    initial_player: Optional[str] = Field(None, alias="initialPlayer")
    moves: List[List[str]] = Field(default_factory=list)
    rules: str
    komi: float
    board_x_size: int = Field(..., alias="boardXSize")
    board_y_size: int = Field(..., alias="boardYSize")
    analyze_turns: List[int] = Field(..., alias="analyzeTurns")
    max_visits: Optional[int] = Field(None, alias="maxVisits")
    include_policy: bool = Field(False, alias="includePolicy")

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class MoveInfo(BaseModel):
    """A candidate move reported by the engine."""
    move: str
    winrate: float
    visits: int = 0
    order: Optional[int] = None
    pv: List[str] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    """One analysis response line. Extra fields sent by KataGo are ignored."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    error: Optional[str] = None
    warning: Optional[str] = None
    field: Optional[str] = None
    turn_number: Optional[int] = Field(None, alias="turnNumber")
    move_infos: List[MoveInfo] = Field(default_factory=list, alias="moveInfos")


def parse_response(line: str) -> AnalysisResponse:
    """
    Parse a raw response line.

    Raises:
        ProtocolError: If the line is not a JSON object of the expected shape
    """
    try:
        return AnalysisResponse.model_validate_json(line)
    except ValidationError as e:
        raise ProtocolError(f"unparseable engine response {line.strip()[:200]!r}: {e}")


def is_standalone_warning(response: AnalysisResponse) -> bool:
    """
    True for a warning KataGo sends on its own line before the actual result.

    Such lines carry only id, field and warning; the query is still pending.
    """
    return (
        bool(response.warning)
        and not response.error
        and response.turn_number is None
        and not response.move_infos
    )


def check_response(response: AnalysisResponse, query_id: str) -> None:
    """
    Validate a response against the query it answers.

    Raises:
        ProtocolError: If the engine reported an error or the id does not match
    """
    if response.error:
        raise ProtocolError(f"KataGo error for query {response.id or query_id}: {response.error}")
    if response.id != query_id:
        raise ProtocolError(f"response id {response.id!r} does not match query {query_id!r}")
    if response.warning:
        logger.warning(f"KataGo warning for query {query_id}: {response.warning}")


def build_command(config: KataGoConfig) -> List[str]:
    """Build the command line for the KataGo JSON analysis engine."""
    cmd = [config.katago_path, "analysis"]
    if config.model_path:
        cmd.extend(["-model", config.model_path])
    if config.config_path:
        cmd.extend(["-config", config.config_path])
    cmd.extend(config.extra_args)
    return cmd


# ============================================================================
# Engine Adapter
# ============================================================================

class KataGoAnalysisEngine:
    """
    KataGo analysis engine wrapper with a one-query-in-flight discipline.

    Usage:
        with KataGoAnalysisEngine(config) as engine:
            response = engine.exchange(query)

    exchange() blocks until the matching response has been read, so a
    second query can never be sent while one is pending.
    """

    def __init__(
        self,
        config: KataGoConfig,
        command: Optional[List[str]] = None,
        exchange_timeout: Optional[float] = None,
    ):
        """
        Args:
            config: KataGo configuration with paths to executable, model, and config
            command: Full command line, overriding the one built from config
            exchange_timeout: Seconds to wait for each response (None waits forever)
        """
        self.config = config
        self.command = list(command) if command else build_command(config)
        self.exchange_timeout = exchange_timeout
        self.process: Optional[subprocess.Popen] = None
        self.queries_sent = 0
        self._requests: Queue = Queue(maxsize=1)
        self._responses: Queue = Queue(maxsize=1)
        self._adapter_thread: Optional[threading.Thread] = None
        self._stderr_thread: Optional[threading.Thread] = None
        self._exchange_lock = threading.Lock()
        self._process_lock = threading.Lock()

    def start(self) -> None:
        """
        Start the KataGo subprocess and its reader threads.

        Raises:
            ProcessError: If KataGo fails to start
        """
        if self.process is not None:
            return

        logger.info(f"Starting KataGo analysis engine: {' '.join(self.command)}")
        try:
            self.process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,  # Line buffered
            )
        except FileNotFoundError:
            raise ProcessError(f"KataGo executable not found: {self.command[0]}")
        except PermissionError:
            raise ProcessError(f"Permission denied executing: {self.command[0]}")
        except OSError as e:
            raise ProcessError(f"Failed to start KataGo: {e}")

        atexit.register(self.shutdown)

        self._stderr_thread = threading.Thread(
            target=self._drain_stderr, daemon=True, name="katago-stderr"
        )
        self._adapter_thread = threading.Thread(
            target=self._adapter_loop, daemon=True, name="katago-adapter"
        )
        self._stderr_thread.start()
        self._adapter_thread.start()

    def _drain_stderr(self) -> None:
        """Forward stderr lines to the log until the pipe closes."""
        stream = self.process.stderr
        try:
            for line in stream:
                logger.debug(f"KataGo stderr: {line.rstrip()}")
        except (OSError, ValueError) as e:
            logger.debug(f"Stopped reading KataGo stderr: {e}")

    def _adapter_loop(self) -> None:
        """Write one request line, read its response, until closed."""
        while True:
            request = self._requests.get()
            if request is _CLOSE:
                break
            self._responses.put(self._round_trip(request))
        self._terminate_process()

    def _round_trip(self, request: str):
        """Send one request; return the parsed answer or the exception to raise."""
        process = self.process
        try:
            process.stdin.write(request + "\n")
            process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            return ProcessError(f"KataGo process died unexpectedly: {e}")

        while True:
            try:
                line = process.stdout.readline()
            except (OSError, ValueError) as e:
                return ProcessError(f"Error reading from KataGo: {e}")
            if not line:
                return ProcessError(
                    f"KataGo process terminated unexpectedly (exit code {process.poll()})"
                )

            logger.debug(f"Response: {line.rstrip()}")
            try:
                response = parse_response(line)
            except ProtocolError as e:
                return e
            if not is_standalone_warning(response):
                return response
            logger.warning(
                f"KataGo warning for query {response.id} "
                f"(field {response.field or '?'}): {response.warning}"
            )

    def exchange(self, query: AnalysisQuery) -> AnalysisResponse:
        """
        Send one query and block for its response.

        Raises:
            ProcessError: If the engine is not running, dies, or times out
            ProtocolError: If the response is invalid, mismatched or an error
        """
        with self._exchange_lock:
            if not self.is_running():
                raise ProcessError("KataGo process is not running")

            line = query.to_json_line()
            logger.debug(f"Sending query: {line}")
            # Returns once the slot is free, not once the adapter has read it
            self._requests.put(line)
            self.queries_sent += 1

            try:
                result = self._responses.get(timeout=self.exchange_timeout)
            except Empty:
                raise ProcessError(
                    f"No response to query {query.id} within {self.exchange_timeout}s"
                )

            if isinstance(result, Exception):
                raise result

            check_response(result, query.id)
            return result

    def is_running(self) -> bool:
        """Check if the KataGo process is running."""
        return self.process is not None and self.process.poll() is None

    def _terminate_process(self) -> None:
        with self._process_lock:
            process = self.process
            if process is None or process.poll() is not None:
                return
            try:
                process.stdin.close()
            except OSError:
                pass  # Pipe already broken
            process.terminate()
            try:
                process.wait(timeout=SHUTDOWN_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("KataGo did not exit after terminate, killing it")
                process.kill()
                process.wait(timeout=SHUTDOWN_TIMEOUT)

    def shutdown(self) -> None:
        """
        Close the request channel and make sure the process is gone.

        Safe to call multiple times.
        """
        if self.process is None:
            return

        try:
            self._requests.put(_CLOSE, timeout=SHUTDOWN_TIMEOUT)
        except Full:
            logger.warning("KataGo adapter did not accept shutdown request")

        if self._adapter_thread is not None:
            self._adapter_thread.join(timeout=SHUTDOWN_TIMEOUT)

        # Adapter may be stuck reading from a hung engine
        if self.process.poll() is None:
            logger.warning("Killing KataGo process")
            self.process.kill()
        self.process.wait(timeout=SHUTDOWN_TIMEOUT)

        if self._adapter_thread is not None:
            self._adapter_thread.join(timeout=SHUTDOWN_TIMEOUT)
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=SHUTDOWN_TIMEOUT)

        for stream in (self.process.stdin, self.process.stdout, self.process.stderr):
            if stream is None or stream.closed:
                continue
            try:
                stream.close()
            except OSError:
                pass  # Pipe already broken

        atexit.unregister(self.shutdown)
        logger.info(f"KataGo analysis engine stopped (exit code {self.process.returncode})")
        self.process = None

    def __enter__(self) -> 'KataGoAnalysisEngine':
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args) -> None:
        """Context manager exit."""
        self.shutdown()

    def __repr__(self) -> str:
        status = "running" if self.is_running() else "stopped"
        return f"KataGoAnalysisEngine(status={status}, queries={self.queries_sent})"


# ============================================================================
# Sequencer
# ============================================================================

@dataclass(frozen=True)
class PlyAnalysis:
    """Engine response for the position reached after `ply` moves."""
    ply: int
    response: AnalysisResponse


class AnalysisSequencer:
    """
    Analyze every move-prefix of a game, one query at a time.

    For a game of k moves this sends a baseline query for ply 0 (unless a
    fixed baseline is configured) followed by one query per ply 1..k, each
    only after the previous response has been consumed. The engine is
    started lazily and is never started for a game without moves.
    """

    def __init__(
        self,
        katago_config: KataGoConfig,
        analysis_config: AnalysisConfig,
        engine_factory: Optional[Callable[[], KataGoAnalysisEngine]] = None,
    ):
        self.katago_config = katago_config
        self.analysis_config = analysis_config
        self.engine_factory = engine_factory or self._default_engine
        self._query_counter = 0

    def _default_engine(self) -> KataGoAnalysisEngine:
        return KataGoAnalysisEngine(
            self.katago_config,
            exchange_timeout=self.analysis_config.exchange_timeout,
        )

    def next_query_id(self) -> str:
        self._query_counter += 1
        return str(self._query_counter)

    def first_ply(self) -> int:
        return 1 if self.analysis_config.fixed_baseline is not None else 0

    def query_count(self, game: GameRecord) -> int:
        """Number of queries run() will send for this game."""
        if not game.moves:
            return 0
        return len(game.moves) - self.first_ply() + 1

    def build_query(self, game: GameRecord, ply: int) -> AnalysisQuery:
        """Build the query for the position after the first `ply` moves."""
        if not (0 <= ply <= len(game.moves)):
            raise ValueError(f"ply must be 0-{len(game.moves)}, got {ply}")

        return AnalysisQuery(
            id=self.next_query_id(),
            initial_stones=[stone.to_pair() for stone in game.initial_stones],
            initial_player=game.moves[0].player if game.moves else None,
            moves=[move.to_pair() for move in game.moves[:ply]],
            rules=game.rules,
            komi=game.komi,
            board_x_size=game.board_size,
            board_y_size=game.board_size,
            analyze_turns=[ply],
            max_visits=self.analysis_config.max_visits,
        )

    def run(
        self,
        game: GameRecord,
        progress: Optional[Callable[[], object]] = None,
    ) -> List[PlyAnalysis]:
        """
        Analyze each move-prefix of a game.

        Args:
            game: Extracted game record
            progress: Called once after each consumed response

        Returns:
            PlyAnalysis list in strictly increasing ply order
        """
        if not game.moves:
            logger.info("No moves to analyze, engine not started")
            return []

        results = []
        with self.engine_factory() as engine:
            for ply in range(self.first_ply(), len(game.moves) + 1):
                query = self.build_query(game, ply)
                response = engine.exchange(query)
                results.append(PlyAnalysis(ply=ply, response=response))
                if progress is not None:
                    progress()
        return results
