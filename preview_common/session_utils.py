import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
import sys
from typing import Any, Callable, Iterator, List, Optional, Sequence, Set, Union

from preview_common.algo_utils import FuzzyRanker, ScoredCandidate, order_by_default
from preview_common.config_utils import ConfigProvider
from preview_common.core_utils import LOG, LOG_EXCEPTION
from preview_common.exclude_utils import ExclusionFilter
from preview_common.history_utils import HistoryStore, WriteMode
from preview_common.path_utils import CandidatePath, path_basename


# --- Host boundary ---

@dataclass(frozen=True)
class EditorSnapshot:
    """The document that was active before a session began, with its cursor/selection."""

    path: str
    line: int = 0
    column: int = 0
    selection_end_line: Optional[int] = None
    selection_end_column: Optional[int] = None


class CandidateSource:
    """Host file enumeration. The core never walks the file system itself."""

    def enumerate(self, exclude_globs: Sequence[str]) -> List[CandidatePath]:
        raise NotImplementedError

    def open_files(self) -> List[str]:
        return []

    def exists(self, candidate: CandidatePath) -> bool:
        return os.path.isfile(candidate.absolute_path)


class DocumentView:
    """Host rendering of documents. Handles are opaque to the core."""

    def open_preview(self, path: str, line: int, column: int) -> Any:
        raise NotImplementedError

    def open_committed(self, path: str, line: int, column: int) -> Any:
        raise NotImplementedError

    def restore(self, snapshot: EditorSnapshot) -> None:
        raise NotImplementedError


class DecorationSink:
    def highlight_line(self, handle: Any, line: int) -> None:
        raise NotImplementedError

    def clear_highlights(self, handle: Any) -> None:
        raise NotImplementedError


# --- Session model ---

class SessionMode(Enum):
    STANDARD = auto()
    RECENT_FILES = auto()


class SessionState(Enum):
    IDLE = auto()
    BROWSING = auto()
    COMMITTING = auto()
    CANCELLING = auto()


@dataclass
class PreviewSession:
    mode: SessionMode
    previously_active_file: Optional[EditorSnapshot] = None
    preview_suppressed_paths: Set[str] = field(default_factory=set)
    is_preview_mode_active: bool = False
    candidates: List[CandidatePath] = field(default_factory=list)
    highlighted_handle: Any = None
    active_path: Optional[str] = None


# Events delivered by the picker surface, one at a time
@dataclass(frozen=True)
class SessionOpened:
    mode: SessionMode
    previously_active_file: Optional[EditorSnapshot] = None


@dataclass(frozen=True)
class QueryChanged:
    query: str


@dataclass(frozen=True)
class ActiveChanged:
    item: Union[ScoredCandidate, CandidatePath, None]


@dataclass(frozen=True)
class Accepted:
    item: Union[ScoredCandidate, CandidatePath, None]


@dataclass(frozen=True)
class Cancelled:
    pass


SessionEvent = Union[SessionOpened, QueryChanged, ActiveChanged, Accepted, Cancelled]


def _as_candidate(item: Union[ScoredCandidate, CandidatePath, None]) -> Optional[CandidatePath]:
    if isinstance(item, ScoredCandidate):
        return item.candidate
    return item


class QueryDebouncer:
    """Coalesces rapid query changes: poll() yields the last query once it has been quiet for delay seconds."""

    def __init__(self, delay_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._delay = delay_seconds
        self._clock = clock
        self._pending: Optional[str] = None
        self._last_push = 0.0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def push(self, query: str) -> None:
        self._pending = query
        self._last_push = self._clock()

    def poll(self) -> Optional[str]:
        if self._pending is None or self._clock() - self._last_push < self._delay:
            return None
        query, self._pending = self._pending, None
        return query

    def flush(self) -> Optional[str]:
        query, self._pending = self._pending, None
        return query


class PreviewSessionController:
    """
    Drives one picker session at a time through Idle -> Browsing -> (Committing | Cancelling) -> Idle.

    The History Store is shared, not owned: the controller switches its preview mode on
    when a session opens and must switch it off again on every way out of Browsing.
    """

    def __init__(self, history: HistoryStore, ranker: FuzzyRanker, config_provider: ConfigProvider,
                 candidate_source: CandidateSource, document_view: DocumentView, decorations: DecorationSink):
        self._history = history
        self._ranker = ranker
        self._config_provider = config_provider
        self._candidate_source = candidate_source
        self._document_view = document_view
        self._decorations = decorations
        self._state = SessionState.IDLE
        self._session: Optional[PreviewSession] = None
        self._generation = 0
        self._displayed: List[ScoredCandidate] = []
        self._query = ""
        self.accepted: Optional[CandidatePath] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[PreviewSession]:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_query(self) -> str:
        return self._query

    @property
    def displayed_results(self) -> List[ScoredCandidate]:
        return list(self._displayed)

    # --- Transition function ---

    def dispatch(self, event: SessionEvent) -> List[ScoredCandidate]:
        """Apply one event and return the results currently on display."""
        if isinstance(event, SessionOpened):
            if self._state is not SessionState.IDLE:
                LOG("WARNING: A session is already open, ignoring open request.", file=sys.stderr)
            else:
                self._open(event.mode, event.previously_active_file)
        elif self._state is not SessionState.BROWSING:
            LOG(f"Ignoring {type(event).__name__}: no session is browsing (state={self._state.name}).", file=sys.stderr)
        elif isinstance(event, QueryChanged):
            generation = self.begin_query(event.query)
            self.complete_query(generation, self.compute_results(event.query))
        elif isinstance(event, ActiveChanged):
            self._preview(_as_candidate(event.item))
        elif isinstance(event, Accepted):
            self._accept(_as_candidate(event.item))
        elif isinstance(event, Cancelled):
            self._cancel()
        return self.displayed_results

    def open(self, mode: SessionMode = SessionMode.STANDARD, previously_active_file: Optional[EditorSnapshot] = None) -> List[ScoredCandidate]:
        return self.dispatch(SessionOpened(mode, previously_active_file))

    def on_query_changed(self, query: str) -> List[ScoredCandidate]:
        return self.dispatch(QueryChanged(query))

    def on_active_changed(self, item: Union[ScoredCandidate, CandidatePath, None]) -> List[ScoredCandidate]:
        return self.dispatch(ActiveChanged(item))

    def accept(self, item: Union[ScoredCandidate, CandidatePath, None]) -> List[ScoredCandidate]:
        return self.dispatch(Accepted(item))

    def cancel(self) -> List[ScoredCandidate]:
        return self.dispatch(Cancelled())

    @contextmanager
    def browsing(self, mode: SessionMode = SessionMode.STANDARD, previously_active_file: Optional[EditorSnapshot] = None) -> Iterator["PreviewSessionController"]:
        """Open a session and guarantee it is closed (cancelled if still browsing) on exit."""
        try:
            self.open(mode, previously_active_file)
            yield self
        finally:
            if self._state is SessionState.BROWSING:
                self.cancel()

    # --- Query handling with stale-result protection ---

    def begin_query(self, query: str) -> int:
        """Start a ranking pass for query; the returned generation identifies it."""
        self._generation += 1
        self._query = query
        return self._generation

    def complete_query(self, generation: int, results: List[ScoredCandidate]) -> bool:
        """Publish results of a ranking pass unless a newer query superseded it."""
        if self._state is not SessionState.BROWSING or generation != self._generation:
            return False
        self._displayed = list(results)
        return True

    def compute_results(self, query: str) -> List[ScoredCandidate]:
        """Rank the session's candidates for query (default order when the query is too short)."""
        if self._session is None:
            return []
        try:
            return self._ranker.rank(self._session.candidates, query)
        except (OSError, ValueError) as e:
            LOG_EXCEPTION(e, msg=f"Ranking failed for query '{query}'", exit=False)
            return []

    # --- Candidate loading ---

    def _load_candidates(self, session: PreviewSession) -> List[CandidatePath]:
        if session.mode is SessionMode.RECENT_FILES:
            return self._recent_candidates(session)

        config = self._config_provider.get()
        try:
            candidates = self._candidate_source.enumerate(ExclusionFilter.enumeration_globs(config))
        except OSError as e:
            LOG_EXCEPTION(e, msg="Could not enumerate workspace files", exit=False)
            return []
        return order_by_default(candidates, self._candidate_source.open_files())

    def _recent_candidates(self, session: PreviewSession) -> List[CandidatePath]:
        active_entry = self._history.get(session.previously_active_file.path) if session.previously_active_file else None
        candidates: List[CandidatePath] = []
        for entry in self._history.get_ordered():
            if active_entry is not None and entry.relative_path == active_entry.relative_path:
                continue
            candidate = CandidatePath(
                absolute_path=entry.absolute_path,
                relative_path=entry.relative_path,
                basename=path_basename(entry.relative_path),
            )
            try:
                if not self._candidate_source.exists(candidate):
                    continue
            except OSError as e:
                LOG(f"Could not check {entry.relative_path}: {e}", file=sys.stderr)
                continue
            candidates.append(candidate)
        return candidates

    # --- State handlers ---

    def _open(self, mode: SessionMode, previously_active_file: Optional[EditorSnapshot]) -> None:
        self._session = PreviewSession(mode=mode, previously_active_file=previously_active_file)
        self._history.set_preview_mode(True)
        try:
            self._session.is_preview_mode_active = True
            self._state = SessionState.BROWSING
            self.accepted = None
            self._displayed = []
            self._session.candidates = self._load_candidates(self._session)
            generation = self.begin_query("")
            self.complete_query(generation, self.compute_results(""))
        except Exception as e:
            LOG_EXCEPTION(e, msg=f"Could not open a {mode.name} session", exit=False)
            self._end_preview_mode()
            self._finish()
            return
        LOG(f"Session opened ({mode.name}) with {len(self._session.candidates)} candidates.", file=sys.stderr)

    def _cursor_for(self, candidate: CandidatePath) -> tuple:
        entry = self._history.get(candidate.relative_path)
        if entry is None:
            return 0, 0
        return entry.last_line, entry.last_column

    def _clear_highlight(self) -> None:
        session = self._session
        if session is None or session.highlighted_handle is None:
            return
        handle, session.highlighted_handle = session.highlighted_handle, None
        try:
            self._decorations.clear_highlights(handle)
        except Exception as e:
            LOG(f"Could not clear highlight: {e}", file=sys.stderr)

    def _preview(self, candidate: Optional[CandidatePath]) -> None:
        session = self._session
        self._clear_highlight()
        if candidate is None:
            return
        line, column = self._cursor_for(candidate)

        # Register before opening so a host activation echo is not recorded
        self._history.suppress(candidate.relative_path)
        session.preview_suppressed_paths.add(candidate.relative_path)
        try:
            handle = self._document_view.open_preview(candidate.absolute_path, line, column)
        except Exception as e:
            LOG(f"Could not preview {candidate.relative_path}: {e}", file=sys.stderr)
            return
        session.active_path = candidate.relative_path
        try:
            self._decorations.highlight_line(handle, line)
            session.highlighted_handle = handle
        except Exception as e:
            LOG(f"Could not highlight line {line} of {candidate.relative_path}: {e}", file=sys.stderr)

    def _end_preview_mode(self) -> None:
        self._history.set_preview_mode(False)
        if self._session is not None:
            self._session.preview_suppressed_paths.clear()
            self._session.is_preview_mode_active = False

    def _finish(self) -> None:
        self._state = SessionState.IDLE
        self._session = None
        self._displayed = []

    def _accept(self, candidate: Optional[CandidatePath]) -> None:
        self._state = SessionState.COMMITTING
        try:
            self._clear_highlight()
            self._end_preview_mode()
            if candidate is None:
                LOG("Nothing selected.", file=sys.stderr)
                return
            line, column = self._cursor_for(candidate)
            self._history.touch(candidate.absolute_path, line, column, mode=WriteMode.COMMITTED)
            self.accepted = candidate
            try:
                self._document_view.open_committed(candidate.absolute_path, line, column)
            except Exception as e:
                LOG(f"Could not open {candidate.relative_path}: {e}", file=sys.stderr)
        finally:
            if self._history.is_preview_mode:
                self._history.set_preview_mode(False)
            self._finish()

    def _cancel(self) -> None:
        self._state = SessionState.CANCELLING
        snapshot = self._session.previously_active_file if self._session else None
        try:
            self._clear_highlight()
            self._end_preview_mode()
            if snapshot is not None:
                try:
                    self._document_view.restore(snapshot)
                except Exception as e:
                    LOG(f"Could not restore {snapshot.path}: {e}", file=sys.stderr)
        finally:
            if self._history.is_preview_mode:
                self._history.set_preview_mode(False)
            self._finish()
