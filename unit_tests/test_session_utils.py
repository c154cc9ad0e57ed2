from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from preview_common.algo_utils import FuzzyRanker  # noqa: E402
from preview_common.config_utils import ConfigProvider, SearchConfig  # noqa: E402
from preview_common.history_utils import HistoryStore  # noqa: E402
from preview_common.path_utils import make_candidate  # noqa: E402
from preview_common.session_utils import (  # noqa: E402
    CandidateSource,
    DecorationSink,
    DocumentView,
    EditorSnapshot,
    PreviewSessionController,
    QueryDebouncer,
    SessionMode,
    SessionState,
)

ROOT = "/ws"


class FakeSource(CandidateSource):
    def __init__(self, paths, open_paths=(), missing=()):
        self.paths = list(paths)
        self.open_paths = list(open_paths)
        self.missing = set(missing)
        self.received_globs = None

    def enumerate(self, exclude_globs):
        self.received_globs = list(exclude_globs)
        return [make_candidate(p, ROOT) for p in self.paths]

    def open_files(self):
        return list(self.open_paths)

    def exists(self, candidate):
        return candidate.relative_path not in self.missing


class FakeView(DocumentView):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.fail_restore = False
        self.previews = []
        self.committed = []
        self.restored = []

    def open_preview(self, path, line, column):
        if path in self.failing:
            raise FileNotFoundError(2, "No such file", path)
        self.previews.append((path, line, column))
        return ("preview", len(self.previews))

    def open_committed(self, path, line, column):
        self.committed.append((path, line, column))
        return ("committed", len(self.committed))

    def restore(self, snapshot):
        if self.fail_restore:
            raise FileNotFoundError(2, "No such file", snapshot.path)
        self.restored.append(snapshot)


class CrashingSource(FakeSource):
    def enumerate(self, exclude_globs):
        raise RuntimeError("workspace index unavailable")


class CrashingView(DocumentView):
    def __init__(self):
        self.calls = []

    def open_preview(self, path, line, column):
        self.calls.append("preview")
        raise RuntimeError("editor rejected preview")

    def open_committed(self, path, line, column):
        self.calls.append("committed")
        raise RuntimeError("editor rejected open")

    def restore(self, snapshot):
        self.calls.append("restore")
        raise RuntimeError("editor rejected restore")


class FakeDecorations(DecorationSink):
    def __init__(self):
        self.active = {}

    def highlight_line(self, handle, line):
        self.active[handle] = line

    def clear_highlights(self, handle):
        self.active.pop(handle, None)


def _build(paths=("a.ts", "b.ts", "c.ts"), history=None, source=None, view=None, config=None):
    provider = ConfigProvider(config=config or SearchConfig())
    history = history if history is not None else HistoryStore(workspace_root=ROOT)
    source = source or FakeSource(paths)
    view = view or FakeView()
    decorations = FakeDecorations()
    controller = PreviewSessionController(history, FuzzyRanker(provider), provider, source, view, decorations)
    return controller, history, view, decorations


def _find(results, relative_path):
    return next(r for r in results if r.relative_path == relative_path)


def _ordered_paths(history):
    return [entry.relative_path for entry in history.get_ordered()]


def test_accept_records_only_the_accepted_file():
    history = HistoryStore(workspace_root=ROOT)
    history.touch("/ws/b.ts", line=10)
    controller, history, view, decorations = _build(history=history)

    results = controller.open(SessionMode.STANDARD, EditorSnapshot(path="/ws/b.ts", line=10))
    assert controller.state is SessionState.BROWSING
    assert history.is_preview_mode

    controller.on_active_changed(_find(results, "c.ts"))
    controller.accept(_find(results, "a.ts"))

    assert _ordered_paths(history) == ["a.ts", "b.ts"]
    assert history.get("c.ts") is None
    assert controller.accepted.relative_path == "a.ts"
    assert view.committed == [("/ws/a.ts", 0, 0)]
    assert decorations.active == {}
    assert not history.is_preview_mode
    assert controller.state is SessionState.IDLE


def test_host_activation_echo_during_preview_is_not_recorded():
    controller, history, view, decorations = _build()
    results = controller.open()

    controller.on_active_changed(_find(results, "c.ts"))

    assert history.touch("/ws/c.ts") is False
    assert len(history) == 0
    controller.cancel()


def test_preview_opens_at_remembered_cursor_and_highlights_it():
    history = HistoryStore(workspace_root=ROOT)
    history.touch("/ws/a.ts", line=7, column=3)
    controller, history, view, decorations = _build(history=history)
    results = controller.open()

    controller.on_active_changed(_find(results, "a.ts"))

    assert view.previews == [("/ws/a.ts", 7, 3)]
    assert list(decorations.active.values()) == [7]
    controller.cancel()


def test_moving_between_candidates_keeps_a_single_highlight():
    controller, history, view, decorations = _build()
    results = controller.open()

    controller.on_active_changed(_find(results, "a.ts"))
    controller.on_active_changed(_find(results, "b.ts"))

    assert len(decorations.active) == 1
    controller.cancel()


def test_cancel_restores_previous_file_and_leaves_history_unchanged():
    history = HistoryStore(workspace_root=ROOT)
    history.touch("/ws/b.ts", line=10)
    before = history.get_ordered()
    controller, history, view, decorations = _build(history=history)
    snapshot = EditorSnapshot(path="/ws/b.ts", line=10)

    results = controller.open(SessionMode.STANDARD, snapshot)
    controller.on_active_changed(_find(results, "a.ts"))
    controller.on_active_changed(_find(results, "c.ts"))
    controller.cancel()

    assert view.restored == [snapshot]
    assert history.get_ordered() == before
    assert decorations.active == {}
    assert not history.is_preview_mode
    assert controller.state is SessionState.IDLE


def test_failed_restore_still_releases_preview_mode():
    view = FakeView()
    view.fail_restore = True
    controller, history, view, decorations = _build(view=view)

    controller.open(SessionMode.STANDARD, EditorSnapshot(path="/ws/gone.ts"))
    controller.cancel()

    assert controller.state is SessionState.IDLE
    assert not history.is_preview_mode


def test_failed_preview_leaves_no_stale_highlight_and_keeps_browsing():
    controller, history, view, decorations = _build(
        paths=("a.ts", "gone.ts"), view=FakeView(failing={"/ws/gone.ts"}))
    results = controller.open()

    controller.on_active_changed(_find(results, "a.ts"))
    assert len(decorations.active) == 1

    controller.on_active_changed(_find(results, "gone.ts"))
    assert decorations.active == {}
    assert controller.state is SessionState.BROWSING

    controller.on_active_changed(_find(results, "a.ts"))
    assert len(decorations.active) == 1
    controller.cancel()


def test_events_outside_a_session_are_no_ops():
    controller, history, view, decorations = _build()

    assert controller.accept(make_candidate("a.ts", ROOT)) == []
    assert controller.cancel() == []
    assert controller.on_query_changed("abc") == []
    assert controller.state is SessionState.IDLE
    assert len(history) == 0
    assert view.committed == [] and view.restored == []


def test_second_open_is_ignored():
    controller, history, view, decorations = _build()
    controller.open()
    session = controller.session

    controller.open(SessionMode.RECENT_FILES)

    assert controller.session is session
    assert controller.session.mode is SessionMode.STANDARD
    controller.cancel()


def test_stale_query_results_are_discarded():
    controller, history, view, decorations = _build(paths=("src/index.ts", "src/lib/index.ts", "docs/guide.md"))
    controller.open()

    older = controller.begin_query("gui")
    newer = controller.begin_query("index")
    newer_results = controller.compute_results("index")

    assert controller.complete_query(newer, newer_results) is True
    assert controller.complete_query(older, controller.compute_results("gui")) is False
    assert controller.displayed_results == newer_results
    assert controller.current_query == "index"
    controller.cancel()


def test_query_changes_rank_candidates():
    controller, history, view, decorations = _build(paths=("src/lib/index.ts", "docs/guide.md", "src/index.ts"))
    controller.open()

    results = controller.on_query_changed("index")

    assert [r.relative_path for r in results] == ["src/index.ts", "src/lib/index.ts"]
    controller.cancel()


def test_standard_mode_lists_open_files_first_and_passes_exclusions():
    source = FakeSource(["a.ts", "b.ts", "node_modules/x.js"], open_paths=["b.ts"])
    controller, history, view, decorations = _build(source=source)

    results = controller.open()

    assert [r.relative_path for r in results] == ["b.ts", "a.ts"]
    assert "**/node_modules/**" in source.received_globs
    controller.cancel()


def test_recent_files_mode_skips_active_and_missing_files():
    history = HistoryStore(workspace_root=ROOT)
    for name in ("w", "x", "y", "z"):
        history.touch(f"/ws/{name}.ts")
    source = FakeSource([], missing={"y.ts"})
    controller, history, view, decorations = _build(history=history, source=source)

    results = controller.open(SessionMode.RECENT_FILES, EditorSnapshot(path="/ws/z.ts"))

    assert [r.relative_path for r in results] == ["x.ts", "w.ts"]
    controller.cancel()


def test_browsing_context_cancels_on_error():
    controller, history, view, decorations = _build()

    with pytest.raises(RuntimeError):
        with controller.browsing():
            assert history.is_preview_mode
            raise RuntimeError("picker crashed")

    assert controller.state is SessionState.IDLE
    assert not history.is_preview_mode


def test_open_that_fails_to_load_candidates_returns_to_idle():
    controller, history, view, decorations = _build(source=CrashingSource([]))

    assert controller.open() == []

    assert controller.state is SessionState.IDLE
    assert controller.session is None
    assert not history.is_preview_mode


def test_browsing_context_releases_preview_mode_when_open_fails():
    controller, history, view, decorations = _build(source=CrashingSource([]))

    with controller.browsing() as browsing_controller:
        assert browsing_controller.state is SessionState.IDLE

    assert not history.is_preview_mode


def test_unexpected_view_errors_do_not_break_the_session():
    view = CrashingView()
    controller, history, view, decorations = _build(view=view)
    results = controller.open(SessionMode.STANDARD, EditorSnapshot(path="/ws/b.ts"))

    controller.on_active_changed(_find(results, "a.ts"))
    assert controller.state is SessionState.BROWSING
    assert decorations.active == {}

    controller.accept(_find(results, "a.ts"))
    assert controller.state is SessionState.IDLE
    assert controller.accepted.relative_path == "a.ts"
    assert _ordered_paths(history) == ["a.ts"]
    assert not history.is_preview_mode

    controller.open(SessionMode.STANDARD, EditorSnapshot(path="/ws/b.ts"))
    controller.cancel()
    assert view.calls == ["preview", "committed", "restore"]
    assert controller.state is SessionState.IDLE
    assert not history.is_preview_mode


def test_diagnostics_go_to_stderr_not_stdout(capsys):
    controller, history, view, decorations = _build()
    controller.open()
    controller.open()
    controller.cancel()
    controller.cancel()

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "already open" in captured.err
    assert "no session is browsing" in captured.err


def test_debouncer_emits_last_query_after_quiet_period():
    now = [0.0]
    debouncer = QueryDebouncer(0.08, clock=lambda: now[0])

    debouncer.push("i")
    now[0] = 0.01
    debouncer.push("in")
    now[0] = 0.05
    assert debouncer.poll() is None

    now[0] = 0.2
    assert debouncer.poll() == "in"
    assert debouncer.poll() is None

    debouncer.push("ind")
    assert debouncer.has_pending
    assert debouncer.flush() == "ind"
    assert not debouncer.has_pending
