import shutil
from typing import List, Optional

from prompt_toolkit.application import Application
from prompt_toolkit.buffer import Buffer
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.key_processor import KeyPressEvent
from prompt_toolkit.layout.containers import HSplit, VSplit, Window
from prompt_toolkit.layout.controls import BufferControl, FormattedTextControl
from prompt_toolkit.layout.dimension import D
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.styles import Style

from preview_common.algo_utils import ScoredCandidate
from preview_common.config_utils import ConfigProvider
from preview_common.constants import PREVIEW_CONTEXT_LINES
from preview_common.format_utils import truncate_path_middle
from preview_common.host_utils import TerminalDecorations, TerminalDocumentView
from preview_common.path_utils import CandidatePath
from preview_common.session_utils import EditorSnapshot, PreviewSessionController, QueryDebouncer, SessionMode

PICKER_STYLE = Style.from_dict({
    "prompt": "bold",
    "selected": "reverse",
    "match": "bold fg:ansiyellow",
    "line-number": "fg:ansibrightblack",
    "highlight": "bg:ansiblue fg:ansiwhite",
    "status": "fg:ansibrightblack",
})


class QuickOpenPicker:
    """
    Full-screen picker: query line, ranked results on the left, preview of the active result on the right.

    Up/Down (or Ctrl-P/Ctrl-N) move the active result, Enter accepts it, Esc or Ctrl-C cancels.
    Query edits are debounced before they reach the controller.
    """

    def __init__(self, controller: PreviewSessionController, document_view: TerminalDocumentView,
                 decorations: TerminalDecorations, config_provider: ConfigProvider, title: str = "Go to file"):
        self._controller = controller
        self._document_view = document_view
        self._decorations = decorations
        self._title = title
        self._results: List[ScoredCandidate] = []
        self._active_index = 0
        self._debouncer = QueryDebouncer(config_provider.get().debounce_seconds)
        self.query_buffer = Buffer(multiline=False, on_text_changed=self._on_text_changed)
        self.app = self._build_application()

    # --- Controller wiring ---

    def _on_text_changed(self, _buffer: Buffer) -> None:
        self._debouncer.push(self.query_buffer.text)

    def _apply_query(self, query: str) -> None:
        self.set_results(self._controller.on_query_changed(query))

    def _before_render(self, _app: Application) -> None:
        query = self._debouncer.poll()
        if query is not None:
            self._apply_query(query)

    def set_results(self, results: List[ScoredCandidate]) -> None:
        self._results = list(results)
        self._active_index = 0
        self._preview_active()

    @property
    def active_item(self) -> Optional[ScoredCandidate]:
        if not self._results:
            return None
        return self._results[self._active_index]

    def _preview_active(self) -> None:
        self._controller.on_active_changed(self.active_item)

    def move(self, step: int) -> None:
        if not self._results:
            return
        self._active_index = (self._active_index + step) % len(self._results)
        self._preview_active()

    def accept(self) -> Optional[CandidatePath]:
        pending = self._debouncer.flush()
        if pending is not None:
            self._apply_query(pending)
        self._controller.accept(self.active_item)
        return self._controller.accepted

    def cancel(self) -> None:
        self._debouncer.flush()
        self._controller.cancel()

    # --- Rendering ---

    def _results_fragments(self) -> StyleAndTextTuples:
        width = max(int(shutil.get_terminal_size().columns * 0.4) - 2, 10)
        fragments: StyleAndTextTuples = []
        for i, result in enumerate(self._results):
            row_style = "class:selected" if i == self._active_index else ""
            path = result.relative_path
            display = truncate_path_middle(path, width)
            if display != path or not result.match_positions:
                fragments.append((row_style, display))
            else:
                marked = set(result.match_positions)
                for j, ch in enumerate(display):
                    fragments.append((f"{row_style} class:match" if j in marked else row_style, ch))
            fragments.append(("", "\n"))
        return fragments

    def _preview_fragments(self) -> StyleAndTextTuples:
        handle = self._document_view.active
        if handle is None:
            return [("class:status", "No preview")]
        highlighted = self._decorations.highlighted_lines(handle)
        start = max(0, handle.line - PREVIEW_CONTEXT_LINES // 2)
        fragments: StyleAndTextTuples = []
        for number, text in enumerate(handle.lines[start:start + PREVIEW_CONTEXT_LINES], start=start):
            line_style = "class:highlight" if number in highlighted else ""
            fragments.append(("class:line-number", f"{number + 1:>5} "))
            fragments.append((line_style, f"{text}\n"))
        return fragments

    def _status_fragments(self) -> StyleAndTextTuples:
        count = len(self._results)
        return [("class:status", f"{self._title}: {count} result{'s' if count != 1 else ''}  (Enter open, Esc cancel)")]

    def _build_application(self) -> Application:
        key_bindings = KeyBindings()

        @key_bindings.add("up")
        @key_bindings.add("c-p")
        def _(event: KeyPressEvent):
            self.move(-1)

        @key_bindings.add("down")
        @key_bindings.add("c-n")
        def _(event: KeyPressEvent):
            self.move(1)

        @key_bindings.add("enter")
        def _(event: KeyPressEvent):
            event.app.exit(result=self.accept())

        @key_bindings.add("escape", eager=True)
        @key_bindings.add("c-c")
        def _(event: KeyPressEvent):
            self.cancel()
            event.app.exit(result=None)

        query_row = VSplit([
            Window(FormattedTextControl([("class:prompt", "> ")]), width=2, dont_extend_width=True),
            Window(BufferControl(buffer=self.query_buffer), height=1),
        ], height=1)
        body = VSplit([
            Window(FormattedTextControl(self._results_fragments), width=D(weight=2)),
            Window(width=1, char="│"),
            Window(FormattedTextControl(self._preview_fragments), width=D(weight=3)),
        ])
        root = HSplit([
            query_row,
            Window(height=1, char="─"),
            body,
            Window(FormattedTextControl(self._status_fragments), height=1),
        ])
        return Application(
            layout=Layout(root, focused_element=self.query_buffer),
            key_bindings=key_bindings,
            style=PICKER_STYLE,
            full_screen=True,
            refresh_interval=0.05,
            before_render=self._before_render,
        )


def run_quick_open(controller: PreviewSessionController, document_view: TerminalDocumentView,
                   decorations: TerminalDecorations, config_provider: ConfigProvider,
                   mode: SessionMode = SessionMode.STANDARD,
                   previously_active_file: Optional[EditorSnapshot] = None) -> Optional[CandidatePath]:
    """Run one picker session. The session is cancelled if the picker exits any other way."""
    title = "Go to file" if mode is SessionMode.STANDARD else "Recently used files"
    with controller.browsing(mode, previously_active_file):
        picker = QuickOpenPicker(controller, document_view, decorations, config_provider, title=title)
        picker.set_results(controller.displayed_results)
        return picker.app.run()
