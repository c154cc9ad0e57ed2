#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path
from typing import Optional

from preview_common import *
from preview_common.input_utils import run_quick_open


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Fuzzy-open a file in a workspace, previewing each candidate while browsing.',
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Examples:\n"
            f"  {Path(__file__).name} {ARG_ROOT_LONG} ~/my_repo\n"
            f"  {Path(__file__).name} {ARG_ROOT_LONG} ~/my_repo {ARG_RECENT_LONG} {ARG_ACTIVE_FILE_LONG} src/app.ts\n"
        ),
    )
    parser.add_argument(ARG_ROOT_SHORT, ARG_ROOT_LONG, type=Path, default=Path.cwd(),
                        help='Workspace root to search (default: current directory).')
    parser.add_argument(ARG_RECENT_LONG, action='store_true',
                        help='Browse recently used files instead of the whole workspace.')
    parser.add_argument(ARG_CONFIG_LONG, type=Path, default=None,
                        help='YAML config with a "search" section (exclusions, limits, weights).')
    parser.add_argument(ARG_HISTORY_FILE_LONG, type=Path, default=DEFAULT_HISTORY_FILE_PATH,
                        help=f'JSON file holding the recently used list (default: {DEFAULT_HISTORY_FILE_PATH}).')
    parser.add_argument(ARG_OPEN_FILES_LONG, nargs='*', default=[],
                        help='Files currently open in the editor. They are listed first and recorded in history.')
    parser.add_argument(ARG_ACTIVE_FILE_LONG, type=Path, default=None,
                        help='File active before the picker opens; it is restored on cancel.')
    parser.add_argument(ARG_NO_COPY_LONG, action='store_true',
                        help='Do not copy the selected location to the clipboard.')
    parser.add_argument(ARG_SCORER_LONG, choices=AVAILABLE_SCORERS, default=SCORER_SUBSEQUENCE,
                        help=f'Match scorer (default: {SCORER_SUBSEQUENCE}).')
    return parser.parse_args()


def _active_snapshot(history: HistoryStore, active_path: Optional[str]) -> Optional[EditorSnapshot]:
    if not active_path:
        return None
    entry = history.get(active_path)
    if entry is None:
        return EditorSnapshot(path=active_path)
    return EditorSnapshot(path=active_path, line=entry.last_line, column=entry.last_column)


def main() -> None:
    args = parse_args()
    workspace_root = Path(get_arg_value(args, ARG_ROOT_LONG))
    if not workspace_root.is_dir():
        LOG_EXCEPTION_STR(f"Workspace root {workspace_root} is not a directory.")

    config_path = get_arg_value(args, ARG_CONFIG_LONG)
    config_provider = ConfigProvider(config_path=Path(config_path) if config_path else None)
    persistence = JsonHistoryPersistence(Path(get_arg_value(args, ARG_HISTORY_FILE_LONG)), scope=str(workspace_root))
    history = HistoryStore(workspace_root=workspace_root, persistence=persistence)

    open_paths = [str(Path(p).expanduser().resolve()) for p in get_arg_value(args, ARG_OPEN_FILES_LONG)]
    for open_path in open_paths:
        history.touch(open_path)

    exclusion_filter = ExclusionFilter()
    ranker = FuzzyRanker(config_provider, exclusion_filter=exclusion_filter, scorer=get_scorer(get_arg_value(args, ARG_SCORER_LONG)))
    source = WalkCandidateSource(workspace_root, config_provider, exclusion_filter=exclusion_filter, open_paths=open_paths)
    document_view = TerminalDocumentView()
    decorations = TerminalDecorations()
    controller = PreviewSessionController(history, ranker, config_provider, source, document_view, decorations)

    mode = SessionMode.RECENT_FILES if get_arg_value(args, ARG_RECENT_LONG) else SessionMode.STANDARD
    snapshot = _active_snapshot(history, get_arg_value(args, ARG_ACTIVE_FILE_LONG))
    try:
        selected = run_quick_open(controller, document_view, decorations, config_provider, mode=mode, previously_active_file=snapshot)
    except (KeyboardInterrupt, EOFError):
        LOG("Cancelled.")
        sys.exit(130)

    if selected is None:
        LOG("No file selected.")
        return

    entry = history.get(selected.relative_path)
    line, column = (entry.last_line, entry.last_column) if entry else (0, 0)
    display_content_to_copy(format_location(selected.absolute_path, line, column), purpose="open the selected file",
                            is_copy_to_clipboard=not get_arg_value(args, ARG_NO_COPY_LONG))


if __name__ == '__main__':
    main()
