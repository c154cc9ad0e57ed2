from typing import Dict, List, Optional, Sequence

import pyperclip
from tabulate import tabulate

from preview_common.algo_utils import ScoredCandidate
from preview_common.constants import LINE_SEPARATOR
from preview_common.core_utils import LOG


def truncate_path_middle(path_str: str, max_len: int) -> str:
    """
    Truncates a string in the middle, keeping the start and end.
    e.g., 'a/very/long/path/to/a/file.txt' -> 'a/very/.../to/a/file.txt'
    """
    if len(path_str) <= max_len:
        return path_str
    if max_len <= 3:
        return path_str[len(path_str) - max(max_len, 0):]

    # Prioritize showing more of the end of the path
    head_len = int(max_len * 0.4)
    tail_len = max_len - head_len - 3  # -3 for '...'
    return f"{path_str[:head_len]}...{path_str[-tail_len:]}"


def format_location(path: str, line: int, column: int) -> str:
    """path:line:col with 1-based line/column, the form editors accept on the command line."""
    return f"{path}:{line + 1}:{column + 1}"


def mark_match_positions(text: str, positions: Optional[Sequence[int]], open_mark: str = "[", close_mark: str = "]") -> str:
    if not positions:
        return text
    marked = set(positions)
    return "".join(f"{open_mark}{ch}{close_mark}" if i in marked else ch for i, ch in enumerate(text))


def format_results_table(results: Sequence[ScoredCandidate], breakdowns: Optional[List[Optional[Dict[str, float]]]] = None) -> str:
    rows = []
    for i, result in enumerate(results):
        row = {"Score": f"{result.score:.2f}", "Path": result.relative_path}
        breakdown = breakdowns[i] if breakdowns and i < len(breakdowns) else None
        if breakdown:
            row.update({key: f"{value:.2f}" for key, value in breakdown.items() if key != "score"})
        rows.append(row)
    return tabulate(rows, headers="keys", tablefmt="simple", showindex=True, disable_numparse=True)


def display_content_to_copy(content: str, purpose: str = "", is_copy_to_clipboard: bool = True) -> None:
    """Print content between separators and optionally put it on the clipboard."""
    purpose_text = f" to {purpose}" if purpose else ""

    clipboard_status = ""
    if is_copy_to_clipboard:
        try:
            pyperclip.copy(content)
            clipboard_status = " (copied to clipboard)"
        except pyperclip.PyperclipException as e:
            clipboard_status = f" (clipboard failed: {e})"

    LOG(f"Content{purpose_text}{clipboard_status}:", show_time=True)
    LOG(f"{LINE_SEPARATOR}", show_time=False)
    LOG(f"{content}", show_time=False)
    LOG(f"{LINE_SEPARATOR}", show_time=False)
