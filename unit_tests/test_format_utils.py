from pathlib import Path
import sys

import pyperclip

sys.path.append(str(Path(__file__).resolve().parents[1]))

from preview_common import format_utils  # noqa: E402
from preview_common.algo_utils import FuzzyRanker, ScoredCandidate  # noqa: E402
from preview_common.config_utils import ConfigProvider, SearchConfig  # noqa: E402
from preview_common.format_utils import (  # noqa: E402
    display_content_to_copy,
    format_location,
    format_results_table,
    mark_match_positions,
    truncate_path_middle,
)
from preview_common.path_utils import make_candidate  # noqa: E402


def test_truncate_path_middle_keeps_both_ends():
    path = "a/very/long/path/to/a/file.txt"

    truncated = truncate_path_middle(path, 20)

    assert len(truncated) == 20
    assert truncated.startswith("a/very/")
    assert truncated.endswith("file.txt")
    assert "..." in truncated
    assert truncate_path_middle("short.py", 20) == "short.py"
    assert truncate_path_middle(path, 3) == "txt"


def test_format_location_is_one_based():
    assert format_location("src/a.ts", 0, 4) == "src/a.ts:1:5"


def test_mark_match_positions():
    assert mark_match_positions("index.ts", [0, 1]) == "[i][n]dex.ts"
    assert mark_match_positions("index.ts", None) == "index.ts"


def test_results_table_with_breakdown_columns():
    ranker = FuzzyRanker(ConfigProvider(config=SearchConfig()))
    candidates = [make_candidate(p, "/ws") for p in ("src/index.ts", "src/lib/index.ts")]
    results = ranker.rank(candidates, "index")

    plain = format_results_table(results)
    detailed = format_results_table(results, [ranker.explain(r.candidate, "index") for r in results])

    assert "Score" in plain and "src/lib/index.ts" in plain
    assert "library" not in plain
    assert "library" in detailed and "0.20" in detailed


def test_results_table_keeps_two_decimal_places():
    result = ScoredCandidate(make_candidate("src/app.ts", "/ws"), 3.0)

    table = format_results_table([result], [{"score": 3.0, "depth": 1.0}])

    assert "3.00" in table
    assert "1.00" in table


def test_display_content_without_clipboard(capsys):
    display_content_to_copy("src/a.ts:1:1", purpose="open", is_copy_to_clipboard=False)

    out = capsys.readouterr().out
    assert "src/a.ts:1:1" in out
    assert "Content to open:" in out


def test_display_content_survives_clipboard_failure(capsys, monkeypatch):
    def _fail(_text):
        raise pyperclip.PyperclipException("no clipboard")

    monkeypatch.setattr(format_utils.pyperclip, "copy", _fail)

    display_content_to_copy("src/a.ts:1:1", is_copy_to_clipboard=True)

    assert "clipboard failed: no clipboard" in capsys.readouterr().out
