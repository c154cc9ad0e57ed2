import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from preview_common.config_utils import ConfigProvider
from preview_common.constants import PREVIEW_MAX_LINES
from preview_common.core_utils import LOG
from preview_common.exclude_utils import ExclusionFilter
from preview_common.path_utils import CandidatePath, make_candidate, normalize_path
from preview_common.session_utils import CandidateSource, DecorationSink, DocumentView, EditorSnapshot


class WalkCandidateSource(CandidateSource):
    """Enumerates files under a workspace root with os.walk, pruning excluded directories early."""

    def __init__(self, workspace_root: Path, config_provider: ConfigProvider,
                 exclusion_filter: Optional[ExclusionFilter] = None, open_paths: Sequence[str] = (),
                 follow_symlinks: bool = False):
        self.workspace_root = Path(workspace_root)
        self._config_provider = config_provider
        self._exclusion_filter = exclusion_filter or ExclusionFilter()
        self._open_paths = [str(p) for p in open_paths]
        self._follow_symlinks = follow_symlinks

    def open_files(self) -> List[str]:
        return [normalize_path(os.path.abspath(p), self.workspace_root) for p in self._open_paths]

    def enumerate(self, exclude_globs: Sequence[str]) -> List[CandidatePath]:
        # Directory names prune the walk; the globs handed in decide per file
        walk_config = replace(self._config_provider.get(), excluded_glob_patterns=tuple(exclude_globs))
        excluded_dirs = set(walk_config.excluded_directory_names)
        candidates: List[CandidatePath] = []

        def _on_walk_error(error: OSError) -> None:
            LOG(f"Skipping unreadable path {error.filename}: {error.strerror}", file=sys.stderr)

        root_str = str(self.workspace_root)
        for dirpath, dirnames, filenames in os.walk(root_str, onerror=_on_walk_error, followlinks=self._follow_symlinks):
            # Prune in place so os.walk does not descend
            dirnames[:] = sorted(d for d in dirnames if d not in excluded_dirs)
            for name in sorted(filenames):
                absolute = os.path.join(dirpath, name)
                candidate = make_candidate(absolute, root_str)
                if self._exclusion_filter.is_excluded(candidate.relative_path, walk_config):
                    continue
                candidates.append(candidate)
                if len(candidates) >= walk_config.max_enumerated_files:
                    LOG(f"Reached file limit ({walk_config.max_enumerated_files}), stopping enumeration.", file=sys.stderr)
                    return candidates
        return candidates


@dataclass(eq=False)
class DocumentHandle:
    path: str
    lines: List[str]
    line: int
    column: int
    persistent: bool = False


def read_document_lines(path: str, max_lines: int = PREVIEW_MAX_LINES) -> List[str]:
    """First max_lines lines of a text file. Raises OSError if it cannot be read."""
    lines: List[str] = []
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        for line in f:
            lines.append(line.rstrip("\n").rstrip("\r"))
            if len(lines) >= max_lines:
                break
    return lines


class TerminalDocumentView(DocumentView):
    """Keeps the document shown in the terminal preview pane and the one finally opened."""

    def __init__(self, max_lines: int = PREVIEW_MAX_LINES):
        self._max_lines = max_lines
        self.active: Optional[DocumentHandle] = None
        self.committed: Optional[DocumentHandle] = None

    def _load(self, path: str, line: int, column: int, persistent: bool) -> DocumentHandle:
        if not os.path.isfile(path):
            raise FileNotFoundError(2, "No such file", path)
        return DocumentHandle(path=path, lines=read_document_lines(path, self._max_lines), line=line, column=column, persistent=persistent)

    def open_preview(self, path: str, line: int, column: int) -> DocumentHandle:
        self.active = self._load(path, line, column, persistent=False)
        return self.active

    def open_committed(self, path: str, line: int, column: int) -> DocumentHandle:
        self.committed = self._load(path, line, column, persistent=True)
        self.active = self.committed
        return self.committed

    def restore(self, snapshot: EditorSnapshot) -> None:
        self.active = self._load(snapshot.path, snapshot.line, snapshot.column, persistent=True)


class TerminalDecorations(DecorationSink):
    """Whole-line highlights per document handle, read back by the preview pane."""

    def __init__(self):
        self._highlights: Dict[DocumentHandle, Set[int]] = {}

    def highlight_line(self, handle: DocumentHandle, line: int) -> None:
        self._highlights.setdefault(handle, set()).add(line)

    def clear_highlights(self, handle: DocumentHandle) -> None:
        self._highlights.pop(handle, None)

    def highlighted_lines(self, handle: Optional[DocumentHandle]) -> Set[int]:
        if handle is None:
            return set()
        return set(self._highlights.get(handle, set()))

    @property
    def has_highlights(self) -> bool:
        return any(self._highlights.values())
