import json
import os
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from preview_common.constants import DEFAULT_HISTORY_SCOPE, LOCAL_FILE_SCHEME, MAX_HISTORY_SIZE
from preview_common.core_utils import LOG, LOG_EXCEPTION
from preview_common.path_utils import PathLike, normalize_path, split_uri_scheme


class WriteMode(Enum):
    """How a touch is recorded."""
    COMMITTED = "committed"  # Always written to history
    SUPPRESSED = "suppressed"  # Observed during preview only, never written


@dataclass(frozen=True)
class HistoryEntry:
    relative_path: str
    absolute_path: str
    last_line: int
    last_column: int
    last_accessed: float

    def to_record(self) -> Dict[str, Any]:
        return {
            "relativePath": self.relative_path,
            "line": self.last_line,
            "col": self.last_column,
            "lastAccessed": self.last_accessed,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], workspace_root: Optional[PathLike] = None) -> "HistoryEntry":
        relative_path = str(record["relativePath"])
        if workspace_root is not None and not os.path.isabs(relative_path):
            absolute_path = os.path.join(str(workspace_root), relative_path)
        else:
            absolute_path = relative_path
        return cls(
            relative_path=relative_path,
            absolute_path=absolute_path,
            last_line=max(int(record.get("line", 0)), 0),
            last_column=max(int(record.get("col", 0)), 0),
            last_accessed=float(record.get("lastAccessed", 0.0)),
        )


class JsonHistoryPersistence:
    """Stores ordered history records in a JSON file, one list per scope key."""

    def __init__(self, file_path: Path, scope: str = DEFAULT_HISTORY_SCOPE):
        self.file_path = Path(file_path).expanduser()
        self.scope = scope

    def _read_all(self) -> Dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            LOG_EXCEPTION(e, msg=f"Could not read history file {self.file_path}, starting empty", exit=False)
            return {}
        if not isinstance(data, dict):
            LOG(f"WARNING: History file {self.file_path} has unexpected content, starting empty.", file=sys.stderr)
            return {}
        return data

    def load(self) -> List[Dict[str, Any]]:
        records = self._read_all().get(self.scope, [])
        return records if isinstance(records, list) else []

    def save(self, records: List[Dict[str, Any]]) -> None:
        data = self._read_all()
        data[self.scope] = records
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            LOG_EXCEPTION(e, msg=f"Could not write history file {self.file_path}", exit=False)


class HistoryStore:
    """
    Most-recently-used list of activated files, one entry per relative path, newest first.

    While preview mode is on, touches of suppressed paths are dropped so that browsing
    candidates does not reorder history. A COMMITTED touch always lands.
    """

    def __init__(self, workspace_root: Optional[PathLike] = None, max_size: int = MAX_HISTORY_SIZE,
                 persistence: Optional[JsonHistoryPersistence] = None, clock: Callable[[], float] = time.time):
        self._workspace_root = workspace_root
        self._max_size = max_size
        self._persistence = persistence
        self._clock = clock
        self._entries: List[HistoryEntry] = []
        self._suppressed: Set[str] = set()
        self._preview_mode = False
        if persistence is not None:
            self.load_records(persistence.load())

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def is_preview_mode(self) -> bool:
        return self._preview_mode

    def __len__(self) -> int:
        return len(self._entries)

    def _key(self, path: PathLike) -> Tuple[str, str]:
        """(relative key, absolute path) for a local path."""
        _, local_path = split_uri_scheme(path)
        relative_path = normalize_path(local_path, self._workspace_root)
        if self._workspace_root is not None and not os.path.isabs(local_path):
            absolute_path = os.path.join(str(self._workspace_root), local_path)
        else:
            absolute_path = local_path
        return relative_path, absolute_path

    def _resolve_mode(self, relative_path: str, mode: Optional[WriteMode]) -> WriteMode:
        if mode is not None:
            return mode
        if self._preview_mode and relative_path in self._suppressed:
            return WriteMode.SUPPRESSED
        return WriteMode.COMMITTED

    def touch(self, path: PathLike, line: int = 0, column: int = 0, mode: Optional[WriteMode] = None) -> bool:
        """
        Move-or-insert path at the front. Returns True when history changed.
        Non-file URIs are ignored; so are suppressed paths unless mode is COMMITTED.
        """
        scheme, _ = split_uri_scheme(path)
        if scheme != LOCAL_FILE_SCHEME:
            return False

        relative_path, absolute_path = self._key(path)
        if self._resolve_mode(relative_path, mode) is WriteMode.SUPPRESSED:
            return False

        self._entries = [e for e in self._entries if e.relative_path != relative_path]
        self._entries.insert(0, HistoryEntry(
            relative_path=relative_path,
            absolute_path=absolute_path,
            last_line=max(int(line), 0),
            last_column=max(int(column), 0),
            last_accessed=self._clock(),
        ))
        del self._entries[self._max_size:]
        self._save()
        return True

    def get_ordered(self) -> Tuple[HistoryEntry, ...]:
        """Snapshot of the entries, most recent first."""
        return tuple(self._entries)

    def get(self, path: PathLike) -> Optional[HistoryEntry]:
        relative_path, _ = self._key(path)
        for entry in self._entries:
            if entry.relative_path == relative_path:
                return entry
        return None

    def suppress(self, path: PathLike) -> None:
        relative_path, _ = self._key(path)
        self._suppressed.add(relative_path)

    def is_suppressed(self, path: PathLike) -> bool:
        relative_path, _ = self._key(path)
        return relative_path in self._suppressed

    def set_preview_mode(self, enabled: bool) -> None:
        self._preview_mode = enabled
        if not enabled:
            self._suppressed.clear()

    # --- Persistence ---

    def to_records(self) -> List[Dict[str, Any]]:
        return [entry.to_record() for entry in self._entries]

    def load_records(self, records: List[Dict[str, Any]]) -> None:
        entries: List[HistoryEntry] = []
        seen: Set[str] = set()
        for record in records:
            try:
                entry = HistoryEntry.from_record(record, self._workspace_root)
            except (KeyError, TypeError, ValueError) as e:
                LOG(f"WARNING: Skipping malformed history record {record!r}: {e}", file=sys.stderr)
                continue
            if entry.relative_path in seen:
                continue
            seen.add(entry.relative_path)
            entries.append(entry)
        self._entries = entries[:self._max_size]

    def _save(self) -> None:
        if self._persistence is not None:
            self._persistence.save(self.to_records())
