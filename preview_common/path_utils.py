import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from preview_common.constants import LOCAL_FILE_SCHEME

PathLike = Union[str, Path]

# Two or more chars so that a Windows drive letter ("C:") is not read as a scheme
_SCHEME_PATTERN = re.compile(r'^([a-zA-Z][a-zA-Z0-9+.\-]+):')


@dataclass(frozen=True)
class CandidatePath:
    """A file that can be offered by the picker. Built once per enumeration pass."""

    absolute_path: str
    relative_path: str
    basename: str

    @property
    def depth(self) -> int:
        return path_depth(self.relative_path)


def to_slash_path(path: PathLike) -> str:
    return str(path).replace("\\", "/")


def normalize_path(path: PathLike, workspace_root: Optional[PathLike] = None) -> str:
    """
    Canonical, workspace-relative, '/'-separated form of a path.
    Case is left untouched; matching is case-insensitive only at ranking time.
    Paths outside the workspace root keep their full (slash-normalized) form.
    """
    normalized = to_slash_path(path)
    if workspace_root is not None:
        root = to_slash_path(workspace_root).rstrip("/")
        if root and normalized == root:
            return ""
        if root and normalized.startswith(f"{root}/"):
            normalized = normalized[len(root) + 1:]
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def path_basename(relative_path: str) -> str:
    return relative_path.rstrip("/").rsplit("/", 1)[-1]


def path_depth(relative_path: str) -> int:
    """Count of non-empty '/' segments."""
    return len(path_segments(relative_path))


def path_segments(relative_path: str) -> list:
    return [segment for segment in relative_path.split("/") if segment]


def make_candidate(path: PathLike, workspace_root: Optional[PathLike] = None) -> CandidatePath:
    if workspace_root is not None and not os.path.isabs(str(path)):
        absolute = os.path.join(str(workspace_root), str(path))
    else:
        absolute = str(path)
    relative = normalize_path(absolute, workspace_root)
    return CandidatePath(absolute_path=absolute, relative_path=relative, basename=path_basename(relative))


def split_uri_scheme(path: PathLike) -> Tuple[str, str]:
    """
    Split an optional URI scheme off a path.
    'file:///a/b.py' -> ('file', '/a/b.py'), '/a/b.py' -> ('file', '/a/b.py'),
    'untitled:Untitled-1' -> ('untitled', 'Untitled-1').
    """
    path_str = str(path)
    match = _SCHEME_PATTERN.match(path_str)
    if not match:
        return LOCAL_FILE_SCHEME, path_str
    scheme = match.group(1).lower()
    rest = path_str[match.end():]
    if scheme == LOCAL_FILE_SCHEME and rest.startswith("//"):
        rest = rest[2:]
        # file:///C:/x keeps the drive letter without a leading slash
        if re.match(r'^/[a-zA-Z]:/', rest):
            rest = rest[1:]
    return scheme, rest


def is_local_file_path(path: PathLike) -> bool:
    scheme, _ = split_uri_scheme(path)
    return scheme == LOCAL_FILE_SCHEME
