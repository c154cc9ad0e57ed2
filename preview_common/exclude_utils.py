import sys
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

from pathspec.gitignore import GitIgnoreSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPatternError

from preview_common.config_utils import SearchConfig
from preview_common.constants import NEAR_EXCLUSION_SUFFIX_CHARS
from preview_common.core_utils import LOG
from preview_common.path_utils import PathLike, normalize_path, path_segments


@dataclass(frozen=True)
class _GlobMatcher:
    """
    One exclude glob with gitignore semantics: '**/' spans directories, '*' stays in one segment,
    a pattern without '/' matches at any depth. A None spec matches nothing.
    """

    source: str
    spec: Optional[GitIgnoreSpec]
    spec_ignore_case: Optional[GitIgnoreSpec]

    def matches(self, relative_path: str, ignore_case: bool = False) -> bool:
        if ignore_case:
            return self.spec_ignore_case is not None and self.spec_ignore_case.match_file(relative_path.lower())
        return self.spec is not None and self.spec.match_file(relative_path)


@dataclass(frozen=True)
class CompiledExclusions:
    directory_names: FrozenSet[str]
    directory_names_lower: FrozenSet[str]
    globs: Tuple[_GlobMatcher, ...]


def compile_glob(pattern: str) -> _GlobMatcher:
    """Compile one exclude glob. A malformed pattern becomes a matcher that matches nothing."""
    try:
        spec = GitIgnoreSpec.from_lines([pattern])
        spec_ignore_case = GitIgnoreSpec.from_lines([pattern.lower()])
    except GitWildMatchPatternError as e:
        LOG(f"WARNING: Ignoring malformed exclude pattern '{pattern}': {e}", file=sys.stderr)
        return _GlobMatcher(source=pattern, spec=None, spec_ignore_case=None)
    if not spec.patterns:
        return _GlobMatcher(source=pattern, spec=None, spec_ignore_case=None)
    return _GlobMatcher(source=pattern, spec=spec, spec_ignore_case=spec_ignore_case)


class ExclusionFilter:
    """
    Decides whether a path is excluded before it reaches ranking.
    Matchers are compiled once per distinct configuration and reused across keystrokes.
    """

    def __init__(self):
        self._cache_key: Optional[Tuple[Tuple[str, ...], Tuple[str, ...]]] = None
        self._compiled: Optional[CompiledExclusions] = None
        self._compile_count = 0

    @property
    def compile_count(self) -> int:
        return self._compile_count

    def invalidate(self) -> None:
        self._cache_key = None
        self._compiled = None

    def compiled(self, config: SearchConfig) -> CompiledExclusions:
        key = (tuple(config.excluded_directory_names), tuple(config.excluded_glob_patterns))
        if self._compiled is None or key != self._cache_key:
            self._compiled = CompiledExclusions(
                directory_names=frozenset(config.excluded_directory_names),
                directory_names_lower=frozenset(name.lower() for name in config.excluded_directory_names),
                globs=tuple(compile_glob(p) for p in config.excluded_glob_patterns),
            )
            self._cache_key = key
            self._compile_count += 1
        return self._compiled

    def is_excluded(self, path: PathLike, config: SearchConfig) -> bool:
        relative_path = normalize_path(path)
        compiled = self.compiled(config)
        if any(segment in compiled.directory_names for segment in path_segments(relative_path)):
            return True
        return any(glob.matches(relative_path) for glob in compiled.globs)

    def is_near_excluded(self, path: PathLike, config: SearchConfig) -> bool:
        """True for a path that is not excluded but resembles an excluded one."""
        relative_path = normalize_path(path)
        if self.is_excluded(relative_path, config):
            return False
        compiled = self.compiled(config)
        for segment in path_segments(relative_path)[:-1]:
            lowered = segment.lower()
            if lowered in compiled.directory_names_lower:
                return True
            for name in compiled.directory_names_lower:
                if lowered.startswith(name) and lowered[len(name):len(name) + 1] in NEAR_EXCLUSION_SUFFIX_CHARS:
                    return True
        return any(glob.matches(relative_path, ignore_case=True) for glob in compiled.globs)

    @staticmethod
    def enumeration_globs(config: SearchConfig) -> List[str]:
        """Exclude globs handed to the host's file enumeration."""
        return [f"**/{name}/**" for name in config.excluded_directory_names] + list(config.excluded_glob_patterns)
