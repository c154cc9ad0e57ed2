import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from preview_common.constants import *
from preview_common.core_utils import LOG, LOG_EXCEPTION


@dataclass(frozen=True)
class RankingWeights:
    """Heuristic multipliers used by the ranking engine. Values are tuning, not correctness."""

    basename_weight: float = DEFAULT_BASENAME_WEIGHT
    path_weight: float = DEFAULT_PATH_WEIGHT
    near_exclusion_penalty: float = DEFAULT_NEAR_EXCLUSION_PENALTY
    library_penalty: float = DEFAULT_LIBRARY_PENALTY
    generic_name_penalty: float = DEFAULT_GENERIC_NAME_PENALTY
    root_boost: float = DEFAULT_ROOT_BOOST
    shallow_boost: float = DEFAULT_SHALLOW_BOOST
    deep_penalty: float = DEFAULT_DEEP_PENALTY
    shallow_depth: int = DEFAULT_SHALLOW_DEPTH
    deep_depth: int = DEFAULT_DEEP_DEPTH


@dataclass(frozen=True)
class SearchConfig:
    excluded_directory_names: Tuple[str, ...] = DEFAULT_EXCLUDE_DIRECTORIES
    excluded_glob_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    max_results: int = DEFAULT_MAX_RESULTS
    min_query_length: int = DEFAULT_MIN_QUERY_LENGTH
    max_enumerated_files: int = DEFAULT_MAX_ENUMERATED_FILES
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    weights: RankingWeights = field(default_factory=RankingWeights)


# yaml key -> (SearchConfig field, converter)
_SEARCH_KEYS: Dict[str, Tuple[str, Callable[[Any], Any]]] = {
    "excludeDirectories": ("excluded_directory_names", lambda v: _to_str_tuple(v)),
    "excludePatterns": ("excluded_glob_patterns", lambda v: _to_str_tuple(v)),
    "maxResults": ("max_results", lambda v: _to_positive_int(v)),
    "minQueryLength": ("min_query_length", lambda v: _to_non_negative_int(v)),
    "maxFiles": ("max_enumerated_files", lambda v: _to_positive_int(v)),
    "debounceSeconds": ("debounce_seconds", lambda v: _to_non_negative_float(v)),
}

_WEIGHT_KEYS: Dict[str, str] = {
    "basename": "basename_weight",
    "path": "path_weight",
    "nearExclusion": "near_exclusion_penalty",
    "library": "library_penalty",
    "genericName": "generic_name_penalty",
    "rootBoost": "root_boost",
    "shallowBoost": "shallow_boost",
    "deepPenalty": "deep_penalty",
    "shallowDepth": "shallow_depth",
    "deepDepth": "deep_depth",
}


def _to_str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return tuple(str(v) for v in value)


def _to_positive_int(value: Any) -> int:
    if isinstance(value, bool) or int(value) <= 0:
        raise ValueError(f"expected a positive integer, got {value!r}")
    return int(value)


def _to_non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or int(value) < 0:
        raise ValueError(f"expected a non-negative integer, got {value!r}")
    return int(value)


def _to_non_negative_float(value: Any) -> float:
    if isinstance(value, bool) or float(value) < 0:
        raise ValueError(f"expected a non-negative number, got {value!r}")
    return float(value)


def _parse_weights(raw: Any) -> RankingWeights:
    weights = RankingWeights()
    if raw is None:
        return weights
    if not isinstance(raw, dict):
        LOG(f"WARNING: 'weights' must be a mapping, got {type(raw).__name__}. Using defaults.", file=sys.stderr)
        return weights

    int_fields = {f.name for f in fields(RankingWeights) if f.type in (int, "int")}
    updates: Dict[str, Any] = {}
    for key, value in raw.items():
        attr = _WEIGHT_KEYS.get(key)
        if attr is None:
            LOG(f"WARNING: Unknown weight key '{key}', ignoring.", file=sys.stderr)
            continue
        try:
            updates[attr] = _to_non_negative_int(value) if attr in int_fields else _to_non_negative_float(value)
        except (TypeError, ValueError) as e:
            LOG(f"WARNING: Invalid value for weight '{key}': {e}. Keeping default.", file=sys.stderr)
    return replace(weights, **updates)


def parse_search_config(data: Any) -> SearchConfig:
    """Build a SearchConfig from the parsed YAML document. Bad values fall back to defaults."""
    config = SearchConfig()
    if data is None:
        return config
    if not isinstance(data, dict):
        LOG(f"WARNING: Config root must be a mapping, got {type(data).__name__}. Using defaults.", file=sys.stderr)
        return config

    section = data.get("search", data)
    if not isinstance(section, dict):
        LOG("WARNING: 'search' section must be a mapping. Using defaults.", file=sys.stderr)
        return config

    updates: Dict[str, Any] = {}
    for key, (attr, convert) in _SEARCH_KEYS.items():
        if key not in section:
            continue
        try:
            updates[attr] = convert(section[key])
        except (TypeError, ValueError) as e:
            LOG(f"WARNING: Invalid value for '{key}': {e}. Keeping default.", file=sys.stderr)
    updates["weights"] = _parse_weights(section.get("weights"))
    return replace(config, **updates)


def load_search_config(config_path: Optional[Path]) -> SearchConfig:
    if config_path is None:
        return SearchConfig()
    config_path = Path(config_path).expanduser()
    if not config_path.exists():
        LOG(f"Config file {config_path} not found, using defaults.", file=sys.stderr)
        return SearchConfig()
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        LOG_EXCEPTION(e, msg=f"Failed to read config {config_path}, using defaults", exit=False)
        return SearchConfig()
    return parse_search_config(data)


class ConfigProvider:
    """Holds the current configuration snapshot and tells listeners when it changes."""

    def __init__(self, config: Optional[SearchConfig] = None, config_path: Optional[Path] = None):
        self._config_path = config_path
        self._config = config if config is not None else load_search_config(config_path)
        self._version = 0
        self._listeners: List[Callable[[SearchConfig], None]] = []

    @property
    def version(self) -> int:
        return self._version

    def get(self) -> SearchConfig:
        return self._config

    def add_listener(self, listener: Callable[[SearchConfig], None]) -> None:
        self._listeners.append(listener)

    def update(self, config: SearchConfig) -> None:
        if config == self._config:
            return
        self._config = config
        self._version += 1
        for listener in self._listeners:
            listener(config)

    def reload(self) -> SearchConfig:
        self.update(load_search_config(self._config_path))
        return self._config
