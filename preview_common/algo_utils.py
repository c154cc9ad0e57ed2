import re
import sys
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from thefuzz import fuzz

from preview_common.config_utils import ConfigProvider, RankingWeights, SearchConfig
from preview_common.constants import *
from preview_common.core_utils import LOG
from preview_common.exclude_utils import ExclusionFilter
from preview_common.path_utils import CandidatePath, path_segments

_LIBRARY_SEGMENT_REGEX = re.compile(LIBRARY_SEGMENT_PATTERN)


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: CandidatePath
    score: float
    match_positions: Optional[Tuple[int, ...]] = None  # char offsets into candidate.relative_path

    @property
    def relative_path(self) -> str:
        return self.candidate.relative_path


@dataclass(frozen=True)
class MatchQuality:
    """Raw match quality of a query against the two views of a candidate. 0 means no match."""

    basename_quality: float
    path_quality: float
    basename_positions: Optional[Tuple[int, ...]] = None
    path_positions: Optional[Tuple[int, ...]] = None


@dataclass(frozen=True)
class RankingContext:
    config: SearchConfig
    weights: RankingWeights
    exclusion_filter: ExclusionFilter


# --- Subsequence matching ---

def prepare_query(query: str) -> str:
    """Lower-case the query, trim it and collapse inner whitespace to one space, which must then match a space."""
    return " ".join(query.split()).lower()


def is_subsequence(query_lower: str, target: str) -> bool:
    """Case-insensitive ordered (not necessarily contiguous) containment."""
    target_lower = target.lower()
    pos = 0
    for ch in query_lower:
        pos = target_lower.find(ch, pos)
        if pos == -1:
            return False
        pos += 1
    return True


def _greedy_positions(query_lower: str, target_lower: str, start: int) -> Optional[Tuple[int, ...]]:
    positions = [start]
    pos = start
    for ch in query_lower[1:]:
        pos = target_lower.find(ch, pos + 1)
        if pos == -1:
            return None
        positions.append(pos)
    return tuple(positions)


def _is_word_boundary(target: str, pos: int) -> bool:
    if pos == 0:
        return True
    prev = target[pos - 1]
    if prev in WORD_BOUNDARY_CHARS:
        return True
    return prev.islower() and target[pos].isupper()


def _match_quality(positions: Sequence[int], target: str, query_lower: str) -> float:
    score = 0.0
    run = 0
    prev = None
    for pos in positions:
        score += MATCH_CHAR_POINTS
        if prev is not None and pos == prev + 1:
            run += 1
            score += min(RUN_BONUS_STEP * run, RUN_BONUS_CAP)
        else:
            run = 0
        if _is_word_boundary(target, pos):
            score += BOUNDARY_BONUS
        prev = pos

    first, last = positions[0], positions[-1]
    score += PROXIMITY_BONUS * (1.0 - first / len(target))
    if first == 0:
        score += PREFIX_BONUS
    skipped = (last - first + 1) - len(positions)
    score -= GAP_PENALTY * skipped

    target_lower = target.lower()
    if target_lower == query_lower:
        score += EXACT_TARGET_BONUS
    elif PurePosixPath(target_lower).stem == query_lower:
        score += EXACT_STEM_BONUS
    return max(score, MIN_MATCH_QUALITY)


def subsequence_match(query_lower: str, target: str) -> Optional[Tuple[float, Tuple[int, ...]]]:
    """
    Best subsequence alignment of query in target as (quality, positions), or None.

    Every occurrence of the first query char is tried as a start; the remainder is
    matched greedily, which keeps runs contiguous whenever the target allows it.
    """
    if not query_lower or not target:
        return None
    target_lower = target.lower()
    best: Optional[Tuple[float, Tuple[int, ...]]] = None
    start = target_lower.find(query_lower[0])
    while start != -1:
        positions = _greedy_positions(query_lower, target_lower, start)
        if positions is None:
            # Later starts can only leave fewer chars to match
            break
        quality = _match_quality(positions, target, query_lower)
        if best is None or quality > best[0]:
            best = (quality, positions)
        start = target_lower.find(query_lower[0], start + 1)
    return best


# --- Match scorers (pluggable stage) ---

class MatchScorer:
    """Computes raw basename/path qualities for a candidate that passed the subsequence test."""

    name = "base"

    def score(self, query_lower: str, candidate: CandidatePath) -> Optional[MatchQuality]:
        raise NotImplementedError


class SubsequenceScorer(MatchScorer):
    name = SCORER_SUBSEQUENCE

    def score(self, query_lower: str, candidate: CandidatePath) -> Optional[MatchQuality]:
        basename_match = subsequence_match(query_lower, candidate.basename)
        path_match = subsequence_match(query_lower, candidate.relative_path)
        if basename_match is None and path_match is None:
            return None
        return MatchQuality(
            basename_quality=basename_match[0] if basename_match else 0.0,
            path_quality=path_match[0] if path_match else 0.0,
            basename_positions=basename_match[1] if basename_match else None,
            path_positions=path_match[1] if path_match else None,
        )


class WRatioScorer(MatchScorer):
    """thefuzz-based scoring: WRatio on the filename, partial_ratio on the path (0..100, scaled to 0..10)."""

    name = SCORER_WRATIO

    def score(self, query_lower: str, candidate: CandidatePath) -> Optional[MatchQuality]:
        basename_ratio = fuzz.WRatio(query_lower, candidate.basename.lower())
        path_ratio = fuzz.partial_ratio(query_lower, candidate.relative_path.lower())
        basename_match = subsequence_match(query_lower, candidate.basename)
        path_match = subsequence_match(query_lower, candidate.relative_path)
        return MatchQuality(
            basename_quality=max(basename_ratio / 10.0, MIN_MATCH_QUALITY) if basename_match else 0.0,
            path_quality=max(path_ratio / 10.0, MIN_MATCH_QUALITY),
            basename_positions=basename_match[1] if basename_match else None,
            path_positions=path_match[1] if path_match else None,
        )


def get_scorer(name: str) -> MatchScorer:
    scorers = {SCORER_SUBSEQUENCE: SubsequenceScorer, SCORER_WRATIO: WRatioScorer}
    if name not in scorers:
        raise ValueError(f"Unknown scorer '{name}', expected one of {AVAILABLE_SCORERS}")
    return scorers[name]()


# --- Context adjusters, applied in order, each one a multiplier ---

class ContextAdjuster:
    name = "base"

    def multiplier(self, candidate: CandidatePath, context: RankingContext) -> float:
        raise NotImplementedError


class NearExclusionAdjuster(ContextAdjuster):
    name = "near_exclusion"

    def multiplier(self, candidate: CandidatePath, context: RankingContext) -> float:
        if context.exclusion_filter.is_near_excluded(candidate.relative_path, context.config):
            return context.weights.near_exclusion_penalty
        return 1.0


def is_library_path(relative_path: str) -> bool:
    directory_segments = path_segments(relative_path)[:-1]
    for segment in directory_segments:
        if segment in LIBRARY_DIR_NAMES or _LIBRARY_SEGMENT_REGEX.match(segment):
            return True
    rooted = "/" + relative_path.lstrip("/")
    return any(f"/{prefix}" in rooted for prefix in LIBRARY_PATH_PREFIXES)


class LibraryPathAdjuster(ContextAdjuster):
    name = "library"

    def multiplier(self, candidate: CandidatePath, context: RankingContext) -> float:
        return context.weights.library_penalty if is_library_path(candidate.relative_path) else 1.0


def is_generic_filename(basename: str) -> bool:
    stem = basename.lower().split(".", 1)[0] if not basename.startswith(".") else basename.lower()
    return stem in GENERIC_FILE_STEMS


class GenericFilenameAdjuster(ContextAdjuster):
    name = "generic_name"

    def multiplier(self, candidate: CandidatePath, context: RankingContext) -> float:
        if not is_generic_filename(candidate.basename):
            return 1.0
        # Root-level catch-all files are usually the project's own
        if candidate.depth <= context.weights.shallow_depth:
            return 1.0
        return context.weights.generic_name_penalty


class PathDepthAdjuster(ContextAdjuster):
    name = "depth"

    def multiplier(self, candidate: CandidatePath, context: RankingContext) -> float:
        weights = context.weights
        depth = candidate.depth
        if depth <= 1:
            return weights.root_boost
        if depth <= weights.shallow_depth:
            return weights.shallow_boost
        if depth >= weights.deep_depth:
            return weights.deep_penalty
        return 1.0


def default_adjusters() -> List[ContextAdjuster]:
    return [NearExclusionAdjuster(), LibraryPathAdjuster(), GenericFilenameAdjuster(), PathDepthAdjuster()]


# --- Default (query-less) ordering ---

def extension_priority(path: str) -> int:
    ext = PurePosixPath(path).suffix.lower()
    if ext in SOURCE_CODE_EXTS:
        return 1
    if ext in CONFIG_MARKUP_EXTS:
        return 2
    return 3


def order_by_default(candidates: Iterable[CandidatePath], open_paths: Iterable[str] = ()) -> List[CandidatePath]:
    """Currently-open files first (in the given order), then source files, config/markup, others; alphabetical within a group."""
    by_key: Dict[str, CandidatePath] = {}
    for candidate in candidates:
        by_key.setdefault(candidate.relative_path, candidate)

    ordered: List[CandidatePath] = []
    seen = set()
    absolute_to_relative = {c.absolute_path: c.relative_path for c in by_key.values()}
    for open_path in open_paths:
        key = absolute_to_relative.get(str(open_path), str(open_path))
        if key in by_key and key not in seen:
            ordered.append(by_key[key])
            seen.add(key)

    remaining = [c for key, c in by_key.items() if key not in seen]
    remaining.sort(key=lambda c: (extension_priority(c.basename), c.basename.lower(), c.relative_path))
    return ordered + remaining


# --- Ranking engine ---

class FuzzyRanker:
    """
    Scores and orders candidate paths against a query.

    Pipeline per candidate: exclusion -> subsequence rejection -> scorer (basename and
    path quality) -> weighted max of the two views -> context multipliers.
    """

    def __init__(self, config_provider: ConfigProvider, exclusion_filter: Optional[ExclusionFilter] = None,
                 scorer: Optional[MatchScorer] = None, adjusters: Optional[List[ContextAdjuster]] = None):
        self._config_provider = config_provider
        self._exclusion_filter = exclusion_filter or ExclusionFilter()
        self._scorer = scorer or SubsequenceScorer()
        self._adjusters = adjusters if adjusters is not None else default_adjusters()

    @property
    def exclusion_filter(self) -> ExclusionFilter:
        return self._exclusion_filter

    def _context(self, config: SearchConfig) -> RankingContext:
        return RankingContext(config=config, weights=config.weights, exclusion_filter=self._exclusion_filter)

    def filter_excluded(self, candidates: Iterable[CandidatePath], config: Optional[SearchConfig] = None) -> List[CandidatePath]:
        config = config or self._config_provider.get()
        return [c for c in candidates if not self._exclusion_filter.is_excluded(c.relative_path, config)]

    def is_ranking_query(self, query: str, config: Optional[SearchConfig] = None) -> bool:
        config = config or self._config_provider.get()
        query_lower = prepare_query(query)
        return len(query_lower) >= max(config.min_query_length, 1)

    def score_candidate(self, candidate: CandidatePath, query_lower: str, context: RankingContext) -> Optional[ScoredCandidate]:
        if not (is_subsequence(query_lower, candidate.basename) or is_subsequence(query_lower, candidate.relative_path)):
            return None
        quality = self._scorer.score(query_lower, candidate)
        if quality is None:
            return None

        basename_score = quality.basename_quality * context.weights.basename_weight
        path_score = quality.path_quality * context.weights.path_weight
        multiplier = 1.0
        for adjuster in self._adjusters:
            multiplier *= adjuster.multiplier(candidate, context)

        if basename_score >= path_score and quality.basename_positions is not None:
            offset = len(candidate.relative_path) - len(candidate.basename)
            positions = tuple(offset + p for p in quality.basename_positions)
        else:
            positions = quality.path_positions
        return ScoredCandidate(candidate=candidate, score=max(basename_score, path_score) * multiplier, match_positions=positions)

    def rank(self, candidates: Iterable[CandidatePath], query: str) -> List[ScoredCandidate]:
        """
        Rank candidates for query, best first, capped at max_results after sorting.

        A query shorter than min_query_length is not ranked: the non-excluded candidates
        are returned unscored, in the order they were supplied.
        """
        config = self._config_provider.get()
        kept = self.filter_excluded(candidates, config)

        if not self.is_ranking_query(query, config):
            return [ScoredCandidate(candidate=c, score=0.0) for c in kept[:config.max_results]]

        query_lower = prepare_query(query)
        context = self._context(config)
        scored: List[ScoredCandidate] = []
        for candidate in kept:
            try:
                result = self.score_candidate(candidate, query_lower, context)
            except (OSError, ValueError) as e:
                LOG(f"Skipping candidate {candidate.relative_path}: {e}", file=sys.stderr)
                continue
            if result is not None:
                scored.append(result)

        scored.sort(key=lambda s: (-s.score, len(s.candidate.relative_path), s.candidate.relative_path))
        return scored[:config.max_results]

    def explain(self, candidate: CandidatePath, query: str) -> Optional[Dict[str, float]]:
        """Per-stage numbers behind a candidate's score, or None if it is rejected."""
        config = self._config_provider.get()
        query_lower = prepare_query(query)
        if not (is_subsequence(query_lower, candidate.basename) or is_subsequence(query_lower, candidate.relative_path)):
            return None
        quality = self._scorer.score(query_lower, candidate)
        if quality is None:
            return None
        context = self._context(config)
        breakdown = {
            "basename": quality.basename_quality * config.weights.basename_weight,
            "path": quality.path_quality * config.weights.path_weight,
        }
        total = 1.0
        for adjuster in self._adjusters:
            value = adjuster.multiplier(candidate, context)
            breakdown[adjuster.name] = value
            total *= value
        breakdown["score"] = max(breakdown["basename"], breakdown["path"]) * total
        return breakdown
