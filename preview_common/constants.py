from pathlib import Path

# FORMATS
LINE_SEPARATOR = f"\n{'=' * 70}\n"

# HISTORY
MAX_HISTORY_SIZE = 100
DEFAULT_HISTORY_SCOPE = "global"
DEFAULT_HISTORY_FILE_PATH = Path.home() / ".search_preview" / "history.json"
LOCAL_FILE_SCHEME = "file"

# SEARCH DEFAULTS
DEFAULT_MAX_RESULTS = 100
DEFAULT_MIN_QUERY_LENGTH = 2
DEFAULT_MAX_ENUMERATED_FILES = 50_000
DEFAULT_DEBOUNCE_SECONDS = 0.08
DEFAULT_EXCLUDE_DIRECTORIES = ("node_modules", ".git", "venv", "env", "dist", "build")
DEFAULT_EXCLUDE_PATTERNS = ("**/*.min.js", "**/*.log", "**/*.lock", "**/package-lock.json")

# RANKING HEURISTICS
LIBRARY_DIR_NAMES = frozenset({
    "lib", "libs", "vendor", "node_modules", "dist", "build", "venv", ".venv", "env",
    "site-packages", "__pycache__",
})
LIBRARY_PATH_PREFIXES = ("usr/lib/", "usr/local/", "usr/share/", "Library/Python/")
LIBRARY_SEGMENT_PATTERN = r"^python\d+\.\d+$"
GENERIC_FILE_STEMS = frozenset({
    "__init__", "index", "main", "utils", "util", "helpers", "helper", "common",
    "config", "constants", "types", "misc", "setup", "mod",
})
NEAR_EXCLUSION_SUFFIX_CHARS = ("-", "_", ".")
WORD_BOUNDARY_CHARS = frozenset("/._- ")

DEFAULT_BASENAME_WEIGHT = 2.0
DEFAULT_PATH_WEIGHT = 1.0
DEFAULT_NEAR_EXCLUSION_PENALTY = 0.15
DEFAULT_LIBRARY_PENALTY = 0.2
DEFAULT_GENERIC_NAME_PENALTY = 0.7
DEFAULT_ROOT_BOOST = 1.5
DEFAULT_SHALLOW_BOOST = 1.3
DEFAULT_DEEP_PENALTY = 0.7
DEFAULT_SHALLOW_DEPTH = 2
DEFAULT_DEEP_DEPTH = 6

# Subsequence match quality
MATCH_CHAR_POINTS = 1.0
RUN_BONUS_STEP = 2.0
RUN_BONUS_CAP = 8.0
BOUNDARY_BONUS = 1.5
PROXIMITY_BONUS = 6.0
PREFIX_BONUS = 4.0
GAP_PENALTY = 0.5
EXACT_TARGET_BONUS = 10.0
EXACT_STEM_BONUS = 6.0
MIN_MATCH_QUALITY = 0.01

# DEFAULT ORDER (empty query)
SOURCE_CODE_EXTS = (".ts", ".tsx", ".js", ".jsx", ".py", ".go", ".java", ".c", ".cpp", ".cs", ".rb", ".php")
CONFIG_MARKUP_EXTS = (".json", ".yaml", ".yml", ".toml", ".md", ".css", ".scss", ".html", ".xml")

# PREVIEW
PREVIEW_MAX_LINES = 2_000
PREVIEW_CONTEXT_LINES = 40

# CLI ARGS
ARG_ROOT_LONG = "--root"
ARG_ROOT_SHORT = "-r"
ARG_RECENT_LONG = "--recent"
ARG_CONFIG_LONG = "--config"
ARG_HISTORY_FILE_LONG = "--history-file"
ARG_OPEN_FILES_LONG = "--open"
ARG_ACTIVE_FILE_LONG = "--active"
ARG_NO_COPY_LONG = "--no-copy"
ARG_SCORER_LONG = "--scorer"
ARG_LIMIT_LONG = "--limit"

SCORER_SUBSEQUENCE = "subsequence"
SCORER_WRATIO = "wratio"
AVAILABLE_SCORERS = [SCORER_SUBSEQUENCE, SCORER_WRATIO]
