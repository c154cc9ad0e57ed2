from dataclasses import replace
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from preview_common.config_utils import ConfigProvider, RankingWeights, SearchConfig, load_search_config, parse_search_config  # noqa: E402
from preview_common.constants import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_MAX_RESULTS, DEFAULT_MIN_QUERY_LENGTH  # noqa: E402


def test_missing_or_empty_config_gives_defaults(tmp_path):
    assert parse_search_config(None) == SearchConfig()
    assert load_search_config(None) == SearchConfig()
    assert load_search_config(tmp_path / "absent.yaml") == SearchConfig()


def test_load_yaml_config(tmp_path):
    config_file = tmp_path / "search.yaml"
    config_file.write_text(
        "search:\n"
        "  excludeDirectories: [out, .cache]\n"
        "  maxResults: 5\n"
        "  debounceSeconds: 0\n"
        "  weights:\n"
        "    basename: 3\n"
        "    deepDepth: 4\n",
        encoding="utf-8",
    )

    config = load_search_config(config_file)

    assert config.excluded_directory_names == ("out", ".cache")
    assert config.excluded_glob_patterns == DEFAULT_EXCLUDE_PATTERNS
    assert config.max_results == 5
    assert config.debounce_seconds == 0.0
    assert config.weights.basename_weight == 3.0
    assert config.weights.deep_depth == 4
    assert config.weights.path_weight == RankingWeights().path_weight


def test_section_can_be_given_without_search_key():
    config = parse_search_config({"minQueryLength": 3})

    assert config.min_query_length == 3


def test_invalid_values_fall_back_to_defaults():
    config = parse_search_config({
        "search": {
            "maxResults": -1,
            "minQueryLength": "abc",
            "excludePatterns": "*.log",
            "weights": {"library": "heavy", "unknownKey": 1, "rootBoost": 2},
        }
    })

    assert config.max_results == DEFAULT_MAX_RESULTS
    assert config.min_query_length == DEFAULT_MIN_QUERY_LENGTH
    assert config.excluded_glob_patterns == DEFAULT_EXCLUDE_PATTERNS
    assert config.weights.library_penalty == RankingWeights().library_penalty
    assert config.weights.root_boost == 2.0


def test_unparsable_yaml_gives_defaults(tmp_path):
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("search: [unclosed\n", encoding="utf-8")

    assert load_search_config(config_file) == SearchConfig()


def test_provider_notifies_listeners_only_on_change():
    provider = ConfigProvider(config=SearchConfig())
    seen = []
    provider.add_listener(seen.append)

    provider.update(SearchConfig())
    assert provider.version == 0
    assert seen == []

    changed = replace(SearchConfig(), max_results=10)
    provider.update(changed)
    assert provider.version == 1
    assert seen == [changed]
    assert provider.get().max_results == 10


def test_provider_reload_reads_file_again(tmp_path):
    config_file = tmp_path / "search.yaml"
    config_file.write_text("search:\n  maxResults: 7\n", encoding="utf-8")
    provider = ConfigProvider(config_path=config_file)
    assert provider.get().max_results == 7

    config_file.write_text("search:\n  maxResults: 9\n", encoding="utf-8")
    assert provider.reload().max_results == 9
    assert provider.version == 1
