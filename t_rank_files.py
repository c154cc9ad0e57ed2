#!/usr/bin/env python3
import argparse
from pathlib import Path

from preview_common import *

ARG_QUERY = "query"
ARG_EXPLAIN_LONG = "--explain"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Rank the files of a workspace against a query and print the score table.',
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=f"Example:\n  {Path(__file__).name} {ARG_ROOT_LONG} ~/my_repo index {ARG_EXPLAIN_LONG} {ARG_LIMIT_LONG} 20\n",
    )
    parser.add_argument(ARG_QUERY, help='Fuzzy query, e.g. "index" or "srcidx".')
    parser.add_argument(ARG_ROOT_SHORT, ARG_ROOT_LONG, type=Path, default=Path.cwd(),
                        help='Workspace root to search (default: current directory).')
    parser.add_argument(ARG_CONFIG_LONG, type=Path, default=None,
                        help='YAML config with a "search" section.')
    parser.add_argument(ARG_LIMIT_LONG, type=int, default=20,
                        help='Number of rows to print (default: 20).')
    parser.add_argument(ARG_SCORER_LONG, choices=AVAILABLE_SCORERS, default=SCORER_SUBSEQUENCE,
                        help=f'Match scorer (default: {SCORER_SUBSEQUENCE}).')
    parser.add_argument(ARG_EXPLAIN_LONG, action='store_true',
                        help='Add the per-stage breakdown (view scores and multipliers) to each row.')
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    workspace_root = Path(get_arg_value(args, ARG_ROOT_LONG))
    if not workspace_root.is_dir():
        LOG_EXCEPTION_STR(f"Workspace root {workspace_root} is not a directory.")

    config_path = get_arg_value(args, ARG_CONFIG_LONG)
    config_provider = ConfigProvider(config_path=Path(config_path) if config_path else None)
    exclusion_filter = ExclusionFilter()
    ranker = FuzzyRanker(config_provider, exclusion_filter=exclusion_filter, scorer=get_scorer(get_arg_value(args, ARG_SCORER_LONG)))
    source = WalkCandidateSource(workspace_root, config_provider, exclusion_filter=exclusion_filter)

    candidates = order_by_default(source.enumerate(ExclusionFilter.enumeration_globs(config_provider.get())))
    query = get_arg_value(args, ARG_QUERY)
    results = ranker.rank(candidates, query)[:max(get_arg_value(args, ARG_LIMIT_LONG), 0)]
    LOG(f"{len(candidates)} candidates under {workspace_root}, showing {len(results)} for '{query}'.")
    if not results:
        return

    breakdowns = [ranker.explain(r.candidate, query) for r in results] if get_arg_value(args, ARG_EXPLAIN_LONG) else None
    LOG(format_results_table(results, breakdowns), show_time=False)


if __name__ == '__main__':
    main()
