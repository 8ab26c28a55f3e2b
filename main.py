"""
main.py - CLI orchestration for AutoMatch.

This module is orchestration-only:
1. load the marketplace directory
2. match (eligibility -> score -> classify -> reasons)
3. explain
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Optional

from config import AutoMatchSettings, load_settings
from directory import DealNotFoundError, MarketplaceDirectory
from explain import format_match_set, format_match_set_json
from logging_config import get_logger, setup_logging
from match import run_match

logger = get_logger("automatch")


def _configure_output_symbols() -> tuple[str, str]:
    """Configure stdout encoding and return safe line/fail symbols."""
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, ValueError, OSError):
        pass

    try:
        "═✗".encode(sys.stdout.encoding or "utf-8")
        return "═", "✗"
    except (UnicodeEncodeError, LookupError):
        return "=", "X"


BOX_CHAR, FAIL_CHAR = _configure_output_symbols()


def load_directory(data_file: Optional[str], providers_csv: Optional[str]) -> MarketplaceDirectory:
    started = time.perf_counter()
    directory = MarketplaceDirectory.from_files(data_file, providers_csv)
    logger.info(
        "directory_ready | data=%s | providers_csv=%s | deals=%s | providers=%s | elapsed=%.3fs",
        data_file,
        providers_csv,
        directory.deal_count,
        directory.provider_count,
        time.perf_counter() - started,
    )
    return directory


def _print_summary_table(results: list[tuple[str, str, str, str]]) -> None:
    """Print a compact per-deal summary for --all runs."""
    line = BOX_CHAR * 72
    print()
    print(line)
    print(f"  {'Deal':<18}{'Top Provider':<32}{'Score':>7}  {'Tier':<10}")
    print(line)
    for deal_id, provider, score, tier in results:
        print(f"  {deal_id[:17]:<18}{provider[:31]:<32}{score:>7}  {tier:<10}")
    print(line)
    print()


def run_all_deals(
    directory: MarketplaceDirectory,
    settings: AutoMatchSettings,
    program_year: Optional[int],
    max_results: Optional[int],
    min_score: Optional[int],
) -> int:
    """Match every deal in the directory. Returns the number of failures."""
    results: list[tuple[str, str, str, str]] = []
    failures = 0
    for deal_id in directory.deal_ids():
        try:
            result_set = run_match(
                deal_id,
                program_year=program_year,
                max_results=max_results,
                directory=directory,
                settings=settings,
                min_score=min_score,
            )
        except ValueError as exc:
            failures += 1
            logger.error("batch_deal_error | deal_id=%s | error=%s", deal_id, exc)
            print(f"\n  {FAIL_CHAR} Error matching {deal_id}: {exc}\n")
            results.append((deal_id, "ERROR", "-", "-"))
            continue

        top = result_set.top_match
        if result_set.is_skipped:
            results.append((deal_id, "(skipped)", "-", "-"))
        elif top is None:
            results.append((deal_id, "(no matches)", "-", "-"))
        else:
            results.append((deal_id, top.provider_name, str(top.score), top.tier.value))

    _print_summary_table(results)
    logger.info("batch_complete | deals=%s | failed=%s", len(results), failures)
    return failures


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for AutoMatch."""
    parser = argparse.ArgumentParser(
        prog="automatch",
        description=(
            "AutoMatch - rank capital providers (CDEs and investors) for a\n"
            "tax-credit deal and explain each match."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --deal deal-wv-clinic\n"
            "  %(prog)s --deal deal-wv-clinic --year 2023 --json\n"
            "  %(prog)s --all --data data/marketplace.json --providers-csv providers.csv\n"
        ),
    )
    parser.add_argument("--data", type=str, help="Marketplace JSON snapshot (default: AUTOMATCH_DATA_FILE)")
    parser.add_argument("--providers-csv", type=str, help="Extra provider directory CSV")
    parser.add_argument("--deal", "-d", type=str, help="Deal id to match")
    parser.add_argument("--all", "-a", action="store_true", help="Match every deal in the directory")
    parser.add_argument("--year", "-y", type=int, help="Program (allocation round) year")
    parser.add_argument("--max-results", "-n", type=int, help="Maximum matches to return")
    parser.add_argument("--min-score", type=int, help="Drop matches scoring below this value")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG-level) logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON instead of formatted text (single deal mode)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON lines (for production/log aggregation)",
    )

    args = parser.parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.log_json,
    )

    if not args.deal and not args.all:
        parser.error("Provide either --deal ID or --all")
    if args.deal and args.all:
        parser.error("Use --deal OR --all, not both")

    settings = load_settings()
    data_file = args.data or settings.data_file
    providers_csv = args.providers_csv or settings.providers_csv

    try:
        directory = load_directory(data_file, providers_csv)

        if args.all:
            logger.info("cli_mode | mode=batch | data=%s", data_file)
            failures = run_all_deals(directory, settings, args.year, args.max_results, args.min_score)
            if failures:
                raise SystemExit(1)
            return

        logger.info("cli_mode | mode=single | deal=%s | data=%s", args.deal, data_file)
        result_set = run_match(
            args.deal,
            program_year=args.year,
            max_results=args.max_results,
            directory=directory,
            settings=settings,
            min_score=args.min_score,
        )
        if args.json:
            print(json.dumps(format_match_set_json(result_set), indent=2))
        else:
            print(format_match_set(result_set))
    except DealNotFoundError as exc:
        logger.error("cli_error | type=DealNotFoundError | deal_id=%s", exc.deal_id)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except FileNotFoundError as exc:
        logger.error("cli_error | type=FileNotFoundError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except ValueError as exc:
        logger.error("cli_error | type=ValueError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)


if __name__ == "__main__":
    main()
