#!/usr/bin/env python3
"""
Single-site article crawler.

Crawl pipeline:
- Seed the frontier with the configured start URLs
- Fetch pages concurrently (robots.txt, per-domain pacing, retries)
- Classify each page; extract and store articles
- Follow article and pagination links within scope and depth
- Print a run report and optionally append it to an execution log

Usage:
    python scripts/crawl.py --config configs/config.yaml
    python scripts/crawl.py --dry-run --verbose
"""

import argparse
import logging
import signal
import sys
from pathlib import Path

from tqdm import tqdm

# Add parent dir to path for package imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fetch import FetchConfig, FetchEngine
from orchestrate.config import DEFAULT_CONFIG_PATH, ConfigError, load_config
from orchestrate.crawler import Crawler
from orchestrate.presenter import append_execution_log, build_run_summary, format_report
from storage import open_store


__version__ = "0.1.0"

logger = logging.getLogger("crawl")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl a site and store its articles as JSON Lines")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH),
                        help="Path to YAML config (default: configs/config.yaml)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Crawl and extract without writing to the store")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar")
    parser.add_argument("--run-log", metavar="PATH",
                        help="Append the run summary to this JSONL execution log")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # urllib3 is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_config(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(settings.app.log_level, args.verbose)
    logger.debug("Loaded config from %s", args.config)

    store = None
    if not args.dry_run:
        try:
            store = open_store(settings.storage)
        except (ConfigError, OSError) as exc:
            print(f"Failed to open store: {exc}", file=sys.stderr)
            return 1

    engine = FetchEngine(FetchConfig.from_settings(settings))

    pbar = None
    on_page = None
    if args.progress:
        pbar = tqdm(desc="Pages", unit="page")

        def on_page(page, stats):
            pbar.update(1)
            pbar.set_postfix_str(f"saved={stats.articles_saved} dup={stats.duplicates}")

    crawler = Crawler(settings, engine, store=store, dry_run=args.dry_run, on_page=on_page)

    interrupted = False

    def handle_signal(signum, frame):
        nonlocal interrupted
        if interrupted:
            return
        interrupted = True
        print(f"\nReceived {signal.Signals(signum).name}, finishing in-flight pages...", file=sys.stderr)
        crawler.stop()

    previous_handlers = {
        sig: signal.signal(sig, handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    mode = " (dry run)" if args.dry_run else ""
    print(f"{settings.app.name} {settings.app.version}{mode}")
    print(f"Crawling {', '.join(settings.target.start_urls)} "
          f"(jobs={settings.crawler.parallel_jobs}, depth={settings.crawler.max_depth})")

    store_stats = None
    try:
        stats = crawler.run()
        if store is not None:
            store_stats = store.stats()
    finally:
        engine.close()
        if pbar is not None:
            pbar.close()
        if store is not None:
            store.close()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    summary = build_run_summary(
        settings, stats.snapshot(), store_stats,
        dry_run=args.dry_run, interrupted=interrupted,
    )
    print(f"\n{format_report(summary)}")

    if args.run_log:
        try:
            log_file = append_execution_log(args.run_log, summary)
            print(f"Execution logged to: {log_file}")
        except OSError as exc:
            print(f"Warning: Could not write execution log: {exc}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
