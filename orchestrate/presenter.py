"""
Presentation helpers for crawl output.

Keeps crawl.py focused on orchestration while this module builds the run
summary, formats the end-of-run report and appends the execution log.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from .config import Settings


def build_run_summary(
    settings: Settings,
    stats: dict,
    store_stats=None,
    dry_run: bool = False,
    interrupted: bool = False,
    command: str | None = None,
) -> dict:
    """
    Build the JSON-serializable summary of one run.

    Args:
        settings: Settings the run used
        stats: CrawlStats.snapshot()
        store_stats: StoreStats after the run (None in dry-run)
        dry_run: Whether the store was bypassed
        interrupted: Whether the run was stopped by a signal
        command: Command line to record (defaults to sys.argv)
    """
    summary = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "command": command if command is not None else " ".join(sys.argv),
        "app": {"name": settings.app.name, "version": settings.app.version},
        "config": {
            "base_url": settings.target.base_url,
            "start_urls": list(settings.target.start_urls),
            "allowed_domains": list(settings.target.allowed_domains),
            "parallel_jobs": settings.crawler.parallel_jobs,
            "max_depth": settings.crawler.max_depth,
            "request_delay": settings.crawler.request_delay,
            "dry_run": dry_run,
        },
        "interrupted": interrupted,
        "results": dict(stats),
    }
    if store_stats is not None:
        summary["store"] = {
            "path": store_stats.path,
            "format": store_stats.format,
            "count": store_stats.count,
            "size_bytes": store_stats.size_bytes,
            "last_modified": (
                store_stats.last_modified.isoformat() if store_stats.last_modified else None
            ),
        }
    return summary


def format_report(summary: dict) -> str:
    """Human-readable end-of-run report."""
    r = summary["results"]
    lines = [
        f"{'=' * 60}",
        "Crawl interrupted" if summary.get("interrupted") else "Crawl completed",
        f"Duration: {r.get('duration_sec', 0):.1f}s",
        f"URLs visited: {r.get('urls_visited', 0)}",
        f"Articles extracted: {r.get('articles_extracted', 0)}",
    ]
    if summary["config"].get("dry_run"):
        lines.append("Articles saved: - (dry run)")
    else:
        lines.append(f"Articles saved: {r.get('articles_saved', 0)}")
        lines.append(f"Duplicates: {r.get('duplicates', 0)}")
    lines.append(f"Extraction skipped: {r.get('extraction_skipped', 0)}")
    lines.append(
        f"Errors: {r.get('fetch_errors', 0)} fetch, "
        f"{r.get('write_errors', 0)} write, {r.get('handler_errors', 0)} handler"
    )

    by_type = r.get("pages_by_type") or {}
    if by_type:
        parts = ", ".join(f"{k}: {v}" for k, v in sorted(by_type.items()))
        lines.append(f"Pages by type: {parts}")

    store = summary.get("store")
    if store:
        lines.append(f"Output: {store['path']} ({store['count']} articles, {store['size_bytes']:,} bytes)")
    return "\n".join(lines)


def append_execution_log(path: str | Path, summary: dict) -> Path:
    """Append the summary as one line of a JSONL execution log."""
    log_file = Path(path)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(summary) + "\n")
    return log_file
