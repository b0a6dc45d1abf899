"""
Configuration loading and validation for a crawl run.

The YAML file has one section per concern (app, target, crawler,
classifier, selectors, storage). Missing keys take the defaults below;
validate() rejects anything the crawl cannot run with.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from scrape.classify import (
    DEFAULT_ARTICLE_PATTERNS,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_LISTING_PATTERNS,
    DEFAULT_LISTING_ROOTS,
    DEFAULT_PAGINATION_MARKER,
    URLClassifier,
)
from scrape.extractor import ArticleSelectors
from scrape.links import LinkRules


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "config.yaml"

SUPPORTED_FORMATS = ("jsonl",)
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Invalid or unreadable configuration."""


@dataclass
class AppConfig:
    name: str = "article-crawler"
    version: str = "0.1.0"
    log_level: str = "INFO"


@dataclass
class TargetConfig:
    base_url: str = ""
    start_urls: list[str] = field(default_factory=list)
    allowed_domains: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))


@dataclass
class CrawlerConfig:
    parallel_jobs: int = 2
    request_delay: float = 1.0  # seconds between requests to one domain
    timeout: float = 30.0
    max_depth: int = 5
    user_agent: str = "ArticleCrawler/0.1"
    respect_robots_txt: bool = True
    retries: int = 2


@dataclass
class ClassifierConfig:
    article_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_ARTICLE_PATTERNS))
    listing_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_LISTING_PATTERNS))
    listing_roots: list[str] = field(default_factory=lambda: list(DEFAULT_LISTING_ROOTS))
    pagination_marker: str = DEFAULT_PAGINATION_MARKER


@dataclass
class SelectorConfig:
    article: ArticleSelectors = field(default_factory=ArticleSelectors)
    all_links: str = "a[href]"


@dataclass
class StorageConfig:
    output_format: str = "jsonl"
    output_file: str = "data/articles.jsonl"
    backup_enabled: bool = True
    backup_directory: str = "data/backups"
    max_backup_files: int = 10
    fsync: bool = True


@dataclass
class Settings:
    """Complete crawl configuration."""

    app: AppConfig = field(default_factory=AppConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    selectors: SelectorConfig = field(default_factory=SelectorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def build_classifier(self) -> URLClassifier:
        return URLClassifier(
            exclude_patterns=self.target.exclude_patterns,
            article_patterns=self.classifier.article_patterns,
            listing_patterns=self.classifier.listing_patterns,
            pagination_marker=self.classifier.pagination_marker,
        )

    def build_link_rules(self, classifier: URLClassifier | None = None) -> LinkRules:
        return LinkRules(
            classifier=classifier or self.build_classifier(),
            listing_roots=list(self.classifier.listing_roots),
            pagination_marker=self.classifier.pagination_marker,
            link_selector=self.selectors.all_links,
        )


def parse_duration(value: Any, key: str = "duration") -> float:
    """Parse '2s', '500ms', '1m', '1h' or a bare number into seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"{key}: invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$', str(value).lower())
    if not match:
        raise ConfigError(f"{key}: invalid duration {value!r} (use e.g. 500ms, 2s, 1m)")
    number, unit = float(match.group(1)), match.group(2) or 's'
    return number * {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}[unit]


def parse_selector_list(value: Any, key: str = "selector") -> list[str]:
    """Accept a YAML list or a comma-separated string of CSS selectors."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        raise ConfigError(f"{key}: expected a list or comma-separated string")
    return [s.strip() for s in items if s and s.strip()]


def load_config_file(path: str | Path) -> dict:
    """Read a YAML (or JSON) config file into a dict."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    content = p.read_text(encoding="utf-8").strip()
    if not content:
        return {}

    try:
        if p.suffix.lower() == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Load, build and validate Settings from a config file."""
    settings = settings_from_dict(load_config_file(path))
    validate(settings)
    return settings


def settings_from_dict(data: dict) -> Settings:
    """Build Settings from a parsed config mapping (no validation)."""
    settings = Settings()

    app = _section(data, "app")
    _assign(settings.app, app, ("name", "version", "log_level"), str)

    target = _section(data, "target")
    if "base_url" in target:
        settings.target.base_url = str(target["base_url"] or "")
    for key in ("start_urls", "allowed_domains", "exclude_patterns"):
        if key in target:
            setattr(settings.target, key, _string_list(target[key], f"target.{key}"))

    crawler = _section(data, "crawler")
    c = settings.crawler
    for key in ("parallel_jobs", "max_depth", "retries"):
        if key in crawler:
            setattr(c, key, _int(crawler[key], f"crawler.{key}"))
    for key in ("request_delay", "timeout"):
        if key in crawler:
            setattr(c, key, parse_duration(crawler[key], f"crawler.{key}"))
    if "user_agent" in crawler:
        c.user_agent = str(crawler["user_agent"])
    if "respect_robots_txt" in crawler:
        c.respect_robots_txt = bool(crawler["respect_robots_txt"])

    classifier = _section(data, "classifier")
    for key in ("article_patterns", "listing_patterns", "listing_roots"):
        if key in classifier:
            setattr(settings.classifier, key, _string_list(classifier[key], f"classifier.{key}"))
    if "pagination_marker" in classifier:
        settings.classifier.pagination_marker = str(classifier["pagination_marker"] or "")

    selectors = _section(data, "selectors")
    article = _section(selectors, "article", "selectors.")
    for key in ("title", "content", "published_date", "author"):
        if key in article:
            setattr(
                settings.selectors.article, key,
                parse_selector_list(article[key], f"selectors.article.{key}"),
            )
    links = _section(selectors, "links", "selectors.")
    if "all_links" in links:
        settings.selectors.all_links = str(links["all_links"] or "").strip()

    storage = _section(data, "storage")
    s = settings.storage
    _assign(s, storage, ("output_format", "output_file", "backup_directory"), str)
    if "max_backup_files" in storage:
        s.max_backup_files = _int(storage["max_backup_files"], "storage.max_backup_files")
    for key in ("backup_enabled", "fsync"):
        if key in storage:
            setattr(s, key, bool(storage[key]))

    # allowed_domains defaults to the host of base_url
    if not settings.target.allowed_domains and settings.target.base_url:
        host = urlparse(settings.target.base_url).hostname
        if host:
            settings.target.allowed_domains = [host]
    if not settings.target.start_urls and settings.target.base_url:
        settings.target.start_urls = [settings.target.base_url]

    return settings


def validate(settings: Settings) -> None:
    """Raise ConfigError naming the first invalid key."""
    c = settings.crawler
    if c.parallel_jobs <= 0:
        raise ConfigError("crawler.parallel_jobs must be greater than 0")
    if c.max_depth < 0:
        raise ConfigError("crawler.max_depth must be 0 or greater")
    if c.request_delay < 0:
        raise ConfigError("crawler.request_delay must not be negative")
    if c.timeout <= 0:
        raise ConfigError("crawler.timeout must be greater than 0")
    if c.retries < 0:
        raise ConfigError("crawler.retries must be 0 or greater")

    if settings.app.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"app.log_level must be one of {', '.join(LOG_LEVELS)}")

    if not settings.target.start_urls:
        raise ConfigError("target.start_urls is required (or set target.base_url)")
    if not settings.target.allowed_domains:
        raise ConfigError("target.allowed_domains is required")

    article = settings.selectors.article
    if not article.title:
        raise ConfigError("selectors.article.title is required")
    if not article.content:
        raise ConfigError("selectors.article.content is required")
    if not settings.selectors.all_links:
        raise ConfigError("selectors.links.all_links is required")

    for key in ("article_patterns", "listing_patterns"):
        for pattern in getattr(settings.classifier, key):
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ConfigError(f"classifier.{key}: invalid regex {pattern!r}: {exc}") from exc

    validate_storage_config(settings.storage)


def validate_storage_config(config: StorageConfig) -> None:
    """Raise ConfigError if the storage section cannot be used."""
    if config.output_format not in SUPPORTED_FORMATS:
        raise ConfigError(
            f"storage.output_format: unsupported format {config.output_format!r} "
            f"(supported: {', '.join(SUPPORTED_FORMATS)})"
        )
    if not config.output_file:
        raise ConfigError("storage.output_file is required")
    if config.backup_enabled:
        if not config.backup_directory:
            raise ConfigError("storage.backup_directory is required when backups are enabled")
        if config.max_backup_files <= 0:
            raise ConfigError("storage.max_backup_files must be greater than 0")


def _section(data: dict, name: str, prefix: str = "") -> dict:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{prefix}{name} must be a mapping")
    return value


def _assign(obj, section: dict, keys: tuple[str, ...], cast) -> None:
    for key in keys:
        if key in section and section[key] is not None:
            setattr(obj, key, cast(section[key]))


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key}: expected an integer, got {value!r}") from exc


def _string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{key}: expected a list")
    return [str(v) for v in value]
