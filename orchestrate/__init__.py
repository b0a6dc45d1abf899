"""
Orchestration modules for a crawl run: configuration, frontier, crawler,
reporting.

Only the configuration layer is imported here; import the crawler from
``orchestrate.crawler`` (it depends on ``storage``, which depends on this
package's config).
"""

from .config import (
    ConfigError,
    Settings,
    load_config,
    parse_duration,
    settings_from_dict,
    validate,
    DEFAULT_CONFIG_PATH,
    PROJECT_ROOT,
)

__all__ = [
    "ConfigError",
    "Settings",
    "load_config",
    "parse_duration",
    "settings_from_dict",
    "validate",
    "DEFAULT_CONFIG_PATH",
    "PROJECT_ROOT",
]
