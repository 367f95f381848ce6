"""Site configuration for Tidepool.

This module loads `_config.yml` from the source directory and turns it into an
immutable Config value. It also loads the optional `_data` directory that is
exposed to templates as `site.data`.

Key functions:
- load_config: Loads and validates site configuration from _config.yml.
- load_data: Loads site data from YAML files in the _data directory.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "_config.yml"

DEFAULT_EXCLUDE = (
    "Gemfile",
    "Gemfile.lock",
    "node_modules",
    "vendor",
    ".git",
    ".gitignore",
    "_site",
)

DEFAULT_MARKDOWN_PLUGINS = ("strikethrough", "footnotes", "table", "url", "task_lists")


class ConfigError(Exception):
    """Error reading or validating the site configuration.

    Attributes:
        path: Path to the offending configuration or data file.
        message: Human-readable error message.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass(frozen=True)
class Config:
    """Site-wide settings for one build.

    Attributes:
        title: Site title.
        description: Site description.
        url: Absolute site URL (e.g. https://example.com).
        baseurl: Path prefix the site is served under (e.g. /blog).
        markdown: Markdown engine name.
        markdown_plugins: Markdown extensions enabled for rendering.
        permalink: Token pattern for post URLs.
        paginate: Posts per page.
        paginate_path: Pagination path pattern.
        exclude: Substring patterns excluded from pages and static files.
        include: Substring patterns that override exclude.
        plugins: Plugin names (exposed to templates only).
        custom: Every unrecognized key from _config.yml.
    """

    title: str = "My Site"
    description: str = ""
    url: str = ""
    baseurl: str = ""
    markdown: str = "mistune"
    markdown_plugins: tuple[str, ...] = DEFAULT_MARKDOWN_PLUGINS
    permalink: str = "/:year/:month/:day/:title/"
    paginate: int = 10
    paginate_path: str = "/page:num/"
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE
    include: tuple[str, ...] = ()
    plugins: tuple[str, ...] = ()
    custom: Mapping[str, Any] = field(default_factory=dict)

    def is_excluded(self, path: Path | str) -> bool:
        """Check whether a source-relative path is excluded from processing.

        A path is excluded when it contains any exclude pattern as a substring,
        unless it also contains an include pattern, in which case include wins.

        Args:
            path: Path relative to the source directory.

        Returns:
            True if the path should be skipped.

        Examples:
            >>> Config().is_excluded("node_modules/x.js")
            True

            >>> Config(include=("node_modules/keep",)).is_excluded("node_modules/keep.js")
            False
        """
        text = Path(path).as_posix() if isinstance(path, Path) else path.replace("\\", "/")
        if any(pattern in text for pattern in self.include):
            return False
        return any(pattern in text for pattern in self.exclude)

    def to_context(self) -> dict[str, Any]:
        """Return the configuration as template variables (custom keys first)."""
        context = dict(self.custom)
        context.update(
            title=self.title,
            description=self.description,
            url=self.url,
            baseurl=self.baseurl,
            markdown=self.markdown,
            permalink=self.permalink,
            paginate=self.paginate,
            paginate_path=self.paginate_path,
            exclude=list(self.exclude),
            include=list(self.include),
            plugins=list(self.plugins),
        )
        return context


_STRING_KEYS = ("title", "description", "url", "baseurl", "markdown", "permalink", "paginate_path")
_LIST_KEYS = ("markdown_plugins", "exclude", "include", "plugins")


def load_config(source: Path) -> Config:
    """Load site configuration from _config.yml.

    A missing file is not an error: defaults apply and a warning is logged. A file
    that exists but cannot be read or parsed raises ConfigError.

    Args:
        source: Root directory of the site sources.

    Returns:
        Config with defaults applied for every missing key.

    Raises:
        ConfigError: If the file is unreadable, malformed, or has wrongly typed values.
    """
    config_path = source / CONFIG_FILENAME
    if not config_path.exists():
        logger.warning("No %s found in %s, using defaults", CONFIG_FILENAME, source)
        return Config()

    logger.info("Loading config from %s", config_path)
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(config_path, f"Failed to read config: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(config_path, f"File is not valid UTF-8: {exc}") from exc
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigError(config_path, f"Invalid YAML: {exc}") from exc

    if loaded is None:
        return Config()
    if not isinstance(loaded, dict):
        raise ConfigError(config_path, "Expected a mapping at the top level")
    return _config_from_mapping(config_path, loaded)


def _config_from_mapping(config_path: Path, loaded: dict[str, Any]) -> Config:
    values: dict[str, Any] = {}
    custom: dict[str, Any] = {}
    for key, value in loaded.items():
        key = str(key)
        if key in _STRING_KEYS:
            if value is None:
                continue
            if not isinstance(value, (str, int, float)) or isinstance(value, bool):
                raise ConfigError(config_path, f"'{key}' must be a string")
            values[key] = str(value)
        elif key in _LIST_KEYS:
            values[key] = _as_tuple(config_path, key, value)
        elif key == "paginate":
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(config_path, "'paginate' must be a positive integer")
            values[key] = value
        else:
            custom[key] = value
    return Config(custom=custom, **values)


def _as_tuple(config_path: Path, key: str, value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list):
        return tuple(str(item) for item in value)
    raise ConfigError(config_path, f"'{key}' must be a list of strings")


def load_data(source: Path) -> dict[str, Any]:
    """Load site data from YAML files in the _data directory.

    Args:
        source: Root directory of the site sources.

    Returns:
        Dictionary keyed by file stem.

    Raises:
        ConfigError: If a data file cannot be parsed.
    """
    data_dir = source / "_data"
    data: dict[str, Any] = {}
    if not data_dir.is_dir():
        return data
    paths = sorted([*data_dir.glob("*.yml"), *data_dir.glob("*.yaml")])
    for path in paths:
        try:
            with open(path, encoding="utf-8") as f:
                data[path.stem] = yaml.safe_load(f)
        except UnicodeDecodeError as exc:
            raise ConfigError(path, f"File is not valid UTF-8: {exc}") from exc
        except (yaml.YAMLError, ValueError) as exc:
            raise ConfigError(path, f"Invalid YAML: {exc}") from exc
    return data
