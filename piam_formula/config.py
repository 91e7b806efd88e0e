"""
Configuration file parsing for the formula.

YAML files are read with PyYAML, `.json` files with the json module.
Configurations merge from multiple sources (explicit path → project → user
→ system → defaults), then environment variables override the result.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from .common import vlog
from .errors import ReleaseConfigError

# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".piam-formula.yml",
    ".piam-formula.yaml",
    os.path.expanduser("~/.config/piam-formula/config.yml"),
    os.path.expanduser("~/.config/piam-formula/config.yaml"),
    "/etc/piam-formula/config.yml",
    "/etc/piam-formula/config.yaml",
]

DEFAULT_PREFIX = "/usr/local"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_FETCH_RETRIES = 0

ENV_PREFIX = "PIAM_FORMULA_PREFIX"
ENV_TIMEOUT = "PIAM_FORMULA_TIMEOUT"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Config:
    """
    Formula configuration.

    Attributes:
        prefix: Installation prefix; binaries go to prefix/bin, state to prefix/var
        timeout_seconds: Socket timeout for the archive download
        fetch_retries: Extra whole-install attempts after a FetchError
        release_manifest: Optional YAML/JSON file replacing the built-in release table
        log_file: Optional file receiving DEBUG-level logs
        source: Configuration file(s) this was loaded from
    """
    prefix: str = DEFAULT_PREFIX
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    release_manifest: str | None = None
    log_file: str | None = None
    source: str = ""

    def __post_init__(self):
        """Validate values after initialization."""
        if not isinstance(self.prefix, str) or not self.prefix:
            raise ReleaseConfigError(
                f"Invalid prefix: {self.prefix!r}. Must be a non-empty path"
            )

        # bool is an int subclass; `timeout_seconds: true` must not pass as 1
        if not _is_int(self.timeout_seconds) or not 1 <= self.timeout_seconds <= 600:
            raise ReleaseConfigError(
                f"Invalid timeout_seconds: {self.timeout_seconds!r}. "
                "Must be an integer between 1 and 600"
            )

        if not _is_int(self.fetch_retries) or not 0 <= self.fetch_retries <= 5:
            raise ReleaseConfigError(
                f"Invalid fetch_retries: {self.fetch_retries!r}. "
                "Must be an integer between 0 and 5"
            )

        for name in ("release_manifest", "log_file"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, str) or not value):
                raise ReleaseConfigError(
                    f"Invalid {name}: {value!r}. Must be a non-empty path"
                )

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary. Keys present with a null value take the default."""
        prefix = data.get("prefix")
        timeout_seconds = data.get("timeout_seconds")
        fetch_retries = data.get("fetch_retries")
        return Config(
            prefix=DEFAULT_PREFIX if prefix is None else prefix,
            timeout_seconds=DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds,
            fetch_retries=DEFAULT_FETCH_RETRIES if fetch_retries is None else fetch_retries,
            release_manifest=data.get("release_manifest"),
            log_file=data.get("log_file"),
            source=source,
        )

    def merge_with(self, other: Config) -> Config:
        """
        Merge with a lower-priority config, keeping this config's non-default values.
        """
        return Config(
            prefix=self.prefix if self.prefix != DEFAULT_PREFIX else other.prefix,
            timeout_seconds=(
                self.timeout_seconds
                if self.timeout_seconds != DEFAULT_TIMEOUT_SECONDS
                else other.timeout_seconds
            ),
            fetch_retries=(
                self.fetch_retries
                if self.fetch_retries != DEFAULT_FETCH_RETRIES
                else other.fetch_retries
            ),
            release_manifest=self.release_manifest or other.release_manifest,
            log_file=self.log_file or other.log_file,
            source=self.source or other.source,
        )


def _load_yaml(file_path: str) -> dict[str, Any]:
    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _load_json(file_path: str) -> dict[str, Any]:
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Args:
        file_path: Path to a .yml/.yaml or .json file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if the file does not exist

    Raises:
        ReleaseConfigError: If the file exists but is unreadable or invalid
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    try:
        if file_path.endswith(".json"):
            data = _load_json(file_path)
        else:
            data = _load_yaml(file_path)
    except OSError as e:
        raise ReleaseConfigError(f"Could not read config {file_path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ReleaseConfigError(f"Invalid config file {file_path}: {e}") from e

    try:
        return Config.from_dict(data, source=file_path)
    except TypeError as e:
        raise ReleaseConfigError(f"Config validation failed for {file_path}: {e}") from e


def apply_environment(config: Config, environ: dict[str, str] | None = None) -> Config:
    """
    Apply PIAM_FORMULA_PREFIX / PIAM_FORMULA_TIMEOUT overrides.

    Raises:
        ReleaseConfigError: If PIAM_FORMULA_TIMEOUT is not an integer
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    if environ.get(ENV_PREFIX):
        overrides["prefix"] = environ[ENV_PREFIX]

    if environ.get(ENV_TIMEOUT):
        try:
            overrides["timeout_seconds"] = int(environ[ENV_TIMEOUT])
        except ValueError as e:
            raise ReleaseConfigError(
                f"Invalid {ENV_TIMEOUT}: {environ[ENV_TIMEOUT]!r} is not an integer"
            ) from e

    return replace(config, **overrides) if overrides else config


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Precedence (highest to lowest):
    1. Environment variables
    2. Custom path (if provided)
    3. Project .piam-formula.yml
    4. User ~/.config/piam-formula/config.yml
    5. System /etc/piam-formula/config.yml
    6. Defaults

    Raises:
        ReleaseConfigError: If custom_path is given but missing, or any file is invalid
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ReleaseConfigError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        merged = Config()
    else:
        merged = configs[0]
        for config in configs[1:]:
            merged = merged.merge_with(config)
        vlog(f"Merged {len(configs)} config files", verbose)

    return apply_environment(merged)


def resolve_manifest_path(config: Config) -> Path | None:
    """
    Return the release manifest path, relative paths anchored at the config file.
    """
    if not config.release_manifest:
        return None
    manifest = Path(os.path.expanduser(config.release_manifest))
    if not manifest.is_absolute() and config.source:
        manifest = Path(config.source).parent / manifest
    return manifest
