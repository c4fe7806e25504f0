"""
Settings loader (``groupbuy_config.loader``).

Responsibility
--------------
Reads one YAML file and the process environment and produces a frozen
``LedgerSettings``.  Environment variables win over the file:

    GROUPBUY_CONFIG        path of the YAML file (default: ./config.yaml)
    GROUPBUY_DATABASE_URL  database.url
    GROUPBUY_ADMINS        comma-separated admin entries ("@name" or id)
    GROUPBUY_LOG_LEVEL     logging.level

Invariants enforced
-------------------
* No silent defaults for required values: a missing database URL raises
  ``ValueError``.
* Unknown log levels raise ``ValueError``.

Failure modes
-------------
* Explicit config path that does not exist -> ``FileNotFoundError``.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Wrongly typed section -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from groupbuy_config.schema import DatabaseSettings, LedgerSettings

DEFAULT_CONFIG_PATH = Path("config.yaml")

ENV_CONFIG = "GROUPBUY_CONFIG"
ENV_DATABASE_URL = "GROUPBUY_DATABASE_URL"
ENV_ADMINS = "GROUPBUY_ADMINS"
ENV_LOG_LEVEL = "GROUPBUY_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"'{name}' must be a mapping")
    return dict(value)


def parse_admins(value: Any) -> tuple[str, ...]:
    """Accept a YAML list or a comma-separated string."""
    if value is None:
        return ()
    if isinstance(value, str):
        entries = value.split(",")
    elif isinstance(value, (list, tuple)):
        entries = [str(entry) for entry in value]
    else:
        raise ValueError(f"'admin' must be a list of strings, got {value!r}")
    return tuple(entry.strip() for entry in entries if entry.strip())


def parse_log_level(value: Any) -> str:
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level {value!r}; expected one of {_LOG_LEVELS}")
    return level


def parse_database(data: Mapping[str, Any]) -> DatabaseSettings:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ValueError(
            f"database.url is required (set it in the config file or {ENV_DATABASE_URL})"
        )
    defaults = DatabaseSettings(url=url)
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        pool_recycle=int(data.get("pool_recycle", defaults.pool_recycle)),
        sqlite_busy_timeout=float(
            data.get("sqlite_busy_timeout", defaults.sqlite_busy_timeout)
        ),
    )


def load_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build ``LedgerSettings`` from a YAML file plus environment overrides.

    An explicitly named file (argument or GROUPBUY_CONFIG) must exist; the
    implicit ./config.yaml is optional, so a deployment may be configured
    from the environment alone.
    """
    env = os.environ if environ is None else environ

    explicit = config_path or env.get(ENV_CONFIG)
    path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH
    if explicit or path.exists():
        data = load_yaml_file(path)
        source = str(path)
    else:
        data = {}
        source = None

    database = _section(data, "database")
    if env.get(ENV_DATABASE_URL):
        database["url"] = env[ENV_DATABASE_URL]

    admins = parse_admins(data.get("admin"))
    if env.get(ENV_ADMINS) is not None:
        admins = parse_admins(env[ENV_ADMINS])

    log_level = _section(data, "logging").get("level", "INFO")
    if env.get(ENV_LOG_LEVEL):
        log_level = env[ENV_LOG_LEVEL]

    return LedgerSettings(
        database=parse_database(database),
        admins=admins,
        log_level=parse_log_level(log_level),
        source=source,
    )


def log_level_number(settings: LedgerSettings) -> int:
    return logging.getLevelName(settings.log_level)
