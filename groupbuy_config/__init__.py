"""
groupbuy_config -- single public entrypoint for ledger settings.

Responsibility:
    ``get_settings()`` is the only way the service layer obtains its
    configuration.  The kernel never imports this package; the service
    facade translates settings into engine options and an admin authority.

Failure modes:
    - ``ValueError`` for missing or malformed required values.
    - ``FileNotFoundError`` for an explicitly named config file that does
      not exist.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from groupbuy_config.loader import load_settings, log_level_number
from groupbuy_config.schema import DatabaseSettings, LedgerSettings

_logger = logging.getLogger("groupbuy_kernel.config")


def get_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """Load settings from YAML and the environment."""
    settings = load_settings(config_path, environ)
    _logger.info(
        "GROUPBUY_CONFIG_TRACE",
        extra={
            "source": settings.source,
            "dialect": settings.database.url.split(":", 1)[0],
            "admin_count": len(settings.admins),
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = ["DatabaseSettings", "LedgerSettings", "get_settings", "log_level_number"]
