"""
Settings schema (``groupbuy_config.schema``).

Frozen dataclasses describing everything the ledger reads from its
environment: where the database lives, how the pool is sized, who the
administrators are, and how loud the logs are.  Instances are produced by
``groupbuy_config.loader`` and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DatabaseSettings:
    """Engine parameters passed to ``groupbuy_kernel.db.build_engine``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0

    def engine_options(self) -> dict[str, Any]:
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "sqlite_busy_timeout": self.sqlite_busy_timeout,
        }


@dataclass(frozen=True)
class LedgerSettings:
    """
    Root settings object.

    ``admins`` holds allow-list entries as written in the config file:
    ``"@name"`` matches a username, anything else matches a user id.
    """

    database: DatabaseSettings
    admins: tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"
    source: str | None = None
