"""
Configuration for Warrant.

Settings can be passed explicitly, built from a mapping, or read from
``WARRANT_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from warrant.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class WarrantConfig:
    """
    Configuration for the authorization engine.

    Attributes:
        root_organization_id: Organization whose members may act on behalf
            of other organizations.
        database_url: SQLAlchemy URL of the relational store.
        echo_sql: Log every SQL statement SQLAlchemy emits.
        shared_policy_pool: Include every shared policy in every effective
            policy set, whether or not it is attached.

    Example:
        >>> config = WarrantConfig(
        ...     root_organization_id="ROOT",
        ...     database_url="postgresql+psycopg://warrant@localhost/authorization",
        ... )
    """

    root_organization_id: str = "ROOT"
    database_url: str = "sqlite://"
    echo_sql: bool = False
    shared_policy_pool: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.root_organization_id, str) or not self.root_organization_id:
            raise ConfigurationError(
                config_key="root_organization_id",
                expected="a non-empty string",
                value=self.root_organization_id,
            )
        if not isinstance(self.database_url, str) or not self.database_url:
            raise ConfigurationError(
                config_key="database_url",
                expected="a SQLAlchemy database URL",
                value=self.database_url,
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WarrantConfig:
        """
        Build a configuration from a mapping.

        Unknown keys are rejected so that typos do not go unnoticed.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                config_key=unknown[0],
                expected=f"one of: {', '.join(sorted(known))}",
                value=unknown[0],
            )

        values = dict(data)
        for key in ("echo_sql", "shared_policy_pool"):
            if key in values:
                values[key] = _to_bool(key, values[key])
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        prefix: str = "WARRANT_",
        environ: Mapping[str, str] | None = None,
    ) -> WarrantConfig:
        """
        Build a configuration from environment variables.

        ``WARRANT_ROOT_ORGANIZATION_ID`` maps to ``root_organization_id`` and
        so on. Variables that are not set keep their default.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            key = f"{prefix}{f.name.upper()}"
            if key in env:
                values[f.name] = env[key]

        if values:
            logger.debug(f"Configuration read from environment: {sorted(values)}")
        try:
            return cls.from_dict(values)
        except ConfigurationError as e:
            raise ConfigurationError(
                config_key=e.config_key,
                expected=e.expected,
                value=e.value,
                source=f"{prefix}{e.config_key.upper()}",
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "root_organization_id": self.root_organization_id,
            "database_url": self.database_url,
            "echo_sql": self.echo_sql,
            "shared_policy_pool": self.shared_policy_pool,
        }


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(config_key=key, expected="a boolean", value=value)
