"""Unified configuration schema for remsync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote service, the local store, and logging.

Usage:
    from remsync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = unified.remote.model_dump(exclude_none=True)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote service settings.

    All fields are optional so env vars and CLI args can supply them at
    runtime instead.
    """

    auth_server: str | None = Field(
        default=None, description="Authentication server base URL"
    )
    discovery_server: str | None = Field(
        default=None, description="Service discovery base URL"
    )
    device_token: str | None = Field(
        default=None, description="Device bearer token"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_fetches: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Maximum concurrent blob fetches (1-16)",
    )
    timeout: int = Field(
        default=60,
        ge=1,
        le=600,
        description="HTTP read timeout in seconds (1-600)",
    )

    model_config = {"frozen": True}


class StoreConfig(BaseModel):
    """Local store settings.

    Attributes:
        path: Default store directory for ``pull`` when none is given.
    """

    path: str | None = Field(
        default=None, description="Local store directory"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(
        default="text", pattern="^(text|json)$", description="Log format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Unknown top-level sections are ignored with a warning; anything
    absent gets defaults.

    Raises:
        pydantic.ValidationError: If a known section is malformed.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known and v}
    )
