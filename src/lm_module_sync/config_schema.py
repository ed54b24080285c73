"""Unified configuration schema for lm_module_sync.

Pydantic models for the YAML config structure, with one section for the
portal connection and one for logging, plus the adapter that turns them
into the ``Config`` dataclass used at runtime.

Usage:
    from lm_module_sync.config_schema import build_config, to_legacy_config

    unified = build_config(load_hierarchical_config())
    config = to_legacy_config(unified, cli_overrides={"hostname": "..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class PortalSettings(BaseModel):
    """Portal connection settings.

    Everything is optional so env vars and CLI args can supply values at
    runtime instead.
    """

    hostname: str | None = Field(
        default=None, description="Portal hostname"
    )
    token: str | None = Field(default=None, description="API bearer token")
    portal_id: str | None = Field(
        default=None,
        description="Identifier stored in module bindings (defaults to hostname)",
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent requests to the portal (1-32)",
    )
    state_dir: str = Field(
        default=".lm_module_sync",
        description="Where remembered module directories are recorded",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level configuration; ``UnifiedConfig()`` is always valid."""

    portal: PortalSettings = Field(default_factory=PortalSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Build a ``UnifiedConfig`` from the merged raw YAML dict.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the runtime ``Config`` dataclass.

    Precedence: CLI override > unified config value > empty default.
    The result is NOT validated; call ``validate_config()`` if needed.
    """
    from .config import Config

    overrides = cli_overrides or {}
    portal = unified.portal

    return Config(
        portal_hostname=overrides.get("hostname") or portal.hostname or "",
        bearer_token=overrides.get("token") or portal.token or "",
        portal_id=overrides.get("portal_id") or portal.portal_id or "",
        insecure=overrides.get("insecure", False) or portal.insecure,
        debug=overrides.get("debug", False) or portal.debug,
        max_parallel_requests=portal.max_parallel_requests,
        state_dir=portal.state_dir,
    )
