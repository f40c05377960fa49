"""
pricing_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration -- sits above ``pricing_kernel`` and below
    ``pricing_services`` / ``scripts``.  The kernel receives plain values
    (materials, index source, tolerance) from the orchestrator and never
    imports this package.

Failure modes:
    - ``FileNotFoundError`` -- settings file does not exist.
    - ``ValueError`` -- unknown key or invalid value.

Audit relevance:
    Every ``get_settings()`` call emits a ``PRICING_CONFIG_TRACE`` log entry
    with the source file and checksum of the effective settings.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pricing_config.loader import compute_checksum, load_settings_file, parse_settings
from pricing_config.schema import PricingSettings

_logger = logging.getLogger("pricing_kernel.config")

DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

ENV_CONFIG_FILE = "PRICING_CONFIG_FILE"
ENV_DATABASE_URL = "PRICING_DATABASE_URL"
ENV_LOG_LEVEL = "PRICING_LOG_LEVEL"


def get_settings(config_path: Path | str | None = None) -> PricingSettings:
    """
    The ONLY public settings entrypoint.

    Resolution order: ``config_path`` argument, then ``PRICING_CONFIG_FILE``,
    then the bundled ``sets/default.yaml``.  ``PRICING_DATABASE_URL`` and
    ``PRICING_LOG_LEVEL`` override the file's values.

    Raises:
        FileNotFoundError, ValueError
    """
    path = Path(config_path or os.environ.get(ENV_CONFIG_FILE) or DEFAULT_CONFIG_FILE)
    settings = load_settings_file(path)

    overrides: dict[str, str] = {}
    if os.environ.get(ENV_DATABASE_URL):
        overrides["database_url"] = os.environ[ENV_DATABASE_URL]
    if os.environ.get(ENV_LOG_LEVEL):
        overrides["log_level"] = os.environ[ENV_LOG_LEVEL]

    if overrides:
        merged = {
            "database_url": settings.database_url,
            "supported_materials": list(settings.supported_materials),
            "default_index_source": settings.default_index_source,
            "default_formula": settings.default_formula,
            "derivation_tolerance": str(settings.derivation_tolerance),
            "log_level": settings.log_level,
            "pool_size": settings.pool_size,
            "lock_timeout_ms": settings.lock_timeout_ms,
            "echo_sql": settings.echo_sql,
            **overrides,
        }
        settings = parse_settings(merged, source_path=str(path))

    _logger.info(
        "PRICING_CONFIG_TRACE",
        extra={
            "trace_type": "PRICING_CONFIG_TRACE",
            "source_path": str(path),
            "checksum": settings.checksum,
            "overrides": sorted(overrides),
            "supported_materials": list(settings.supported_materials),
            "default_formula": settings.default_formula,
        },
    )
    return settings


__all__ = [
    "PricingSettings",
    "get_settings",
    "parse_settings",
    "compute_checksum",
]
