"""
Configuration Loader (``pricing_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a frozen
``PricingSettings``.  Callers use ``pricing_config.get_settings()``; this
module is the parsing step behind it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pricing_config.schema import PricingSettings
from pricing_kernel.utils.hashing import hash_payload

_KNOWN_FORMULAS = frozenset({"3_month_rolling", "simple_average", "quarterly_standard"})

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

_SETTING_KEYS = frozenset(
    f.name for f in fields(PricingSettings) if f.name not in ("source_path", "checksum")
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the effective settings."""
    return hash_payload(data)


def parse_settings(data: dict[str, Any], source_path: str | None = None) -> PricingSettings:
    """
    Build PricingSettings from a parsed mapping (the ``pricing`` section or
    the whole document).

    Raises:
        ValueError: unknown key or invalid value.
    """
    section = data.get("pricing", data)
    if not isinstance(section, dict):
        raise ValueError("'pricing' section must be a mapping")

    unknown = sorted(set(section) - _SETTING_KEYS)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")

    defaults = PricingSettings()
    values: dict[str, Any] = {}

    database_url = section.get("database_url", defaults.database_url)
    if not isinstance(database_url, str) or not database_url.strip():
        raise ValueError("database_url must be a non-empty string")
    values["database_url"] = database_url.strip()

    materials = section.get("supported_materials", list(defaults.supported_materials))
    if (
        not isinstance(materials, list)
        or not materials
        or not all(isinstance(m, str) and m.strip() for m in materials)
    ):
        raise ValueError("supported_materials must be a non-empty list of strings")
    values["supported_materials"] = tuple(m.strip() for m in materials)

    source = section.get("default_index_source", defaults.default_index_source)
    if not isinstance(source, str) or not source.strip():
        raise ValueError("default_index_source must be a non-empty string")
    values["default_index_source"] = source.strip()

    formula = section.get("default_formula", defaults.default_formula)
    if formula not in _KNOWN_FORMULAS:
        raise ValueError(
            f"default_formula must be one of {sorted(_KNOWN_FORMULAS)}, got {formula!r}"
        )
    values["default_formula"] = formula

    raw_tolerance = section.get("derivation_tolerance", defaults.derivation_tolerance)
    try:
        tolerance = Decimal(str(raw_tolerance))
    except InvalidOperation:
        raise ValueError(f"derivation_tolerance is not a number: {raw_tolerance!r}") from None
    if not tolerance.is_finite() or tolerance < 0:
        raise ValueError("derivation_tolerance must be a non-negative number")
    values["derivation_tolerance"] = tolerance

    level = str(section.get("log_level", defaults.log_level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    values["log_level"] = level

    pool_size = section.get("pool_size", defaults.pool_size)
    if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size < 1:
        raise ValueError("pool_size must be a positive integer")
    values["pool_size"] = pool_size

    lock_timeout = section.get("lock_timeout_ms", defaults.lock_timeout_ms)
    if isinstance(lock_timeout, bool) or not isinstance(lock_timeout, int) or lock_timeout < 1:
        raise ValueError("lock_timeout_ms must be a positive integer")
    values["lock_timeout_ms"] = lock_timeout

    echo_sql = section.get("echo_sql", defaults.echo_sql)
    if not isinstance(echo_sql, bool):
        raise ValueError("echo_sql must be a boolean")
    values["echo_sql"] = echo_sql

    return PricingSettings(
        **values,
        source_path=source_path,
        checksum=compute_checksum(values),
    )


def load_settings_file(path: Path) -> PricingSettings:
    """Load and parse one settings file."""
    return parse_settings(load_yaml_file(path), source_path=str(path))
