"""
Configuration Loader (``pharmacy_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, deep-merges an optional site YAML
file over it, applies environment overrides and parses the result into a
frozen ``PharmacyConfig``.

Precedence (last wins)
----------------------
1. ``defaults.yaml`` shipped with the package.
2. The file given as ``path`` or named by ``PHARMACY_CONFIG_FILE``.
3. ``PHARMACY_DATABASE_URL``, ``PHARMACY_TIMEZONE``, ``PHARMACY_LOG_LEVEL``.

Failure modes
-------------
* Missing site file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or values of the wrong type  -> ``ValueError`` naming the
  offending field.  There are no silent defaults for misspelled keys.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pharmacy_config.schema import PharmacyConfig

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_FILE = "PHARMACY_CONFIG_FILE"
ENV_DATABASE_URL = "PHARMACY_DATABASE_URL"
ENV_TIMEZONE = "PHARMACY_TIMEZONE"
ENV_LOG_LEVEL = "PHARMACY_LOG_LEVEL"

# YAML (section, key) -> PharmacyConfig field
_FIELD_MAP: dict[tuple[str, str], str] = {
    ("database", "url"): "database_url",
    ("database", "echo_sql"): "echo_sql",
    ("database", "pool_size"): "pool_size",
    ("database", "max_overflow"): "max_overflow",
    ("clinic", "timezone"): "timezone",
    ("alerts", "expiry_alert_days"): "expiry_alert_days",
    ("alerts", "expiry_critical_days"): "expiry_critical_days",
    ("alerts", "critical_stock_ratio"): "critical_stock_ratio",
    ("policy", "reject_expired_receipts"): "reject_expired_receipts",
    ("policy", "exclude_expired_from_dispense"): "exclude_expired_from_dispense",
    ("policy", "conflict_retry_attempts"): "conflict_retry_attempts",
    ("logging", "level"): "log_level",
}

_BOOL_FIELDS = frozenset({"echo_sql", "reject_expired_receipts", "exclude_expired_from_dispense"})
_INT_FIELDS = frozenset({
    "pool_size",
    "max_overflow",
    "expiry_alert_days",
    "expiry_critical_days",
    "conflict_retry_attempts",
})
_DECIMAL_FIELDS = frozenset({"critical_stock_ratio"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = merge(result[key], value)
        else:
            result[key] = value
    return result


def _coerce(field: str, value: Any) -> Any:
    if field in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValueError(f"{field} must be a boolean, got {value!r}")
    if field in _INT_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"{field} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{field} must be an integer, got {value!r}") from exc
    if field in _DECIMAL_FIELDS:
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{field} must be a decimal number, got {value!r}") from exc
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string, got {value!r}")
    return value


def parse_config(data: Mapping[str, Any]) -> PharmacyConfig:
    """
    Parse a merged YAML mapping into a PharmacyConfig.

    Raises:
        ValueError: Unknown section/key, wrong type, or a value rejected by
            PharmacyConfig validation.
    """
    kwargs: dict[str, Any] = {}
    for section, values in data.items():
        if not isinstance(values, Mapping):
            raise ValueError(f"section '{section}' must be a mapping")
        for key, value in values.items():
            field = _FIELD_MAP.get((section, key))
            if field is None:
                raise ValueError(f"unknown configuration key '{section}.{key}'")
            if value is None:
                continue
            if field == "log_level" and isinstance(value, str):
                value = value.upper()
            kwargs[field] = _coerce(field, value)
    return PharmacyConfig(**kwargs)


def environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Environment variables as a YAML-shaped override mapping."""
    overrides: dict[str, Any] = {}
    if environ.get(ENV_DATABASE_URL):
        overrides.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_TIMEZONE):
        overrides.setdefault("clinic", {})["timezone"] = environ[ENV_TIMEZONE]
    if environ.get(ENV_LOG_LEVEL):
        overrides.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    return overrides


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> PharmacyConfig:
    """
    Build the effective configuration.

    Args:
        path: Site configuration file.  Falls back to ``PHARMACY_CONFIG_FILE``.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_FILE)

    site_file = path or env.get(ENV_CONFIG_FILE)
    if site_file:
        data = merge(data, load_yaml_file(Path(site_file)))

    data = merge(data, environment_overrides(env))
    return parse_config(data)
