"""
pharmacy_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services, scripts and the module
    facade obtain settings.  No other component reads configuration files
    or ``PHARMACY_*`` environment variables directly.

Architecture position:
    Configuration sits beside ``pharmacy_kernel``; the kernel never imports
    from it.  ``pharmacy_modules`` translates a PharmacyConfig into kernel
    constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- PHARMACY_CONFIG_FILE points nowhere.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import threading

from pharmacy_config.loader import load_config
from pharmacy_config.schema import PharmacyConfig

_logger = logging.getLogger("pharmacy_kernel.config")

_active: PharmacyConfig | None = None
_lock = threading.Lock()


def get_active_config() -> PharmacyConfig:
    """Load once per process and return the cached configuration."""
    global _active
    with _lock:
        if _active is None:
            _active = load_config()
            _logger.info(
                "pharmacy_config_loaded",
                extra={
                    "timezone": _active.timezone,
                    "expiry_alert_days": _active.expiry_alert_days,
                    "reject_expired_receipts": _active.reject_expired_receipts,
                    "exclude_expired_from_dispense": _active.exclude_expired_from_dispense,
                    "log_level": _active.log_level,
                },
            )
        return _active


def reset_active_config() -> None:
    """Forget the cached configuration (tests, reloads)."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "PharmacyConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
