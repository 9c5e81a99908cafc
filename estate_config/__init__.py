"""
estate_config -- single entry point for engine settings.

``get_settings()`` loads once per process (defaults.yaml, then the file
named by ``ESTATE_CONFIG_FILE``, then ``ESTATE_*`` variables) and caches
the result.  ``reset_settings()`` drops the cache for tests.
"""

import os
import threading

from estate_config.loader import load_settings
from estate_config.schema import EstateSettings

_settings: EstateSettings | None = None
_lock = threading.Lock()


def get_settings() -> EstateSettings:
    global _settings
    with _lock:
        if _settings is None:
            _settings = load_settings(os.environ.get("ESTATE_CONFIG_FILE"))
        return _settings


def reset_settings() -> None:
    global _settings
    with _lock:
        _settings = None


__all__ = ["EstateSettings", "get_settings", "load_settings", "reset_settings"]
