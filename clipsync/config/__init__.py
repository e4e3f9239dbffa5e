from __future__ import annotations

from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import SyncConfig

__all__ = [
    "AppConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
