"""
rdv-supervisor config package public API.

File: src/rdv_supervisor/config/__init__.py

Purpose
- Export supervisor config loading entrypoints and the public error type.
"""

from rdv_supervisor.config.loader import (
    CONFIG_PATH_ENV,
    CONFIG_TABLE,
    ENV_PREFIX,
    ConfigLoadError,
    SupervisorConfig,
    load_config,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "CONFIG_TABLE",
    "ConfigLoadError",
    "ENV_PREFIX",
    "SupervisorConfig",
    "load_config",
]
