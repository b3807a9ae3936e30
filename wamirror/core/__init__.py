"""
Core domain models and database layer for the message mirror.
"""

from wamirror.core.config import (
    get_default_config_dir,
    load_config,
    MirrorConfig,
)

__all__ = [
    "get_default_config_dir",
    "load_config",
    "MirrorConfig",
]
