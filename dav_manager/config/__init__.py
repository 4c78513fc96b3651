"""
dav_manager.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from dav_manager.config.generator import generate_default_config, save_config_file
from dav_manager.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from dav_manager.config.settings import DavConfig, env_flag, load_env_files

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "DEFAULT_CONFIG_FILE",
    "DavConfig",
    "env_flag",
    "generate_default_config",
    "load_env_files",
    "save_config_file",
]
