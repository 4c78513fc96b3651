"""CLI package for dav_manager."""

from dav_manager.cli.formatters import (
    print_buckets_table,
    print_contacts_table,
    show_detailed_changes,
    show_errors,
)
from dav_manager.cli.main import (
    DEFAULT_CONFIG_FILE,
    cli,
    get_config_dir,
    get_config_file,
)
from dav_manager.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "cli",
    "get_config_dir",
    "get_config_file",
    "print_buckets_table",
    "print_contacts_table",
    "show_detailed_changes",
    "show_errors",
]
