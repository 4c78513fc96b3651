"""
dav_manager.utils - Utility module

Common utilities including normalization helpers and logging configuration.
"""

from dav_manager.utils.normalization import (
    name_key,
    normalize_phone,
    order_and_dedupe_phones,
    slugify,
    split_csv,
)
from dav_manager.utils.paths import (
    DEFAULT_CONFIG_DIR,
    dotenv_candidates,
    resolve_config_dir,
)

__all__ = [
    "name_key",
    "normalize_phone",
    "order_and_dedupe_phones",
    "slugify",
    "split_csv",
    "resolve_config_dir",
    "dotenv_candidates",
    "DEFAULT_CONFIG_DIR",
]
