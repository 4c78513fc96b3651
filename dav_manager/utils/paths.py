"""
Locations of dav-manager's own files.

The configuration directory holds config.yaml, an optional .env file and
the logs/ folder.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_CONFIG_DIR = Path.home() / ".dav-manager"
CONFIG_DIR_ENV_VAR = "DAV_MANAGER_CONFIG_DIR"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Pick the configuration directory as an absolute path.

    An explicit ``config_dir`` wins, then $DAV_MANAGER_CONFIG_DIR, then
    ``~/.dav-manager``. ``~`` is expanded in all three.
    """
    chosen = config_dir
    if chosen is None:
        chosen = os.environ.get(CONFIG_DIR_ENV_VAR) or DEFAULT_CONFIG_DIR
    return Path(chosen).expanduser().resolve()


def dotenv_candidates(config_dir: Path | None = None) -> list[Path]:
    """
    List the ``.env`` files to load, most specific first.

    The working directory wins over the configuration directory; values
    already present in the environment are never overridden by either.
    """
    return [Path.cwd() / ".env", resolve_config_dir(config_dir) / ".env"]
