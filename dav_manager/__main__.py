"""
Entry point for running dav_manager as a module.

Usage:
    python -m dav_manager --help
    python -m dav_manager contacts fetch
    python -m dav_manager contacts sync --source contacts.md --apply
"""

from dav_manager.cli import cli

if __name__ == "__main__":
    cli()
