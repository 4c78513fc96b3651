"""Markdown contact tables: the desired-state input and the sync report."""

from dav_manager.storage.table import (
    parse_desired_lines,
    parse_desired_table,
    render_contacts_table,
    write_contacts_table,
)

__all__ = [
    "parse_desired_lines",
    "parse_desired_table",
    "render_contacts_table",
    "write_contacts_table",
]
