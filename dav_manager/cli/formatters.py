"""CLI output formatting functions.

This module contains functions for displaying contacts, bucket archives,
sync results and detailed change lists on the command line.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import click

from dav_manager.sync.result import MutationAction

if TYPE_CHECKING:
    from dav_manager.buckets import BucketEntry
    from dav_manager.sync.contact import RemoteRecord
    from dav_manager.sync.result import SyncResult

# Maximum number of items listed per change category
MAX_LISTED = 10


def format_columns(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> list[str]:
    """Lay out rows as left-aligned columns separated by two spaces."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def line(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    lines = [line(headers), "  ".join("-" * w for w in widths)]
    lines.extend(line(row) for row in rows)
    return lines


def print_contacts_table(records: Iterable[RemoteRecord]) -> None:
    """Print server contacts as a Name / Emails / Phones table."""
    rows = [
        (r.display_name.strip(), ", ".join(r.emails), ", ".join(r.phones))
        for r in records
    ]
    for text in format_columns(("Name", "Emails", "Phones"), rows):
        click.echo(text)


def print_buckets_table(entries: dict[str, list[BucketEntry]]) -> None:
    """Print archived contacts grouped by bucket."""
    rows = []
    for bucket in sorted(entries):
        for entry in sorted(entries[bucket], key=lambda e: e.name.lower()):
            rows.append(
                (bucket, entry.name, ", ".join(entry.emails), ", ".join(entry.phones))
            )
    for text in format_columns(("Bucket", "Name", "Emails", "Phones"), rows):
        click.echo(text)


def _list_section(title: str, symbol: str, names: list[str]) -> None:
    if not names:
        return
    click.echo(f"\n{title}:")
    for name in names[:MAX_LISTED]:
        click.echo(f"  {symbol} {name}")
    if len(names) > MAX_LISTED:
        click.echo(f"  ... and {len(names) - MAX_LISTED} more")


def show_detailed_changes(result: SyncResult) -> None:
    """
    Display every planned mutation grouped by kind.

    Args:
        result: The SyncResult containing changes to display
    """
    click.echo("\n=== Detailed Changes ===")

    def names(action: MutationAction) -> list[str]:
        return [m.name for m in result.planned(action)]

    _list_section("Contacts to create", "+", names(MutationAction.CREATE))
    _list_section("Contacts to update", "~", names(MutationAction.UPDATE))
    _list_section(
        "Extras to archive and delete",
        "-",
        [f"{m.name} -> {m.path}" for m in result.planned(MutationAction.REMOVE_EXTRA)],
    )
    _list_section(
        "Duplicates to delete",
        "-",
        [f"{m.name} ({m.href})" for m in result.planned(MutationAction.DELETE_DUPLICATE)],
    )
    _list_section("Contacts to touch", "*", names(MutationAction.TOUCH))
    _list_section("Contacts to recreate", "*", names(MutationAction.REFRESH_UID))


def show_errors(result: SyncResult) -> None:
    """Print the per-contact failures of a pass."""
    if not result.errors:
        return
    click.echo(
        click.style(f"\nWarning: {len(result.errors)} errors occurred.", fg="yellow")
    )
    for error in result.errors[:MAX_LISTED]:
        click.echo(f"  [{error.kind}] {error}")
    if len(result.errors) > MAX_LISTED:
        click.echo(f"  ... and {len(result.errors) - MAX_LISTED} more")
