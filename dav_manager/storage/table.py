"""
Markdown contact tables.

The desired state is a pipe table with the columns
``| Name | Emails | Phones | Note | Comments |``; emails and phones are
comma separated and the Comments column is ignored. The same layout is
written back after a sync, so a verification table can be used as the
next desired table.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from dav_manager.sync.contact import DesiredEntry, RemoteRecord
from dav_manager.utils.normalization import split_csv

TABLE_TITLE = "# All contacts (Radicale) synced"
TABLE_HEADER = "| Name | Emails | Phones | Note | Comments |"
TABLE_SEPARATOR = "|---|---|---|---|---|"

# Status marks some tables put in front of names (the second is the same
# mark after a UTF-8/Latin-1 mix-up)
NAME_DECORATIONS = ("✅", "âœ…")

# Leading empty cell + name, emails, phones, note, comments
MIN_CELLS = 6

logger = logging.getLogger(__name__)


def _is_table_row(line: str) -> bool:
    if not line.startswith("|") or line.startswith("|---"):
        return False
    return not ("Name" in line and "Emails" in line)


def _clean_name(cell: str) -> str:
    name = cell.strip()
    for mark in NAME_DECORATIONS:
        if name.startswith(mark):
            name = name[len(mark) :].strip()
    return name


def parse_desired_lines(lines: Iterable[str]) -> list[DesiredEntry]:
    """
    Parse desired entries from table lines.

    Lines that are not data rows (headers, separators, prose, rows with
    too few cells or an empty name) are skipped.
    """
    entries: list[DesiredEntry] = []
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not _is_table_row(line):
            continue

        cells = line.split("|")
        if len(cells) < MIN_CELLS:
            logger.debug(f"Line {number}: too few columns, skipped")
            continue

        name = _clean_name(cells[1])
        if not name:
            logger.debug(f"Line {number}: empty name, skipped")
            continue

        entries.append(
            DesiredEntry(
                name=name,
                emails=tuple(split_csv(cells[2])),
                phones=tuple(split_csv(cells[3])),
                note=cells[4].strip(),
            )
        )
    return entries


def parse_desired_table(path: Path | str) -> list[DesiredEntry]:
    """
    Read the desired table from a markdown file.

    Raises:
        OSError: If the file cannot be read
    """
    table_path = Path(path).expanduser()
    text = table_path.read_text(encoding="utf-8")
    entries = parse_desired_lines(text.splitlines())
    logger.debug(f"Parsed {len(entries)} desired entries from {table_path}")
    return entries


def _cell(value: str) -> str:
    # A pipe or newline inside a value would split the row
    return " ".join(value.replace("|", "/").split())


def render_contacts_table(records: Iterable[RemoteRecord]) -> str:
    """Render records as a markdown table sorted by lowercase name."""
    lines = [TABLE_TITLE, "", TABLE_HEADER, TABLE_SEPARATOR]
    for record in sorted(records, key=lambda r: r.display_name.lower()):
        name = _cell(record.display_name)
        emails = _cell(", ".join(record.emails))
        phones = _cell(", ".join(record.phones))
        note = _cell(record.note or "")
        lines.append(f"| {name} | {emails} | {phones} | {note} |  |")
    return "\n".join(lines) + "\n"


def write_contacts_table(path: Path | str, records: Iterable[RemoteRecord]) -> Path:
    """
    Write records as a markdown table.

    Raises:
        OSError: If the file cannot be written
    """
    records = list(records)
    table_path = Path(path).expanduser()
    table_path.parent.mkdir(parents=True, exist_ok=True)
    table_path.write_text(render_contacts_table(records), encoding="utf-8")
    logger.info(f"Wrote {table_path} ({len(records)} rows)")
    return table_path
