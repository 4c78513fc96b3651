"""
Duplicate removal for fetched contacts.

Contacts whose display names share a name key are the same person; one
card survives and the rest are deleted from the server.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from dav_manager.api.carddav import CardDAVClient, CardDAVError
from dav_manager.sync.contact import ExecutionMode, RemoteRecord
from dav_manager.sync.result import Mutation, MutationAction, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class DuplicateResolution:
    """
    Outcome of duplicate resolution.

    Attributes:
        survivors: Exactly one record per name key, in resolution order
        duplicates: (duplicate, survivor) pairs scheduled for deletion
    """

    survivors: list[RemoteRecord] = field(default_factory=list)
    duplicates: list[tuple[RemoteRecord, RemoteRecord]] = field(default_factory=list)

    def index(self) -> dict[str, RemoteRecord]:
        """Map name key -> surviving record."""
        return {record.name_key(): record for record in self.survivors}


def resolution_order(record: RemoteRecord) -> tuple[bool, str, str]:
    """
    Sort key deciding which card of a group survives.

    Cards are ordered by href so the same server state always keeps the
    same card; unsaved records go last.
    """
    return (record.reference is None, record.href or "", record.uid)


def resolve_duplicates(
    records: Iterable[RemoteRecord],
    store: CardDAVClient | None,
    mode: ExecutionMode,
    result: SyncResult | None = None,
) -> DuplicateResolution:
    """
    Keep one record per name key and delete the others.

    Every duplicate produces a DELETE_DUPLICATE mutation. The store is
    only called in APPLY mode; a failed delete is recorded on the result
    and does not stop the pass.

    Args:
        records: Fetched records
        store: Client used for deletions
        mode: PREVIEW or APPLY
        result: Result that mutations and errors are recorded on

    Returns:
        DuplicateResolution with the survivors and the removed duplicates
    """
    if result is None:
        result = SyncResult(mode=mode)

    resolution = DuplicateResolution()
    survivors: dict[str, RemoteRecord] = {}

    for record in sorted(records, key=resolution_order):
        key = record.name_key()
        survivor = survivors.get(key)
        if survivor is None:
            survivors[key] = record
            resolution.survivors.append(record)
            continue

        resolution.duplicates.append((record, survivor))
        result.stats.duplicates_found += 1
        mutation = result.add(
            Mutation(
                action=MutationAction.DELETE_DUPLICATE,
                name=record.display_name,
                href=record.href,
                detail=f"duplicate of {survivor.href}",
            )
        )

        if not mode.applies:
            logger.info(
                f"[dry-run] would delete duplicate {record.display_name!r} "
                f"({record.href})"
            )
            continue

        if store is None or record.reference is None:
            continue

        try:
            store.delete(record.reference)
        except CardDAVError as e:
            logger.error(f"delete duplicate {record.href}: {e}")
            result.add_error("delete_duplicate", record.href or key, e)
            continue

        mutation.committed = True
        result.stats.duplicates_deleted += 1
        logger.info(f"Deleted duplicate {record.display_name!r} ({record.href})")

    return resolution
