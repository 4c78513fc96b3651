"""
Reconciliation engine for a CardDAV collection.

Drives one pass that makes the server match the desired table:

    fetch -> remove duplicates -> index by name -> optional touch
          -> remove extras (archive, then delete) -> apply desired
          -> verify (re-fetch and write the report table)

Every step computes its mutations in both modes; the store and file
calls are only made in APPLY mode, so a preview reports exactly what
an apply run would do.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from dav_manager.api.carddav import CardDAVClient, CardDAVError
from dav_manager.buckets import NEUTRAL_BUCKET, BucketStore
from dav_manager.storage.table import write_contacts_table
from dav_manager.sync.contact import DesiredEntry, ExecutionMode, RemoteRecord
from dav_manager.sync.duplicates import resolve_duplicates
from dav_manager.sync.photo import PhotoPolicy
from dav_manager.sync.reconcile import build_record, reconcile_record
from dav_manager.sync.result import (
    Mutation,
    MutationAction,
    SyncError,
    SyncResult,
    SyncStats,
)

logger = logging.getLogger(__name__)


def commit_put(
    store: CardDAVClient,
    record: RemoteRecord,
    mutation: Mutation,
    result: SyncResult,
    operation: str,
) -> bool:
    """
    Store a record for a mutation, recording a failure on the result.

    Returns:
        True if the record was stored
    """
    try:
        store.put(record)
    except CardDAVError as e:
        logger.error(f"{operation} {record.display_name!r}: {e}")
        result.add_error(operation, record.href or record.display_name, e)
        return False
    mutation.committed = True
    mutation.href = record.href
    return True


class ReconcileEngine:
    """
    Reconciles a CardDAV collection against desired entries.

    Attributes:
        store: CardDAV client for the collection
        buckets: Archive that removed contacts are written to
        photo_policy: Photo assignment for updated and created records
        mode: PREVIEW (report only) or APPLY
        touch: Bump the revision of every surviving card
        extras_bucket: Bucket that contacts missing from the table go to

    Usage:
        engine = ReconcileEngine(client, BucketStore(root), PhotoPolicy(), mode)
        result = engine.run(parse_desired_table("contacts.md"),
                            verify_table=Path("all-contacts-synced.md"))
        print(result.summary())
    """

    def __init__(
        self,
        store: CardDAVClient,
        buckets: BucketStore,
        photo_policy: PhotoPolicy | None = None,
        mode: ExecutionMode = ExecutionMode.PREVIEW,
        touch: bool = False,
        extras_bucket: str = NEUTRAL_BUCKET,
    ):
        self.store = store
        self.buckets = buckets
        self.photo_policy = photo_policy or PhotoPolicy()
        self.mode = mode
        self.touch = touch
        self.extras_bucket = extras_bucket

    def run(
        self, desired: Sequence[DesiredEntry], verify_table: Path | None = None
    ) -> SyncResult:
        """
        Execute one reconciliation pass.

        Failures of individual records are collected on the result. Only a
        failure to list the collection at the start aborts the pass.

        Args:
            desired: Entries from the desired table
            verify_table: Where to write the post-sync contact table

        Returns:
            SyncResult with all mutations, errors and the verified records

        Raises:
            TransportError: If the collection cannot be listed
        """
        result = SyncResult(mode=self.mode)
        result.stats.desired = len(desired)
        logger.info(
            f"Starting sync ({self.mode.value}) with {len(desired)} desired entries"
        )

        records = self._fetch(result)
        resolution = resolve_duplicates(records, self.store, self.mode, result)
        index = resolution.index()

        if self.touch:
            self._touch(resolution.survivors, result)

        desired_keys = {entry.name_key() for entry in desired}
        self._remove_extras(resolution.survivors, desired_keys, index, result)
        self._apply_desired(desired, index, result)
        self._verify(result, verify_table)

        stats = result.stats
        logger.info(
            f"Sync complete ({self.mode.value}): "
            f"create {len(result.planned(MutationAction.CREATE))}, "
            f"update {len(result.planned(MutationAction.UPDATE))}, "
            f"remove {len(result.planned(MutationAction.REMOVE_EXTRA))}, "
            f"duplicates {stats.duplicates_found}, "
            f"errors {stats.errors + stats.conflicts}"
        )
        return result

    def _fetch(self, result: SyncResult) -> list[RemoteRecord]:
        records, failures = self.store.fetch_all()
        result.stats.remote_fetched = len(records)
        result.stats.fetch_failures = len(failures)
        for reference, error in failures:
            result.add_error("get", reference.href, error)
        return records

    def _touch(self, records: list[RemoteRecord], result: SyncResult) -> None:
        """Bump REV on every record, storing each immediately in APPLY mode."""
        for record in records:
            record.touch()
            mutation = result.add(
                Mutation(
                    action=MutationAction.TOUCH,
                    name=record.display_name,
                    href=record.href,
                )
            )
            if not self.mode.applies:
                continue
            if commit_put(self.store, record, mutation, result, "touch"):
                result.stats.touched += 1

        if not self.mode.applies:
            logger.info(f"[dry-run] would touch {len(records)} contact(s)")

    def _remove_extras(
        self,
        records: list[RemoteRecord],
        desired_keys: set[str],
        index: dict[str, RemoteRecord],
        result: SyncResult,
    ) -> None:
        """Archive and delete records whose name is not in the desired table."""
        for record in records:
            key = record.name_key()
            if key in desired_keys:
                continue

            index.pop(key, None)
            result.stats.extras_found += 1
            mutation = result.add(
                Mutation(
                    action=MutationAction.REMOVE_EXTRA,
                    name=record.display_name,
                    href=record.href,
                    bucket=self.extras_bucket,
                    path=self.buckets.path_for(self.extras_bucket, record.display_name),
                )
            )

            if not self.mode.applies:
                logger.info(f"[dry-run] would remove extra {record.display_name}")
                continue

            try:
                entry = self.buckets.archive(record, self.extras_bucket)
            except OSError as e:
                # Never delete a card that could not be archived
                logger.error(f"archive {record.display_name!r}: {e}")
                result.add_error("archive", record.display_name, e)
                continue
            mutation.path = entry.path
            result.stats.extras_archived += 1

            if record.reference is None:
                continue
            try:
                self.store.delete(record.reference)
            except CardDAVError as e:
                logger.error(f"delete extra {record.href}: {e}")
                result.add_error("delete_extra", record.href or key, e)
                continue

            mutation.committed = True
            result.stats.extras_deleted += 1

    def _apply_desired(
        self,
        desired: Sequence[DesiredEntry],
        index: dict[str, RemoteRecord],
        result: SyncResult,
    ) -> None:
        """Update matched records and create the missing ones."""
        for entry in desired:
            key = entry.name_key()
            existing = index.get(key)

            if existing is not None:
                if not reconcile_record(existing, entry, self.photo_policy):
                    result.stats.unchanged += 1
                    continue
                result.stats.to_update += 1
                mutation = result.add(
                    Mutation(
                        action=MutationAction.UPDATE,
                        name=entry.name,
                        href=existing.href,
                    )
                )
                if not self.mode.applies:
                    logger.info(f"[dry-run] would update {entry.name}")
                    continue
                if commit_put(self.store, existing, mutation, result, "put"):
                    result.stats.updated += 1
                continue

            record = build_record(entry, self.photo_policy)
            # A repeated row for the same name updates this record
            index[key] = record
            result.stats.to_create += 1
            mutation = result.add(
                Mutation(action=MutationAction.CREATE, name=entry.name)
            )
            if not self.mode.applies:
                logger.info(f"[dry-run] would create {entry.name}")
                continue
            if commit_put(self.store, record, mutation, result, "put_new"):
                result.stats.created += 1

    def _verify(self, result: SyncResult, verify_table: Path | None) -> None:
        """Re-fetch the collection and write the report table."""
        try:
            records, failures = self.store.fetch_all()
        except CardDAVError as e:
            logger.error(f"verify: {e}")
            result.add_error("verify", self.store.collection_url, e)
            return

        for reference, error in failures:
            result.add_error("verify_get", reference.href, error)
        result.verified = records
        result.stats.verified = len(records)

        if verify_table is None:
            return
        try:
            result.verify_table = write_contacts_table(verify_table, records)
        except OSError as e:
            logger.error(f"write {verify_table}: {e}")
            result.add_error("write_table", str(verify_table), e)


__all__ = [
    "ReconcileEngine",
    "SyncResult",
    "SyncStats",
    "SyncError",
    "Mutation",
    "MutationAction",
    "commit_put",
]
