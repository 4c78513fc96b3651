"""
Single-contact and bulk operations on the CardDAV collection.

Single-contact operations (add, update, delete, move) raise on failure so
the command stops; bulk operations collect per-contact failures on a
SyncResult and carry on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from dav_manager.api.carddav import CardDAVClient, CardDAVError
from dav_manager.buckets import BucketStore
from dav_manager.sync.contact import (
    DesiredEntry,
    ExecutionMode,
    RemoteRecord,
    generate_uid,
)
from dav_manager.sync.engine import commit_put
from dav_manager.sync.photo import PhotoPolicy
from dav_manager.sync.reconcile import build_record
from dav_manager.sync.result import Mutation, MutationAction, SyncResult
from dav_manager.utils.normalization import (
    INVISIBLE_NAME_CHARS,
    name_key,
    order_and_dedupe_phones,
    slugify,
)

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when no contact has the requested name."""

    def __init__(self, name: str):
        super().__init__(f"{name} not found")
        self.name = name


def find_by_name(records: Iterable[RemoteRecord], name: str) -> RemoteRecord | None:
    """
    Find a record by name key.

    When nothing matches, names are compared again with byte-order marks
    and zero-width spaces stripped from the stored names.
    """
    records = list(records)
    key = name_key(name)
    for record in records:
        if record.name_key() == key:
            return record
    for record in records:
        if name_key(record.display_name.strip().strip(INVISIBLE_NAME_CHARS)) == key:
            return record
    return None


class ContactManager:
    """
    Operations on individual contacts and on the whole collection.

    Usage:
        manager = ContactManager(client, BucketStore(root))
        manager.add(DesiredEntry("Jane Doe", phones=("+1 480 395 7551",)))
        manager.move("Vendor X", "corporate", new_name="Vendor X (2019)")
        result = manager.fix_names(ExecutionMode.APPLY)
    """

    def __init__(
        self,
        store: CardDAVClient,
        buckets: BucketStore,
        photo_policy: PhotoPolicy | None = None,
    ):
        self.store = store
        self.buckets = buckets
        self.photo_policy = photo_policy or PhotoPolicy()

    def fetch(self) -> list[RemoteRecord]:
        """Fetch every readable contact."""
        records, _ = self.store.fetch_all()
        return records

    def find(self, name: str) -> RemoteRecord:
        """
        Fetch the collection and return the contact with the given name.

        Raises:
            NotFoundError: If no contact matches
        """
        record = find_by_name(self.fetch(), name)
        if record is None:
            raise NotFoundError(name)
        return record

    # -- single contact --------------------------------------------------

    def add(
        self, entry: DesiredEntry, mode: ExecutionMode = ExecutionMode.APPLY
    ) -> Mutation:
        """
        Create a contact from an entry.

        Raises:
            CardDAVError: If the card cannot be stored
        """
        record = build_record(entry)
        mutation = Mutation(action=MutationAction.CREATE, name=entry.name)
        if not mode.applies:
            logger.info(f"[dry-run] would add {entry.name}")
            return mutation

        self.store.put(record)
        mutation.committed = True
        mutation.href = record.href
        logger.info(f"added {entry.name}")
        return mutation

    def update(
        self,
        name: str,
        new_name: str | None = None,
        emails: Sequence[str] | None = None,
        phones: Sequence[str] | None = None,
        note: str | None = None,
        mode: ExecutionMode = ExecutionMode.APPLY,
    ) -> Mutation:
        """
        Change fields of an existing contact.

        Empty or missing name, emails and phones leave the stored values
        alone. ``note=None`` keeps the note; ``note=""`` removes it.

        Raises:
            NotFoundError: If no contact has the name
            CardDAVError: If the card cannot be stored
        """
        record = self.find(name)
        changes: list[str] = []

        if new_name and new_name.strip():
            record.rename(new_name.strip())
            changes.append("name")

        if emails:
            cleaned: list[str] = []
            for email in emails:
                value = email.strip().lower()
                if value and value not in cleaned:
                    cleaned.append(value)
            record.emails = cleaned
            changes.append("emails")

        if phones:
            record.phones = order_and_dedupe_phones(phones)
            changes.append("phones")

        if note is not None:
            record.note = note or None
            changes.append("note")

        record.ensure_uid()
        mutation = Mutation(
            action=MutationAction.UPDATE,
            name=record.display_name,
            href=record.href,
            detail=", ".join(changes),
        )
        if not mode.applies:
            logger.info(f"[dry-run] would update {name} ({mutation.detail or 'no fields'})")
            return mutation

        self.store.put(record)
        mutation.committed = True
        logger.info(f"updated {name}")
        return mutation

    def delete(
        self,
        name: str,
        backup_path: Path | str | None = None,
        mode: ExecutionMode = ExecutionMode.APPLY,
    ) -> Mutation:
        """
        Delete a contact after writing a vCard backup.

        The backup defaults to ``./<slug of name>.vcf``. Nothing is deleted
        if the backup cannot be written.

        Raises:
            NotFoundError: If no contact has the name
            OSError: If the backup cannot be written
            CardDAVError: If the card cannot be deleted
        """
        record = self.find(name)
        if backup_path is None:
            path = Path.cwd() / f"{slugify(name)}.vcf"
            logger.info(f"backup path not provided (--vcf). Saving to {path}")
        else:
            path = Path(backup_path).expanduser()

        mutation = Mutation(
            action=MutationAction.DELETE,
            name=record.display_name,
            href=record.href,
            path=path,
        )
        if not mode.applies:
            logger.info(f"[dry-run] would delete {name} (backup at {path})")
            return mutation

        self.buckets.write_backup(record, path)
        if record.reference is not None:
            self.store.delete(record.reference)
        mutation.committed = True
        logger.info(f"deleted {name} (backup at {path})")
        return mutation

    def move(
        self,
        name: str,
        bucket: str,
        new_name: str | None = None,
        mode: ExecutionMode = ExecutionMode.APPLY,
    ) -> Mutation:
        """
        Archive a contact into a bucket and delete it from the server.

        Raises:
            NotFoundError: If no contact has the name
            OSError: If the archive cannot be written
            CardDAVError: If the card cannot be deleted
        """
        if not bucket or not bucket.strip():
            raise ValueError("bucket is required")

        record = self.find(name)
        if new_name and new_name.strip():
            record.rename(new_name.strip())

        mutation = Mutation(
            action=MutationAction.MOVE,
            name=record.display_name,
            href=record.href,
            bucket=bucket,
            path=self.buckets.path_for(bucket, record.display_name),
        )
        if not mode.applies:
            logger.info(f"[dry-run] would move {name} to {mutation.path}")
            return mutation

        entry = self.buckets.archive(record, bucket)
        mutation.path = entry.path
        if record.reference is not None:
            self.store.delete(record.reference)
        mutation.committed = True
        logger.info(f"moved {record.display_name} to {entry.path}")
        return mutation

    # -- bulk ------------------------------------------------------------

    def _start(self, mode: ExecutionMode) -> tuple[list[RemoteRecord], SyncResult]:
        result = SyncResult(mode=mode)
        records, failures = self.store.fetch_all()
        result.stats.remote_fetched = len(records)
        result.stats.fetch_failures = len(failures)
        for reference, error in failures:
            result.add_error("get", reference.href, error)
        return records, result

    def touch_all(self, mode: ExecutionMode = ExecutionMode.APPLY) -> SyncResult:
        """Bump REV on every contact so clients re-download them."""
        records, result = self._start(mode)
        for record in records:
            record.touch()
            mutation = result.add(
                Mutation(
                    action=MutationAction.TOUCH,
                    name=record.display_name,
                    href=record.href,
                )
            )
            if mode.applies and commit_put(
                self.store, record, mutation, result, "touch"
            ):
                result.stats.touched += 1

        logger.info(f"touch-all processed {len(records)} contact(s). apply={mode.applies}")
        return result

    def fix_names(self, mode: ExecutionMode = ExecutionMode.PREVIEW) -> SyncResult:
        """Set the structured name (N) to the display name (FN) where they differ."""
        records, result = self._start(mode)
        for record in records:
            display_name = record.display_name.strip()
            if not display_name or record.sort_name.strip() == display_name:
                continue

            record.sort_name = display_name
            result.stats.to_update += 1
            mutation = result.add(
                Mutation(
                    action=MutationAction.UPDATE,
                    name=display_name,
                    href=record.href,
                    detail="N set to FN",
                )
            )
            if not mode.applies:
                logger.info(f"[dry-run] would set N to FN for {display_name}")
                continue
            if commit_put(self.store, record, mutation, result, "fix_names"):
                result.stats.updated += 1

        logger.info(
            f"fix-names updated {result.stats.to_update} contact(s). apply={mode.applies}"
        )
        return result

    def refresh_uids(self, mode: ExecutionMode = ExecutionMode.PREVIEW) -> SyncResult:
        """
        Recreate every contact under a new UID and href.

        Clients that cache cards by UID or href then fetch them again. The
        old card is only deleted once the new one is stored.
        """
        records, result = self._start(mode)
        for record in records:
            replacement = record.copy()
            replacement.uid = generate_uid()
            replacement.sort_name = replacement.display_name
            replacement.reference = None

            mutation = result.add(
                Mutation(
                    action=MutationAction.REFRESH_UID,
                    name=record.display_name,
                    href=record.href,
                )
            )
            if not mode.applies:
                logger.info(
                    f"[dry-run] would recreate {record.display_name} with new UID/href"
                )
                continue

            if not commit_put(self.store, replacement, mutation, result, "refresh_put"):
                continue
            result.stats.created += 1
            if record.reference is None:
                continue
            try:
                self.store.delete(record.reference)
            except CardDAVError as e:
                logger.error(f"refresh delete {record.href}: {e}")
                result.add_error("refresh_delete", record.href or "", e)

        logger.info(
            f"refresh-uids processed {len(records)} contact(s). apply={mode.applies}"
        )
        return result

    def apply_photos(
        self, mode: ExecutionMode = ExecutionMode.PREVIEW, force: bool = False
    ) -> SyncResult:
        """Attach photos from the photo map or Gravatar to every contact."""
        records, result = self._start(mode)
        for record in records:
            if not self.photo_policy.assign(
                record, record.display_name, record.emails, force=force
            ):
                continue

            result.stats.to_update += 1
            mutation = result.add(
                Mutation(
                    action=MutationAction.UPDATE,
                    name=record.display_name,
                    href=record.href,
                    detail="photo",
                )
            )
            if not mode.applies:
                logger.info(f"[dry-run] would add photo to {record.display_name}")
                continue
            if commit_put(self.store, record, mutation, result, "photo_put"):
                result.stats.updated += 1

        logger.info(
            f"Photos updated: {result.stats.to_update} (apply={mode.applies})"
        )
        return result
