"""
Local bucket archive for contacts removed from the server.

Provides functionality to:
- Archive a contact as a vCard under <root>/<bucket>/<slug>.vcf
- Write an explicit backup vCard before a delete
- List archived entries per bucket, dropping files that repeat a name
- Clean archived files by normalizing their phone numbers
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from dav_manager.api.vcard import DecodeError, decode_records, encode_record
from dav_manager.sync.contact import ExecutionMode, RemoteRecord
from dav_manager.utils.normalization import name_key, order_and_dedupe_phones, slugify

# Bucket used for contacts that are no longer in the desired table
NEUTRAL_BUCKET = "neutral"

VCARD_SUFFIX = ".vcf"

logger = logging.getLogger(__name__)


@dataclass
class BucketEntry:
    """
    One archived contact.

    Attributes:
        bucket: Name of the bucket folder
        name: Display name of the archived card
        emails: Emails on the archived card
        phones: Phones on the archived card
        path: File the card lives in
    """

    bucket: str
    name: str
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    path: Path | None = None

    @classmethod
    def from_record(
        cls, bucket: str, record: RemoteRecord, path: Path | None
    ) -> BucketEntry:
        return cls(
            bucket=bucket,
            name=record.display_name,
            emails=list(record.emails),
            phones=list(record.phones),
            path=path,
        )


@dataclass
class BucketCleanReport:
    """
    Outcome of a bucket cleanup.

    Attributes:
        missing_phones: Entries that have no phone number at all
        rewritten: Files rewritten with normalized phones
        failed: Files that could not be rewritten
    """

    missing_phones: list[BucketEntry] = field(default_factory=list)
    rewritten: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


def _prepare_for_archive(record: RemoteRecord) -> RemoteRecord:
    archived = record.copy()
    archived.ensure_uid()
    archived.touch()
    return archived


class BucketStore:
    """
    Folder of bucket directories holding archived vCards.

    Attributes:
        root: Directory containing one sub-directory per bucket

    Usage:
        store = BucketStore(Path("~/un-contacts"))

        # Archive a contact into the "neutral" bucket
        entry = store.archive(record, "neutral")

        # Everything archived, per bucket
        for bucket, entries in store.list_entries().items():
            ...
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()

    def path_for(self, bucket: str, name: str) -> Path:
        """Archive path for a contact name within a bucket."""
        return self.root / bucket / f"{slugify(name)}{VCARD_SUFFIX}"

    def write_backup(self, record: RemoteRecord, path: Path | str) -> Path:
        """
        Write a record as a standalone vCard file.

        The written card always has a UID and a fresh revision; the
        record itself is not modified.

        Raises:
            OSError: If the file cannot be written
        """
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(encode_record(_prepare_for_archive(record)), encoding="utf-8")
        logger.debug(f"Wrote {record.display_name!r} to {target}")
        return target

    def archive(self, record: RemoteRecord, bucket: str = NEUTRAL_BUCKET) -> BucketEntry:
        """
        Archive a record into a bucket.

        An existing archive with the same slug in the bucket is replaced.

        Returns:
            The BucketEntry for the written file

        Raises:
            OSError: If the file cannot be written
        """
        path = self.write_backup(record, self.path_for(bucket, record.display_name))
        logger.info(f"Archived {record.display_name!r} to {path}")
        return BucketEntry.from_record(bucket, record, path)

    def _vcard_files(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(p for p in self.root.rglob(f"*{VCARD_SUFFIX}") if p.is_file())

    def list_entries(
        self, mode: ExecutionMode = ExecutionMode.APPLY
    ) -> dict[str, list[BucketEntry]]:
        """
        List archived entries grouped by bucket.

        Files are read in sorted path order. A file whose contact name was
        already seen in an earlier file is a duplicate archive and is
        deleted (only reported in PREVIEW mode). Unreadable files are
        logged and skipped.

        Returns:
            Bucket name -> entries sorted by lowercase name
        """
        entries: dict[str, list[BucketEntry]] = {}
        seen: dict[str, Path] = {}

        for path in self._vcard_files():
            bucket = path.parent.name
            try:
                records = decode_records(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, DecodeError) as e:
                logger.warning(f"Skipping unreadable archive {path}: {e}")
                continue

            for record in records:
                key = name_key(record.display_name)
                previous = seen.get(key)
                if previous is not None and previous != path:
                    if mode.applies:
                        logger.info(f"Removing duplicate archive {path} (kept {previous})")
                        path.unlink(missing_ok=True)
                    else:
                        logger.info(
                            f"[dry-run] would remove duplicate archive {path} "
                            f"(kept {previous})"
                        )
                    break
                seen[key] = path
                entries.setdefault(bucket, []).append(
                    BucketEntry.from_record(bucket, record, path)
                )

        for bucket_entries in entries.values():
            bucket_entries.sort(key=lambda e: e.name.lower())
        return dict(sorted(entries.items()))

    def normalize_file(self, path: Path) -> bool:
        """
        Rewrite an archive file as one card with normalized phones.

        The phones of every card in the file are merged, normalized and
        ordered onto the first card, whose N is set to its FN.

        Returns:
            True if the file was rewritten
        """
        try:
            records = decode_records(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, DecodeError) as e:
            logger.warning(f"Cannot read {path}: {e}")
            return False
        if not records:
            logger.warning(f"No vCard in {path}")
            return False

        primary = records[0]
        all_phones = [phone for record in records for phone in record.phones]
        primary.phones = order_and_dedupe_phones(all_phones)
        primary.sort_name = primary.display_name

        try:
            path.write_text(encode_record(_prepare_for_archive(primary)), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot rewrite {path}: {e}")
            return False
        return True

    def clean(self, mode: ExecutionMode = ExecutionMode.PREVIEW) -> BucketCleanReport:
        """
        Report entries without phones and, in APPLY mode, normalize files.

        Nothing is deleted by the cleanup itself apart from the duplicate
        archives that listing removes.
        """
        report = BucketCleanReport()
        rewritten: set[Path] = set()

        for bucket, bucket_entries in self.list_entries(mode).items():
            for entry in bucket_entries:
                if not entry.phones:
                    logger.warning(f"{bucket} missing phone: {entry.name} ({entry.path})")
                    report.missing_phones.append(entry)

                if not mode.applies or entry.path is None or entry.path in rewritten:
                    continue
                if self.normalize_file(entry.path):
                    rewritten.add(entry.path)
                    report.rewritten.append(entry.path)
                else:
                    report.failed.append(entry.path)

        logger.info(
            f"clean-buckets: normalized {len(report.rewritten)} file(s), "
            f"{len(report.missing_phones)} without phone. apply={mode.applies}"
        )
        return report
