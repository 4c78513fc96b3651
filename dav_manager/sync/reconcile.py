"""
Bring a single record in line with its desired table row.

The desired table is authoritative: names, emails and phones are
replaced outright, never merged with what the server holds.
"""

from __future__ import annotations

import logging

from dav_manager.sync.contact import DesiredEntry, RemoteRecord
from dav_manager.sync.photo import PhotoPolicy
from dav_manager.utils.normalization import order_and_dedupe_phones

logger = logging.getLogger(__name__)


def reconcile_record(
    record: RemoteRecord,
    desired: DesiredEntry,
    photo_policy: PhotoPolicy | None = None,
    force_photo: bool = False,
) -> bool:
    """
    Mutate a record to match a desired entry.

    Rules:
        - FN and N are both set to the desired name if either differs
        - emails are replaced by the desired (lowercased) emails
        - phones are replaced by the normalized, ordered desired phones
        - the note is set when the desired note is non-empty; an empty
          desired note leaves the stored note alone
        - the photo policy may attach a photo

    A record without a UID gets one first; that alone is not a change.

    Returns:
        True if any rule changed the record
    """
    record.ensure_uid()
    changes: list[str] = []

    if record.display_name != desired.name or record.sort_name.strip() != desired.name:
        record.rename(desired.name)
        changes.append("name")

    emails = list(desired.emails)
    if record.emails != emails:
        record.emails = emails
        changes.append("emails")

    phones = order_and_dedupe_phones(desired.phones)
    if record.phones != phones:
        record.phones = phones
        changes.append("phones")

    if desired.note and record.note != desired.note:
        record.note = desired.note
        changes.append("note")

    if photo_policy is not None and photo_policy.assign(
        record, desired.name, desired.emails, force=force_photo
    ):
        changes.append("photo")

    if changes:
        logger.debug(f"{desired.name!r} changed: {', '.join(changes)}")
    return bool(changes)


def build_record(
    desired: DesiredEntry, photo_policy: PhotoPolicy | None = None
) -> RemoteRecord:
    """
    Build a new, not yet stored record from a desired entry.

    The record has a fresh UID and no reference.
    """
    record = RemoteRecord(
        display_name=desired.name,
        sort_name=desired.name,
        emails=list(desired.emails),
        phones=order_and_dedupe_phones(desired.phones),
        note=desired.note or None,
    )
    record.ensure_uid()
    if photo_policy is not None:
        photo_policy.assign(record, desired.name, desired.emails)
    return record
