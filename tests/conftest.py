"""
Shared fixtures for the dav_manager tests.

FakeCardStore stands in for CardDAVClient: it keeps cards in memory,
hands out copies the way a real fetch would and counts every write.
"""

from __future__ import annotations

import pytest

from dav_manager.api.carddav import ConflictError, TransportError
from dav_manager.buckets import BucketStore
from dav_manager.sync.contact import CardReference, RemoteRecord


class FakeCardStore:
    """In-memory CardDAV collection with the CardDAVClient interface."""

    collection_url = "http://dav.test/jane/contacts/"

    def __init__(self):
        self.cards: dict[str, RemoteRecord] = {}
        self.puts: list[str] = []
        self.deletes: list[str] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.conflict_put: set[str] = set()
        self.broken: set[str] = set()
        self._counter = 0
        self._etag = 0

    def _next_etag(self) -> str:
        self._etag += 1
        return f"etag-{self._etag}"

    def seed(self, name: str, **fields) -> RemoteRecord:
        """Store a card directly, without counting it as a put."""
        self._counter += 1
        href = fields.pop("href", f"{self.collection_url}card-{self._counter:03d}.vcf")
        fields.setdefault("sort_name", name)
        fields.setdefault("uid", f"uid-seed-{self._counter}")
        record = RemoteRecord(display_name=name, **fields)
        record.reference = CardReference(href=href, etag=self._next_etag())
        self.cards[href] = record
        return record.copy()

    def list(self) -> list[CardReference]:
        return [record.reference for record in self.cards.values()]

    def get(self, reference: CardReference) -> RemoteRecord:
        if reference.href in self.broken:
            raise TransportError(f"get status 500: {reference.href}", status_code=500)
        return self.cards[reference.href].copy()

    def put(self, record: RemoteRecord) -> CardReference:
        name = record.display_name
        if name in self.conflict_put:
            raise ConflictError(f"{record.href} was modified", status_code=412)
        if name in self.fail_put:
            raise TransportError(f"put status 500: {name}", status_code=500)

        record.ensure_uid()
        record.touch()
        if record.reference is None:
            self._counter += 1
            href = f"{self.collection_url}new-{self._counter:03d}.vcf"
        else:
            href = record.reference.href
        record.reference = CardReference(href=href, etag=self._next_etag())
        self.cards[href] = record.copy()
        self.puts.append(href)
        return record.reference

    def delete(self, reference: CardReference) -> None:
        if reference.href in self.fail_delete:
            raise TransportError(f"delete status 500: {reference.href}", status_code=500)
        self.cards.pop(reference.href, None)
        self.deletes.append(reference.href)

    def fetch_all(self, errors=None):
        records = []
        failures = errors if errors is not None else []
        for reference in self.list():
            try:
                records.append(self.get(reference))
            except TransportError as e:
                failures.append((reference, e))
        return records, failures

    def names(self) -> list[str]:
        return sorted(record.display_name for record in self.cards.values())


@pytest.fixture
def store():
    """Empty in-memory card store."""
    return FakeCardStore()


@pytest.fixture
def buckets(tmp_path):
    """Bucket archive rooted in a temporary directory."""
    return BucketStore(tmp_path / "un-contacts")


JANE_VCARD = (
    "BEGIN:VCARD\r\n"
    "VERSION:3.0\r\n"
    "UID:uid-jane\r\n"
    "FN:Jane Doe\r\n"
    "N:Doe;Jane;;;\r\n"
    "EMAIL;TYPE=INTERNET:jane@example.com\r\n"
    "TEL;TYPE=cell:+1 480 395 7551\r\n"
    "TEL;TYPE=cell:+91 98765 43210\r\n"
    "NOTE:met at conf\r\n"
    "REV:20240101T000000Z\r\n"
    "BDAY:1990-01-01\r\n"
    "X-CUSTOM:keep me\r\n"
    "END:VCARD\r\n"
)


@pytest.fixture
def jane_vcard():
    """A vCard 3.0 carrying managed and unmanaged properties."""
    return JANE_VCARD
