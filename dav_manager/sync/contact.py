"""
Contact data model for CardDAV reconciliation.

Provides:
- CardReference: where a card lives on the server plus its ETag
- RemoteRecord: a contact as stored remotely, decoded from a vCard
- DesiredEntry: one row of the hand maintained contacts table
- ExecutionMode: the preview/apply gate threaded through every mutation
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from dav_manager.utils.normalization import name_key

# Format of the vCard REV property
REVISION_FORMAT = "%Y%m%dT%H%M%SZ"

UID_PREFIX = "uid-"


def random_id() -> str:
    """Return 16 random hex characters for UIDs and card file names."""
    return secrets.token_hex(8)


def generate_uid() -> str:
    """Return a fresh contact UID."""
    return f"{UID_PREFIX}{random_id()}"


def revision_now() -> str:
    """Return the current UTC time formatted for the REV property."""
    return datetime.now(timezone.utc).strftime(REVISION_FORMAT)


class ExecutionMode(Enum):
    """Whether computed mutations are committed or only reported."""

    PREVIEW = "preview"
    APPLY = "apply"

    @property
    def applies(self) -> bool:
        """True when store and file writes should actually happen."""
        return self is ExecutionMode.APPLY

    @classmethod
    def from_flag(cls, apply: bool) -> ExecutionMode:
        """Map an ``--apply`` style boolean to a mode."""
        return cls.APPLY if apply else cls.PREVIEW


@dataclass(frozen=True)
class CardReference:
    """
    Location of a stored card and its optimistic-concurrency token.

    Attributes:
        href: Absolute URL or server path of the .vcf resource
        etag: ETag returned by the server, without quotes (None if unknown)
    """

    href: str
    etag: str | None = None

    def with_etag(self, etag: str | None) -> CardReference:
        return CardReference(href=self.href, etag=etag)


@dataclass
class RemoteRecord:
    """
    A contact as currently stored on the CardDAV server.

    Attributes:
        display_name: Formatted name (vCard FN)
        sort_name: Structured name (vCard N) as ";"-separated components,
            trailing empty ones dropped ("Doe;Jane" or "Jane Doe")
        emails: Email addresses in stored order
        phones: Phone numbers in stored order
        note: Free text note, None when absent
        photo: Raw image bytes, None when the card has no inline photo
        photo_uri: Photo given by reference (VALUE=uri), kept as is
        uid: Stable identity, assigned once and never regenerated
        revision: Value of the REV property
        reference: Server location; None until the record has been stored
        raw: vCard text the record was decoded from, used to keep
            properties this tool does not manage when re-encoding

    Usage:
        record = RemoteRecord(display_name="Jane Doe")
        record.ensure_uid()
        record.touch()
    """

    display_name: str
    sort_name: str = ""
    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    note: str | None = None
    photo: bytes | None = None
    photo_uri: str | None = None
    uid: str = ""
    revision: str = ""
    reference: CardReference | None = None
    raw: str | None = field(default=None, repr=False)

    @property
    def has_photo(self) -> bool:
        return bool(self.photo or self.photo_uri)

    @property
    def href(self) -> str | None:
        return self.reference.href if self.reference else None

    @property
    def is_persisted(self) -> bool:
        return self.reference is not None

    def name_key(self) -> str:
        """Matching key derived from the display name."""
        return name_key(self.display_name)

    def ensure_uid(self) -> bool:
        """
        Assign a UID if the record has none.

        Returns:
            True if a new UID was generated
        """
        if self.uid.strip():
            return False
        self.uid = generate_uid()
        return True

    def touch(self) -> None:
        """Stamp the revision with the current time."""
        self.revision = revision_now()

    def rename(self, name: str) -> bool:
        """
        Set both the formatted and the structured name.

        Returns:
            True if either name changed
        """
        changed = self.display_name != name or self.sort_name.strip() != name
        self.display_name = name
        self.sort_name = name
        return changed

    def copy(self) -> RemoteRecord:
        """Return an independent copy (lists are not shared)."""
        return replace(self, emails=list(self.emails), phones=list(self.phones))

    def __repr__(self) -> str:
        return (
            f"RemoteRecord(href={self.href!r}, "
            f"display_name={self.display_name!r}, "
            f"emails={self.emails!r})"
        )


@dataclass(frozen=True)
class DesiredEntry:
    """
    One row of the desired-state table.

    Emails are lowercased and deduplicated on construction; phones are
    kept as typed and only normalized when applied to a record.
    """

    name: str
    emails: tuple[str, ...] = ()
    phones: tuple[str, ...] = ()
    note: str = ""

    def __post_init__(self) -> None:
        name = (self.name or "").strip()
        if not name:
            raise ValueError("DesiredEntry name must not be empty")

        emails: list[str] = []
        for email in self.emails:
            value = email.strip().lower()
            if value and value not in emails:
                emails.append(value)

        phones = tuple(p.strip() for p in self.phones if p and p.strip())

        # frozen dataclass: assign normalized values through object.__setattr__
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "emails", tuple(emails))
        object.__setattr__(self, "phones", phones)
        object.__setattr__(self, "note", (self.note or "").strip())

    def name_key(self) -> str:
        return name_key(self.name)
