"""
vCard encoding and decoding for contact records.

Converts between vCard 3.0 text (as stored on the CardDAV server and in
bucket archives) and RemoteRecord objects using vobject.

Only the properties this tool manages are rewritten on encode; anything
else found on the original card (addresses, birthdays, custom X-
properties) is carried over untouched.
"""

from __future__ import annotations

import logging
from typing import Any

import vobject

from dav_manager.sync.contact import CardReference, RemoteRecord

VCARD_VERSION = "3.0"

# Properties owned by RemoteRecord, rewritten on every encode
MANAGED_PROPERTIES = ("version", "fn", "n", "email", "tel", "note", "uid", "rev")

PHONE_TYPE = "cell"
EMAIL_TYPE = "INTERNET"
PHOTO_TYPE = "JPEG"

# Components of the structured name (N), in vCard order
NAME_FIELDS = ("family", "given", "additional", "prefix", "suffix")

logger = logging.getLogger(__name__)


class DecodeError(Exception):
    """Raised when vCard text cannot be turned into a record."""

    pass


def _first_value(card: Any, name: str) -> Any:
    lines = card.contents.get(name, [])
    return lines[0].value if lines else None


def _text_values(card: Any, name: str) -> list[str]:
    values = []
    for line in card.contents.get(name, []):
        value = line.value
        if isinstance(value, str) and value.strip():
            values.append(value.strip())
    return values


def name_text(value: Any) -> str:
    """
    Render an N value as its ";"-separated components.

    Trailing empty components are dropped, so an N that only holds a
    family part reads as that part ("Jane Doe;;;;" -> "Jane Doe") while
    "Doe;Jane;;;" reads as "Doe;Jane". Plain strings are returned stripped.
    """
    if isinstance(value, vobject.vcard.Name):
        parts = []
        for field_name in NAME_FIELDS:
            part = getattr(value, field_name)
            if isinstance(part, (list, tuple)):
                part = ",".join(p.strip() for p in part if p and p.strip())
            parts.append((part or "").strip())
        return ";".join(parts).rstrip(";")
    if value is None:
        return ""
    return str(value).strip()


def name_from_text(text: str) -> Any:
    """Build an N value from the form produced by name_text()."""
    parts = text.split(";", len(NAME_FIELDS) - 1)
    return vobject.vcard.Name(**dict(zip(NAME_FIELDS, parts)))


def _record_from_card(
    card: Any, raw: str | None, reference: CardReference | None
) -> RemoteRecord:
    if card.name.upper() != "VCARD":
        raise DecodeError(f"Expected a VCARD component, got {card.name}")

    photo: bytes | None = None
    photo_uri: str | None = None
    photo_value = _first_value(card, "photo")
    if isinstance(photo_value, bytes) and photo_value:
        photo = photo_value
    elif isinstance(photo_value, str) and photo_value.strip():
        photo_uri = photo_value.strip()

    note = _first_value(card, "note")
    display_name = _first_value(card, "fn") or ""

    return RemoteRecord(
        display_name=str(display_name).strip(),
        sort_name=name_text(_first_value(card, "n")),
        emails=_text_values(card, "email"),
        phones=_text_values(card, "tel"),
        note=note if isinstance(note, str) and note != "" else None,
        photo=photo,
        photo_uri=photo_uri,
        uid=str(_first_value(card, "uid") or "").strip(),
        revision=str(_first_value(card, "rev") or "").strip(),
        reference=reference,
        raw=raw,
    )


def decode_record(text: str, reference: CardReference | None = None) -> RemoteRecord:
    """
    Decode a single vCard into a RemoteRecord.

    Args:
        text: vCard text
        reference: Server reference to attach to the record

    Returns:
        Decoded record with ``raw`` set to the input text

    Raises:
        DecodeError: If the text is not a parseable vCard
    """
    try:
        card = vobject.readOne(text)
    except StopIteration as e:
        raise DecodeError("Empty vCard data") from e
    except Exception as e:
        raise DecodeError(f"Malformed vCard: {e}") from e
    return _record_from_card(card, text, reference)


def _safe_serialize(card: Any) -> str | None:
    try:
        return card.serialize()
    except Exception as e:
        logger.debug(f"Could not re-serialize card, unmanaged fields dropped: {e}")
        return None


def decode_records(text: str) -> list[RemoteRecord]:
    """
    Decode every vCard in a (possibly multi-card) text.

    Decoding stops at the first malformed card; the cards read before it
    are still returned.

    Raises:
        DecodeError: If not a single card could be decoded
    """
    records: list[RemoteRecord] = []
    try:
        for card in vobject.readComponents(text):
            records.append(_record_from_card(card, _safe_serialize(card), None))
    except Exception as e:
        if not records:
            raise DecodeError(f"Malformed vCard: {e}") from e
        logger.warning(f"Stopped reading vCards after {len(records)} card(s): {e}")
    return records


def _base_card(raw: str | None) -> Any:
    if raw:
        try:
            return vobject.readOne(raw)
        except Exception as e:
            logger.warning(f"Could not re-read stored vCard, rebuilding it: {e}")
    return vobject.vCard()


def encode_record(record: RemoteRecord) -> str:
    """
    Encode a RemoteRecord as vCard 3.0 text.

    The record must already carry a UID; callers assign one with
    ``record.ensure_uid()`` before storing.

    Raises:
        ValueError: If the record has no UID
    """
    if not record.uid.strip():
        raise ValueError(f"Cannot encode {record.display_name!r} without a UID")

    card = _base_card(record.raw)
    kept_name = card.contents.get("n")
    keep_structured_name = bool(kept_name) and (
        name_text(kept_name[0].value) == record.sort_name.strip()
    )

    for prop in MANAGED_PROPERTIES:
        if prop == "n" and keep_structured_name:
            continue
        card.contents.pop(prop, None)

    card.add("version").value = VCARD_VERSION
    card.add("uid").value = record.uid
    card.add("fn").value = record.display_name
    if not keep_structured_name:
        card.add("n").value = name_from_text(
            record.sort_name.strip() or record.display_name
        )

    for email in record.emails:
        line = card.add("email")
        line.value = email
        line.type_param = EMAIL_TYPE

    for phone in record.phones:
        line = card.add("tel")
        line.value = phone
        line.type_param = PHONE_TYPE

    if record.note:
        card.add("note").value = record.note

    if record.photo:
        card.contents.pop("photo", None)
        line = card.add("photo")
        line.value = record.photo
        line.encoding_param = "b"
        line.type_param = PHOTO_TYPE
    elif not record.photo_uri:
        card.contents.pop("photo", None)

    if record.revision:
        card.add("rev").value = record.revision

    return card.serialize()
