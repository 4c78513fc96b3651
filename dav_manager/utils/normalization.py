"""
String normalization utilities for contact matching and storage.

Provides the name key used to join table rows against server contacts,
phone number canonicalization and ordering, and the slug used for
bucket archive file names.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# Country code assumed for bare ten digit numbers
DEFAULT_COUNTRY_CODE = "91"

# Characters some editors leave around names copied from other apps
INVISIBLE_NAME_CHARS = "\ufeff\u200b"

SLUG_FALLBACK = "unnamed"


def name_key(name: str | None) -> str:
    """
    Return the matching key for a display name.

    Two names that differ only in case or surrounding whitespace produce
    the same key and are treated as the same contact.
    """
    if not name:
        return ""
    return name.strip().lower()


def normalize_phone(raw: str | None) -> str:
    """
    Canonicalize a phone number.

    Keeps digits and a leading ``+``. Numbers without a country code are
    assumed to be local Indian numbers when they have ten digits (after
    dropping a trunk ``0``). Known lengths are grouped for display:

        +91 XXXXX XXXXX   (India)
        +1 XXX XXX XXXX   (North America)

    Everything else is returned as ``+<digits>``.

    Args:
        raw: Phone number as typed by a human

    Returns:
        Canonical phone string, or empty string if no digits were found

    Example:
        >>> normalize_phone("098765 43210")
        '+91 98765 43210'
        >>> normalize_phone("+1 (480) 395-7551")
        '+1 480 395 7551'
    """
    if not raw:
        return ""

    cleaned = re.sub(r"[^0-9+]", "", raw)
    has_plus = cleaned.startswith("+")
    digits = cleaned.replace("+", "")
    if not digits:
        return ""

    if has_plus:
        # "+0" plus ten local digits is a mistyped trunk prefix
        if digits.startswith("0") and len(digits) == 11:
            digits = DEFAULT_COUNTRY_CODE + digits[1:]
    else:
        if digits.startswith("0") and len(digits) == 11:
            digits = digits[1:]
        if len(digits) == 10:
            digits = DEFAULT_COUNTRY_CODE + digits

    if digits.startswith("91") and len(digits) == 12:
        return f"+91 {digits[2:7]} {digits[7:]}"
    if digits.startswith("1") and len(digits) == 11:
        return f"+1 {digits[1:4]} {digits[4:7]} {digits[7:]}"
    return f"+{digits}"


def order_and_dedupe_phones(raws: Iterable[str]) -> list[str]:
    """
    Normalize, deduplicate and order a list of phone numbers.

    International numbers come first and default-country (+91) numbers
    last; each group keeps the order in which its numbers first appeared.
    """
    international: list[str] = []
    domestic: list[str] = []
    seen: set[str] = set()

    for raw in raws:
        phone = normalize_phone(raw)
        if not phone or phone in seen:
            continue
        seen.add(phone)
        if phone.startswith(f"+{DEFAULT_COUNTRY_CODE}"):
            domestic.append(phone)
        else:
            international.append(phone)

    return international + domestic


def split_csv(value: str | None) -> list[str]:
    """Split a comma separated cell into trimmed, non-empty values."""
    if not value or not value.strip():
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def slugify(name: str | None) -> str:
    """
    Build a file-system friendly slug from a contact name.

    Lowercases, turns whitespace into ``-``, drops anything outside
    ``[a-z0-9-]`` and trims dashes from both ends.
    """
    value = (name or "").lower()
    value = re.sub(r"\s", "-", value)
    value = re.sub(r"[^a-z0-9-]", "", value)
    value = value.strip("-")
    return value or SLUG_FALLBACK
