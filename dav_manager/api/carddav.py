"""
CardDAV client for a single address-book collection.

Provides a small interface to a CardDAV server (Radicale and friends) for:
- Listing the cards of a collection with their ETags (PROPFIND)
- Fetching and decoding individual cards (GET)
- Creating and updating cards with optimistic locking (PUT + If-Match)
- Deleting cards (DELETE)

Calls are not retried: a failure is reported for the one card involved
and the caller decides whether the whole run should stop.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any

import requests

from dav_manager.api.vcard import DecodeError, decode_record, encode_record
from dav_manager.sync.contact import CardReference, RemoteRecord, random_id

# Request timeout in seconds
DEFAULT_TIMEOUT = 30.0

DAV_NAMESPACE = {"d": "DAV:"}

PROPFIND_BODY = """<?xml version="1.0"?>
<d:propfind xmlns:d="DAV:">
  <d:prop><d:getetag/><d:resourcetype/></d:prop>
</d:propfind>"""

VCARD_CONTENT_TYPE = "text/vcard; charset=utf-8"

logger = logging.getLogger(__name__)


class CardDAVError(Exception):
    """Raised when a CardDAV operation fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(CardDAVError):
    """Raised on network failures or unexpected HTTP status codes."""

    pass


class ConflictError(CardDAVError):
    """Raised when the server rejects a write because the card changed."""

    pass


def strip_etag(value: str | None) -> str | None:
    """Remove surrounding quotes from an ETag header value."""
    if not value:
        return None
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"') or None


class CardDAVClient:
    """
    Client for one CardDAV address-book collection.

    Attributes:
        base_url: Server root, always ending in "/"
        collection: Collection path below the server root, without slashes
        timeout: Per-request timeout in seconds

    Usage:
        client = CardDAVClient(
            "https://dav.example.com/", "/jane/contacts/", "jane", "secret"
        )

        # All cards, skipping the ones that fail to load
        records, failures = client.fetch_all()

        # Update a card (If-Match uses the ETag from the fetch)
        record.note = "met at PyCon"
        client.put(record)

        # Remove a card
        client.delete(record.reference)
    """

    def __init__(
        self,
        base_url: str,
        collection: str,
        username: str,
        password: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.collection = collection.strip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (username, password)

    @property
    def collection_url(self) -> str:
        return f"{self.base_url}{self.collection}/"

    def url_for(self, href: str) -> str:
        """Resolve a server-relative href against the base URL."""
        if href.startswith(("http://", "https://")):
            return href
        return self.base_url + href.lstrip("/")

    def new_reference(self) -> CardReference:
        """Reference for a card that does not exist on the server yet."""
        return CardReference(href=f"{self.collection_url}{random_id()}.vcf")

    def _request(
        self, method: str, url: str, operation: str, **kwargs: Any
    ) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.debug(f"{operation} failed: {e}")
            raise TransportError(f"{operation} failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, operation: str) -> None:
        if response.status_code >= 300:
            body = (response.text or "").strip()[:200]
            raise TransportError(
                f"{operation} status {response.status_code}: {body}",
                status_code=response.status_code,
            )

    def list(self) -> list[CardReference]:
        """
        List the cards in the collection.

        Returns:
            References for every .vcf resource, in server order

        Raises:
            TransportError: If the PROPFIND fails or returns garbage
        """
        response = self._request(
            "PROPFIND",
            self.collection_url,
            "propfind",
            data=PROPFIND_BODY.encode("utf-8"),
            headers={"Depth": "1", "Content-Type": "text/xml; charset=utf-8"},
        )
        self._raise_for_status(response, "propfind")

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise TransportError(f"propfind returned invalid XML: {e}") from e

        references: list[CardReference] = []
        for item in root.findall("d:response", DAV_NAMESPACE):
            href = (item.findtext("d:href", default="", namespaces=DAV_NAMESPACE)).strip()
            if not href or href.endswith("/") or not href.lower().endswith(".vcf"):
                continue
            etag = item.findtext(".//d:getetag", default="", namespaces=DAV_NAMESPACE)
            references.append(CardReference(href=href, etag=strip_etag(etag)))

        logger.debug(f"Listed {len(references)} cards in {self.collection_url}")
        return references

    def get(self, reference: CardReference) -> RemoteRecord:
        """
        Fetch and decode one card.

        Raises:
            TransportError: If the GET fails
            DecodeError: If the body is not a valid vCard
        """
        response = self._request("GET", self.url_for(reference.href), "get")
        self._raise_for_status(response, "get")

        etag = strip_etag(response.headers.get("ETag")) or reference.etag
        return decode_record(response.text, reference.with_etag(etag))

    def put(self, record: RemoteRecord) -> CardReference:
        """
        Store a card, creating it when it has no reference yet.

        Assigns a UID if the record has none and stamps its revision.
        Existing cards are written with If-Match so a concurrent change on
        the server is rejected instead of overwritten.

        Returns:
            The new reference, also set on ``record.reference``

        Raises:
            ConflictError: If the server reports the ETag no longer matches
            TransportError: For any other failure
        """
        record.ensure_uid()
        record.touch()
        body = encode_record(record)

        headers = {"Content-Type": VCARD_CONTENT_TYPE}
        if record.reference is None:
            target = self.new_reference()
        else:
            target = record.reference
            if target.etag:
                headers["If-Match"] = f'"{target.etag}"'

        response = self._request(
            "PUT",
            self.url_for(target.href),
            "put",
            data=body.encode("utf-8"),
            headers=headers,
        )
        if response.status_code == 412:
            raise ConflictError(
                f"{target.href} was modified on the server (ETag {target.etag})",
                status_code=412,
            )
        self._raise_for_status(response, "put")

        record.reference = target.with_etag(strip_etag(response.headers.get("ETag")))
        record.raw = body
        logger.debug(f"Stored {record.display_name!r} at {target.href}")
        return record.reference

    def delete(self, reference: CardReference) -> None:
        """
        Delete a card. A card that is already gone counts as deleted.

        Raises:
            TransportError: If the DELETE fails
        """
        response = self._request("DELETE", self.url_for(reference.href), "delete")
        if response.status_code == 404:
            logger.debug(f"Card already deleted: {reference.href}")
            return
        self._raise_for_status(response, "delete")
        logger.debug(f"Deleted {reference.href}")

    def fetch_all(
        self, errors: list[tuple[CardReference, Exception]] | None = None
    ) -> tuple[list[RemoteRecord], list[tuple[CardReference, Exception]]]:
        """
        Fetch every card in the collection.

        A card that fails to download or decode is logged and skipped.

        Args:
            errors: Optional list that skipped cards are appended to

        Returns:
            Tuple of (records, list of (reference, error) for skipped cards)

        Raises:
            TransportError: If the collection itself cannot be listed
        """
        records: list[RemoteRecord] = []
        failures = errors if errors is not None else []

        for reference in self.list():
            try:
                records.append(self.get(reference))
            except (TransportError, DecodeError) as e:
                logger.warning(f"get {reference.href}: {e}")
                failures.append((reference, e))

        logger.info(f"Fetched {len(records)} contacts from {self.collection_url}")
        return records, failures
