"""
Photo lookup and processing for contact records.

Provides utilities for:
- Reading local photos named in a photo map (name -> image path)
- Looking up avatars on Gravatar by email hash
- Downloading with retry logic for network failures
- Converting images to JPEG and keeping them at a sane size
- The assignment policy that decides which photo a record gets
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import time
from collections.abc import Sequence
from pathlib import Path

import requests
from PIL import Image
from requests.exceptions import RequestException

from dav_manager import __version__
from dav_manager.sync.contact import RemoteRecord
from dav_manager.utils.normalization import name_key

# Retry configuration
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 30.0  # seconds

# HTTP timeout configuration
DOWNLOAD_TIMEOUT = 15.0  # seconds

# Photo processing configuration
MAX_PHOTO_SIZE = 512 * 1024  # bytes
MAX_PHOTO_DIMENSION = 512  # pixels
JPEG_QUALITY = 85

GRAVATAR_URL = "https://www.gravatar.com/avatar/{digest}?d=404&s={size}"
GRAVATAR_SIZE = 256

logger = logging.getLogger(__name__)


class PhotoError(Exception):
    """Raised when a photo operation fails."""

    pass


class PhotoDownloadError(PhotoError):
    """Raised when photo download fails after retries."""

    pass


class PhotoNotFoundError(PhotoDownloadError):
    """Raised when the server has no image at the URL (HTTP 404)."""

    pass


def download_photo(
    url: str, max_retries: int = MAX_RETRIES, timeout: float = DOWNLOAD_TIMEOUT
) -> bytes:
    """
    Download a photo from a URL with retry logic.

    Server errors and timeouts are retried with exponential backoff;
    client errors are not.

    Args:
        url: URL of the photo to download
        max_retries: Maximum number of attempts (default: 3)
        timeout: Request timeout in seconds (default: 15)

    Returns:
        Photo data as bytes

    Raises:
        PhotoNotFoundError: If the server answers 404
        PhotoDownloadError: If download fails after all retries
        PhotoError: For invalid input or other errors
    """
    if not url:
        raise PhotoError("Photo URL cannot be empty")

    if not url.startswith(("http://", "https://")):
        raise PhotoError(f"Invalid photo URL scheme: {url}")

    delay = INITIAL_RETRY_DELAY

    for attempt in range(max_retries):
        try:
            logger.debug(
                f"Downloading photo from {url} (attempt {attempt + 1}/{max_retries})"
            )

            response = requests.get(
                url,
                timeout=timeout,
                headers={"User-Agent": f"dav-manager/{__version__}"},
            )
            response.raise_for_status()

            if not response.content:
                raise PhotoError(f"Empty response from {url}")

            content_type = response.headers.get("content-type", "").lower()
            if content_type and not content_type.startswith("image/"):
                logger.warning(
                    f"Unexpected content type for photo: {content_type} from {url}"
                )

            logger.debug(f"Downloaded photo: {len(response.content)} bytes from {url}")
            return response.content

        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None

            if status_code == 404:
                logger.debug(f"No photo at {url}")
                raise PhotoNotFoundError(f"No photo at {url}") from e

            if status_code and status_code >= 500 and attempt < max_retries - 1:
                logger.warning(
                    f"Server error ({status_code}) downloading photo, "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                delay = min(delay * 2, MAX_RETRY_DELAY)
                continue

            logger.error(f"HTTP error downloading photo from {url}: {e}")
            raise PhotoDownloadError(f"Failed to download photo: {e}") from e

        except requests.Timeout as e:
            if attempt < max_retries - 1:
                logger.warning(f"Timeout downloading photo, retrying in {delay:.1f}s")
                time.sleep(delay)
                delay = min(delay * 2, MAX_RETRY_DELAY)
                continue
            logger.error(f"Timeout downloading photo from {url} after all retries")
            raise PhotoDownloadError(
                f"Download timeout after {max_retries} retries: {url}"
            ) from e

        except RequestException as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"Network error downloading photo, retrying in {delay:.1f}s: {e}"
                )
                time.sleep(delay)
                delay = min(delay * 2, MAX_RETRY_DELAY)
                continue
            logger.error(f"Network error downloading photo from {url}: {e}")
            raise PhotoDownloadError(
                f"Network error after {max_retries} retries: {e}"
            ) from e

    raise PhotoDownloadError(f"Failed to download photo after {max_retries} retries")


def process_photo(
    photo_data: bytes,
    max_size: int = MAX_PHOTO_SIZE,
    max_dimension: int = MAX_PHOTO_DIMENSION,
) -> bytes:
    """
    Validate photo data and convert it to a bounded-size JPEG.

    Args:
        photo_data: Raw image bytes in any format Pillow reads
        max_size: Maximum output size in bytes
        max_dimension: Maximum width/height in pixels

    Returns:
        JPEG bytes

    Raises:
        PhotoError: If the data is not an image or cannot be shrunk enough
    """
    if not photo_data:
        raise PhotoError("Photo data cannot be empty")

    try:
        image = Image.open(io.BytesIO(photo_data))
        image.load()
    except (Image.UnidentifiedImageError, OSError) as e:
        logger.debug(f"Invalid image data: {e}")
        raise PhotoError("Invalid or unsupported image format") from e

    if image.mode not in ("RGB", "L"):
        logger.debug(f"Converting image from {image.mode} to RGB")
        if image.mode == "RGBA":
            # Flatten transparency onto white
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[3])
            image = background
        else:
            image = image.convert("RGB")

    original_size = image.size
    if max(image.size) > max_dimension:
        image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        logger.debug(f"Resized photo from {original_size} to {image.size}")

    quality = JPEG_QUALITY
    output_data = _encode_jpeg(image, quality)
    while len(output_data) > max_size and quality > 20:
        quality -= 5
        logger.debug(
            f"Photo too large ({len(output_data)} bytes), reducing quality to {quality}"
        )
        output_data = _encode_jpeg(image, quality)

    if len(output_data) > max_size:
        raise PhotoError(
            f"Unable to reduce photo size below {max_size} bytes "
            f"(current: {len(output_data)} bytes)"
        )

    logger.debug(f"Processed photo: {len(photo_data)} -> {len(output_data)} bytes")
    return output_data


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    output = io.BytesIO()
    image.save(output, format="JPEG", quality=quality, optimize=True)
    return output.getvalue()


def gravatar_url(email: str, size: int = GRAVATAR_SIZE) -> str:
    """Return the Gravatar URL for an email (404 when no avatar exists)."""
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return GRAVATAR_URL.format(digest=digest, size=size)


def load_photo_map(path: Path | str | None) -> dict[str, str]:
    """
    Load a JSON object mapping contact names to image paths.

    Keys are converted to name keys and entries with an empty path are
    dropped. A missing or unreadable file yields an empty map.
    """
    if not path:
        return {}

    map_path = Path(path).expanduser()
    try:
        data = json.loads(map_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug(f"Photo map not found: {map_path}")
        return {}
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable photo map {map_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring photo map {map_path}: expected a JSON object")
        return {}

    photo_map: dict[str, str] = {}
    for name, photo_path in data.items():
        key = name_key(str(name))
        if key and isinstance(photo_path, str) and photo_path.strip():
            photo_map[key] = photo_path.strip()

    logger.debug(f"Loaded {len(photo_map)} photo map entries from {map_path}")
    return photo_map


class PhotoPolicy:
    """
    Decides which photo, if any, a record should carry.

    A record that already has a photo is left alone unless forced. The
    photo map is tried first, then Gravatar (when enabled) for the first
    email. A missing or unusable image is never an error: the record is
    simply left without a photo.

    Usage:
        policy = PhotoPolicy(load_photo_map("photos.json"), gravatar_enabled=True)
        changed = policy.assign(record, "Jane Doe", ["jane@example.com"])
    """

    def __init__(
        self,
        photo_map: dict[str, str] | None = None,
        gravatar_enabled: bool = False,
        base_dir: Path | None = None,
    ):
        """
        Args:
            photo_map: Name key -> image path
            gravatar_enabled: Whether Gravatar may be queried
            base_dir: Directory that relative photo paths are resolved from
        """
        self.photo_map = {name_key(k): v for k, v in (photo_map or {}).items()}
        self.gravatar_enabled = gravatar_enabled
        self.base_dir = base_dir

    def local_photo(self, name: str) -> bytes | None:
        """Read and convert the mapped photo for a name, None if unusable."""
        mapped = self.photo_map.get(name_key(name))
        if not mapped:
            return None

        path = Path(mapped).expanduser()
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path

        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug(f"Skipping photo for {name!r}: {e}")
            return None

        try:
            return process_photo(data)
        except PhotoError as e:
            logger.warning(f"Skipping photo {path} for {name!r}: {e}")
            return None

    def gravatar_photo(self, email: str) -> bytes | None:
        """Fetch the Gravatar for an email, None if there is none."""
        url = gravatar_url(email)
        try:
            return process_photo(download_photo(url))
        except PhotoNotFoundError:
            return None
        except PhotoError as e:
            logger.warning(f"Gravatar lookup failed for {email}: {e}")
            return None

    def assign(
        self,
        record: RemoteRecord,
        name: str,
        emails: Sequence[str],
        force: bool = False,
    ) -> bool:
        """
        Attach a photo to the record if one is available.

        Args:
            record: Record to update in place
            name: Name used for the photo map lookup
            emails: Candidate emails; only the first is used for Gravatar
            force: Replace an existing photo

        Returns:
            True if the record's photo changed
        """
        if record.has_photo and not force:
            return False

        photo = self.local_photo(name)
        if photo is None and self.gravatar_enabled and emails:
            photo = self.gravatar_photo(emails[0])

        if photo is None or photo == record.photo:
            return False

        record.photo = photo
        record.photo_uri = None
        logger.debug(f"Assigned photo to {name!r} ({len(photo)} bytes)")
        return True
