"""
Unit tests for the photo module.

Tests downloading, processing and the photo assignment policy with
mocked HTTP and small in-memory images.
"""

import io
import json
from unittest.mock import Mock, patch

import pytest
import requests
from PIL import Image
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from dav_manager.sync.contact import RemoteRecord
from dav_manager.sync.photo import (
    DOWNLOAD_TIMEOUT,
    MAX_PHOTO_DIMENSION,
    PhotoDownloadError,
    PhotoError,
    PhotoNotFoundError,
    PhotoPolicy,
    download_photo,
    gravatar_url,
    load_photo_map,
    process_photo,
)


def make_image(size=(64, 64), mode="RGB", fmt="PNG", color=(200, 10, 10)):
    if mode == "RGBA":
        color = color + (128,)
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def ok_response(content=b"image bytes", content_type="image/jpeg"):
    response = Mock()
    response.content = content
    response.headers = {"content-type": content_type}
    response.raise_for_status = Mock()
    return response


def http_error(status):
    response = Mock()
    response.status_code = status
    error = requests.HTTPError(f"{status} error")
    error.response = response
    failing = Mock()
    failing.raise_for_status.side_effect = error
    return failing


class TestDownloadPhoto:
    """Tests for download_photo."""

    @patch("dav_manager.sync.photo.requests.get")
    def test_success(self, mock_get):
        """Test successful photo download."""
        mock_get.return_value = ok_response()

        assert download_photo("https://example.com/p.jpg") == b"image bytes"
        args, kwargs = mock_get.call_args
        assert args == ("https://example.com/p.jpg",)
        assert kwargs["timeout"] == DOWNLOAD_TIMEOUT
        assert kwargs["headers"]["User-Agent"].startswith("dav-manager/")

    def test_invalid_urls(self):
        """Empty and non-http URLs are rejected before any request."""
        with pytest.raises(PhotoError, match="cannot be empty"):
            download_photo("")
        with pytest.raises(PhotoError, match="Invalid photo URL scheme"):
            download_photo("ftp://example.com/p.jpg")

    @patch("dav_manager.sync.photo.requests.get")
    def test_not_found_is_not_retried(self, mock_get):
        """A 404 raises PhotoNotFoundError immediately."""
        mock_get.return_value = http_error(404)

        with pytest.raises(PhotoNotFoundError):
            download_photo("https://example.com/p.jpg")
        assert mock_get.call_count == 1

    @patch("dav_manager.sync.photo.time.sleep")
    @patch("dav_manager.sync.photo.requests.get")
    def test_server_error_retried(self, mock_get, mock_sleep):
        """5xx responses are retried with backoff."""
        mock_get.side_effect = [http_error(503), ok_response()]

        assert download_photo("https://example.com/p.jpg") == b"image bytes"
        assert mock_get.call_count == 2
        mock_sleep.assert_called_once()

    @patch("dav_manager.sync.photo.time.sleep")
    @patch("dav_manager.sync.photo.requests.get")
    def test_timeout_exhausts_retries(self, mock_get, mock_sleep):
        mock_get.side_effect = Timeout("slow")

        with pytest.raises(PhotoDownloadError, match="timeout"):
            download_photo("https://example.com/p.jpg", max_retries=3)
        assert mock_get.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("dav_manager.sync.photo.time.sleep")
    @patch("dav_manager.sync.photo.requests.get")
    def test_connection_error(self, mock_get, mock_sleep):
        mock_get.side_effect = RequestsConnectionError("refused")

        with pytest.raises(PhotoDownloadError, match="Network error"):
            download_photo("https://example.com/p.jpg", max_retries=2)

    @patch("dav_manager.sync.photo.requests.get")
    def test_client_error_not_retried(self, mock_get):
        mock_get.return_value = http_error(403)

        with pytest.raises(PhotoDownloadError) as exc_info:
            download_photo("https://example.com/p.jpg")
        assert not isinstance(exc_info.value, PhotoNotFoundError)
        assert mock_get.call_count == 1


class TestProcessPhoto:
    """Tests for process_photo."""

    def test_png_converted_to_jpeg(self):
        output = process_photo(make_image())
        assert Image.open(io.BytesIO(output)).format == "JPEG"

    def test_large_image_resized(self):
        output = process_photo(make_image(size=(1200, 600)))
        image = Image.open(io.BytesIO(output))
        assert max(image.size) == MAX_PHOTO_DIMENSION
        assert image.size == (512, 256)

    def test_transparency_flattened(self):
        output = process_photo(make_image(mode="RGBA"))
        assert Image.open(io.BytesIO(output)).mode == "RGB"

    def test_invalid_data(self):
        with pytest.raises(PhotoError, match="Invalid or unsupported"):
            process_photo(b"not an image")

    def test_empty_data(self):
        with pytest.raises(PhotoError, match="cannot be empty"):
            process_photo(b"")


class TestGravatarUrl:
    """Tests for gravatar_url."""

    def test_hash_of_normalized_email(self):
        url = gravatar_url("  Jane@Example.com ")
        assert url == gravatar_url("jane@example.com")
        assert url.startswith("https://www.gravatar.com/avatar/")
        assert "d=404" in url


class TestLoadPhotoMap:
    """Tests for load_photo_map."""

    def test_keys_normalized(self, tmp_path):
        path = tmp_path / "photo-map.json"
        path.write_text(json.dumps({" Jane Doe ": "jane.png", "Empty": ""}))

        assert load_photo_map(path) == {"jane doe": "jane.png"}

    def test_missing_file(self, tmp_path):
        assert load_photo_map(tmp_path / "missing.json") == {}
        assert load_photo_map(None) == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "photo-map.json"
        path.write_text("{not json")
        assert load_photo_map(path) == {}

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "photo-map.json"
        path.write_text("[1, 2]")
        assert load_photo_map(path) == {}


class TestPhotoPolicy:
    """Tests for PhotoPolicy.assign."""

    @pytest.fixture
    def photo_dir(self, tmp_path):
        (tmp_path / "jane.png").write_bytes(make_image())
        return tmp_path

    def test_local_photo_assigned(self, photo_dir):
        policy = PhotoPolicy({"Jane Doe": "jane.png"}, base_dir=photo_dir)
        record = RemoteRecord(display_name="Jane Doe", photo_uri="http://old")

        assert policy.assign(record, "jane doe", []) is False  # has a photo already
        assert policy.assign(record, "jane doe", [], force=True) is True
        assert record.photo.startswith(b"\xff\xd8")
        assert record.photo_uri is None

    def test_same_photo_is_not_a_change(self, photo_dir):
        policy = PhotoPolicy({"jane": "jane.png"}, base_dir=photo_dir)
        record = RemoteRecord(display_name="Jane")
        assert policy.assign(record, "Jane", []) is True
        assert policy.assign(record, "Jane", [], force=True) is False

    def test_missing_local_file_ignored(self, tmp_path):
        policy = PhotoPolicy({"jane": "nope.png"}, base_dir=tmp_path)
        record = RemoteRecord(display_name="Jane")
        assert policy.assign(record, "Jane", []) is False
        assert record.photo is None

    def test_unmapped_without_gravatar(self):
        record = RemoteRecord(display_name="Jane")
        assert PhotoPolicy().assign(record, "Jane", ["jane@example.com"]) is False

    @patch("dav_manager.sync.photo.download_photo")
    def test_gravatar_fallback(self, mock_download):
        mock_download.return_value = make_image(fmt="JPEG")
        policy = PhotoPolicy(gravatar_enabled=True)
        record = RemoteRecord(display_name="Jane")

        assert policy.assign(record, "Jane", ["jane@example.com", "x@y.com"]) is True
        mock_download.assert_called_once_with(gravatar_url("jane@example.com"))

    @patch("dav_manager.sync.photo.download_photo")
    def test_gravatar_not_found(self, mock_download):
        mock_download.side_effect = PhotoNotFoundError("none")
        policy = PhotoPolicy(gravatar_enabled=True)
        record = RemoteRecord(display_name="Jane")

        assert policy.assign(record, "Jane", ["jane@example.com"]) is False
        assert record.photo is None

    @patch("dav_manager.sync.photo.download_photo")
    def test_gravatar_needs_email(self, mock_download):
        policy = PhotoPolicy(gravatar_enabled=True)
        assert policy.assign(RemoteRecord(display_name="Jane"), "Jane", []) is False
        mock_download.assert_not_called()
