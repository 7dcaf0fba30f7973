"""
Tests for presigned URL generation against S3-compatible storage.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest

from app.services.object_store import (
    CHECKSUM_MODE_HEADER,
    S3ObjectStore,
    drop_checksum_mode_header,
    presigned_or_stored,
    strip_checksum_mode_param,
)


@pytest.fixture
def store() -> S3ObjectStore:
    """Real boto3 client with dummy credentials; presigning never hits the network."""
    return S3ObjectStore(
        "lenscherry-test",
        endpoint_url="https://fsn1.your-objectstorage.com",
        region="fsn1",
        access_key_id="AKIATESTTESTTEST",
        secret_access_key="test-secret-access-key",
        force_path_style=True,
        expires_in=900,
    )


class TestPresignGet:
    """Tests for S3ObjectStore.presign_get."""

    def test_signed_url_targets_bucket_and_key(self, store):
        url = store.presign_get("users/user-1/photo-1.jpg")

        parts = urlsplit(url)
        assert parts.netloc == "fsn1.your-objectstorage.com"
        assert parts.path == "/lenscherry-test/users/user-1/photo-1.jpg"

        params = parse_qs(parts.query)
        assert params["X-Amz-Expires"] == ["900"]
        assert "X-Amz-Signature" in params

    def test_url_never_carries_checksum_mode(self, store):
        url = store.presign_get("users/user-1/photo-1.jpg")
        assert CHECKSUM_MODE_HEADER not in url.lower()

    def test_checksum_mode_not_signed(self, store):
        url = store.presign_get("users/user-1/photo-1.jpg")
        signed_headers = parse_qs(urlsplit(url).query)["X-Amz-SignedHeaders"][0]
        assert CHECKSUM_MODE_HEADER not in signed_headers

    def test_empty_key_returns_empty_without_client_call(self):
        client = MagicMock()
        store = S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        assert store.presign_get("") == ""
        client.generate_presigned_url.assert_not_called()

    def test_signing_failure_returns_empty(self):
        client = MagicMock()
        client.generate_presigned_url.side_effect = RuntimeError("no credentials")
        store = S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        assert store.presign_get("users/u/p.jpg") == ""

    def test_residual_param_is_stripped(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = (
            "https://s3.example/bucket/k.jpg?x-amz-checksum-mode=ENABLED&X-Amz-Signature=abc"
        )
        store = S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        assert store.presign_get("k.jpg") == "https://s3.example/bucket/k.jpg?X-Amz-Signature=abc"

    def test_registers_before_sign_hook(self):
        client = MagicMock()
        S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        client.meta.events.register.assert_called_once_with(
            "before-sign.s3.GetObject", drop_checksum_mode_header
        )


class TestChecksumModeHelpers:
    """Tests for the checksum-mode hook and URL scrubber."""

    def test_hook_removes_header(self):
        request = SimpleNamespace(headers={CHECKSUM_MODE_HEADER: "ENABLED", "host": "s3"})
        drop_checksum_mode_header(request)
        assert request.headers == {"host": "s3"}

    def test_hook_ignores_requests_without_header(self):
        request = SimpleNamespace(headers={"host": "s3"})
        drop_checksum_mode_header(request)
        assert request.headers == {"host": "s3"}

    def test_strip_middle_param(self):
        url = "https://s3.example/k?a=1&x-amz-checksum-mode=ENABLED&b=2"
        assert strip_checksum_mode_param(url) == "https://s3.example/k?a=1&b=2"

    def test_strip_last_param(self):
        url = "https://s3.example/k?a=1&X-Amz-Checksum-Mode=ENABLED"
        assert strip_checksum_mode_param(url) == "https://s3.example/k?a=1"

    def test_strip_leaves_clean_url_untouched(self):
        url = "https://s3.example/k?a=1&b=2"
        assert strip_checksum_mode_param(url) is url


class TestPresignedOrStored:
    """Tests for choosing the URL shown for a photo."""

    def test_key_is_presigned(self, object_store):
        url = presigned_or_stored(object_store, "users/u/p.jpg", "https://legacy/p.jpg")
        assert url == "https://signed.example/users/u/p.jpg?X-Amz-Signature=abc"

    def test_legacy_row_uses_stored_url(self, object_store):
        assert presigned_or_stored(object_store, None, "https://legacy/p.jpg") == "https://legacy/p.jpg"
        object_store.presign_get.assert_not_called()

    def test_nothing_to_show(self, object_store):
        assert presigned_or_stored(object_store, None, None) == ""


class TestCheckBucket:
    """Tests for the bucket health check."""

    def test_client_error_becomes_object_store_error(self):
        from botocore.exceptions import ClientError

        from app.exceptions import ObjectStoreError

        client = MagicMock()
        client.head_bucket.side_effect = ClientError(
            {"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket"
        )
        store = S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        with pytest.raises(ObjectStoreError, match="head_bucket bucket"):
            store.check_bucket()

    def test_reachable_bucket(self):
        client = MagicMock()
        store = S3ObjectStore(
            "bucket",
            endpoint_url=None,
            region="eu-central-1",
            access_key_id="",
            secret_access_key="",
            client=client,
        )

        store.check_bucket()
        client.head_bucket.assert_called_once_with(Bucket="bucket")
