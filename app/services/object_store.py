"""
Object storage adapter for presigned image URLs.

The dashboard only needs one capability from object storage: a short-lived
download URL for a private key. Provider quirks stay inside S3ObjectStore.
"""

import re
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from structlog import get_logger

from app.config import Settings
from app.exceptions import ObjectStoreError
from app.observability.metrics import metrics

logger = get_logger(__name__)

CHECKSUM_MODE_HEADER = "x-amz-checksum-mode"
_CHECKSUM_MODE_PARAM = re.compile(r"[&?]x-amz-checksum-mode=[^&]*", re.IGNORECASE)


class ObjectStore(Protocol):
    """Minimal object storage interface used by read models."""

    def presign_get(self, key: str) -> str:
        """Signed GET URL for key, or "" when it can't be issued."""
        ...

    def check_bucket(self) -> None:
        """Raise if the bucket is unreachable."""
        ...


def drop_checksum_mode_header(request: Any, **kwargs: Any) -> None:
    """
    botocore before-sign hook: remove x-amz-checksum-mode from the request.

    Runs before the signer computes the canonical request, so the signature
    never covers the header and it is never hoisted into the query string.
    """
    if CHECKSUM_MODE_HEADER in request.headers:
        del request.headers[CHECKSUM_MODE_HEADER]


def strip_checksum_mode_param(url: str) -> str:
    """Remove any x-amz-checksum-mode query parameter left in a URL."""
    if CHECKSUM_MODE_HEADER not in url.lower():
        return url
    stripped = _CHECKSUM_MODE_PARAM.sub("", url)
    # If the removed parameter was the first one, promote the next to '?'
    if "?" not in stripped and "&" in stripped:
        stripped = stripped.replace("&", "?", 1)
    return stripped


class S3ObjectStore:
    """
    S3-compatible object store (Hetzner Object Storage in production).

    The provider rejects requests carrying x-amz-checksum-mode, so the
    header is excluded from signing and any residue is stripped.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        force_path_style: bool = False,
        expires_in: int = 3600,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.expires_in = expires_in
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path" if force_path_style else "auto"},
                    request_checksum_calculation="when_required",
                    response_checksum_validation="when_required",
                ),
            )
        client.meta.events.register("before-sign.s3.GetObject", drop_checksum_mode_header)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        return cls(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            force_path_style=settings.s3_force_path_style,
            expires_in=settings.presign_expires_seconds,
        )

    def presign_get(self, key: str) -> str:
        """
        Presigned GET URL valid for expires_in seconds.

        Never raises: an empty key returns "" without touching the client,
        and signing errors are logged and return "".
        """
        if not key:
            return ""

        try:
            url: str = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expires_in,
            )
        except Exception as e:
            logger.warning("presign_failed", key=key, error=str(e))
            metrics.record_presign(False)
            return ""

        metrics.record_presign(True)
        return strip_checksum_mode_param(url)

    def check_bucket(self) -> None:
        """
        HEAD the bucket.

        Raises:
            ObjectStoreError: bucket missing, forbidden or unreachable
        """
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"head_bucket {self.bucket}: {e}") from e


def presigned_or_stored(store: ObjectStore, s3_key: str | None, stored_url: str | None) -> str:
    """
    URL to show for a photo.

    Photos with a key get a fresh presigned URL (which may be "" if signing
    failed); legacy rows without a key fall back to their stored URL.
    """
    if s3_key:
        return store.presign_get(s3_key)
    return stored_url or ""
