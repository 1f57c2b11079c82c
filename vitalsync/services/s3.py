"""S3 upload of rendered snapshot documents.

Puts are signed with short-lived credentials from the CredentialProvider.
Failures are classified into UploadUnauthorized / UploadTransient /
UploadInvalid so the caller can decide whether to retry.  An unauthorized
put is retried exactly once after the cached credentials are dropped.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Callable

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ReadTimeoutError,
)

from vitalsync.auth.credentials import CredentialProvider, StorageCredentials
from vitalsync.config import Settings, get_settings
from vitalsync.errors import UploadError, UploadInvalid, UploadTransient, UploadUnauthorized
from vitalsync.health.formatter import UploadDocument

logger = logging.getLogger("vitalsync.services.s3")

CONTENT_TYPE = "application/json"

_UNAUTHORIZED_CODES = frozenset(
    {
        "AccessDenied",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "InvalidToken",
        "SignatureDoesNotMatch",
        "TokenRefreshRequired",
    }
)
_TRANSIENT_CODES = frozenset(
    {
        "InternalError",
        "RequestTimeout",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
    }
)

ClientFactory = Callable[[StorageCredentials], Any]


def compute_file_hash(data: bytes) -> str:
    """Return hex-encoded SHA-256 hash of file contents."""
    return hashlib.sha256(data).hexdigest()


def _default_client_factory(settings: Settings) -> ClientFactory:
    def factory(credentials: StorageCredentials) -> Any:
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_key,
            aws_session_token=credentials.session_token,
            config=BotoConfig(
                signature_version="s3v4",
                # Retries are owned by the scheduler
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
            region_name=settings.s3_region,
        )

    return factory


def classify_client_error(exc: ClientError) -> type[UploadError]:
    """Map a botocore ClientError to the upload error class it represents."""
    code = exc.response.get("Error", {}).get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    if code in _UNAUTHORIZED_CODES or status in (401, 403):
        return UploadUnauthorized
    if code in _TRANSIENT_CODES or status >= 500 or status == 429:
        return UploadTransient
    return UploadInvalid


class UploadClient:
    """Put UploadDocuments into the configured bucket."""

    def __init__(
        self,
        settings: Settings | None = None,
        credentials: CredentialProvider | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize the upload client.

        Args:
            settings:       Bucket, region, endpoint and size limit.
            credentials:    Provider of short-lived storage credentials.
            client_factory: Builds an S3 client for a set of credentials (for testing).
        """
        self._settings = settings or get_settings()
        if credentials is None:
            raise ValueError("UploadClient requires a CredentialProvider")
        self._credentials = credentials
        self._client_factory = client_factory or _default_client_factory(self._settings)
        self._client: Any = None
        self._client_key: str | None = None

    @property
    def bucket(self) -> str:
        return self._settings.s3_bucket_name

    def _get_client(self, credentials: StorageCredentials) -> Any:
        # One client per credential set
        if self._client is None or self._client_key != credentials.access_key_id:
            self._client = self._client_factory(credentials)
            self._client_key = credentials.access_key_id
        return self._client

    async def put(self, document: UploadDocument) -> str:
        """Upload ``document`` and return its storage key.

        Raises:
            UploadInvalid:      Body exceeds the size limit or storage rejected it.
            UploadUnauthorized: Credentials rejected twice.
            UploadTransient:    Network or service fault.
            AuthError:          Credentials could not be obtained at all.
        """
        body = document.to_bytes()
        limit = self._settings.max_document_size_bytes
        if len(body) > limit:
            raise UploadInvalid(
                f"document {document.key} is {len(body)} bytes, limit is {limit}"
            )

        try:
            return await self._put_once(document.key, body)
        except UploadUnauthorized as exc:
            logger.warning("Upload of %s unauthorized (%s), retrying with new credentials", document.key, exc)
            self._credentials.invalidate()
            self._client = None
            return await self._put_once(document.key, body)

    async def _put_once(self, key: str, body: bytes) -> str:
        credentials = await self._credentials.get_credentials()
        client = self._get_client(credentials)
        file_hash = compute_file_hash(body)
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=CONTENT_TYPE,
                ContentLength=len(body),
                Metadata={"content_sha256": file_hash},
            )
        except ClientError as exc:
            error_cls = classify_client_error(exc)
            raise error_cls(f"put {key} failed: {exc}") from exc
        except (BotoConnectionError, ReadTimeoutError) as exc:
            raise UploadTransient(f"put {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise UploadInvalid(f"put {key} failed: {exc}") from exc

        logger.info("Uploaded %s (%d bytes) to s3://%s", key, len(body), self.bucket)
        return key
