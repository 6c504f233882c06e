# plates/s3_utils.py

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from .config import (
    AWS_ACCESS_KEY_ID,
    AWS_SECRET_ACCESS_KEY,
    AWS_S3_BUCKET_NAME,
    AWS_S3_REGION,
    AWS_S3_ENDPOINT_URL,
    AWS_S3_KEY_PREFIX,
    REMOTE_MAX_ATTEMPTS,
    REMOTE_RETRY_DELAY,
)
from .exceptions import (
    RemoteAuthRequired,
    RemoteError,
    RemoteQuotaExceeded,
    RemoteRecordMissing,
    RemoteTransient,
    RemoteUnavailable,
)
from .retry import retry_async

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = {
    'AccessDenied', 'InvalidAccessKeyId', 'SignatureDoesNotMatch', 'ExpiredToken',
    'InvalidToken', 'TokenRefreshRequired', 'AuthFailure', 'UnrecognizedClientException',
    'NotAuthenticated', '401', '403',
}
QUOTA_ERROR_CODES = {
    'QuotaExceeded', 'ServiceQuotaExceededException', 'TooManyBuckets', 'LimitExceeded',
    'EntityTooLarge',
}
TRANSIENT_ERROR_CODES = {
    'SlowDown', 'Throttling', 'ThrottlingException', 'RequestTimeout', 'RequestTimeoutException',
    'InternalError', 'ServiceUnavailable', 'ServiceUnavailableException', '500', '502', '503', '504',
}
MISSING_ERROR_CODES = {'NoSuchKey', '404', 'NotFound'}

CONTENT_TYPE_MAP = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.bmp': 'image/bmp',
    '.tiff': 'image/tiff',
    '.webp': 'image/webp',
    '.heic': 'image/heic',
}


@dataclass
class RemoteServiceState:
    """Process-wide cloud availability, passed explicitly to whoever needs it.

    Flipped to unavailable by non-retryable failures; only an explicit
    ``RemoteObjectStore.check_availability()`` probe flips it back.
    """
    available: bool = True
    reason: Optional[str] = None

    def mark_unavailable(self, reason: str) -> None:
        if self.available:
            logger.warning(f"Remote object store marked unavailable: {reason}")
        self.available = False
        self.reason = reason

    def mark_available(self) -> None:
        self.available = True
        self.reason = None


def classify_error(error: Exception) -> RemoteError:
    """Map a boto3/botocore failure onto the remote error taxonomy."""
    if isinstance(error, RemoteError):
        return error
    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return RemoteAuthRequired(f"AWS credentials not configured: {error}", code='NoCredentials')
    if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError)):
        return RemoteTransient(f"Network error talking to S3: {error}", code='Network')
    if isinstance(error, ClientError):
        err = error.response.get('Error', {})
        code = str(err.get('Code', ''))
        status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        message = f"S3 request failed with error {code}: {err.get('Message', error)}"
        if code in AUTH_ERROR_CODES or status in (401, 403):
            return RemoteAuthRequired(message, code=code)
        if code in QUOTA_ERROR_CODES:
            return RemoteQuotaExceeded(message, code=code)
        if code in MISSING_ERROR_CODES:
            return RemoteRecordMissing(message, code=code)
        if code in TRANSIENT_ERROR_CODES or (status is not None and status >= 500):
            return RemoteTransient(message, code=code)
        return RemoteUnavailable(message, code=code)
    if isinstance(error, (BotoCoreError, ConnectionError, TimeoutError)):
        return RemoteTransient(f"S3 transport error: {error}", code=type(error).__name__)
    return RemoteUnavailable(f"Unexpected S3 error: {error}", code=type(error).__name__)


class RemoteObjectStore:
    """AWS S3 operations manager

    Every image is stored as one object; its key is the opaque cloud id kept
    on the plate record.
    """

    def __init__(
        self,
        state: Optional[RemoteServiceState] = None,
        client=None,
        bucket_name: Optional[str] = AWS_S3_BUCKET_NAME,
        key_prefix: str = AWS_S3_KEY_PREFIX,
        max_attempts: int = REMOTE_MAX_ATTEMPTS,
        retry_delay: float = REMOTE_RETRY_DELAY,
        sleep=asyncio.sleep,
    ):
        self.state = state if state is not None else RemoteServiceState()
        self.bucket_name = bucket_name
        self.key_prefix = key_prefix.strip('/')
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.bucket_name)

    def _get_client(self):
        """Create the boto3 client lazily so importing never touches AWS."""
        if self._client is None:
            self._client = boto3.client(
                's3',
                aws_access_key_id=AWS_ACCESS_KEY_ID,
                aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
                region_name=AWS_S3_REGION,
                endpoint_url=AWS_S3_ENDPOINT_URL,
            )
        return self._client

    def generate_s3_key(self, filename: str) -> str:
        """Generate S3 key with organized folder structure"""
        ext = os.path.splitext(filename)[1].lower() or '.jpg'

        # plates/YYYY/MM/DD/uuid.ext
        now = datetime.now(timezone.utc)
        date_path = f"{now.year:04d}/{now.month:02d}/{now.day:02d}"
        return f"{self.key_prefix}/{date_path}/{uuid.uuid4()}{ext}"

    def _ensure_usable(self) -> None:
        if not self.configured:
            raise RemoteUnavailable("AWS S3 bucket not configured", code='NotConfigured')
        if not self.state.available:
            raise RemoteUnavailable(f"Remote object store unavailable: {self.state.reason}", code='ServiceDisabled')

    async def _call(self, label: str, fn):
        """Run a blocking boto3 call in a worker thread under the retry policy."""
        self._ensure_usable()

        async def attempt():
            try:
                return await asyncio.to_thread(fn)
            except Exception as e:
                raise classify_error(e) from e

        try:
            return await retry_async(
                attempt,
                max_attempts=self.max_attempts,
                delay=self.retry_delay,
                is_retryable=lambda e: isinstance(e, RemoteError) and e.retryable,
                sleep=self._sleep,
                label=label,
            )
        except RemoteError as e:
            if e.disables_service:
                self.state.mark_unavailable(f"{type(e).__name__}: {e.message}")
            raise

    async def upload(self, data: bytes, name: str) -> str:
        """
        Upload image bytes and return the new object's key (the cloud id).

        Args:
            data: Image file content as bytes
            name: Original filename (used for extension and metadata)
        """
        s3_key = self.generate_s3_key(name)
        ext = os.path.splitext(name)[1].lower()
        content_type = CONTENT_TYPE_MAP.get(ext, 'image/jpeg')

        def put():
            self._get_client().put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=BytesIO(data),
                ContentType=content_type,
                Metadata={
                    'original_filename': os.path.basename(name),
                    'upload_timestamp': datetime.now(timezone.utc).isoformat(),
                },
            )

        await self._call(f"upload {name}", put)
        logger.info(f"Successfully uploaded image to S3: {s3_key}")
        return s3_key

    async def download(self, cloud_id: str) -> bytes:
        """Fetch the image bytes stored under ``cloud_id``."""
        def get():
            response = self._get_client().get_object(Bucket=self.bucket_name, Key=cloud_id)
            body = response['Body']
            try:
                return body.read()
            finally:
                body.close()

        data = await self._call(f"download {cloud_id}", get)
        logger.info(f"Downloaded image from S3: {cloud_id} ({len(data)} bytes)")
        return data

    async def delete(self, cloud_id: str) -> None:
        """Delete the object stored under ``cloud_id``."""
        def remove():
            self._get_client().delete_object(Bucket=self.bucket_name, Key=cloud_id)

        await self._call(f"delete {cloud_id}", remove)
        logger.info(f"Successfully deleted image from S3: {cloud_id}")

    async def check_availability(self) -> bool:
        """Probe the bucket once and reset the service state accordingly."""
        if not self.configured:
            self.state.mark_unavailable("AWS S3 bucket not configured")
            return False

        def head():
            self._get_client().head_bucket(Bucket=self.bucket_name)

        try:
            await asyncio.to_thread(head)
        except Exception as e:
            error = classify_error(e)
            self.state.mark_unavailable(f"{type(error).__name__}: {error.message}")
            return False

        self.state.mark_available()
        logger.info(f"S3 bucket reachable: {self.bucket_name}")
        return True
