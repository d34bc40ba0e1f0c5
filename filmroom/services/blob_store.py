"""
Blob Store Service
Streams raw video bytes to durable storage with progress tracking
"""

import asyncio
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from ..config import Settings
from ..utils.exceptions import TransientTransferError, UploadError
from ..utils.logger import get_logger

logger = get_logger()

# Receives the running total of bytes transferred
ByteProgress = Callable[[int], None]

_CHUNK_SIZE = 1024 * 1024
_MULTIPART_THRESHOLD = 5 * 1024 * 1024

_TRANSIENT_S3_CODES = {
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "SlowDown",
    "InternalError",
    "ServiceUnavailable",
    "Throttling",
    "500",
    "503",
}


class BlobStore(ABC):
    """Durable byte store addressed by key"""

    @abstractmethod
    async def put(
        self,
        key: str,
        stream: BinaryIO,
        on_progress: Optional[ByteProgress] = None
    ) -> str:
        """Store the stream under ``key`` and return its location."""

    @abstractmethod
    async def get(self, key: str) -> str:
        """Return a time-limited URL for ``key``."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether ``key`` is stored."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; returns False when it was not stored."""


class S3BlobStore(BlobStore):
    """S3 blob store with multipart upload support"""

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self.bucket = settings.s3_bucket_name
        self._client = client

    @property
    def client(self):
        """Lazy initialize S3 client"""
        if self._client is None:
            import boto3
            from botocore.config import Config

            config = Config(
                retries={'max_attempts': 3, 'mode': 'adaptive'},
                max_pool_connections=10
            )

            self._client = boto3.client(
                's3',
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
                region_name=self.settings.aws_region,
                config=config
            )
            logger.info(f"S3 client initialized for bucket: {self.bucket}")
        return self._client

    def location_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    @staticmethod
    def key_from_location(location: str) -> str:
        """Accept either a bare key or an s3:// / https:// location"""
        for prefix in ("s3://", "https://s3.amazonaws.com/"):
            if location.startswith(prefix):
                return location[len(prefix):].split("/", 1)[1]
        return location

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        on_progress: Optional[ByteProgress] = None
    ) -> str:
        from botocore.exceptions import (
            BotoCoreError,
            ClientError,
            ConnectionClosedError,
            ConnectTimeoutError,
            EndpointConnectionError,
            ReadTimeoutError,
        )

        content_type, _ = mimetypes.guess_type(key)
        content_type = content_type or 'application/octet-stream'
        logger.info(f"Uploading to S3: {key}")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                self._do_upload,
                key,
                stream,
                content_type,
                on_progress
            )
        except (EndpointConnectionError, ConnectionClosedError,
                ConnectTimeoutError, ReadTimeoutError) as e:
            raise TransientTransferError(str(e), key=key) from e
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _TRANSIENT_S3_CODES:
                raise TransientTransferError(str(e), key=key) from e
            raise UploadError(f"S3 rejected upload: {e}", key=key) from e
        except BotoCoreError as e:
            raise UploadError(f"S3 upload failed: {e}", key=key) from e

        location = self.location_for(key)
        logger.info(f"Upload complete: {location}")
        return location

    def _do_upload(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str,
        on_progress: Optional[ByteProgress]
    ):
        """Perform the actual upload (blocking)"""
        from boto3.s3.transfer import TransferConfig

        uploaded_bytes = 0

        def upload_progress(bytes_amount):
            nonlocal uploaded_bytes
            uploaded_bytes += bytes_amount
            if on_progress:
                on_progress(uploaded_bytes)

        config = TransferConfig(
            multipart_threshold=_MULTIPART_THRESHOLD,
            multipart_chunksize=_MULTIPART_THRESHOLD,
            max_concurrency=4,
            use_threads=True
        )

        self.client.upload_fileobj(
            stream,
            self.bucket,
            key,
            ExtraArgs={'ContentType': content_type},
            Config=config,
            Callback=upload_progress
        )

    async def get(self, key: str) -> str:
        key = self.key_from_location(key)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=self.settings.signed_url_expiration_seconds
            )
        )

    async def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        key = self.key_from_location(key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.head_object(Bucket=self.bucket, Key=key)
            )
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    async def delete(self, key: str) -> bool:
        key = self.key_from_location(key)
        if not await self.exists(key):
            return False
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self.client.delete_object(Bucket=self.bucket, Key=key)
        )
        logger.info(f"Deleted from S3: {key}")
        return True


class LocalBlobStore(BlobStore):
    """Filesystem blob store used when S3 is not configured"""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if key.startswith("file://"):
            return Path(key[len("file://"):])
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Blob key escapes storage root: {key}")
        return path

    async def put(
        self,
        key: str,
        stream: BinaryIO,
        on_progress: Optional[ByteProgress] = None
    ) -> str:
        path = self._path_for(key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._copy, stream, path, on_progress)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise TransientTransferError(str(e), key=key) from e
        return path.as_uri()

    @staticmethod
    def _copy(stream: BinaryIO, path: Path, on_progress: Optional[ByteProgress]):
        path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with open(path, "wb") as output_file:
            while True:
                chunk = stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                output_file.write(chunk)
                written += len(chunk)
                if on_progress:
                    on_progress(written)

    async def get(self, key: str) -> str:
        return self._path_for(key).as_uri()

    async def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True
