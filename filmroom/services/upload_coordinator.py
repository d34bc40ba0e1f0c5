"""
Upload Coordinator
Streams a game video to blob storage, registers the asset and kicks off
transcoding. At most one upload per game may be in flight.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import BinaryIO, Callable, Dict, Optional

from ..models.video_asset import VideoAsset
from ..utils.exceptions import (
    ConflictError,
    TransientTransferError,
    UploadCancelledError,
    UploadError,
)
from ..utils.logger import get_logger
from ..utils.retry import retry_async
from .asset_registry import VideoAssetRegistry
from .blob_store import BlobStore
from .status_tracker import PollingSupervisor
from .transcoder import TranscodeService

logger = get_logger()

ProgressCallback = Callable[[int], None]


class ProgressReporter:
    """
    Converts transferred byte counts into whole percentages.

    Emitted values never decrease (a retried attempt restarting from zero
    is hidden), stay below 100 during the transfer, and end with exactly
    one 100 once the upload has been registered.
    """

    def __init__(self, size_hint: int, callback: Optional[ProgressCallback] = None):
        self.size_hint = size_hint
        self.callback = callback
        self.last = -1
        self._lock = threading.Lock()

    def bytes_transferred(self, count: int):
        if self.size_hint <= 0:
            return
        percent = min(max(int(count * 100 / self.size_hint), 0), 99)
        self._emit(percent)

    def complete(self):
        self._emit(100)

    def _emit(self, percent: int):
        with self._lock:
            if percent <= self.last:
                return
            self.last = percent
            if self.callback is None:
                return
            try:
                self.callback(percent)
            except Exception as e:
                logger.warning(f"Progress callback raised: {e}")


class _AbortableStream:
    """File-like wrapper that stops a worker-thread transfer once cancelled."""

    def __init__(self, stream: BinaryIO, cancel_event: threading.Event, game_id: str):
        self._stream = stream
        self._cancel_event = cancel_event
        self._game_id = game_id

    def read(self, size: int = -1) -> bytes:
        if self._cancel_event.is_set():
            raise UploadCancelledError(self._game_id)
        return self._stream.read(size)

    def __getattr__(self, name):
        return getattr(self._stream, name)


@dataclass
class _InFlightUpload:
    game_id: str
    key: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    task: Optional[asyncio.Task] = None
    cancelled: bool = False
    committing: bool = False


class UploadCoordinator:
    """Orchestrates blob transfer, asset registration and transcode submission."""

    def __init__(
        self,
        blob_store: BlobStore,
        registry: VideoAssetRegistry,
        transcoder: TranscodeService,
        supervisor: Optional[PollingSupervisor] = None,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        key_prefix: str = "protected/game-videos"
    ):
        self.blob_store = blob_store
        self.registry = registry
        self.transcoder = transcoder
        self.supervisor = supervisor
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay
        self.key_prefix = key_prefix.rstrip("/")
        self._in_flight: Dict[str, _InFlightUpload] = {}

    def is_uploading(self, game_id: str) -> bool:
        return game_id in self._in_flight

    def build_key(self, game_id: str, file_name: Optional[str]) -> str:
        extension = PurePosixPath(file_name or "").suffix.lower() or ".mp4"
        timestamp = int(time.time() * 1000)
        return f"{self.key_prefix}/{game_id}/{game_id}_{timestamp}{extension}"

    async def begin_upload(
        self,
        owner_id: str,
        game_id: str,
        stream: BinaryIO,
        size_hint: int,
        on_progress: Optional[ProgressCallback] = None,
        file_name: Optional[str] = None
    ) -> str:
        """
        Upload ``stream`` for ``game_id`` and return the new asset id.

        Raises ConflictError when the game already has an upload in flight,
        UploadError when the transfer fails, and UploadCancelledError when
        cancel() is called before the asset is registered.
        """
        if game_id in self._in_flight:
            raise ConflictError(game_id)

        upload = _InFlightUpload(game_id=game_id, key=self.build_key(game_id, file_name))
        self._in_flight[game_id] = upload
        reporter = ProgressReporter(size_hint, on_progress)
        logger.info(f"Upload started for game {game_id}: {upload.key} ({size_hint / 1024 / 1024:.1f} MB)")

        try:
            upload.task = asyncio.create_task(self._transfer(upload, stream, reporter))
            try:
                location = await upload.task
            except (asyncio.CancelledError, UploadCancelledError):
                upload.cancel_event.set()
                if not upload.task.done():
                    upload.task.cancel()
                await self._discard(upload.key)
                if upload.cancelled:
                    logger.info(f"Upload cancelled for game {game_id}")
                    raise UploadCancelledError(game_id) from None
                logger.info(f"Upload for game {game_id} interrupted by caller")
                raise

            if upload.cancelled:
                await self._discard(upload.key)
                raise UploadCancelledError(game_id)

            # Registration has begun; cancel() reports False from here on
            upload.committing = True
            asset = await self.registry.create(
                owner_id=owner_id,
                game_id=game_id,
                raw_location=location,
                file_name=file_name,
            )
        finally:
            self._in_flight.pop(game_id, None)

        reporter.complete()
        logger.info(f"Upload finished for game {game_id}: asset {asset.id}")
        await self._start_processing(asset)
        return asset.id

    async def cancel(self, game_id: str) -> bool:
        """Abort the in-flight upload for a game. Returns False if none is running."""
        upload = self._in_flight.get(game_id)
        if upload is None or upload.committing:
            return False
        upload.cancelled = True
        upload.cancel_event.set()
        if upload.task is not None and not upload.task.done():
            upload.task.cancel()
        logger.info(f"Cancellation requested for game {game_id}")
        return True

    async def _transfer(
        self,
        upload: _InFlightUpload,
        stream: BinaryIO,
        reporter: ProgressReporter
    ) -> str:
        start_position = stream.tell() if stream.seekable() else None
        attempts = 0

        def log_retry(exc: Exception, attempt: int):
            logger.warning(f"Upload attempt {attempt} for game {upload.game_id} failed: {exc}")

        @retry_async(
            max_retries=self.max_attempts - 1,
            base_delay=self.retry_base_delay,
            retryable_exceptions=(TransientTransferError,),
            on_retry=log_retry,
        )
        async def put_once() -> str:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                if start_position is None:
                    raise UploadError(
                        "Upload stream cannot be rewound for a retry",
                        game_id=upload.game_id,
                        attempts=attempts - 1,
                    )
                stream.seek(start_position)
            return await self.blob_store.put(
                upload.key,
                _AbortableStream(stream, upload.cancel_event, upload.game_id),
                reporter.bytes_transferred,
            )

        try:
            return await put_once()
        except TransientTransferError as e:
            raise UploadError(
                f"Upload failed after {attempts} attempts: {e.message}",
                game_id=upload.game_id,
                attempts=attempts,
            ) from e

    async def _discard(self, key: str):
        try:
            await self.blob_store.delete(key)
        except Exception as e:
            logger.warning(f"Could not remove partial upload {key}: {e}")

    async def _start_processing(self, asset: VideoAsset):
        """Submit the transcode job; a failed submission is logged, not raised."""
        try:
            job_id = await self.transcoder.submit(asset.id, asset.raw_location)
        except Exception as e:
            logger.error(f"Transcode job for asset {asset.id} did not start: {e}")
        else:
            await self.registry.update(asset.id, job_id=job_id)
            logger.info(f"Transcode job {job_id} submitted for asset {asset.id}")

        if self.supervisor is not None:
            self.supervisor.start(asset.id)
