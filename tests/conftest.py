"""Shared fakes and fixtures for the FilmRoom test suite"""

import asyncio
from typing import Dict, List, Optional

import pytest

from filmroom.models.video_asset import ProcessingState, TranscodeResult, VariantQuality
from filmroom.services.asset_registry import VideoAssetRegistry
from filmroom.services.blob_store import BlobStore
from filmroom.services.record_store import RecordStore
from filmroom.services.transcoder import TranscodeService
from filmroom.utils.exceptions import TransientTransferError

MB = 1024 * 1024


class FakeBlobStore(BlobStore):
    """In-memory blob store that reads the stream in chunks like a real transfer"""

    def __init__(self, fail_times: int = 0, chunk_size: int = MB):
        self.blobs: Dict[str, bytes] = {}
        self.fail_times = fail_times
        self.chunk_size = chunk_size
        self.put_calls = 0
        self.deleted: List[str] = []
        # When set, every chunk waits on this event
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def put(self, key, stream, on_progress=None):
        self.put_calls += 1
        data = bytearray()
        while True:
            chunk = stream.read(self.chunk_size)
            if not chunk:
                break
            data.extend(chunk)
            if on_progress:
                on_progress(len(data))
            self.started.set()
            if self.put_calls <= self.fail_times:
                raise TransientTransferError("connection reset by peer", key=key)
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
        self.blobs[key] = bytes(data)
        return f"mem://{key}"

    async def get(self, key):
        return f"https://signed.example/{key.replace('mem://', '')}"

    async def exists(self, key):
        return key.replace("mem://", "") in self.blobs

    async def delete(self, key):
        self.deleted.append(key)
        return self.blobs.pop(key.replace("mem://", ""), None) is not None


def completed_result(thumbnail_count: int = 5, duration: float = 600.0) -> TranscodeResult:
    return TranscodeResult(
        variants={
            VariantQuality.P1080: "mem://processed/game-1_1080p.mp4",
            VariantQuality.P720: "mem://processed/game-1_720p.mp4",
        },
        thumbnails=[f"mem://processed/thumbnails/game-1_thumb.{i:07d}.jpg" for i in range(thumbnail_count)],
        duration_seconds=duration,
    )


class FakeTranscoder(TranscodeService):
    """
    Scripted transcode job.

    ``statuses`` is consumed one entry per status() call; the last entry
    repeats. Exception instances in the script are raised.
    """

    def __init__(self, statuses=None, result=None, reason=None, submit_error=None):
        self.statuses = list(statuses or [ProcessingState.PENDING])
        self.result_value = result or completed_result()
        self.reason = reason
        self.submit_error = submit_error
        self.submitted: List[tuple] = []
        self.status_calls = 0
        self.result_calls = 0

    async def submit(self, asset_id, source_location):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((asset_id, source_location))
        return f"job-{len(self.submitted)}"

    async def status(self, asset_id, job_id=None):
        self.status_calls += 1
        entry = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def result(self, asset_id, job_id=None):
        self.result_calls += 1
        return self.result_value

    async def failure_reason(self, asset_id, job_id=None):
        return self.reason


class FakeClock:
    """Monotonic clock advanced only by the injected sleep"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def record_store(tmp_path):
    return RecordStore(str(tmp_path / "filmroom.db"))


@pytest.fixture
def registry(record_store):
    return VideoAssetRegistry(record_store)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def clock():
    return FakeClock()
