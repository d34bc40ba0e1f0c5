"""
Processing Status Tracker
Advances video assets through PENDING -> PROCESSING -> COMPLETED | FAILED
by polling the external transcode job.
"""

import asyncio
import inspect
import time
from typing import Awaitable, Callable, Dict, List, Optional, Union

from ..models.video_asset import ProcessingState, VideoAsset
from ..utils.exceptions import AssetNotFoundError, TranscodeLookupError
from ..utils.logger import get_logger
from .asset_registry import VideoAssetRegistry
from .transcoder import TranscodeService

logger = get_logger()

TIMEOUT_REASON = "processing timeout"
DEFAULT_FAILURE_REASON = "transcode job failed"

TransitionListener = Callable[[VideoAsset], Union[None, Awaitable[None]]]


class ProcessingStatusTracker:
    """Reads the transcode job and commits state transitions through the registry."""

    def __init__(
        self,
        registry: VideoAssetRegistry,
        transcoder: TranscodeService,
        on_transition: Optional[TransitionListener] = None
    ):
        self.registry = registry
        self.transcoder = transcoder
        self.on_transition = on_transition

    async def poll(self, asset_id: str) -> ProcessingState:
        """
        Query the job once and apply whatever transition it implies.

        Terminal assets are returned without contacting the job service.
        Lookup errors leave the asset untouched; the next tick retries.
        """
        asset = await self.registry.get(asset_id)
        if asset.state.is_terminal:
            return asset.state

        job_state = await self._job_status(asset)
        if job_state is None:
            return asset.state

        asset = await self._apply(asset, job_state, write_progress=True)
        return asset.state

    async def refresh(self, asset_id: str) -> VideoAsset:
        """
        Return the asset, committing only a move into a terminal state.

        While the job is still running the stored (possibly stale) record is
        returned as-is and nothing is written.
        """
        asset = await self.registry.get(asset_id)
        if asset.state.is_terminal:
            return asset

        job_state = await self._job_status(asset)
        if job_state is None:
            return asset
        return await self._apply(asset, job_state, write_progress=False)

    async def expire(self, asset_id: str) -> VideoAsset:
        """Force a non-terminal asset into FAILED after the processing ceiling."""
        return await self._commit(
            asset_id, ProcessingState.FAILED, failure_reason=TIMEOUT_REASON
        )

    async def _job_status(self, asset: VideoAsset) -> Optional[ProcessingState]:
        try:
            return await self.transcoder.status(asset.id, asset.job_id)
        except TranscodeLookupError as e:
            logger.warning(f"Status lookup failed for asset {asset.id}, will retry: {e.message}")
            return None

    async def _apply(
        self,
        asset: VideoAsset,
        job_state: ProcessingState,
        write_progress: bool
    ) -> VideoAsset:
        if job_state == ProcessingState.PROCESSING:
            if write_progress and asset.state == ProcessingState.PENDING:
                return await self._commit(asset.id, ProcessingState.PROCESSING)
            return asset

        if job_state == ProcessingState.COMPLETED:
            try:
                result = await self.transcoder.result(asset.id, asset.job_id)
            except TranscodeLookupError as e:
                logger.warning(f"Result lookup failed for asset {asset.id}, will retry: {e.message}")
                return asset
            return await self._commit(
                asset.id,
                ProcessingState.COMPLETED,
                variants=result.variants,
                thumbnails=result.thumbnails,
                duration_seconds=result.duration_seconds,
            )

        if job_state == ProcessingState.FAILED:
            try:
                reason = await self.transcoder.failure_reason(asset.id, asset.job_id)
            except TranscodeLookupError:
                reason = None
            return await self._commit(
                asset.id,
                ProcessingState.FAILED,
                failure_reason=reason or DEFAULT_FAILURE_REASON,
            )

        return asset

    async def _commit(self, asset_id: str, target: ProcessingState, **fields) -> VideoAsset:
        asset, changed = await self.registry.transition(asset_id, target, **fields)
        if changed and self.on_transition:
            try:
                outcome = self.on_transition(asset)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.exception(f"Transition listener failed for asset {asset_id}: {e}")
        return asset


class PollingSupervisor:
    """
    Owns one cancellable polling task per asset.

    The first tick fires immediately, then every ``interval`` seconds until
    a terminal state is seen or ``max_duration`` elapses, at which point the
    asset is failed with "processing timeout".
    """

    def __init__(
        self,
        tracker: ProcessingStatusTracker,
        interval: float = 10.0,
        max_duration: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.tracker = tracker
        self.interval = interval
        self.max_duration = max_duration
        self._clock = clock
        self._sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, asset_id: str) -> asyncio.Task:
        """Start polling an asset; returns the already running task if there is one."""
        task = self._tasks.get(asset_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self._run(asset_id), name=f"poll-{asset_id}")
        self._tasks[asset_id] = task
        task.add_done_callback(lambda finished: self._on_done(asset_id, finished))
        return task

    def is_polling(self, asset_id: str) -> bool:
        task = self._tasks.get(asset_id)
        return task is not None and not task.done()

    def active(self) -> List[str]:
        return [asset_id for asset_id, task in self._tasks.items() if not task.done()]

    async def wait(self, asset_id: str) -> Optional[ProcessingState]:
        """Wait for the asset's polling task to finish, if one is running."""
        task = self._tasks.get(asset_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def stop(self, asset_id: str) -> bool:
        """Stop future ticks. Already committed state is left alone."""
        task = self._tasks.pop(asset_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info(f"Stopped polling asset {asset_id}")
        return True

    async def stop_all(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info(f"Stopped {len(tasks)} polling task(s)")

    def _on_done(self, asset_id: str, task: asyncio.Task):
        if self._tasks.get(asset_id) is task:
            del self._tasks[asset_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Polling asset {asset_id} crashed: {exc!r}")

    async def _run(self, asset_id: str) -> Optional[ProcessingState]:
        deadline = self._clock() + self.max_duration
        logger.info(f"Polling processing status for asset {asset_id} every {self.interval:g}s")

        while True:
            try:
                state = await self.tracker.poll(asset_id)
            except AssetNotFoundError:
                logger.warning(f"Asset {asset_id} disappeared, stopping poller")
                return None
            except Exception as e:
                logger.warning(f"Status poll for asset {asset_id} failed, retrying next tick: {e}")
                state = None

            if state is not None and state.is_terminal:
                logger.info(f"Asset {asset_id} reached {state.value}, polling stopped")
                return state

            if self._clock() >= deadline:
                asset = await self.tracker.expire(asset_id)
                logger.warning(
                    f"Asset {asset_id} exceeded {self.max_duration:g}s of processing, "
                    f"now {asset.state.value}"
                )
                return asset.state

            await self._sleep(self.interval)
