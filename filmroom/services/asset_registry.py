"""
Video Asset Registry
Owns the lifecycle of VideoAsset records and serializes their writes.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from ..models.video_asset import ProcessingState, VideoAsset, utcnow
from ..utils.exceptions import AssetNotFoundError, InvalidTransitionError
from ..utils.logger import get_logger
from .record_store import RecordStore

logger = get_logger()

_MAX_MERGE_ATTEMPTS = 3
_IMMUTABLE_FIELDS = {"id", "owner_id", "game_id", "created_at"}


class VideoAssetRegistry:
    """
    Persistence boundary for video assets.

    Every write for one asset goes through a per-asset lock and a
    compare-and-set on the stored state, so a manual refresh and the
    periodic poll can race without losing updates or moving an asset
    backwards through its state machine.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, asset_id: str) -> asyncio.Lock:
        lock = self._locks.get(asset_id)
        if lock is None:
            lock = self._locks[asset_id] = asyncio.Lock()
        return lock

    def _release_if_terminal(self, asset: VideoAsset):
        # Terminal assets never change state again
        if asset.state.is_terminal:
            self._locks.pop(asset.id, None)

    @staticmethod
    def _merge(asset: VideoAsset, fields: dict) -> VideoAsset:
        data = asset.model_dump()
        data.update(fields)
        data["updated_at"] = utcnow()
        return VideoAsset(**data)

    async def create(
        self,
        owner_id: str,
        game_id: str,
        raw_location: str,
        file_name: Optional[str] = None
    ) -> VideoAsset:
        """Register a freshly uploaded video in the PENDING state."""
        asset = VideoAsset(
            owner_id=owner_id,
            game_id=game_id,
            raw_location=raw_location,
            file_name=file_name,
        )
        await self.store.create_asset(asset)
        logger.info(f"Registered video asset {asset.id} for game {game_id}")
        return asset

    async def get(self, asset_id: str) -> VideoAsset:
        asset = await self.store.get_asset(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    async def update(self, asset_id: str, **fields) -> VideoAsset:
        """Merge ``fields`` into the stored asset. State changes go through transition()."""
        if "state" in fields:
            raise ValueError("state can only be changed through transition()")
        frozen = _IMMUTABLE_FIELDS.intersection(fields)
        if frozen:
            raise ValueError(f"immutable asset fields: {', '.join(sorted(frozen))}")

        async with self._lock_for(asset_id):
            for _ in range(_MAX_MERGE_ATTEMPTS):
                current = await self.get(asset_id)
                merged = self._merge(current, fields)
                if await self.store.update_asset(merged, expected_state=current.state):
                    break
            else:
                raise RuntimeError(f"Concurrent writers kept changing asset {asset_id}")
        self._release_if_terminal(merged)
        return merged

    async def transition(
        self,
        asset_id: str,
        target: ProcessingState,
        **fields
    ) -> Tuple[VideoAsset, bool]:
        """
        Atomically move an asset to ``target``, merging ``fields``.

        Returns the asset as stored afterwards and whether this call changed
        it. Terminal assets and repeated transitions are left untouched.
        """
        async with self._lock_for(asset_id):
            current = await self.get(asset_id)

            if current.state == target or current.state.is_terminal:
                self._release_if_terminal(current)
                return current, False
            if not current.state.can_transition_to(target):
                raise InvalidTransitionError(asset_id, current.state.value, target.value)

            updated = self._merge(current, {**fields, "state": target})
            if not await self.store.update_asset(updated, expected_state=current.state):
                # Another process won the compare-and-set
                return await self.get(asset_id), False

        self._release_if_terminal(updated)
        logger.info(f"Asset {asset_id}: {current.state.value} -> {target.value}")
        return updated, True

    async def list_by_owner(self, owner_id: str) -> List[VideoAsset]:
        return await self.store.list_assets(owner_id=owner_id)

    async def list_by_game(self, game_id: str) -> List[VideoAsset]:
        return await self.store.list_assets(game_id=game_id)

    async def latest_for_game(self, game_id: str) -> Optional[VideoAsset]:
        assets = await self.list_by_game(game_id)
        return assets[0] if assets else None

    async def list_unfinished(self) -> List[VideoAsset]:
        """Assets whose processing has not reached a terminal state."""
        return await self.store.list_assets(
            states=[ProcessingState.PENDING, ProcessingState.PROCESSING]
        )
