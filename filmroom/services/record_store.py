"""
Record Store Service
SQLite-backed persistence for video assets and clips.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from ..models.clip import Clip
from ..models.video_asset import ProcessingState, VideoAsset
from ..utils.logger import get_logger

logger = get_logger()


class RecordStore:
    """Persistent storage for video assets and clips."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    async def initialize(self):
        """Initialize database schema."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as conn:
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA synchronous=NORMAL")
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS video_assets (
                        id TEXT PRIMARY KEY,
                        owner_id TEXT NOT NULL,
                        game_id TEXT NOT NULL,
                        state TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS clips (
                        id TEXT PRIMARY KEY,
                        asset_id TEXT NOT NULL,
                        game_id TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_assets_game_id ON video_assets(game_id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_assets_owner_id ON video_assets(owner_id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_clips_asset_id ON clips(asset_id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_clips_game_id ON clips(game_id)"
                )
                await conn.commit()

            self._initialized = True
            logger.info(f"Record store initialized at {self.db_path}")

    # =========================================================================
    # Serialization boundary
    # =========================================================================

    @staticmethod
    def _asset_to_json(asset: VideoAsset) -> str:
        return json.dumps(asset.model_dump(mode="json"), ensure_ascii=False)

    @staticmethod
    def _clip_to_json(clip: Clip) -> str:
        data: Dict[str, Any] = clip.model_dump(mode="json", exclude={"duration"})
        data["assigned_player_ids"] = sorted(clip.assigned_player_ids)
        data["tags"] = sorted(clip.tags)
        return json.dumps(data, ensure_ascii=False)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # Video assets
    # =========================================================================

    async def create_asset(self, asset: VideoAsset):
        """Insert a new asset record."""
        await self.initialize()
        async with self._write_lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await conn.execute(
                    """
                    INSERT INTO video_assets
                        (id, owner_id, game_id, state, payload, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        asset.id,
                        asset.owner_id,
                        asset.game_id,
                        asset.state.value,
                        self._asset_to_json(asset),
                        asset.created_at.isoformat(),
                        asset.updated_at.isoformat(),
                    ),
                )
                await conn.commit()

    async def get_asset(self, asset_id: str) -> Optional[VideoAsset]:
        """Return one asset or None."""
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "SELECT payload FROM video_assets WHERE id = ?", (asset_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()

        if row is None:
            return None
        return VideoAsset(**json.loads(row[0]))

    async def update_asset(
        self,
        asset: VideoAsset,
        expected_state: Optional[ProcessingState] = None
    ) -> bool:
        """
        Overwrite an asset record.

        With ``expected_state`` the write only happens while the stored state
        still equals it. Returns whether a row was changed.
        """
        await self.initialize()
        query = (
            "UPDATE video_assets SET state = ?, payload = ?, updated_at = ? WHERE id = ?"
        )
        params: tuple = (
            asset.state.value,
            self._asset_to_json(asset),
            asset.updated_at.isoformat(),
            asset.id,
        )
        if expected_state is not None:
            query += " AND state = ?"
            params += (expected_state.value,)

        async with self._write_lock:
            async with aiosqlite.connect(self.db_path) as conn:
                cursor = await conn.execute(query, params)
                changed = cursor.rowcount > 0
                await cursor.close()
                await conn.commit()
        return changed

    async def list_assets(
        self,
        owner_id: Optional[str] = None,
        game_id: Optional[str] = None,
        states: Optional[List[ProcessingState]] = None
    ) -> List[VideoAsset]:
        """Return assets, newest first, optionally filtered."""
        await self.initialize()
        clauses: List[str] = []
        params: List[str] = []

        if owner_id:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if game_id:
            clauses.append("game_id = ?")
            params.append(game_id)
        if states:
            clauses.append(f"state IN ({', '.join('?' for _ in states)})")
            params.extend(state.value for state in states)

        query = "SELECT payload FROM video_assets"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"

        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()

        assets: List[VideoAsset] = []
        for (payload,) in rows:
            try:
                assets.append(VideoAsset(**json.loads(payload)))
            except Exception as exc:
                logger.warning(f"Skipping invalid stored asset payload: {exc}")
        return assets

    # =========================================================================
    # Clips
    # =========================================================================

    async def create_clip(self, clip: Clip):
        """Insert a new clip record."""
        await self.initialize()
        async with self._write_lock:
            async with aiosqlite.connect(self.db_path) as conn:
                await conn.execute(
                    """
                    INSERT INTO clips (id, asset_id, game_id, payload, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (clip.id, clip.asset_id, clip.game_id, self._clip_to_json(clip), self._now()),
                )
                await conn.commit()

    async def get_clip(self, clip_id: str) -> Optional[Clip]:
        """Return one clip or None."""
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute("SELECT payload FROM clips WHERE id = ?", (clip_id,))
            row = await cursor.fetchone()
            await cursor.close()

        if row is None:
            return None
        return Clip(**json.loads(row[0]))

    async def update_clip(self, clip: Clip) -> bool:
        """Overwrite an existing clip. Returns False when it no longer exists."""
        await self.initialize()
        async with self._write_lock:
            async with aiosqlite.connect(self.db_path) as conn:
                cursor = await conn.execute(
                    "UPDATE clips SET payload = ?, updated_at = ? WHERE id = ?",
                    (self._clip_to_json(clip), self._now(), clip.id),
                )
                changed = cursor.rowcount > 0
                await cursor.close()
                await conn.commit()
        return changed

    async def list_clips(
        self,
        asset_id: Optional[str] = None,
        game_id: Optional[str] = None
    ) -> List[Clip]:
        """Return clips, optionally filtered by asset or game id."""
        await self.initialize()
        clauses: List[str] = []
        params: List[str] = []

        if asset_id:
            clauses.append("asset_id = ?")
            params.append(asset_id)
        if game_id:
            clauses.append("game_id = ?")
            params.append(game_id)

        query = "SELECT payload FROM clips"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)

        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()

        clips: List[Clip] = []
        for (payload,) in rows:
            try:
                clips.append(Clip(**json.loads(payload)))
            except Exception as exc:
                logger.warning(f"Skipping invalid stored clip payload: {exc}")
        return clips

    async def delete_clip(self, clip_id: str) -> bool:
        """Delete a clip by id. Returns whether it existed."""
        await self.initialize()
        async with self._write_lock:
            async with aiosqlite.connect(self.db_path) as conn:
                cursor = await conn.execute("DELETE FROM clips WHERE id = ?", (clip_id,))
                deleted = cursor.rowcount > 0
                await cursor.close()
                await conn.commit()
        return deleted
