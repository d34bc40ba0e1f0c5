"""Routers package initialization"""
from .videos import router as videos_router
from .clips import router as clips_router
from .websocket import router as websocket_router

__all__ = ["videos_router", "clips_router", "websocket_router"]
