"""
FastAPI routers for the clip service.
"""

from app.routers import clip, download, health

__all__ = ["health", "clip", "download"]
