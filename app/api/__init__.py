"""API routes"""

from app.api import sync, webhook

__all__ = ["sync", "webhook"]
