"""
FastAPI application for StoryGem.
"""

from .app import create_app, get_owner_id

__all__ = ["create_app", "get_owner_id"]
