"""
asgi.py -- ASGI entry point for the MotorGhar admin auth API.

Kept separate from api/main.py so process managers have a stable import
path that does not change if the API package is reorganized.

Run with:  uvicorn asgi:app --reload
           uvicorn asgi:app --workers 4   (requires REDIS_URL for a shared blacklist)
"""

from api.main import app

__all__ = ["app"]
