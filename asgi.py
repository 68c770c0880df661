"""
asgi.py -- ASGI entry point for the auth service.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Kept separate from api/main.py so process managers have one stable import
path while the app module is free to grow.
"""

from api.main import app

__all__ = ["app"]
