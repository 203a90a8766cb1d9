"""
asgi.py -- ASGI entry point for the auth gateway.

Run with:  uvicorn asgi:app --reload
           python main.py serve

api/main.py owns the app and its wiring; this module only gives servers a
stable import path that does not change if the api/ package is reorganized.
"""

from api.main import app

__all__ = ["app"]
