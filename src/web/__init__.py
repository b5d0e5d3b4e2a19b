# === MODULE PURPOSE ===
# HTTP command surface for the trade journal.
# Provides a FastAPI-based JSON API.

from src.web.app import create_app

__all__ = ["create_app"]
