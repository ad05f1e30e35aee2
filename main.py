"""ASGI entry point for the read-only inspection API.

Run with:  uvicorn main:app --host 127.0.0.1 --port 8000
"""
from __future__ import annotations

from qsr.api import create_app
from qsr.settings import load_settings

app = create_app(load_settings())
