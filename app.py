"""
App assembly entry point.

Re-exports the FastAPI `app` from `arcana.api.main` so servers can be started
with ``uvicorn app:app``.
"""

from arcana.api.main import app  # noqa: F401
