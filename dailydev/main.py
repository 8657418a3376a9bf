"""ASGI entrypoint, served with ``uvicorn dailydev.main:app``."""

from .core.app_factory import create_application

app = create_application()

__all__ = ("app",)
