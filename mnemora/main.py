"""ASGI entry point: ``uvicorn mnemora.main:app``."""

from dotenv import load_dotenv
load_dotenv()

from mnemora.app import app  # noqa: E402

__all__ = ["app"]
