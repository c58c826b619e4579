"""
JSON logging for the ``mnemora`` logger tree.

Every record becomes one JSON line.  Lines go to ``LOG_FILE`` when it is
set, and WARNING and above are echoed to stderr as well.  Context travels
in ``extra``::

    logger = get_logger(__name__)
    logger.info("outcome applied", extra={"entity_id": eid, "continuity_id": cid})

Session-run code logs through :class:`CampaignAdapter` so each line names
its campaign without repeating it at the call site.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

from mnemora.config import get_settings

ROOT_LOGGER = "mnemora"

CONTEXT_KEYS = (
    "campaign_id",
    "continuity_id",
    "entity_id",
    "session_id",
    "event_type",
    "action",
    "duration_ms",
    "metadata",
)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_KEYS if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class CampaignAdapter(logging.LoggerAdapter):
    """Stamps ``campaign_id`` onto every record, merged with any caller ``extra``."""

    def __init__(self, logger: logging.Logger, campaign_id: str):
        super().__init__(logger, {"campaign_id": campaign_id})

    def process(
        self,
        msg: str,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {}).update(self.extra)
        return msg, kwargs


_CONFIGURED = False


def setup_logging(log_file: str | None = None, level: int | str | None = None) -> None:
    """Attach the JSON handlers to the ``mnemora`` logger once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    settings = get_settings()
    log_file = settings.log_file if log_file is None else log_file

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(settings.log_level if level is None else level)
    root.propagate = False

    formatter = JSONFormatter()
    handlers: list[logging.Handler] = []
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.WARNING)
    handlers.append(stderr)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under ``mnemora``; a bare name such as ``"drift"`` is prefixed."""
    setup_logging()
    if name.startswith(ROOT_LOGGER):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
