"""JSON log formatter and root logger setup.

With ``STK_STRUCTURED_LOGGING=true`` every record is emitted as one JSON
line so migration and provisioning runs can be indexed by a log pipeline.

Output schema per line::

    {
        "timestamp": "2026-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "stk_engine.provisioning.trigger_provisioner",
        "message": "Created trigger t10100_stk_change_log on stk_request (...)",
        "context": { ... },          // present when passed via extra={"context": ...}
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

from stk_engine.config import Settings


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context is not None:
            payload["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Replace the root handlers with one stderr handler for *settings*."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel("DEBUG" if settings.debug else settings.log_level)
