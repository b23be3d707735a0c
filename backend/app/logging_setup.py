"""
logging_setup.py: process-wide logging configuration.

configure_logging(app) is called once by create_app():
  LOG_FORMAT=text  human-readable lines (development default)
  LOG_FORMAT=json  one JSON object per line (production default)

Modules log through logging.getLogger(__name__) and attach context with
`extra=` (operation, user_id, reason, token_kind, count, ...). The JSON
formatter emits those fields; the text formatter shows the message only.
Raw tokens and passwords are never passed to a logger.
"""

from __future__ import annotations

import json
import logging
import sys

from flask import Flask

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Attributes every LogRecord has; anything else came in through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    # Under pytest the root handlers belong to the log-capture plugin.
    if not app.config.get("TESTING"):
        handler = logging.StreamHandler(sys.stdout)
        if app.config.get("LOG_FORMAT") == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT, "%Y-%m-%d %H:%M:%S"))
        logging.root.handlers = [handler]

    logging.root.setLevel(level)

    # Keep SQLAlchemy quiet unless debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if app.config.get("SQLALCHEMY_ECHO") else logging.WARNING
    )
    logging.getLogger("werkzeug").setLevel(
        logging.INFO if app.debug else logging.WARNING
    )

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"level": level_name, "format": app.config.get("LOG_FORMAT", "text")},
    )
