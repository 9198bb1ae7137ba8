"""
Structured Logging Setup

Library modules only obtain loggers; nothing is printed until the host (or
the CLI) calls setup_logging(). Records carry the emitting component under
the "service" key and are rendered as JSON lines by default.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import TextIO

ROOT_LOGGER_NAME = "consul_config"

# Fields every LogRecord has; anything else came in through `extra`
_STANDARD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "service", "taskName",
}

# Silent until configured
logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", record.name),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, value)
            for name, value in vars(record).items()
            if name not in _STANDARD_FIELDS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class _PackageHandler(logging.StreamHandler):
    """Handler installed by setup_logging()"""


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Tags each record with the component that emitted it"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        extra = dict(kwargs.get("extra") or {})
        extra["service"] = self.extra["service"]
        kwargs["extra"] = extra
        return msg, kwargs


def get_service_logger(component: str) -> ServiceLoggerAdapter:
    """Logger for one component, e.g. "watch" -> consul_config.watch"""
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
    return ServiceLoggerAdapter(logger, {"service": component})


def setup_logging(
    log_level: str | None = None,
    json_format: bool | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Attach a handler to the package logger.

    Meant for entry points such as the CLI; embedding applications can
    configure logging themselves instead. Records still propagate to the
    host's root handlers.

    Args:
        log_level: Level name; defaults to CONSUL_CONFIG_LOG_LEVEL or INFO
        json_format: JSON lines or plain text; defaults to
            CONSUL_CONFIG_LOG_FORMAT ("json" unless set to "text")
        stream: Output stream, stderr by default so stdout stays free for data

    Returns:
        The configured package logger
    """
    if log_level is None:
        log_level = os.environ.get("CONSUL_CONFIG_LOG_LEVEL", "INFO")
    if json_format is None:
        json_format = os.environ.get("CONSUL_CONFIG_LOG_FORMAT", "json").lower() != "text"

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Replace a handler from an earlier call, keep the NullHandler
    for handler in [h for h in logger.handlers if isinstance(h, _PackageHandler)]:
        logger.removeHandler(handler)

    handler = _PackageHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    logger.addHandler(handler)

    return logger
