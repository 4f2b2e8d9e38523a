import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

from whale_tracker.core.config import LOG_FORMAT, LOG_LEVEL

TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
ROOT_LOGGER = "whale_tracker"


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings for structured logging.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # logger.info("msg", extra={"wallet": "..."})
        if hasattr(record, "wallet"):
            log_record["wallet"] = record.wallet

        if hasattr(record, "event"):
            log_record["event"] = record.event

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def configure_logging(level=None) -> logging.Logger:
    """
    Attach the stdout handler (JSON or text per LOG_FORMAT) to the
    `whale_tracker` parent logger. Module loggers under that namespace
    propagate to it.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if level:
        root.setLevel(level)

    # Check if handler already exists to avoid duplicates
    if not root.handlers:
        if not level:
            root.setLevel(LOG_LEVEL)
        handler = logging.StreamHandler(sys.stdout)
        if LOG_FORMAT == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        root.addHandler(handler)
        root.propagate = False

    return root


def get_logger(name: str, level=None) -> logging.Logger:
    """
    Returns a logger under the configured `whale_tracker` parent.
    """
    configure_logging()
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level)
    return logger


def log_event(logger: logging.Logger, event: str, data: Dict[str, Any], level=logging.INFO):
    """
    Log a structured event. The payload is dumped as the message so it stays
    a single parseable line under either formatter.
    """
    payload = {
        "event": event,
        **data
    }
    logger.log(level, json.dumps(payload, default=str))
