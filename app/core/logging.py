import logging
import os
from typing import Optional


DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s | %(levelname)s | %(name)s | %(identity)s | %(topic)s | %(message)s",
)

# Context fields every record carries, with the value used when a call omits them
CONTEXT_DEFAULTS = {"identity": "guest", "topic": "-"}

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "google_genai", "sqlalchemy.engine.Engine")


class ContextFilter(logging.Filter):
    """Fill in identity/topic on records that were logged without ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        for name, default in CONTEXT_DEFAULTS.items():
            if getattr(record, name, None) is None:
                setattr(record, name, default)
        return True


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure the root logger once per process (safe to call again on reload)."""
    resolved_level = getattr(logging, (level or DEFAULT_LEVEL), logging.INFO)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    handler.addFilter(ContextFilter())
    root.addHandler(handler)

    if resolved_level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger().handlers:
        setup_logging()
    return logging.getLogger(name)


def log_extra(identity: Optional[str] = None, topic: Optional[str] = None) -> dict:
    """``extra`` mapping for a log call made on behalf of a user and topic."""
    return {
        "identity": identity or CONTEXT_DEFAULTS["identity"],
        "topic": topic or CONTEXT_DEFAULTS["topic"],
    }
