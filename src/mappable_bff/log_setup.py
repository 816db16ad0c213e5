"""Centralized logging setup for the Mappable BFF."""

import logging
import sys

from ._redact import redact_text

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ApiKeyRedactionFilter(logging.Filter):
    """Masks API key values in every record passing through the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_text(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a single console handler on the root logger.

    Safe to call more than once; the handler is replaced, not duplicated.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_mappable_bff", False):
            root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(ApiKeyRedactionFilter())
    console_handler._mappable_bff = True  # type: ignore[attr-defined]

    root.addHandler(console_handler)
    root.setLevel(level)
    # httpx logs every request URL at INFO, including the injected key
    logging.getLogger("httpx").setLevel(max(logging.WARNING, root.level))
