from __future__ import annotations

import contextvars
import logging

from .config import LOG_LEVEL


FMT = "%(asctime)s | %(levelname)-8s | %(name)s | req=%(request_id)s | %(message)s"

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamps the current request id (set by the HTTP middleware) onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


_CONFIGURED = False


def setup_logging(level: str | None = None) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    logging.captureWarnings(True)

    root = logging.getLogger()
    root.setLevel(level or LOG_LEVEL)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(FMT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # httpx logs every request at INFO, which drowns out the chat flow.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _CONFIGURED = True
