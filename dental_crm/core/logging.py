"""
Logging setup: a single stdout handler writing pipe-separated records that
carry the request correlation id, the authenticated profile and, while a
manager is impersonating someone, the effective profile.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

from dental_crm.core.settings import get_app_settings

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
acting_as_var: ContextVar[Optional[str]] = ContextVar("acting_as", default=None)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | user=%(user_id)s | %(message)s"


class RequestContextFilter(logging.Filter):
    """Copy the request context onto each record; '-' when outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        user = user_id_var.get() or "-"
        acting_as = acting_as_var.get()
        record.correlation_id = correlation_id_var.get() or "-"
        record.user_id = f"{user}>{acting_as}" if acting_as else user
        return True


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str, None] = None) -> None:
    """
    Install the stdout handler on the root logger, replacing any handler set
    up earlier. Uvicorn loggers propagate to it so access lines share the format.
    """
    if level is None:
        level = get_app_settings().LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.propagate = True
