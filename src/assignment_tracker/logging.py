from logging import Logger, _nameToLevel, basicConfig

from structlog import (
    configure_once,
    get_logger as structlog_get_logger,
    make_filtering_bound_logger,
)
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    StackInfoRenderer,
    TimeStamper,
    UnicodeDecoder,
    add_log_level,
)
from structlog.stdlib import PositionalArgumentsFormatter

from .settings import get_settings

# Dependencies (uvicorn, sqlite3 users) only report warnings
basicConfig(level="WARNING")

configure_once(
    cache_logger_on_first_use=True,
    context_class=dict,
    wrapper_class=make_filtering_bound_logger(_nameToLevel[get_settings().log_level]),
    processors=[
        merge_contextvars,
        add_log_level,
        # %s-style arguments
        PositionalArgumentsFormatter(),
        TimeStamper(fmt="iso", utc=True),
        StackInfoRenderer(),
        UnicodeDecoder(),
        ConsoleRenderer(),
    ],
)

logger: Logger = structlog_get_logger("assignment-tracker")
