import logging
import sys
from typing import Optional

import structlog

# Libraries whose INFO chatter drowns out the ingestion events
_NOISY_LOGGERS = ("urllib3", "sqlalchemy.engine", "httpx")


def init_logging(log_level: str = "INFO", station_id: Optional[str] = None) -> structlog.BoundLogger:
    """Configure structlog on top of stdlib logging.

    JSON lines are written to stdout; DEBUG switches to the console renderer
    so a foreground run stays readable. The returned logger is bound to the
    station being ingested when one is given.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if level == logging.DEBUG else structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger()
    if station_id:
        logger = logger.bind(station_id=station_id)
    return logger
