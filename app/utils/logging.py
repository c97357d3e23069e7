import logging
import sys

from pythonjsonlogger import jsonlogger

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiokafka")


def setup_logging(log_level: str = "INFO", service_name: str = "table-ordering") -> None:
    """JSON lines on stdout; ``extra={...}`` fields become top-level keys."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if root_logger.handlers:
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"service": service_name},
        )
    )
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
