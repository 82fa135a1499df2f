import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from pythonjsonlogger import jsonlogger

from app.core.config import settings
from app.core.request_context import get_policy_route, get_request_id

class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds service fields and the current request context.
    """

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.%fZ"
        )
        log_record["level"] = record.levelname
        log_record["name"] = record.name

        log_record["app"] = settings.APP_NAME
        log_record["environment"] = settings.ENVIRONMENT

        # Request context is only present while a request is being handled
        request_id = get_request_id()
        if request_id:
            log_record["request_id"] = request_id
        policy_route = get_policy_route()
        if policy_route:
            log_record["policy_route"] = policy_route

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Set up structured JSON logging on stdout.

    Args:
        log_level: Optional override for the log level set in settings.
    """
    if log_level is None:
        log_level = settings.LOG_LEVEL

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to prevent duplication
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(CustomJsonFormatter(
        "%(message)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d",
    ))
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)

    # Per-response header writes are only interesting when debugging
    logging.getLogger("app.core.headers.applier").setLevel(
        logging.DEBUG if settings.DEBUG_MODE else logging.INFO
    )

    logging.info(
        f"Logging configured with level {log_level} for {settings.APP_NAME} in {settings.ENVIRONMENT} environment"
    )
