"""
Logging setup

Human-readable output in development, one JSON object per line in
production. Records may carry brand/submission/schedule ids as extras;
the JSON formatter lifts them to top-level keys so log search can filter
on them.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from brandhub.core.config import Settings

SERVICE_NAME = 'brandhub'

# Extras promoted to top-level JSON keys when a record carries them
CONTEXT_FIELDS = ('brand_id', 'submission_id', 'schedule_id', 'duration_ms', 'idempotency_key')

QUIET_LOGGERS = ('httpx', 'httpcore', 'sqlalchemy.engine', 'celery')


class JsonFormatter(logging.Formatter):
    """One JSON document per record"""

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'service': self.service,
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        entry.update({field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)})
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        # Thai brand names stay readable in the output
        return json.dumps(entry, default=str, ensure_ascii=False)


def _make_handler(handler: logging.Handler, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger from settings.

    JSON output is used when USE_JSON_LOGGING is set or the environment is
    production. Existing root handlers are replaced, so calling this twice
    does not duplicate output.

    Returns:
        The service logger
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.use_json_logging or settings.is_production:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s',
                                      datefmt='%Y-%m-%d %H:%M:%S')

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_make_handler(logging.StreamHandler(), formatter, level))
    if log_file:
        root.addHandler(_make_handler(logging.FileHandler(log_file), formatter, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(SERVICE_NAME)


class ContextAdapter(logging.LoggerAdapter):
    """Adds fixed context to every record; explicit extras win"""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: Optional[str] = None, **context):
    """
    Module logger, wrapped in a ContextAdapter when context is given.

    Example:
        log = get_logger(__name__, schedule_id=7, brand_id="coffee-shop-01")
        log.info("run finished")
    """
    logger = logging.getLogger(name or SERVICE_NAME)
    return ContextAdapter(logger, context) if context else logger
