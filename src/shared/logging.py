import logging
import sys

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter

from .config import settings
from .telemetry import service_resource

# Third-party loggers that only log at WARNING and above
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def setup_logging() -> None:
    """Route standard logging through an OTel logger provider.

    Event names carry their details in ``extra``; the OTel handler exports
    them as log record attributes.
    """
    logger_provider = LoggerProvider(resource=service_resource())
    if settings.OTEL_CONSOLE_EXPORT:
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(ConsoleLogRecordExporter())
        )
    set_logger_provider(logger_provider)

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(LoggingHandler(level=level, logger_provider=logger_provider))

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(
        logging.Formatter(
            f"%(asctime)s - {settings.APP_NAME} - %(name)s - %(levelname)s - %(message)s"
        )
    )
    root.addHandler(stream_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
