import logging
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Optional

from trackservice import APP_NAME
from trackservice.config import Settings, get_settings


logger = logging.getLogger(APP_NAME)


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Attach the file and journal handlers to the package logger once."""
    if getattr(logger, "_trackservice_configured", False):
        return logger
    settings = settings or get_settings()
    logger.setLevel(logging.INFO)

    handlers = []
    file_handler = RotatingFileHandler(settings.log_file, maxBytes=1_000_000, backupCount=5)
    file_handler.setLevel(logging.ERROR)
    handlers.append(file_handler)

    try:
        from systemd.journal import JournalHandler

        journal_handler = JournalHandler(SYSLOG_IDENTIFIER=APP_NAME)
    except Exception:  # pragma: no cover - fallback when systemd is unavailable
        try:
            journal_handler = SysLogHandler(address="/dev/log")
        except OSError:
            journal_handler = None
    if journal_handler is not None:
        journal_handler.setLevel(logging.ERROR)
        handlers.append(journal_handler)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger._trackservice_configured = True
    return logger
