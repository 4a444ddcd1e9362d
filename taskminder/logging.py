"""
Logging configuration.
One stdout stream for the API, the scheduler thread and the send workers;
the thread name tells a scan (APScheduler worker) from a send (notify-push / notify-email).
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "urllib3")


def setup_logging(level: int | str = logging.INFO, format_string: str = LOG_FORMAT) -> None:
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=format_string, stream=sys.stdout, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "taskminder"):
        logging.getLogger(name).setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
