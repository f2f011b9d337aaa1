"""Logging setup: readable console output plus JSON files for shipping."""

import logging
import sys
from datetime import datetime
from pathlib import Path

from pythonjsonlogger import jsonlogger

from trendwatch.config import settings

# Fields bound through get_logger() that the console line should show
CONTEXT_FIELDS = ("run_id", "job_type", "source", "candidate")

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "apscheduler", "httpx", "httpcore")


class TrendwatchJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record; bound context fields pass through as keys."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = "trendwatch"
        log_record["source_location"] = f"{record.filename}:{record.lineno}"


class ContextConsoleFormatter(logging.Formatter):
    """Plain console line with any bound context appended."""

    def format(self, record):
        line = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        return f"{line} [{' '.join(context)}]" if context else line


def setup_logging(base_dir: str | Path | None = None) -> logging.Logger:
    """
    Configure the root logger for the API, the worker and the scripts.

    Args:
        base_dir: Directory holding ``settings.log_dir``; defaults to the working directory
    """
    logs_dir = (Path(base_dir) if base_dir else Path.cwd()) / settings.log_dir
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    root_logger.handlers.clear()

    json_formatter = TrendwatchJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    if settings.log_json_console:
        console_handler.setFormatter(json_formatter)
    else:
        console_handler.setFormatter(
            ContextConsoleFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(console_handler)

    for filename, level in (("app.log", logging.DEBUG), ("error.log", logging.ERROR)):
        handler = logging.FileHandler(logs_dir / filename)
        handler.setLevel(level)
        handler.setFormatter(json_formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Adds bound fields to every record; per-call ``extra`` wins on conflicts."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, **context) -> ContextAdapter:
    """Logger bound to context such as ``source=`` and ``candidate=`` for one ingest item."""
    return ContextAdapter(logging.getLogger(name), context)
