"""
Logging configuration for the Awards Pool application
Provides structured logging with different levels and formatters
"""

import logging
import logging.handlers
import os
from logging import Filter

from flask import has_request_context, request


class RequestContextFilter(Filter):
    """Add request context to log records"""

    def filter(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.method = request.method
        else:
            record.url = "N/A"
            record.remote_addr = "N/A"
            record.method = "N/A"
        return True


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset_color = self.COLORS["RESET"]

        # Format a copy so file handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{log_color}{record.levelname}{reset_color}"

        return super().format(record)


def _rotating_handler(path, level, fmt, max_bytes, backup_count):
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(RequestContextFilter())
    return handler


def setup_logging(app):
    """
    Setup logging for the Flask application

    Args:
        app: Flask application instance
    """

    log_level = getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if app.config.get("LOG_TO_CONSOLE", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)

        if app.debug:
            console_formatter = ColoredFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s "
                "[%(filename)s:%(lineno)d]",
                datefmt="%H:%M:%S",
            )
        else:
            console_formatter = logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        console_handler.setFormatter(console_formatter)
        console_handler.addFilter(RequestContextFilter())
        root_logger.addHandler(console_handler)

    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)

        root_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "awards_pool.log"),
                log_level,
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s "
                "[%(url)s] [%(remote_addr)s] [%(method)s]",
                10 * 1024 * 1024,  # 10MB
                5,
            )
        )

        root_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "errors.log"),
                logging.ERROR,
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s "
                "[%(pathname)s:%(lineno)d] [%(url)s] [%(remote_addr)s]",
                5 * 1024 * 1024,  # 5MB
                3,
            )
        )

        # Odds snapshots and winner detection get their own file
        scheduler_logger = logging.getLogger("awards_pool.services")
        for handler in scheduler_logger.handlers[:]:
            scheduler_logger.removeHandler(handler)
        scheduler_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "scheduler.log"),
                logging.INFO,
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                5 * 1024 * 1024,  # 5MB
                3,
            )
        )

    # Configure third-party loggers
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("flask_limiter").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    app.logger.info(f"Logging configured - Level: {logging.getLevelName(log_level)}")


def get_logger(name):
    """
    Get a logger instance with the specified name

    Args:
        name: Logger name (usually __name__)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


class ContextualLogger:
    """Logger that appends key=value context to every message"""

    def __init__(self, name, context=None):
        self.logger = get_logger(name)
        self.context = context or {}

    def _format_message(self, message):
        if self.context:
            context_str = " ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{message} [{context_str}]"
        return message

    def debug(self, message, **kwargs):
        self.logger.debug(self._format_message(message), **kwargs)

    def info(self, message, **kwargs):
        self.logger.info(self._format_message(message), **kwargs)

    def warning(self, message, **kwargs):
        self.logger.warning(self._format_message(message), **kwargs)

    def error(self, message, **kwargs):
        self.logger.error(self._format_message(message), **kwargs)

    def exception(self, message, **kwargs):
        self.logger.exception(self._format_message(message), **kwargs)
