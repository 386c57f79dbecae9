"""
Structured Logging Configuration

This module configures structured logging using the 'structlog' library.
It sets up processors for adding timestamps, log levels, the id of the call
being handled, and renders logs in JSON (default) or colorized console format
based on env.
"""

import os
import logging
import sys
import contextvars
import time

import structlog
from structlog import dev as structlog_dev
from logging.handlers import RotatingFileHandler

SERVICE_NAME = "agi-gateway"

# Unique identifier of the call handled by the current connection task
call_id_var = contextvars.ContextVar('call_id', default=None)


def get_call_id():
    """Get the call id bound to the current task."""
    return call_id_var.get()


def bind_call_id(value):
    """Bind a call id to the current task; returns the token for reset."""
    return call_id_var.set(value)


def reset_call_id(token):
    call_id_var.reset(token)


def add_call_id(logger, method_name, event_dict):
    """Add the bound call id to the log record unless one is given explicitly."""
    call_id = get_call_id()
    if call_id and 'call_id' not in event_dict:
        event_dict['call_id'] = call_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    """Add service context to the log record."""
    event_dict['service'] = SERVICE_NAME
    component = event_dict.get('logger')
    if not component:
        component = getattr(getattr(logger, 'logger', None), 'name', None) or getattr(logger, 'name', 'unknown')
    event_dict['component'] = component
    return event_dict


def resolve_traceback_policy(log_level_upper):
    """
    Decide whether stack traces are rendered.

    LOG_SHOW_TRACEBACKS=always|never forces the choice; the default (auto)
    only shows them when running at DEBUG level.
    """
    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        return True
    if tb_mode == "never":
        return False
    return log_level_upper == "DEBUG"


def configure_logging(log_level="INFO", log_to_file=False, log_file_path="agi-gateway.log"):
    """
    Set up structured logging for the gateway.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_TO_FILE: 0|1 (default: 0)
      - LOG_FILE_PATH: path (default: agi-gateway.log)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level.upper()
    if os.getenv("LOG_TO_FILE") is not None:
        log_to_file = os.getenv("LOG_TO_FILE", "0").strip() in ("1", "true", "True")
    log_file_path = os.getenv("LOG_FILE_PATH", log_file_path)
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    log_level_upper = log_level.upper() if isinstance(log_level, str) else logging.getLevelName(log_level)
    show_tracebacks = resolve_traceback_policy(log_level_upper)

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        """Remove exc_info from event when tracebacks are disabled by policy."""
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    if isinstance(log_level, str):
        level_value = getattr(logging, log_level_upper, logging.INFO)
    else:
        level_value = int(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_call_id,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog_dev.ConsoleRenderer(colors=log_color) if log_format == "console" else structlog.processors.JSONRenderer()

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        path = log_file_path
        if "{ts}" in path:
            path = path.replace("{ts}", time.strftime("%Y%m%d-%H%M%S"))
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(processor_formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            # Fall back to console-only if file logging fails
            root_logger.warning("File logging disabled (%s); continuing with console only", e)

    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
