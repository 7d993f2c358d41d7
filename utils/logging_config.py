"""
Centralized logging configuration for the transport payroll service
Provides structured JSON logging and request/response tracking
"""

import os
import sys
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Any
from flask import has_request_context, request, g
import traceback

REQUEST_ID_HEADER = 'X-Request-ID'

# LogRecord attributes that are not user supplied extras
RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName', 'created', 'msecs',
    'relativeCreated', 'thread', 'threadName', 'processName', 'process', 'message',
    'taskName', 'correlation_id', 'request_duration'
])


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging
    Includes correlation ID, request context, and application metadata
    """

    def __init__(self):
        super().__init__()
        self.application_name = "transport_payroll"
        self.environment = os.environ.get('FLASK_ENV', 'development')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'application': self.application_name,
            'environment': self.environment
        }

        correlation_id = getattr(record, 'correlation_id', None)
        if correlation_id:
            log_data['correlation_id'] = correlation_id

        if has_request_context():
            log_data['request'] = {
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr
            }
            actor = getattr(g, 'actor', None)
            if actor is not None:
                log_data['user'] = {'user_id': actor.user_id, 'email': actor.email}

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        extra_fields = {key: value for key, value in record.__dict__.items() if key not in RESERVED_ATTRS}
        if extra_fields:
            log_data['extra'] = extra_fields

        if record.levelno in (logging.DEBUG, logging.ERROR):
            log_data['location'] = {
                'file': record.pathname,
                'function': record.funcName,
                'line': record.lineno
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """
    Filter to inject request context into log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if hasattr(g, 'correlation_id'):
                record.correlation_id = g.correlation_id
            if hasattr(g, 'request_start_time'):
                record.request_duration = datetime.now().timestamp() - g.request_start_time
        return True


def setup_logging(app=None) -> logging.Logger:
    """
    Configure the root logger from LOG_LEVEL, USE_JSON_LOGGING and
    ENABLE_FILE_LOGGING.
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if log_level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        log_level = 'INFO'

    use_json_logging = (
        os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or
        os.environ.get('FLASK_ENV') == 'production'
    )

    if use_json_logging:
        formatter = JSONFormatter()
    else:
        # Development-friendly format
        formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s in %(name)s: %(message)s'
        )

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    if os.environ.get('ENABLE_FILE_LOGGING', 'false').lower() == 'true':
        os.makedirs('logs', exist_ok=True)
        error_handler = logging.FileHandler('logs/error.log')
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

        file_handler = logging.FileHandler('logs/application.log')
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RequestContextFilter())
        root_logger.addHandler(handler)

    if os.environ.get('FLASK_ENV') == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={log_level}, json_format={use_json_logging}")

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_request_start():
    """Assign the correlation id and mark the start of request processing"""
    if has_request_context():
        incoming = (request.headers.get(REQUEST_ID_HEADER) or '').strip()
        g.correlation_id = incoming[:64] if incoming else str(uuid.uuid4())
        g.request_start_time = datetime.now().timestamp()


def log_request_end(response):
    """Log request completion with timing and echo the correlation id"""
    if not has_request_context():
        return response

    if hasattr(g, 'correlation_id'):
        response.headers[REQUEST_ID_HEADER] = g.correlation_id

    if hasattr(g, 'request_start_time'):
        duration = datetime.now().timestamp() - g.request_start_time

        extra_data = {
            'method': request.method,
            'path': request.path,
            'status_code': response.status_code,
            'duration_ms': round(duration * 1000, 2)
        }
        actor = getattr(g, 'actor', None)
        if actor is not None:
            extra_data['user_id'] = actor.user_id

        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400:
            log_level = logging.WARNING
        elif duration > 5.0:  # Slow requests
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        get_logger('requests').log(log_level, f"Request completed: {request.method} {request.path} "
                                              f"{response.status_code}", extra=extra_data)

    return response
