# Structured logging for the session auth engine
import sys
import logging
import structlog
from typing import Any, Dict, Iterable, Optional

from core.config.settings import Settings

# Global flag to prevent duplicate logging configuration
_logging_configured = False

_DEFAULT_REDACT_KEYS = (
    "authorization", "access_token", "refresh_token", "token", "password", "secret",
)


def _add_standard_context(settings: Settings):
    """Bind standard context fields once from settings."""
    env = settings.environment.value
    app_name = settings.app_name

    def add_standard_context(logger, name, event_dict):
        event_dict.setdefault("service", app_name)
        event_dict.setdefault("env", env)
        return event_dict

    return add_standard_context


def _redact_sensitive(keys: Optional[Iterable[str]] = None):
    """Redact sensitive fields from event dict recursively."""
    keys_to_redact = {k.lower() for k in (keys or _DEFAULT_REDACT_KEYS)}

    def _redact(obj):
        if isinstance(obj, dict):
            out = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in keys_to_redact:
                    out[k] = "[REDACTED]"
                else:
                    out[k] = _redact(v)
            return out
        if isinstance(obj, (list, tuple)):
            return [_redact(v) for v in obj]
        return obj

    def redact_sensitive(logger, name, event_dict):
        return _redact(event_dict)

    return redact_sensitive


def configure_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog so both render through one handler."""
    global _logging_configured

    # Prevent duplicate configuration
    if _logging_configured:
        return

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_standard_context(settings),
        _redact_sensitive(settings.logging.redact_keys),
    ]

    if settings.logging.json_format:
        final_processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=final_processors,
        )
    )
    handler._session_auth_handler = True

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_session_auth_handler", False):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(settings.logging.level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _logging_configured = True


def get_logger(name: str, component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    logger = structlog.get_logger(name)
    if component:
        logger = logger.bind(component=component)
    return logger


def bind_session_context(logger: structlog.stdlib.BoundLogger, session_id: str,
                         scopes: Optional[Iterable[str]] = None) -> structlog.stdlib.BoundLogger:
    """Bind session context consistently to a logger."""
    ctx: Dict[str, Any] = {"session_id": session_id}
    if scopes:
        ctx["scopes"] = sorted(scopes)
    return logger.bind(**ctx)
