# ============================================================================
# MODULE CONTEXT - LOGGING
# ============================================================================
# STATUS: Core Infrastructure - Structured Logging
# PURPOSE: JSON structured logging for GeoPackage components
# EXPORTS: ComponentType, LogLevel, LogContext, ComponentConfig, JSONFormatter, ContextLoggerAdapter, LoggerFactory, log_exceptions
# DEPENDENCIES: enum, dataclasses, typing, datetime, logging, json, traceback, config
# PATTERNS: JSON-only output, Factory pattern, Exception decorator pattern
# ENTRY_POINTS: LoggerFactory.create_logger(), @log_exceptions decorator
# ============================================================================

"""
Unified Logger System

Component-specific loggers that emit one JSON object per record. Every record
carries the component type and name as custom dimensions, plus an optional
LogContext describing which GeoPackage, layer and geometry column the
operation touched.

Design Principles:
- Enum safety for component types and levels
- Component-specific loggers created through one factory
- Exceptions are logged with context and always re-raised
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union


# ============================================================================
# COMPONENT TYPES
# ============================================================================

class ComponentType(Enum):
    """
    Component types aligned with the library layers.
    """
    CODEC = "codec"            # Geometry blob encode/decode
    FUNCTION = "function"      # SQL scalar function registration
    GENERATOR = "generator"    # Spatial index DDL/trigger text
    REPOSITORY = "repository"  # GeoPackage connection and layer access
    SCHEMA = "schema"          # Core metadata tables
    VALIDATOR = "validator"    # Integrity checks


# ============================================================================
# LOG LEVELS
# ============================================================================

class LogLevel(Enum):
    """
    Standard Python log levels as enum for type safety.
    """
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        """Convert to Python logging level constant."""
        return getattr(logging, self.value)

    @classmethod
    def from_string(cls, level: str) -> 'LogLevel':
        """Create from string, case-insensitive."""
        return cls[level.upper()]


# ============================================================================
# LOG CONTEXT
# ============================================================================

@dataclass
class LogContext:
    """
    Context attached to every record emitted by a logger.

    Identifies the GeoPackage file and the layer/column an operation is
    working on, so records from one layer creation can be correlated.
    """
    gpkg_path: Optional[str] = None
    layer_name: Optional[str] = None
    geometry_column: Optional[str] = None
    operation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization, dropping unset fields."""
        return {
            k: v for k, v in {
                'gpkg_path': self.gpkg_path,
                'layer_name': self.layer_name,
                'geometry_column': self.geometry_column,
                'operation_id': self.operation_id,
            }.items() if v is not None
        }


# ============================================================================
# COMPONENT CONFIGURATION
# ============================================================================

@dataclass
class ComponentConfig:
    """
    Per-component logging settings.

    log_level of None means "use the configured default".
    """
    component_type: ComponentType
    log_level: Optional[LogLevel] = None
    max_message_length: int = 1000


def _default_level() -> LogLevel:
    """Resolve the default level from application settings."""
    from config import get_config
    return LogLevel.from_string(get_config().effective_log_level)


# ============================================================================
# JSON FORMATTER
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    """

    def __init__(self, max_message_length: int = 1000):
        super().__init__()
        self.max_message_length = max_message_length

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as a single-line JSON object.

        Args:
            record: Python LogRecord to format

        Returns:
            JSON string with structured log data
        """
        message = record.getMessage()
        if len(message) > self.max_message_length:
            message = message[:self.max_message_length] + '...'

        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': message,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if hasattr(record, 'custom_dimensions'):
            log_obj['customDimensions'] = record.custom_dimensions

        if record.exc_info:
            log_obj['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_obj, default=str)


# ============================================================================
# CONTEXT ADAPTER
# ============================================================================

class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Binds one LogContext to a shared component logger.

    Each GeoPackage or layer operation holds its own adapter, so records
    always carry the context of the instance that emitted them. Per-call
    custom_dimensions win over context fields with the same key.
    """

    def __init__(self, logger: logging.Logger, context: LogContext):
        super().__init__(logger, context.to_dict())
        self.context = context

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get('extra') or {})
        custom_dims = dict(self.extra)
        custom_dims.update(extra.get('custom_dimensions') or {})
        extra['custom_dimensions'] = custom_dims
        kwargs['extra'] = extra
        return msg, kwargs


# ============================================================================
# LOGGER FACTORY
# ============================================================================

class LoggerFactory:
    """
    Factory for creating component-specific loggers.

    Example:
        logger = LoggerFactory.create_logger(
            ComponentType.REPOSITORY,
            "GeoPackage"
        )
        logger.info("Layer created")
    """

    DEFAULT_CONFIGS = {
        ComponentType.CODEC: ComponentConfig(component_type=ComponentType.CODEC),
        ComponentType.FUNCTION: ComponentConfig(component_type=ComponentType.FUNCTION),
        ComponentType.GENERATOR: ComponentConfig(component_type=ComponentType.GENERATOR),
        ComponentType.REPOSITORY: ComponentConfig(component_type=ComponentType.REPOSITORY),
        ComponentType.SCHEMA: ComponentConfig(component_type=ComponentType.SCHEMA),
        ComponentType.VALIDATOR: ComponentConfig(component_type=ComponentType.VALIDATOR),
    }

    @classmethod
    def create_logger(
        cls,
        component_type: ComponentType,
        name: str,
        context: Optional[LogContext] = None,
        config: Optional[ComponentConfig] = None
    ) -> Union[logging.Logger, "ContextLoggerAdapter"]:
        """
        Create a logger for a specific component.

        The named logger is shared process-wide, so a context is never stored
        on it. When a context is given, the shared logger is returned wrapped
        in a ContextLoggerAdapter that owns that context.

        Args:
            component_type: Type of component
            name: Component name (e.g., "GeoPackage")
            context: Optional log context for correlation
            config: Optional custom configuration

        Returns:
            Configured Python logger, or an adapter over it when context is set
        """
        if config is None:
            config = cls.DEFAULT_CONFIGS.get(
                component_type,
                ComponentConfig(component_type=component_type)
            )

        logger_name = f"gpkg_spatial.{component_type.value}.{name}"
        logger = logging.getLogger(logger_name)

        level = config.log_level or _default_level()
        logger.setLevel(level.to_python_level())

        # Remove existing handlers to avoid duplicates
        logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level.to_python_level())
        handler.setFormatter(JSONFormatter(config.max_message_length))
        logger.addHandler(handler)

        # Records still reach the root logger (and pytest's caplog)
        logger.propagate = True

        # Wrap the unwrapped _log so repeated create_logger calls don't nest wrappers
        original_log = logger.__dict__.get('_unwrapped_log', logger._log)
        logger._unwrapped_log = original_log

        def log_with_context(level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1):
            """Wrapper to inject component info as custom dimensions."""
            if extra is None:
                extra = {}

            custom_dims = {
                'component_type': component_type.value,
                'component_name': name,
            }

            if 'custom_dimensions' in extra:
                custom_dims.update(extra['custom_dimensions'])

            extra['custom_dimensions'] = custom_dims

            original_log(level, msg, args, exc_info=exc_info, extra=extra,
                         stack_info=stack_info, stacklevel=stacklevel)

        logger._log = log_with_context

        if context is not None:
            return ContextLoggerAdapter(logger, context)
        return logger

    @classmethod
    def create_with_context(
        cls,
        component_type: ComponentType,
        name: str,
        gpkg_path: Optional[str] = None,
        layer_name: Optional[str] = None,
        geometry_column: Optional[str] = None
    ) -> Union[logging.Logger, "ContextLoggerAdapter"]:
        """
        Create logger bound to one GeoPackage/layer.

        Args:
            component_type: Type of component
            name: Component name
            gpkg_path: Optional GeoPackage location
            layer_name: Optional layer (table) name
            geometry_column: Optional geometry column name

        Returns:
            Configured Python logger with context
        """
        context = LogContext(
            gpkg_path=gpkg_path,
            layer_name=layer_name,
            geometry_column=geometry_column
        ) if any([gpkg_path, layer_name, geometry_column]) else None

        return cls.create_logger(
            component_type=component_type,
            name=name,
            context=context
        )


# ============================================================================
# EXCEPTION DECORATOR
# ============================================================================

def log_exceptions(component_type: Optional[ComponentType] = None,
                   component_name: Optional[str] = None,
                   logger: Optional[logging.Logger] = None):
    """
    Decorator to log exceptions with full context before re-raising them.

    Can be used in three ways:
    1. With existing logger: @log_exceptions(logger=my_logger)
    2. With component info: @log_exceptions(ComponentType.REPOSITORY, "GeoPackage")
    3. Simple: @log_exceptions() - uses the function's module name

    Example:
        @log_exceptions(ComponentType.SCHEMA, "bootstrap")
        def initialize(conn):
            conn.executescript(DDL)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if logger:
                log = logger
            elif component_type and component_name:
                log = LoggerFactory.create_logger(component_type, component_name)
            else:
                log = LoggerFactory.create_logger(
                    ComponentType.REPOSITORY,
                    func.__module__ or "unknown"
                )

            try:
                return func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Exception in {func.__name__}",
                    exc_info=True,
                    extra={
                        'custom_dimensions': {
                            'function_name': func.__name__,
                            'function_module': func.__module__,
                            'exception_type': type(e).__name__,
                            'exception_message': str(e),
                            'function_args': str(args)[:500],
                            'function_kwargs': str(kwargs)[:500],
                            'traceback': traceback.format_exc()
                        }
                    }
                )
                raise
        return wrapper
    return decorator
