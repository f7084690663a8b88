"""
Structured Exception Hierarchy

Provides the exception hierarchy used across configmesh, carrying error codes,
context data and correlation IDs so failures can be logged as structured records.
"""

from typing import Dict, List, Any, Optional
import uuid
from datetime import datetime, timezone


class ConfigMeshException(Exception):
    """
    Base exception class for all configmesh exceptions.

    Provides structured error information including error codes,
    context data, and correlation IDs for tracing.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class ConfigurationError(ConfigMeshException):
    """Raised when the configuration manager cannot be built or used."""

    def __init__(
        self,
        message: str,
        source_index: Optional[int] = None,
        validation_errors: Optional[List[Any]] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if source_index is not None:
            context['source_index'] = source_index
        if validation_errors:
            context['validation_errors'] = validation_errors
        error_code = kwargs.pop('error_code', "CONFIG_ERROR")

        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            **kwargs
        )


class SourceError(ConfigMeshException):
    """Base class for failures raised by configuration sources."""

    def __init__(
        self,
        message: str,
        source_type: Optional[str] = None,
        error_code: str = "SOURCE_ERROR",
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if source_type:
            context['source_type'] = source_type

        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            **kwargs
        )


class SourceLoadError(SourceError):
    """Raised when a source cannot produce a snapshot."""

    def __init__(self, message: str, source_type: Optional[str] = None, **kwargs):
        super().__init__(message, source_type, error_code="SOURCE_LOAD_ERROR", **kwargs)


class SourceWatchError(SourceError):
    """Raised when a source cannot start monitoring for updates."""

    def __init__(self, message: str, source_type: Optional[str] = None, **kwargs):
        super().__init__(message, source_type, error_code="SOURCE_WATCH_ERROR", **kwargs)


class BindingError(ConfigMeshException):
    """Raised when a snapshot value cannot be bound onto a typed field."""

    def __init__(
        self,
        message: str,
        field_path: Optional[str] = None,
        value: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if field_path:
            context['field_path'] = field_path
        if value is not None:
            context['value'] = value

        super().__init__(
            message=message,
            error_code="BINDING_ERROR",
            context=context,
            **kwargs
        )
        self.field_path = field_path
