"""
Validation of bound configuration objects.
"""

import dataclasses
from typing import Any, Dict, List

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..infrastructure.exceptions import ConfigurationError


class ConfigurationValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, validation_errors: List[Dict[str, Any]]):
        super().__init__(message, validation_errors=validation_errors,
                         error_code="CONFIGURATION_VALIDATION_ERROR")
        self.validation_errors = validation_errors

    def get_detailed_message(self) -> str:
        """Get a detailed error message with all validation errors."""
        lines = [self.message]
        lines.append("Validation errors:")

        for error in self.validation_errors:
            location = " -> ".join(str(loc) for loc in error.get('loc', []))
            msg = error.get('msg', 'Unknown error')
            lines.append(f"- {location}: {msg}")

        return "\n".join(lines)


class ConfigurationValidator:
    """Validates bound configuration objects against their pydantic constraints."""

    @staticmethod
    def validate(target: Any) -> None:
        """
        Validate a dataclass or pydantic model instance.

        Dataclass fields may carry constraints through ``Annotated[..., Field(...)]``.

        Raises:
            ConfigurationValidationError: if any constraint fails
        """
        try:
            if isinstance(target, BaseModel):
                type(target).model_validate(target.model_dump())
            elif dataclasses.is_dataclass(target) and not isinstance(target, type):
                TypeAdapter(type(target)).validate_python(dataclasses.asdict(target))
            else:
                raise ConfigurationValidationError(
                    "Configuration validation failed",
                    [{'loc': ['root'], 'msg': f"unsupported target type {type(target).__name__}",
                      'type': 'type_error'}]
                )
        except ValidationError as e:
            errors = [
                {'loc': [type(target).__name__] + list(error['loc']),
                 'msg': error['msg'],
                 'type': error['type']}
                for error in e.errors()
            ]
            raise ConfigurationValidationError("Configuration validation failed", errors) from e


def validate_config(target: Any) -> None:
    """Shorthand for ConfigurationValidator.validate."""
    ConfigurationValidator.validate(target)
