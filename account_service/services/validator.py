"""Named-schema payload validation."""

from typing import Any, Optional

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from account_service.errors import ValidationError
from account_service.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateDetailsRequest,
)

logger = structlog.get_logger(__name__)

SCHEMAS: dict[str, type[BaseModel]] = {
    "register": RegisterRequest,
    "login": LoginRequest,
    "change_password": ChangePasswordRequest,
    "update_details": UpdateDetailsRequest,
}

_VALUE_ERROR_PREFIX = "Value error, "


def _field_errors(exc: PydanticValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into ``[{"field", "message"}]`` entries."""
    errors = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = ".".join(str(part) for part in loc) or "body"
        message = error.get("msg", "Invalid value")
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        errors.append({"field": field, "message": message})
    return errors


class Validator:
    """Validate request payloads against a named schema.

    Returns the normalized model on success. On failure raises
    ``ValidationError`` whose ``errors`` list is passed through to the
    caller unchanged.
    """

    def __init__(self, schemas: Optional[dict[str, type[BaseModel]]] = None):
        self.schemas = schemas if schemas is not None else SCHEMAS

    def validate(self, schema_name: str, payload: dict[str, Any]) -> BaseModel:
        """Validate ``payload`` against the schema registered as ``schema_name``.

        Args:
            schema_name: Key into the schema registry
            payload: Raw request fields; ``None`` values count as absent

        Returns:
            The validated, normalized pydantic model

        Raises:
            KeyError: If no schema is registered under ``schema_name``
            ValidationError: If the payload does not satisfy the schema
        """
        schema = self.schemas[schema_name]
        data = {k: v for k, v in payload.items() if v is not None}
        try:
            return schema.model_validate(data)
        except PydanticValidationError as e:
            errors = _field_errors(e)
            logger.info(
                "payload_validation_failed",
                schema=schema_name,
                fields=[err["field"] for err in errors],
            )
            raise ValidationError(errors[0]["message"], errors=errors) from e
