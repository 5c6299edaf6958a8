from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

__all__ = ["CamelModel", "ErrorResponse", "MessageResponse", "HealthResponse"]


class CamelModel(BaseModel):
    """camelCase on the wire; snake_case field names still accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    error: str
    retry_after: Optional[int] = None
    remaining_attempts: Optional[int] = None


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
