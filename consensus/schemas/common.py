"""Shared response envelope, error schema and camelCase base model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for payload models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(BaseModel):
    """Structured error returned when a request fails."""

    error_code: str
    message: str
    hint: str | None = None


class Meta(BaseModel):
    """Execution metadata attached to every response."""

    execution_ms: float = Field(..., description="Wall-clock milliseconds")
    provenance: str | None = Field(None, description="Which providers fed the payload")
    age_seconds: float | None = Field(None, description="Age of the served payload")


class ApiResponse(BaseModel):
    """Standard envelope for every endpoint result."""

    endpoint: str
    ok: bool
    data: Any | None = None
    error: ErrorDetail | None = None
    meta: Meta
