"""Base schema configuration."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        str_strip_whitespace=True,
        validate_assignment=True,
    )


class CamelSchema(BaseSchema):
    """Schema exchanged with the web client as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class IDMixin(BaseModel):
    """Mixin for UUID primary key."""

    id: UUID


class CreatedAtMixin(BaseModel):
    """Mixin for created_at timestamp."""

    created_at: datetime
