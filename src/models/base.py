"""Base models and identifier helpers shared by stores and services."""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field
from pydantic_core import core_schema

from constants import UUID_V4_PATTERN

_UUID_V4 = re.compile(UUID_V4_PATTERN)


def validate_uuid_v4(value: str) -> str:
    """Return the lower-cased value if it is a canonical UUIDv4 string, raise ValueError otherwise."""
    if not isinstance(value, str):
        raise ValueError("must be a UUIDv4 string")
    normalized = value.strip().lower()
    if not _UUID_V4.match(normalized):
        raise ValueError(f"'{value}' is not a valid UUIDv4")
    return normalized


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PydanticUUID(UUID):
    """UUID field for Pydantic models, stored as its string form."""

    @classmethod
    def __get_pydantic_core_schema__(cls, _source_type: Any, _handler: Any) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.chain_schema(
                [
                    core_schema.str_schema(),
                    core_schema.no_info_plain_validator_function(cls.validate),
                ]
            ),
            python_schema=core_schema.union_schema(
                [
                    core_schema.is_instance_schema(UUID),
                    core_schema.chain_schema(
                        [
                            core_schema.str_schema(),
                            core_schema.no_info_plain_validator_function(cls.validate),
                        ]
                    ),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(lambda x: str(x), when_used="always"),
        )

    @classmethod
    def validate(cls, v):
        if isinstance(v, UUID):
            return v
        if isinstance(v, str):
            try:
                return UUID(v)
            except ValueError:
                raise ValueError("Invalid UUID format")
        raise ValueError("Invalid UUID")


class BaseDocument(BaseModel):
    """Base model for all stored documents.

    ``user_id`` is ``None`` for documents owned by anonymous callers.
    """

    id: PydanticUUID = Field(default_factory=uuid4, alias="_id")
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True, "from_attributes": True, "use_enum_values": True}

    def to_document(self) -> dict:
        """Serialize for MongoDB: aliased keys, native datetimes."""
        return self.model_dump(by_alias=True)
