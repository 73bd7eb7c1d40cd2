"""Pydantic base model shared by procflow documents."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model whose document form uses camelCase keys.

    Python code reads and writes snake_case attributes; stored procedure and
    run documents use the camelCase keys the authoring tools produce.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
