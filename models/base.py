"""Base models with camelCase aliases for the pipeline wire format."""

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for every model exchanged with the pipeline API (camelCase JSON)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class NullableWireModel(CamelModel):
    """Response model where an explicit ``null`` means "use the default".

    The backend serializes unset fields as ``null``; those keys are dropped
    before validation so every field falls back to its declared default.
    """

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data
