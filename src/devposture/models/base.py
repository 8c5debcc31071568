"""Shared base for canonical and derived value objects."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CanonicalModel(BaseModel):
    """Immutable model that serializes with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain JSON-compatible dict keyed by camelCase names."""
        return self.model_dump(mode="json", by_alias=True)
