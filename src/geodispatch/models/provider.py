"""Provider document model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProviderRecord(BaseModel):
    """A provider document as returned by the store.

    The document is owned by the external registry; only
    :meth:`get` is used to pull out the push recipient identifier.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    """Full resource name of the document (empty for test doubles)."""

    data: dict[str, Any] = Field(default_factory=dict)
    """Decoded document fields."""

    @property
    def document_id(self) -> str:
        return self.name.rsplit("/", 1)[-1] if self.name else ""

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)
