"""Base model for structures persisted in the shared store.

Every stored model inherits from :class:`GwBaseModel` which provides:

* frozen instances (snapshots are replaced wholesale, never patched);
* ``populate_by_name`` so both the stored key and the Python field name
  are accepted;
* a ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used instead.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class GwBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if value is not None}

    def to_store(self) -> dict[str, Any]:
        """Dump using the keys the shared store uses."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
