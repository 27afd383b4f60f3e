"""Device identity snapshot."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from gwstate.models._base import GwBaseModel


class DeviceIdentity(GwBaseModel):
    """Identity of this gateway as reported to the rest of the system.

    Fields that could not be probed are ``None``; ``memory`` is empty when
    memory statistics are unavailable.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    ip: str | None = None
    mac: str | None = None
    serial: str | None = None
    repo_branch: str | None = None
    repo_head: str | None = None
    repo_tag: str | None = None
    memory: dict[str, Any] = Field(default_factory=dict)
