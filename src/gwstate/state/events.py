"""Change notifications and collaborator events.

Remote changes arrive on pub/sub channels; collaborator events come from
the in-process event bus. Both are converted into these models before
they are allowed to touch the cache.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from gwstate._constants import DEBUG_CHANNEL, LANGUAGE_CHANNEL, TIMEZONE_CHANNEL


class ChangeChannel(StrEnum):
    DEBUG = DEBUG_CHANNEL
    LANGUAGE = LANGUAGE_CHANNEL
    TIMEZONE = TIMEZONE_CHANNEL


class RemoteChange(BaseModel):
    """A value announced on one of the change channels."""

    model_config = ConfigDict(frozen=True)

    channel: ChangeChannel
    payload: str


class PublicIpUpdated(BaseModel):
    """Event bus notification: the public IP was (re)discovered."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ip: str | None = None


class DdnsUpdated(BaseModel):
    """Event bus notification: DDNS registration changed."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    ddns: str | None = None
    public_ip: str | None = Field(default=None, alias="publicIp")
