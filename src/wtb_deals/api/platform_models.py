"""Pydantic models for events posted by the gateway relay."""

from typing import Literal

from pydantic import BaseModel, Field

from wtb_deals.domain.deals import Attachment


class PlatformAttachment(BaseModel):
    """File attached to a platform message."""

    id: str
    url: str
    filename: str = ""
    content_type: str | None = None
    size: int | None = None

    def to_domain(self) -> Attachment:
        """Convert to the domain attachment."""
        return Attachment(
            id=self.id,
            url=self.url,
            filename=self.filename,
            content_type=self.content_type,
        )


class ButtonActivated(BaseModel):
    """A member pressed a button."""

    type: Literal["button"]
    custom_id: str
    actor_id: str
    channel_id: str
    message_id: str | None = None
    actor_roles: list[str] = Field(default_factory=list)


class FormSubmitted(BaseModel):
    """A member submitted a modal form."""

    type: Literal["form"]
    custom_id: str
    actor_id: str
    channel_id: str | None = None
    message_id: str | None = None
    field_values: dict[str, str] = Field(default_factory=dict)
    actor_roles: list[str] = Field(default_factory=list)


class ChannelMessage(BaseModel):
    """A message posted in a guild channel."""

    type: Literal["channel_message"]
    actor_id: str
    channel_id: str
    message_id: str
    content: str | None = None
    author_is_bot: bool = False
    attachments: list[PlatformAttachment] = Field(default_factory=list)


class DirectMessageReceived(BaseModel):
    """A direct message sent to the bot."""

    type: Literal["direct_message"]
    actor_id: str
    channel_id: str
    message_id: str
    content: str | None = None
    author_is_bot: bool = False
    attachments: list[PlatformAttachment] = Field(default_factory=list)


PlatformEvent = ButtonActivated | FormSubmitted | ChannelMessage | DirectMessageReceived


class PlatformEnvelope(BaseModel):
    """Relay envelope; ``event_id`` is stable across redeliveries."""

    event_id: str
    event: PlatformEvent = Field(discriminator="type")
