from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    SHORT_VIDEO = "shortvideo"
    LOCATION = "location"
    LINK = "link"
    EVENT = "event"


class WebhookRequest(BaseModel):
    sender: str = Field(validation_alias=AliasChoices("sender", "FromUserName", "from_user"))
    kind: MessageKind = Field(
        default=MessageKind.TEXT,
        validation_alias=AliasChoices("kind", "MsgType", "message_kind"),
    )
    text: Optional[str] = Field(default=None, validation_alias=AliasChoices("text", "Content"))
    event: Optional[str] = Field(default=None, validation_alias=AliasChoices("event", "Event"))
    event_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("event_key", "EventKey"))
    pic_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("pic_url", "PicUrl"))


class WebhookResponse(BaseModel):
    success: bool
    reply: str = ""
    message: Optional[str] = None
