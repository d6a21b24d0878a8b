"""Pydantic models for the TLDR service."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SummaryStyle(str, Enum):
    """Summary presentation styles a user or group can choose."""

    DEFAULT = "default"
    BRIEF = "brief"
    DETAILED = "detailed"
    BULLET = "bullet"
    TIMELINE = "timeline"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SummaryStyle"]:
        """Case-insensitive lookup; None if value is not a style name."""
        if not value:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None


DEFAULT_RANGE_SPEC = "1h"


class SummaryRequest(BaseModel):
    """Structured form of the arguments following /tldr."""

    model_config = ConfigDict(frozen=True)

    range_spec: str = DEFAULT_RANGE_SPEC
    username: Optional[str] = None
    style: Optional[SummaryStyle] = None
    raw_topic: Optional[str] = None
    topic_text: Optional[str] = None

    @property
    def topic_rejected(self) -> bool:
        """True when a topic was supplied but failed sanitization."""
        return bool(self.raw_topic) and self.topic_text is None


class CountRange(BaseModel):
    """Last-N-messages range."""

    model_config = ConfigDict(frozen=True)

    n: int = Field(ge=1, le=10000)


class TimeRange(BaseModel):
    """Lookback range starting at an absolute timestamp."""

    model_config = ConfigDict(frozen=True)

    since: datetime
    hours: int


ResolvedRange = Union[CountRange, TimeRange]


class ConversationMessage(BaseModel):
    """Cached group message as read back from the message store."""

    model_config = ConfigDict(frozen=True)

    chat_id: int
    message_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    content: str
    timestamp: datetime
    is_bot: bool = False
    is_channel: bool = False

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or "Unknown"


class GroupInfo(BaseModel):
    """Registration record for a group."""

    chat_id: int
    enabled: bool = True
    api_key: Optional[str] = None

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)


class GroupSettings(BaseModel):
    """Per-group customization of summaries and caching."""

    style: SummaryStyle = SummaryStyle.DEFAULT
    custom_prompt: Optional[str] = None
    exclude_bot_messages: bool = False
    exclude_commands: bool = True
    excluded_user_ids: list[int] = Field(default_factory=list)


class ChatContext(BaseModel):
    """Chat identity needed to build message links."""

    chat_id: int
    username: Optional[str] = None


class RenderedChunk(BaseModel):
    """One platform-sized piece of a rendered summary."""

    model_config = ConfigDict(frozen=True)

    index: int
    total: int
    text: str

    def compose(self, header: str) -> str:
        """Prefix the chunk with the header, numbering it only when split."""
        if self.total == 1:
            return f"{header}\n\n{self.text}"
        return f"{header} ({self.index}/{self.total})\n\n{self.text}"
