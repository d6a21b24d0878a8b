"""Pydantic models for Telegram Bot API webhook updates."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    """Sender of a message."""

    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None


class TelegramChat(BaseModel):
    """Chat a message belongs to, or the chat a message was sent on behalf of."""

    id: int
    type: str = "private"
    title: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.type in ("group", "supergroup")


class TelegramMessage(BaseModel):
    """Incoming message payload."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    date: int = 0
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    sender_chat: Optional[TelegramChat] = None
    text: Optional[str] = None
    caption: Optional[str] = None
    reply_to_message: Optional["TelegramMessage"] = None

    @property
    def content(self) -> str:
        """Text body, falling back to the media caption."""
        return self.text or self.caption or ""

    def command(self) -> Optional[tuple[str, list[str]]]:
        """
        Split a "/command@bot arg1 arg2" message.

        Returns:
            Tuple of (lowercased command without slash or bot suffix, args),
            or None if the message is not a command
        """
        if not self.text or not self.text.startswith("/"):
            return None

        parts = self.text.split()
        name = parts[0][1:].split("@", 1)[0].lower()
        if not name:
            return None
        return name, parts[1:]


class TelegramUpdate(BaseModel):
    """Webhook update; only message kinds the bot reacts to are modelled."""

    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None
