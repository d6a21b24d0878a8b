"""Message and group stores used by the TLDR service.

The service depends only on the MessageStore and GroupStore protocols; the
in-memory implementations back a single-process deployment and the tests.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from src.services.tldr.models import ConversationMessage, GroupInfo, GroupSettings

logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 10000


class MessageStore(Protocol):
    """Cache of recent group messages."""

    async def insert(self, message: ConversationMessage) -> None:
        """Insert or replace a message keyed by (chat_id, message_id)."""
        ...

    async def since_timestamp(
        self,
        chat_id: int,
        since: datetime,
        limit: int = MAX_QUERY_LIMIT,
        username: Optional[str] = None,
    ) -> list[ConversationMessage]:
        """Messages at or after since, oldest first."""
        ...

    async def since_message_id(
        self,
        chat_id: int,
        message_id: int,
        limit: int = MAX_QUERY_LIMIT,
    ) -> list[ConversationMessage]:
        """Messages with id >= message_id, in id order."""
        ...

    async def last_n(
        self,
        chat_id: int,
        count: int,
        username: Optional[str] = None,
    ) -> list[ConversationMessage]:
        """The newest count messages, returned oldest first."""
        ...

    async def delete_older_than(self, hours: int) -> int:
        """Delete messages older than hours; returns how many were removed."""
        ...


class GroupStore(Protocol):
    """Group registration and per-group settings."""

    async def get_group(self, chat_id: int) -> Optional[GroupInfo]:
        ...

    async def ensure_group(self, chat_id: int) -> GroupInfo:
        """Return the group, registering it (enabled, no key) if unknown."""
        ...

    async def set_enabled(self, chat_id: int, enabled: bool) -> None:
        ...

    async def set_api_key(self, chat_id: int, api_key: str) -> None:
        ...

    async def get_settings(self, chat_id: int) -> GroupSettings:
        ...


def _matches_user(message: ConversationMessage, username: Optional[str]) -> bool:
    if not username:
        return True
    return (message.username or "").lower() == username.lower()


class InMemoryMessageStore:
    """Dict-backed MessageStore."""

    def __init__(self):
        self._messages: dict[int, dict[int, ConversationMessage]] = {}

    async def insert(self, message: ConversationMessage) -> None:
        self._messages.setdefault(message.chat_id, {})[message.message_id] = message

    def _chat_messages(self, chat_id: int) -> list[ConversationMessage]:
        return list(self._messages.get(chat_id, {}).values())

    async def since_timestamp(
        self,
        chat_id: int,
        since: datetime,
        limit: int = MAX_QUERY_LIMIT,
        username: Optional[str] = None,
    ) -> list[ConversationMessage]:
        matches = [
            m for m in self._chat_messages(chat_id)
            if m.timestamp >= since and _matches_user(m, username)
        ]
        matches.sort(key=lambda m: (m.timestamp, m.message_id))
        return matches[: min(limit, MAX_QUERY_LIMIT)]

    async def since_message_id(
        self,
        chat_id: int,
        message_id: int,
        limit: int = MAX_QUERY_LIMIT,
    ) -> list[ConversationMessage]:
        matches = [m for m in self._chat_messages(chat_id) if m.message_id >= message_id]
        matches.sort(key=lambda m: m.message_id)
        return matches[: min(limit, MAX_QUERY_LIMIT)]

    async def last_n(
        self,
        chat_id: int,
        count: int,
        username: Optional[str] = None,
    ) -> list[ConversationMessage]:
        matches = [m for m in self._chat_messages(chat_id) if _matches_user(m, username)]
        matches.sort(key=lambda m: (m.timestamp, m.message_id), reverse=True)
        newest = matches[: min(count, MAX_QUERY_LIMIT)]
        newest.reverse()
        return newest

    async def delete_older_than(self, hours: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        removed = 0
        for chat_id in list(self._messages):
            chat = self._messages[chat_id]
            stale = [mid for mid, m in chat.items() if m.timestamp < cutoff]
            for mid in stale:
                del chat[mid]
            removed += len(stale)
            if not chat:
                del self._messages[chat_id]

        logger.info(f"Cleaned up {removed} old messages")
        return removed


class InMemoryGroupStore:
    """Dict-backed GroupStore."""

    def __init__(self):
        self._groups: dict[int, GroupInfo] = {}
        self._settings: dict[int, GroupSettings] = {}

    async def get_group(self, chat_id: int) -> Optional[GroupInfo]:
        return self._groups.get(chat_id)

    async def ensure_group(self, chat_id: int) -> GroupInfo:
        group = self._groups.get(chat_id)
        if group is None:
            group = GroupInfo(chat_id=chat_id)
            self._groups[chat_id] = group
            logger.info(f"Registered group {chat_id}")
        return group

    async def set_enabled(self, chat_id: int, enabled: bool) -> None:
        group = await self.ensure_group(chat_id)
        group.enabled = enabled

    async def set_api_key(self, chat_id: int, api_key: str) -> None:
        group = await self.ensure_group(chat_id)
        group.api_key = api_key

    async def get_settings(self, chat_id: int) -> GroupSettings:
        return self._settings.setdefault(chat_id, GroupSettings())

    async def update_settings(self, chat_id: int, group_settings: GroupSettings) -> None:
        self._settings[chat_id] = group_settings
