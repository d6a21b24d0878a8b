"""Shared fixtures: fake transport, scripted LLM backend and message builders."""

import time
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from src.core.telegram.models import TelegramMessage, TelegramUpdate
from src.services.tldr.models import ConversationMessage
from src.services.tldr.service import TldrService
from src.services.tldr.store import InMemoryGroupStore, InMemoryMessageStore

GROUP_ID = -1001234567890
ADMIN_ID = 42
VALID_KEY = "AIzaSyTestKey_0123456789abcdefXYZ"


class FakeTransport:
    """Records outgoing messages instead of calling the Bot API."""

    def __init__(self):
        self.sent: list[SimpleNamespace] = []
        self.edits: list[SimpleNamespace] = []
        self.member_statuses: dict[tuple[int, int], str] = {}
        self.edit_errors: list[Exception] = []
        self._next_id = 5000

    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> int:
        self._next_id += 1
        self.sent.append(
            SimpleNamespace(
                chat_id=chat_id, text=text, parse_mode=parse_mode, message_id=self._next_id
            )
        )
        return self._next_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> None:
        if self.edit_errors:
            raise self.edit_errors.pop(0)
        self.edits.append(
            SimpleNamespace(chat_id=chat_id, message_id=message_id, text=text, parse_mode=parse_mode)
        )

    async def get_chat_member_status(self, chat_id: int, user_id: int) -> str:
        return self.member_statuses.get((chat_id, user_id), "member")


class FakeBackend:
    """LLM backend returning scripted responses; exceptions in the script are raised."""

    def __init__(self, responses=None, default: str = "Summary of the chat [1]"):
        self.responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 4000,
    ) -> str:
        self.prompts.append(prompt)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return self.default


def make_message(
    message_id: int,
    text: Optional[str] = "hello",
    chat_id: int = GROUP_ID,
    chat_type: str = "supergroup",
    user_id: Optional[int] = 1,
    username: Optional[str] = "alice",
    is_bot: bool = False,
    date: Optional[int] = None,
    **extra,
) -> TelegramMessage:
    """Build a TelegramMessage the way it arrives in a webhook payload."""
    payload = {
        "message_id": message_id,
        "date": date if date is not None else int(time.time()),
        "chat": {"id": chat_id, "type": chat_type},
        "text": text,
        **extra,
    }
    if user_id is not None:
        payload["from"] = {
            "id": user_id,
            "is_bot": is_bot,
            "first_name": (username or "user").title(),
            "username": username,
        }
    return TelegramMessage.model_validate(payload)


def make_update(message: TelegramMessage, update_id: int = 1) -> TelegramUpdate:
    return TelegramUpdate(update_id=update_id, message=message)


def make_conversation_message(
    message_id: int,
    content: str = "hello",
    chat_id: int = GROUP_ID,
    username: Optional[str] = "alice",
    timestamp: Optional[datetime] = None,
    **extra,
) -> ConversationMessage:
    return ConversationMessage(
        chat_id=chat_id,
        message_id=message_id,
        user_id=extra.pop("user_id", 1),
        username=username,
        first_name=extra.pop("first_name", None),
        content=content,
        timestamp=timestamp or datetime.now(timezone.utc),
        **extra,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def message_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def group_store() -> InMemoryGroupStore:
    return InMemoryGroupStore()


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(transport, backend, message_store, group_store, sleep) -> TldrService:
    return TldrService(
        transport=transport,
        message_store=message_store,
        group_store=group_store,
        backend_factory=lambda api_key: backend,
        sleep=sleep,
    )
