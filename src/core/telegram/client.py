"""Telegram Bot API HTTP client."""

import logging
from typing import Any, Optional, Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import settings

logger = logging.getLogger(__name__)

ADMIN_STATUSES = ("administrator", "creator")


class TelegramClientError(Exception):
    """Exception raised when a Bot API call fails."""

    def __init__(self, description: str, error_code: Optional[int] = None):
        super().__init__(description)
        self.description = description
        self.error_code = error_code


class MessageTooLongError(TelegramClientError):
    """Raised when Telegram rejects a text for exceeding the message limit."""


class ChatTransport(Protocol):
    """Operations the TLDR pipeline needs from the chat platform."""

    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> int:
        """Send a message and return its message_id."""
        ...

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> None:
        """Replace the text of a previously sent message."""
        ...

    async def get_chat_member_status(self, chat_id: int, user_id: int) -> str:
        """Return the member status (creator, administrator, member, ...)."""
        ...


def _raise_for_api_error(data: dict[str, Any]) -> None:
    if data.get("ok"):
        return

    description = data.get("description", "Unknown Telegram error")
    error_code = data.get("error_code")
    lowered = description.lower()
    if "message is too long" in lowered or "message_too_long" in lowered:
        raise MessageTooLongError(description, error_code)
    raise TelegramClientError(description, error_code)


class TelegramClient:
    """HTTP client for the Telegram Bot API."""

    def __init__(self, api_url: Optional[str] = None, timeout: float = 30.0):
        self.api_url = api_url or settings.telegram_api_url
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        """Create an async HTTP client bound to the bot's API URL."""
        return httpx.AsyncClient(base_url=self.api_url, timeout=self.timeout)

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        """
        Invoke a Bot API method.

        Server errors are raised as httpx.HTTPStatusError so callers can retry
        them; API-level failures (ok=false) become TelegramClientError.
        """
        async with self._get_client() as client:
            response = await client.post(f"/{method}", json=payload)
            if response.status_code >= 500:
                response.raise_for_status()

            data = response.json()
            _raise_for_api_error(data)
            return data.get("result")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError)),
        reraise=True,
    )
    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> int:
        """
        Send a text message to a chat.

        Args:
            chat_id: Target chat id
            text: Message content
            parse_mode: Optional parse mode ("HTML")

        Returns:
            The message_id of the sent message

        Raises:
            TelegramClientError: If the message fails to send
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode

        result = await self._call("sendMessage", payload)
        message_id = result["message_id"]
        logger.info(f"Message sent to {chat_id}: {message_id}")
        return message_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError)),
        reraise=True,
    )
    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> None:
        """
        Edit the text of a message sent by the bot.

        Raises:
            MessageTooLongError: If the new text exceeds Telegram's limit
            TelegramClientError: For any other API failure
        """
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode

        await self._call("editMessageText", payload)
        logger.debug(f"Edited message {message_id} in {chat_id}")

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError)),
        reraise=True,
    )
    async def get_chat_member_status(self, chat_id: int, user_id: int) -> str:
        """Fetch a user's membership status in a chat."""
        result = await self._call(
            "getChatMember", {"chat_id": chat_id, "user_id": user_id}
        )
        return result.get("status", "")

    async def check_health(self) -> bool:
        """
        Check that the Bot API is reachable and the token is valid.

        Returns:
            True if getMe succeeds, False otherwise
        """
        try:
            await self._call("getMe", {})
            return True
        except (httpx.HTTPError, TelegramClientError) as e:
            logger.error(f"Telegram health check failed: {e}")
            return False


# Singleton instance for dependency injection
telegram_client = TelegramClient()
