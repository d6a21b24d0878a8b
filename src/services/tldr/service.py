"""TLDR command handling: from an incoming update to rendered summary messages."""

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

import httpx

from src.core.config import settings
from src.core.rate_limiter import CommandCooldown, ExpiringIntentTable
from src.core.telegram.client import (
    ADMIN_STATUSES,
    ChatTransport,
    TelegramClientError,
)
from src.core.telegram.models import TelegramMessage, TelegramUpdate
from src.llm.base import BackendFactory, get_llm_backend, validate_api_key_format
from src.services.tldr.arguments import parse_arguments
from src.services.tldr.models import (
    ChatContext,
    ConversationMessage,
    CountRange,
    GroupSettings,
    SummaryRequest,
    SummaryStyle,
)
from src.services.tldr.prompts import SYSTEM_INSTRUCTION, build_merge_prompt, build_summary_prompt
from src.services.tldr.ranges import resolve_range
from src.services.tldr.renderer import PARSE_MODE, deliver_chunks, render
from src.services.tldr.store import (
    GroupStore,
    InMemoryGroupStore,
    InMemoryMessageStore,
    MessageStore,
)
from src.services.tldr.summarizer import RetryingSummarizer, SummaryError

logger = logging.getLogger(__name__)

MAX_CACHED_CONTENT_LENGTH = 5000

GROUP_ONLY_TEXT = "❌ This command can only be used in a group."
LOADING_TEXT = "⏳ Generating summary..."
INVALID_TOPIC_TEXT = (
    "❌ Invalid topic provided. Topics cannot contain instructions or commands. "
    "Please use a simple topic description instead.\n\n"
    "Example: <code>/tldr 1000 meeting</code>"
)

HELP_TEXT = (
    "📖 <b>TLDR Bot Help</b>\n\n"
    "Get a summary of group conversations using AI.\n\n"
    "📐 <b>Standard Command Rule:</b>\n"
    "<code>/tldr [range] [@username] [style] [topic]</code>\n\n"
    "<b>Components:</b>\n"
    "• <b>Range</b>: <code>1h</code>, <code>6h</code>, <code>day</code>, or message count <code>100</code>\n"
    "• <b>@username</b>: Filter messages from a specific user\n"
    "• <b>Style</b>: <code>brief</code>, <code>detailed</code>, <code>bullet</code>, or <code>timeline</code>\n"
    "• <b>Topic</b>: Any words to focus the summary on a specific subject\n\n"
    "💡 <b>Examples:</b>\n"
    "• <code>/tldr 6h</code> - Last 6 hours\n"
    "• <code>/tldr @user 1d</code> - User's talk in last day\n"
    "• <code>/tldr 500 Secret Santa</code> - Focus on a topic\n\n"
    "<i>Reply to any message with <code>/tldr</code> to summarize from that point forward!</i>"
)


def filter_messages(
    messages: Sequence[ConversationMessage],
    group_settings: GroupSettings,
) -> list[ConversationMessage]:
    """Drop bot messages, commands and excluded users according to settings."""
    excluded = set(group_settings.excluded_user_ids)
    result = []
    for msg in messages:
        if group_settings.exclude_bot_messages and msg.is_bot:
            continue
        if group_settings.exclude_commands and msg.content.startswith("/"):
            continue
        if msg.user_id is not None and msg.user_id in excluded:
            continue
        result.append(msg)
    return result


def format_error(error: Exception) -> str:
    """User-facing failure text; backend errors get a remediation tip."""
    if isinstance(error, SummaryError):
        return f"❌ {html.escape(error.message)}\n\n💡 <b>Tip:</b> {error.remediation}"
    return f"❌ {html.escape(str(error) or 'Unknown error occurred')}"


def _describe_request(label: str, request: SummaryRequest) -> str:
    if request.username:
        label += f" from @{request.username}"
    if request.topic_text:
        label += f' on topic "{request.topic_text}"'
    return label


class TldrService:
    """
    Handles /tldr and the related group commands.

    Owns the per-identity cooldown table and the pending API key update
    table; both live only as long as the service instance.
    """

    def __init__(
        self,
        transport: ChatTransport,
        message_store: MessageStore,
        group_store: GroupStore,
        backend_factory: BackendFactory = get_llm_backend,
        cooldown: Optional[CommandCooldown] = None,
        key_intents: Optional[ExpiringIntentTable[int, int]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.message_store = message_store
        self.group_store = group_store
        self.backend_factory = backend_factory
        if cooldown is None:
            cooldown = CommandCooldown(settings.tldr_cooldown_seconds)
        if key_intents is None:
            key_intents = ExpiringIntentTable(settings.key_update_timeout_minutes * 60)
        self.cooldown = cooldown
        self.key_intents: ExpiringIntentTable[int, int] = key_intents
        self.batch_size = settings.tldr_batch_size
        self._sleep = sleep

    # --- Dispatch ---

    async def handle_update(self, update: TelegramUpdate) -> None:
        """Route a webhook update to a command handler or the message cache."""
        if update.edited_message is not None:
            await self._register_group(update.edited_message)
            await self.cache_message(update.edited_message)
            return

        message = update.message
        if message is None:
            return
        await self._register_group(message)

        parsed = message.command()
        if parsed is None:
            if message.chat.is_group:
                await self.cache_message(message)
            elif message.chat.type == "private":
                await self.handle_private_text(message)
            return

        name, args = parsed
        if name == "tldr":
            await self.handle_tldr(message, args)
        elif name in ("tldr_help", "help", "start"):
            await self.handle_help(message)
        elif name == "tldr_info":
            await self.handle_info(message)
        elif name == "enable":
            await self.handle_toggle(message, enabled=True)
        elif name == "disable":
            await self.handle_toggle(message, enabled=False)
        elif name == "update_api_key":
            await self.handle_update_api_key(message)
        elif message.chat.is_group:
            await self.cache_message(message)

    async def _register_group(self, message: TelegramMessage) -> None:
        if message.chat.is_group:
            await self.group_store.ensure_group(message.chat.id)

    async def _reply(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> None:
        await self.transport.send_message(chat_id, text, parse_mode=parse_mode)

    # --- /tldr ---

    async def handle_tldr(self, message: TelegramMessage, args: Sequence[str]) -> None:
        """Summarize recent messages for the chat the command was sent in."""
        chat = message.chat
        if not chat.is_group:
            await self._reply(chat.id, GROUP_ONLY_TEXT)
            return

        user_id = message.from_user.id if message.from_user else None
        allowed, remaining = self.cooldown.try_acquire(f"{chat.id}:{user_id or 'unknown'}")
        if not allowed:
            plural = "s" if remaining != 1 else ""
            await self._reply(
                chat.id,
                f"⏳ Please wait {remaining} second{plural} before requesting another summary.",
            )
            return

        group = await self.group_store.get_group(chat.id)
        api_key = (group.api_key if group else None) or settings.default_api_key
        if group is None or not api_key:
            await self._reply(
                chat.id,
                "❌ This group is not configured yet.\n\n"
                "Ask an admin to set an API key using /update_api_key.",
            )
            return

        if not group.enabled:
            await self._reply(chat.id, "❌ TLDR is currently disabled for this group.")
            return

        request = parse_arguments(args)
        placeholder_id: Optional[int] = None

        try:
            placeholder_id = await self.transport.send_message(chat.id, LOADING_TEXT)
            await self._run_pipeline(message, request, api_key, placeholder_id)
        except Exception as e:
            logger.exception(f"Error generating TLDR for {chat.id}: {e}")
            await self._report_error(chat.id, placeholder_id, e)

    async def _run_pipeline(
        self,
        message: TelegramMessage,
        request: SummaryRequest,
        api_key: str,
        placeholder_id: int,
    ) -> None:
        chat = message.chat

        if message.reply_to_message is not None:
            messages = await self.message_store.since_message_id(
                chat.id, message.reply_to_message.message_id
            )
            label = "from message"
            empty_text = "📭 No messages found from this point."
            filtered_empty_text = "📭 No messages found after filtering from this point."
        else:
            resolved = resolve_range(request.range_spec)
            if isinstance(resolved, CountRange):
                messages = await self.message_store.last_n(chat.id, resolved.n, request.username)
                label = _describe_request(f"last {resolved.n} messages", request)
                empty_text = "📭 No messages found in the database."
            else:
                messages = await self.message_store.since_timestamp(
                    chat.id, resolved.since, username=request.username
                )
                label = _describe_request(request.range_spec, request)
                empty_text = "📭 No messages found in the specified time range."
            filtered_empty_text = "📭 No messages found after filtering in the specified time range."

        logger.info(f"Generating summary for {chat.id}: {label} ({len(messages)} messages)")

        if not messages:
            await self.transport.edit_message_text(chat.id, placeholder_id, empty_text)
            return

        if len(messages) > self.batch_size:
            await self.transport.edit_message_text(
                chat.id,
                placeholder_id,
                f"⏳ Processing {len(messages)} messages in chunks... This may take a moment.",
            )

        group_settings = await self.group_store.get_settings(chat.id)
        filtered = filter_messages(messages, group_settings)
        if not filtered:
            await self.transport.edit_message_text(chat.id, placeholder_id, filtered_empty_text)
            return

        if request.topic_rejected:
            await self.transport.edit_message_text(
                chat.id, placeholder_id, INVALID_TOPIC_TEXT, parse_mode=PARSE_MODE
            )
            return

        summarizer = RetryingSummarizer(
            self.backend_factory(api_key),
            max_attempts=settings.llm_max_attempts,
            backoff_base=settings.llm_backoff_base_seconds,
            sleep=self._sleep,
        )
        summary = await self._summarize(
            summarizer,
            filtered,
            style=request.style or group_settings.style,
            custom_prompt=group_settings.custom_prompt,
            topic=request.topic_text,
        )

        header = f"📝 <b>TLDR Summary</b> ({html.escape(label)})"
        chunks = render(summary, ChatContext(chat_id=chat.id, username=chat.username), header)
        await deliver_chunks(self.transport, chat.id, placeholder_id, header, chunks)
        logger.info(f"Summary sent to {chat.id} in {len(chunks)} message(s)")

    async def _summarize(
        self,
        summarizer: RetryingSummarizer,
        messages: Sequence[ConversationMessage],
        style: SummaryStyle,
        custom_prompt: Optional[str],
        topic: Optional[str],
    ) -> str:
        """Summarize directly, or per batch and then merge for large ranges."""
        if len(messages) <= self.batch_size:
            prompt = build_summary_prompt(messages, style, custom_prompt, topic)
            return await summarizer.summarize(prompt, system_instruction=SYSTEM_INSTRUCTION)

        partials = []
        for start in range(0, len(messages), self.batch_size):
            batch = messages[start : start + self.batch_size]
            prompt = build_summary_prompt(batch, style, custom_prompt, topic)
            partials.append(
                await summarizer.summarize(prompt, system_instruction=SYSTEM_INSTRUCTION)
            )

        logger.info(f"Merging {len(partials)} partial summaries")
        return await summarizer.summarize(
            build_merge_prompt(partials, style, topic),
            system_instruction=SYSTEM_INSTRUCTION,
        )

    async def _report_error(
        self,
        chat_id: int,
        placeholder_id: Optional[int],
        error: Exception,
    ) -> None:
        text = format_error(error)
        if placeholder_id is not None:
            try:
                await self.transport.edit_message_text(
                    chat_id, placeholder_id, text, parse_mode=PARSE_MODE
                )
                return
            except (TelegramClientError, httpx.HTTPError) as edit_error:
                logger.warning(f"Could not edit placeholder with error: {edit_error}")

        try:
            await self._reply(chat_id, text, parse_mode=PARSE_MODE)
        except (TelegramClientError, httpx.HTTPError) as send_error:
            logger.error(f"Failed to send error message: {send_error}")

    # --- Info / help ---

    async def handle_help(self, message: TelegramMessage) -> None:
        await self._reply(message.chat.id, HELP_TEXT, parse_mode=PARSE_MODE)

    async def handle_info(self, message: TelegramMessage) -> None:
        chat = message.chat
        if not chat.is_group:
            await self._reply(chat.id, GROUP_ONLY_TEXT)
            return

        group = await self.group_store.get_group(chat.id)
        if group is None:
            await self._reply(chat.id, "❌ This group is not configured.")
            return

        configured = group.has_credential or bool(settings.default_api_key)
        status = "✅ Configured and ready" if configured else "⏳ Pending setup"
        enabled_status = "✅ Enabled" if group.enabled else "❌ Disabled"

        await self._reply(
            chat.id,
            f"ℹ️ <b>TLDR Info</b>\n\n"
            f"Status: {status}\n"
            f"Bot: {enabled_status}\n\n"
            f"🔒 Messages auto-delete after {settings.message_retention_hours} hours\n\n"
            f"<i>Use /tldr_help for usage guide or reply to a message with /tldr</i>",
            parse_mode=PARSE_MODE,
        )

    # --- Admin commands ---

    async def _is_admin(self, chat_id: int, user_id: int) -> bool:
        try:
            status = await self.transport.get_chat_member_status(chat_id, user_id)
        except (TelegramClientError, httpx.HTTPError) as e:
            logger.warning(f"Could not verify admin status of {user_id} in {chat_id}: {e}")
            return False
        return status in ADMIN_STATUSES

    async def _require_group_admin(self, message: TelegramMessage, action: str) -> bool:
        """Reply with the reason and return False unless sender is a group admin."""
        chat = message.chat
        if not chat.is_group:
            await self._reply(chat.id, GROUP_ONLY_TEXT)
            return False

        if message.from_user is None:
            await self._reply(chat.id, "❌ Could not identify user.")
            return False

        if not await self._is_admin(chat.id, message.from_user.id):
            await self._reply(chat.id, f"❌ Only group admins can {action}.")
            return False
        return True

    async def handle_toggle(self, message: TelegramMessage, enabled: bool) -> None:
        """Enable or disable /tldr for the group (admins only)."""
        if not await self._require_group_admin(message, "enable/disable the bot"):
            return

        chat_id = message.chat.id
        if await self.group_store.get_group(chat_id) is None:
            await self._reply(chat_id, "❌ This group is not configured.")
            return

        await self.group_store.set_enabled(chat_id, enabled)
        logger.info(f"TLDR {'enabled' if enabled else 'disabled'} for {chat_id}")
        if enabled:
            text = "✅ TLDR bot has been enabled for this group. You can now use /tldr commands."
        else:
            text = (
                "⏸️ TLDR bot has been disabled for this group. "
                "/tldr commands will not work until re-enabled."
            )
        await self._reply(chat_id, text)

    async def handle_update_api_key(self, message: TelegramMessage) -> None:
        """Record that an admin wants to set this group's key from a private chat."""
        if not await self._require_group_admin(message, "update the API key"):
            return

        user_id = message.from_user.id
        self.key_intents.set(user_id, message.chat.id)
        minutes = settings.key_update_timeout_minutes
        await self._reply(
            message.chat.id,
            f"🔑 Please send me the new API key in a private chat within {minutes} minutes.",
        )

    async def handle_private_text(self, message: TelegramMessage) -> None:
        """Treat a private message as an API key if the sender has a pending update."""
        if message.from_user is None or not message.text:
            return

        user_id = message.from_user.id
        group_chat_id = self.key_intents.pop(user_id)
        if group_chat_id is None:
            logger.debug(f"Ignoring private message from {user_id} without pending key update")
            return

        api_key = message.text.strip()
        if not validate_api_key_format(api_key):
            await self._reply(
                message.chat.id,
                "❌ Invalid API key format. Please run /update_api_key in the group again.",
            )
            return

        if not await self._is_admin(group_chat_id, user_id):
            await self._reply(
                message.chat.id,
                "❌ You must be an admin of the group to update the API key.",
            )
            return

        await self.group_store.set_api_key(group_chat_id, api_key)
        logger.info(f"API key updated for group {group_chat_id} by {user_id}")
        await self._reply(
            message.chat.id,
            "✅ API key updated successfully! The bot will now use the new key for summaries.",
        )

    # --- Message cache ---

    async def cache_message(self, message: TelegramMessage) -> None:
        """Store a group message for later summarization, honoring group settings."""
        chat = message.chat
        if not chat.is_group:
            return

        content = message.content
        if not content:
            return

        group_settings = await self.group_store.get_settings(chat.id)
        sender = message.from_user

        if group_settings.exclude_commands and content.startswith("/"):
            return
        if group_settings.exclude_bot_messages and sender is not None and sender.is_bot:
            return
        if sender is not None and sender.id in group_settings.excluded_user_ids:
            return

        user_id = sender.id if sender else None
        username = sender.username if sender else None
        first_name = sender.first_name if sender else None
        is_channel = False

        sender_chat = message.sender_chat
        if sender_chat is not None:
            if sender_chat.type == "channel":
                is_channel = True
                user_id = sender_chat.id
                username = sender_chat.username
                first_name = sender_chat.title
            elif sender_chat.id == chat.id:
                # Anonymous group admin
                user_id = sender_chat.id
                username = "admin"
                first_name = "Group Admin"

        timestamp = (
            datetime.fromtimestamp(message.date, tz=timezone.utc)
            if message.date
            else datetime.now(timezone.utc)
        )

        await self.message_store.insert(
            ConversationMessage(
                chat_id=chat.id,
                message_id=message.message_id,
                user_id=user_id,
                username=username,
                first_name=first_name,
                content=content[:MAX_CACHED_CONTENT_LENGTH],
                timestamp=timestamp,
                is_bot=sender.is_bot if sender else False,
                is_channel=is_channel,
            )
        )

    # --- Maintenance ---

    async def cleanup_messages(self) -> int:
        """Delete cached messages past the retention window."""
        return await self.message_store.delete_older_than(settings.message_retention_hours)

    def sweep_state(self) -> tuple[int, int]:
        """Evict expired cooldown and key-update entries."""
        cooldowns = self.cooldown.sweep()
        intents = self.key_intents.sweep()
        if cooldowns or intents:
            logger.debug(f"Swept {cooldowns} cooldown(s) and {intents} key update intent(s)")
        return cooldowns, intents


# Singleton instance
def _build_default_service() -> TldrService:
    from src.core.telegram.client import telegram_client

    return TldrService(
        transport=telegram_client,
        message_store=InMemoryMessageStore(),
        group_store=InMemoryGroupStore(),
    )


tldr_service = _build_default_service()
