"""Rendering of LLM summaries into Telegram-sized HTML messages."""

import html
import logging
import re
from typing import Optional, Sequence

from src.core.telegram.client import ChatTransport, MessageTooLongError
from src.services.tldr.models import ChatContext, RenderedChunk

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
HEADER_MARGIN = 100
PARSE_MODE = "HTML"

# Message id references
LINKED_ID = re.compile(r"\[(\d+)\]\((https?://[^\s)]+)\)")
ID_LIST = re.compile(r"\[(\d+(?:\s*,\s*\d+)+)\]")
BARE_ID = re.compile(r"\[(\d+)\](?!\()")

# Lightweight markup
CODE_BLOCK = re.compile(r"```(?:[\w+-]*\n)?(.*?)```", re.DOTALL)
INLINE_CODE = re.compile(r"`([^`\n]+)`")
MD_LINK = re.compile(r"\[([^\]\n]+)\]\((https?://[^\s)]+)\)")
HEADING = re.compile(r"^#{1,6}\s+(.+?)\s*#*$", re.MULTILINE)
BULLET = re.compile(r"^(\s*)[*-]\s+", re.MULTILINE)
BOLD = re.compile(r"\*\*(.+?)\*\*|__(.+?)__")
ITALIC_STAR = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")
ITALIC_UNDERSCORE = re.compile(r"(?<![\w_])_(?!\s)(.+?)(?<!\s)_(?![\w_])")
PLACEHOLDER = re.compile("\x00(\\d+)\x00")
HTML_TAG = re.compile(r"<(/?)([a-zA-Z]+)[^>]*>")

WHITESPACE_SEPARATORS = ("\n\n", "\n")
SENTENCE_SEPARATORS = (". ", "! ", "? ")


def build_message_link(chat_id: int, message_id: int, chat_username: Optional[str] = None) -> str:
    """
    Build a t.me link to a message.

    Private supergroups have ids like -1001234567890; their links use the
    id without the sign and the leading "100".
    """
    if chat_username:
        return f"https://t.me/{chat_username}/{message_id}"
    clean_id = re.sub(r"^100", "", str(abs(chat_id)))
    return f"https://t.me/c/{clean_id}/{message_id}"


def link_message_ids(text: str, chat: ChatContext) -> str:
    """
    Rewrite message id references as "id (link)".

    Handles "[id](url)", "[id1, id2]" and bare "[id]" forms, in that order.
    """

    def link(message_id: str) -> str:
        return f"{int(message_id)} ({build_message_link(chat.chat_id, int(message_id), chat.username)})"

    result = LINKED_ID.sub(lambda m: f"{m.group(1)} ({m.group(2)})", text)

    def expand_list(match: re.Match) -> str:
        ids = [part.strip() for part in match.group(1).split(",")]
        return "[" + ", ".join(link(i) for i in ids if i.isdigit()) + "]"

    result = ID_LIST.sub(expand_list, result)
    return BARE_ID.sub(lambda m: link(m.group(1)), result)


def markdown_to_html(text: str) -> str:
    """
    Convert Markdown-ish LLM output to Telegram's HTML dialect.

    Code spans and links are set aside before escaping so their content is
    not reformatted; everything else is HTML-escaped first.
    """
    protected: list[str] = []

    def protect(fragment: str) -> str:
        protected.append(fragment)
        return f"\x00{len(protected) - 1}\x00"

    text = CODE_BLOCK.sub(
        lambda m: protect(f"<pre>{html.escape(m.group(1).strip(), quote=False)}</pre>"), text
    )
    text = INLINE_CODE.sub(
        lambda m: protect(f"<code>{html.escape(m.group(1), quote=False)}</code>"), text
    )
    text = MD_LINK.sub(
        lambda m: protect(
            f'<a href="{html.escape(m.group(2), quote=True)}">'
            f"{html.escape(m.group(1), quote=False)}</a>"
        ),
        text,
    )

    text = html.escape(text, quote=False)
    text = HEADING.sub(r"<b>\1</b>", text)
    text = BULLET.sub(r"\1• ", text)
    text = BOLD.sub(lambda m: f"<b>{m.group(1) or m.group(2)}</b>", text)
    text = ITALIC_STAR.sub(r"<i>\1</i>", text)
    text = ITALIC_UNDERSCORE.sub(r"<i>\1</i>", text)

    return PLACEHOLDER.sub(lambda m: protected[int(m.group(1))], text)


def _outside_markup(text: str, cut: int) -> int:
    """Move cut back so it does not fall inside an HTML tag or entity."""
    open_tag = text.rfind("<", 0, cut)
    if open_tag > text.rfind(">", 0, cut):
        cut = open_tag

    entity = text.rfind("&", 0, cut)
    if entity > text.rfind(";", 0, cut) and cut - entity <= 10:
        cut = entity
    return cut


def _find_split_point(text: str, limit: int) -> int:
    window = text[:limit]
    min_chunk = limit // 3

    for sep in WHITESPACE_SEPARATORS:
        idx = window.rfind(sep)
        if idx >= min_chunk:
            cut = _outside_markup(text, idx)
            if cut >= min_chunk:
                return cut

    best = max(window.rfind(sep) for sep in SENTENCE_SEPARATORS)
    if best >= min_chunk:
        cut = _outside_markup(text, best + 1)
        if cut >= min_chunk:
            return cut

    idx = window.rfind(" ")
    if idx >= min_chunk:
        cut = _outside_markup(text, idx)
        if cut >= min_chunk:
            return cut

    cut = _outside_markup(text, limit)
    return cut if cut > 0 else limit


def _track_open_tags(fragment: str, stack: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Update a stack of (name, opening tag) with the tags in fragment."""
    stack = list(stack)
    for match in HTML_TAG.finditer(fragment):
        name = match.group(2).lower()
        if not match.group(1):
            stack.append((name, match.group(0)))
            continue
        for i in range(len(stack) - 1, -1, -1):
            if stack[i][0] == name:
                del stack[i]
                break
    return stack


def _closing_tags(stack: list[tuple[str, str]]) -> str:
    return "".join(f"</{name}>" for name, _ in reversed(stack))


def split_message(text: str, limit: int) -> list[str]:
    """
    Split HTML text into chunks of at most limit characters.

    Prefers paragraph, then line, sentence and word boundaries; falls back to
    a hard cut that avoids landing inside a tag or entity. Tags still open at
    a cut are closed at the end of the chunk and reopened at the start of the
    next one, so every chunk is well-formed on its own.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")

    chunks: list[str] = []
    remaining = text.strip()
    carried: list[tuple[str, str]] = []

    while remaining:
        prefix = "".join(tag for _, tag in carried)
        room = limit - len(prefix)

        while True:
            if len(remaining) <= room:
                body, rest = remaining, ""
            else:
                cut = _find_split_point(remaining, max(room, 1))
                body = remaining[:cut].rstrip()
                if not body:
                    cut = max(room, 1)
                    body = remaining[:cut]
                rest = remaining[cut:].lstrip()

            still_open = _track_open_tags(body, carried)
            suffix = _closing_tags(still_open)
            overflow = len(prefix) + len(body) + len(suffix) - limit
            if overflow <= 0 or room <= 1:
                break
            room -= overflow

        chunks.append(prefix + body + suffix)
        remaining = rest
        carried = still_open

    return chunks


def chunk_budget(header: str) -> int:
    """Characters available for summary text in one message under header."""
    header_length = len(header) + 2
    return MAX_MESSAGE_LENGTH - header_length - HEADER_MARGIN


def render(summary_text: str, chat: ChatContext, header: str) -> list[RenderedChunk]:
    """
    Turn raw summary text into ordered, size-bounded HTML chunks.

    Args:
        summary_text: Raw LLM output
        chat: Chat the summary is for (used for message links)
        header: Header line each chunk will be sent under

    Returns:
        RenderedChunks numbered from 1; a single chunk when the text fits
    """
    formatted = markdown_to_html(link_message_ids(summary_text, chat))
    budget = chunk_budget(header)

    if len(formatted) <= budget:
        parts = [formatted]
    else:
        parts = split_message(formatted, budget)

    total = len(parts)
    return [RenderedChunk(index=i, total=total, text=part) for i, part in enumerate(parts, start=1)]


async def deliver_chunks(
    transport: ChatTransport,
    chat_id: int,
    placeholder_id: Optional[int],
    header: str,
    chunks: Sequence[RenderedChunk],
) -> None:
    """
    Send rendered chunks in order.

    The first chunk replaces the loading placeholder (if any); the rest are
    sent as new messages. A chunk Telegram still rejects as too long is
    resent without its header.
    """
    for chunk in chunks:
        use_edit = chunk.index == 1 and placeholder_id is not None
        try:
            await _write(transport, chat_id, placeholder_id if use_edit else None, chunk.compose(header))
        except MessageTooLongError:
            logger.warning(
                f"Chunk {chunk.index}/{chunk.total} too long for chat {chat_id}, "
                "sending without header"
            )
            await _write(transport, chat_id, placeholder_id if use_edit else None, chunk.text)


async def _write(
    transport: ChatTransport,
    chat_id: int,
    edit_message_id: Optional[int],
    text: str,
) -> None:
    if edit_message_id is not None:
        await transport.edit_message_text(chat_id, edit_message_id, text, parse_mode=PARSE_MODE)
    else:
        await transport.send_message(chat_id, text, parse_mode=PARSE_MODE)
