"""Parsing of the free-text arguments that follow /tldr."""

import re
from typing import Optional, Sequence

from src.services.tldr.models import DEFAULT_RANGE_SPEC, SummaryRequest, SummaryStyle
from src.services.tldr.topic import sanitize_topic

RANGE_TOKEN = re.compile(r"^(\d+[hd]?|day|week)$")


def parse_arguments(tokens: Sequence[str]) -> SummaryRequest:
    """
    Classify each token as style, @username, range or topic word.

    Matching is first-rule-wins per token and first-occurrence-wins per
    field; anything unrecognized becomes part of the topic. Never raises.

    Example:
        ["6h", "@alice", "brief", "Secret", "Santa"] ->
        range_spec="6h", username="alice", style=BRIEF, topic_text="Secret Santa"
    """
    range_spec = DEFAULT_RANGE_SPEC
    range_set = False
    username: Optional[str] = None
    style: Optional[SummaryStyle] = None
    topic_parts: list[str] = []

    for token in tokens:
        if not token:
            continue
        lowered = token.lower()

        token_style = SummaryStyle.parse(lowered)
        if token_style is not None:
            if style is None:
                style = token_style
            continue

        if token.startswith("@"):
            if username is None and len(token) > 1:
                username = token[1:]
            continue

        if not range_set and RANGE_TOKEN.match(lowered):
            range_spec = lowered
            range_set = True
            continue

        topic_parts.append(token)

    raw_topic = " ".join(topic_parts) if topic_parts else None

    return SummaryRequest(
        range_spec=range_spec,
        username=username,
        style=style,
        raw_topic=raw_topic,
        topic_text=sanitize_topic(raw_topic),
    )
