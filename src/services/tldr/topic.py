"""Topic focus validation.

The topic is interpolated verbatim into the summarization prompt, so it is
checked against a character whitelist and a set of instruction-injection
signatures before use. This is a best-effort heuristic filter: it rejects
some legitimate short imperative topics and does not guarantee that every
injection payload is caught.
"""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

MIN_TOPIC_LENGTH = 1
MAX_TOPIC_LENGTH = 200
MAX_PUNCTUATION_RATIO = 0.3

ALLOWED_CHARS = re.compile(r"^[a-zA-Z0-9\s\-'.,!?()]+$")
PUNCTUATION = re.compile(r"[.,!?()]")
REPEATED_PUNCTUATION = re.compile(r"([.,!?()\-'])\1{2,}")
WHITESPACE_RUN = re.compile(r"\s+")

INJECTION_PATTERNS = [
    # Direct instruction commands
    re.compile(
        r"\b(ignore|forget|disregard|override|skip|bypass)\s+(current|previous|all|the|these)\s+"
        r"(instructions?|prompts?|rules?|commands?|directives?)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(new|different|alternative|replacement)\s+(instructions?|prompts?|system|rules?)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(you\s+(are|must|should|will|need|have\s+to|cannot|can't|do\s+not|don't))\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(do\s+not|don't|never|always|must\s+not|should\s+not)\s+(follow|obey|use|execute|run|do)\b",
        re.IGNORECASE,
    ),
    # System prompt references and role play
    re.compile(r"\b(system\s+prompt|system\s+instructions?|system\s+message)\b", re.IGNORECASE),
    re.compile(r"\b(act\s+as|pretend\s+to\s+be|roleplay\s+as|you're\s+now)\b", re.IGNORECASE),
    # Command-like phrasing
    re.compile(
        r"\b(execute|run|perform|carry\s+out|implement)\s+(this|the|these|following)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(follow|obey|adhere\s+to)\s+(this|the|these|following|new)\s+(instruction|command|directive)\b",
        re.IGNORECASE,
    ),
    # Ranking people
    re.compile(
        r"\b(rank|compare|list|sort|order|categorize|classify)\s+(the|all|every)\s+"
        r"(richest|poorest|best|worst|top|bottom)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(rank|compare|list|sort|order)\s+(people|users|members|individuals|persons)\b",
        re.IGNORECASE,
    ),
    # Output redirection
    re.compile(
        r"\b(output|return|respond|reply|say|write|generate)\s+(this|the|following|instead)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(instead\s+of|rather\s+than|instead|replace)\s+(summarizing|summarize|the\s+summary)\b",
        re.IGNORECASE,
    ),
    # Markup / tags
    re.compile(r"<[^>]+>"),
    re.compile(r"</?[a-z]+>", re.IGNORECASE),
    # Code-like tokens
    re.compile(r"\b(function|def|class|import|require|eval|exec)\s*\(", re.IGNORECASE),
    re.compile(r"[{}\[\]\\|`~]"),
]

IMPERATIVE_VERBS = re.compile(
    r"\b(ignore|forget|disregard|override|skip|rank|list|compare|sort|order|execute|run|"
    r"perform|follow|obey|act|pretend|output|return|respond|say|write|generate)\b",
    re.IGNORECASE,
)

INSTRUCTION_STARTERS = frozenset(
    {
        "ignore", "forget", "disregard", "override", "skip", "rank", "list",
        "compare", "sort", "order", "execute", "run", "perform", "follow",
        "obey", "act", "pretend", "output", "return", "respond", "say",
        "write", "generate", "do", "don't", "never", "always",
    }
)


def _reject(reason: str, topic: str) -> None:
    logger.warning(f"Rejected topic with {reason}: {topic[:100]}")
    return None


def sanitize_topic(raw: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a free-text topic.

    Args:
        raw: Topic text as typed by the user

    Returns:
        The whitespace-normalized topic if every check passes, else None
    """
    if not raw or not raw.strip():
        return None

    trimmed = raw.strip()
    if not MIN_TOPIC_LENGTH <= len(trimmed) <= MAX_TOPIC_LENGTH:
        return _reject("invalid length", trimmed)

    if not ALLOWED_CHARS.match(trimmed):
        return _reject("invalid characters", trimmed)

    normalized = WHITESPACE_RUN.sub(" ", trimmed).strip()

    punctuation_ratio = len(PUNCTUATION.findall(normalized)) / len(normalized)
    if punctuation_ratio > MAX_PUNCTUATION_RATIO:
        return _reject("excessive punctuation", normalized)

    if REPEATED_PUNCTUATION.search(normalized):
        return _reject("suspicious character patterns", normalized)

    for pattern in INJECTION_PATTERNS:
        if pattern.search(normalized):
            return _reject("instruction injection pattern", normalized)

    words = normalized.lower().split(" ")
    if IMPERATIVE_VERBS.search(normalized) and len(words) <= 10:
        if words[0] in INSTRUCTION_STARTERS and len(words) <= 8:
            return _reject("leading imperative verb (likely instruction)", normalized)

    return normalized
