"""Reddit markdown to portable markdown conversion and small text helpers."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

REDDIT_WEB_URL = "https://reddit.com"

# Spoilers are only recognisable while their angle brackets are still escaped.
SPOILER_PATTERN = re.compile(r"&gt;!([^!]+)!&lt;")
ENTITY_PATTERN = re.compile(r"&(amp|lt|gt|quot|#x27|#x2F);")
ENTITY_MAP = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "#x27": "'",
    "#x2F": "/",
}
SUPERSCRIPT_PATTERN = re.compile(r"\^(\w+)")
MENTION_PATTERN = re.compile(r"(?<![\w/\[])/?\b([ur]/[A-Za-z0-9_-]+)")
QUOTE_PATTERN = re.compile(r"^>(?=[^ ])")


def decode_entities(text: str) -> str:
    """Decode the fixed entity set Reddit escapes, in a single pass."""
    if not text:
        return ""
    return ENTITY_PATTERN.sub(lambda match: ENTITY_MAP[match.group(1)], text)


def convert_reddit_markdown(text: str) -> str:
    if not text:
        return ""

    text = SPOILER_PATTERN.sub(r"%%\1%%", text)
    text = decode_entities(text)
    text = SUPERSCRIPT_PATTERN.sub(r"<sup>\1</sup>", text)
    text = MENTION_PATTERN.sub(rf"[\1]({REDDIT_WEB_URL}/\1)", text)

    # Reddit tables are already valid markdown tables, so rows only get the quote fix.
    return "\n".join(QUOTE_PATTERN.sub("> ", line) for line in text.split("\n"))


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 3, 0)] + "..."


def format_timestamp(epoch: Any) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, ``""`` when invalid."""
    try:
        moment = datetime.fromtimestamp(float(epoch), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_date(epoch: Any) -> str:
    """Short month/day/year date (UTC) used in headers and comment lines."""
    try:
        moment = datetime.fromtimestamp(float(epoch), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
    return f"{moment.month}/{moment.day}/{moment.year}"
