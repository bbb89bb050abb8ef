"""Filesystem-safe name helpers shared by media naming and the note store."""
from __future__ import annotations

import re

# Emoji, pictographs, dingbats, variation selectors and ZWJ sequences.
EMOJI_PATTERN = re.compile(
    "["
    "\U0001F000-\U0001FAFF"
    "\U000E0020-\U000E007F"
    "\u2300-\u23ff"
    "\u2600-\u27bf"
    "\u2934\u2935"
    "\u2b05-\u2b07\u2b1b\u2b1c\u2b50-\u2b55"
    "\u25aa\u25ab\u25b6\u25c0\u25fb-\u25fe"
    "\u3030\u303d\u3297\u3299"
    "\u00a9\u00ae\u203c\u2049\u2122\u2139\u2194-\u2199\u21a9\u21aa\u24c2"
    "\u20d0-\u20ff"
    "\ufe00-\ufe0f"
    "\u200d"
    "]"
)
FORBIDDEN_CHARS_PATTERN = re.compile(r'[<>:"/\\|?*]')
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
INVISIBLE_CHARS_PATTERN = re.compile("[\u200b-\u200f\u202a-\u202e\u2060-\u206f\ufeff]")
WHITESPACE_PATTERN = re.compile(r"\s+")
EDGE_PATTERN = re.compile(r"^[\s.]+|[\s.]+$")

WINDOWS_RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)
UNSAFE_PATH_PATTERNS = ("../", "..\\", "%2e%2e", "%252e%252e")

MAX_FILENAME_LENGTH = 200
MIN_TRUNCATION_RATIO = 0.7
DEFAULT_FILENAME = "Untitled"


def sanitize_filename(name: str, max_length: int = MAX_FILENAME_LENGTH) -> str:
    """Return ``name`` stripped of characters that break on Windows, macOS or Linux.

    Long names are cut at a word boundary when that keeps at least 70% of the
    allowed length. Windows device names get a ``_file`` suffix.
    """
    if not name or not name.strip():
        return DEFAULT_FILENAME

    sanitized = EMOJI_PATTERN.sub("", name)
    sanitized = FORBIDDEN_CHARS_PATTERN.sub("-", sanitized)
    # Tabs and newlines are control characters too; collapse them first so words stay apart.
    sanitized = WHITESPACE_PATTERN.sub(" ", sanitized)
    sanitized = CONTROL_CHARS_PATTERN.sub("", sanitized)
    sanitized = INVISIBLE_CHARS_PATTERN.sub("", sanitized)
    sanitized = EDGE_PATTERN.sub("", sanitized)

    if sanitized.upper() in WINDOWS_RESERVED_NAMES:
        sanitized = f"{sanitized}_file"

    if len(sanitized) > max_length:
        truncated = sanitized[:max_length]
        last_space = truncated.rfind(" ")
        if last_space > max_length * MIN_TRUNCATION_RATIO:
            truncated = truncated[:last_space]
        sanitized = truncated

    return sanitized.strip() or DEFAULT_FILENAME


def is_path_safe(path: str) -> bool:
    if not path:
        return False
    lowered = path.lower()
    return not any(pattern in lowered for pattern in UNSAFE_PATH_PATTERNS)


def sanitize_subreddit_name(subreddit: str) -> str:
    """Lowercase folder name for a subreddit, ``unknown`` when nothing survives."""
    if not subreddit or not subreddit.strip():
        return "unknown"
    name = re.sub(r"^r/", "", subreddit.strip(), flags=re.IGNORECASE)
    name = re.sub(r"[^A-Za-z0-9_]", "", name).lower()
    return name or "unknown"
