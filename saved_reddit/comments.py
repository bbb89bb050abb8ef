"""Rendering of exported comment threads, ancestor context and reply chains."""
from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple

from .config import PARENT_CONTEXT_MAX_CHARS
from .markdown import convert_reddit_markdown, format_date, truncate_text
from .models import Comment

logger = logging.getLogger(__name__)

SEPARATOR = " · "
QUOTE = "> "
OP_BADGE = "👑 OP"
MOD_BADGE = "🛡️ MOD"
ADMIN_BADGE = "🛡️ ADMIN"


def count_comments(comments: Iterable[Comment]) -> int:
    """Number of comments in ``comments`` including every nested reply."""
    total = 0
    seen: set[int] = set()
    stack = list(comments)
    while stack:
        comment = stack.pop()
        if id(comment) in seen:
            continue
        seen.add(id(comment))
        total += 1
        stack.extend(comment.replies)
    return total


def walk_thread(
    comments: Sequence[Comment],
    *,
    start_level: int = 0,
    use_declared_depth: bool = False,
) -> List[Tuple[Comment, int]]:
    """Depth-first (pre-order) listing of ``comments`` with a quote level for each.

    Roots sit at ``start_level``, or at their own ``depth`` when
    ``use_declared_depth`` is set and the field is present. Every reply is one
    level below its parent. A comment reachable twice is rendered once.
    """
    ordered: List[Tuple[Comment, int]] = []
    seen: set[int] = set()
    stack: List[Tuple[Comment, int | None]] = [(comment, None) for comment in reversed(comments)]
    while stack:
        comment, parent_level = stack.pop()
        if id(comment) in seen:
            logger.warning("Comment %s appears more than once in thread, skipping", comment.id)
            continue
        seen.add(id(comment))
        if parent_level is not None:
            level = parent_level + 1
        elif use_declared_depth and comment.depth is not None:
            level = max(comment.depth, 0)
        else:
            level = start_level
        ordered.append((comment, level))
        stack.extend((reply, level) for reply in reversed(comment.replies))
    return ordered


def comment_badges(comment: Comment, post_author: str | None = None) -> str:
    badges = []
    is_post_author = bool(post_author) and post_author != "[deleted]" and comment.author == post_author
    if comment.is_submitter or is_post_author:
        badges.append(OP_BADGE)
    if comment.distinguished == "moderator":
        badges.append(MOD_BADGE)
    elif comment.distinguished == "admin":
        badges.append(ADMIN_BADGE)
    return "".join(f" {badge}" for badge in badges)


def author_line(comment: Comment, post_author: str | None = None) -> str:
    parts = [
        f"**u/{comment.author}**{comment_badges(comment, post_author)}",
        f"{comment.score} points",
    ]
    date = format_date(comment.created_utc)
    if date:
        parts.append(date)
    return SEPARATOR.join(parts)


class CommentTreeRenderer:
    """Render comment trees as nested block quotes.

    Every line of a comment, blank lines included, carries the same number of
    ``> `` markers so nested quotes compose.
    """

    def __init__(self, *, parent_context_max_chars: int = PARENT_CONTEXT_MAX_CHARS) -> None:
        self.parent_context_max_chars = parent_context_max_chars

    def render_comment(self, comment: Comment, post_author: str | None, level: int) -> str:
        prefix = QUOTE * level
        lines = [f"{prefix}{author_line(comment, post_author)}", prefix]
        lines.extend(prefix + line for line in convert_reddit_markdown(comment.body).split("\n"))
        return "\n".join(lines) + "\n\n"

    def render_comments_section(self, comments: Sequence[Comment], post_author: str | None) -> str:
        """``## Comments`` section for a post's exported thread."""
        parts = [f"\n\n---\n\n## Comments ({count_comments(comments)})\n\n"]
        for comment, level in walk_thread(comments):
            parts.append(self.render_comment(comment, post_author, level))
        return "".join(parts)

    def render_replies(self, replies: Sequence[Comment], post_author: str | None) -> str:
        """``## Replies`` section; replies are quoted at their declared depth."""
        parts = [f"\n\n---\n\n## Replies ({count_comments(replies)})\n\n"]
        for reply, level in walk_thread(replies, use_declared_depth=True):
            parts.append(self.render_comment(reply, post_author, level))
        return "".join(parts)

    def render_parent_context(self, parents: Sequence[Comment], post_author: str | None = None) -> str:
        """Collapsible callout with the ancestors of a comment, nearest first.

        The i-th ancestor is quoted once more than the callout itself, so the
        closest parent is the least indented. Bodies are truncated.
        """
        count = len(parents)
        plural = "" if count == 1 else "s"
        lines = [f"> [!note]- Parent Context ({count} comment{plural})"]
        for position, parent in enumerate(parents):
            prefix = QUOTE * (position + 1)
            lines.append(prefix)
            lines.append(f"{prefix}{author_line(parent, post_author)}")
            lines.append(prefix)
            body = truncate_text(parent.body, self.parent_context_max_chars)
            lines.extend(prefix + line for line in convert_reddit_markdown(body).split("\n"))
        return "\n".join(lines) + "\n\n"
