"""Ordered YAML-style metadata block placed at the top of every note."""
from __future__ import annotations

from typing import Any, Iterator, List, Sequence, Tuple

from .comments import count_comments
from .config import FormatterSettings
from .crosspost import crosspost_origin, effective_item, is_crosspost
from .markdown import REDDIT_WEB_URL, format_date, format_timestamp
from .media import extract_gallery_images, is_gallery_post, unescape_media_url
from .models import Comment, ContentOrigin, GalleryImage, Item, MediaInfo, Post

FRONTMATTER_TYPE_POST = "reddit-post"
FRONTMATTER_TYPE_COMMENT = "reddit-comment"
FRONTMATTER_TYPE_UPVOTED = "reddit-upvoted"
FRONTMATTER_TYPE_USER_POST = "reddit-user-post"
FRONTMATTER_TYPE_USER_COMMENT = "reddit-user-comment"


def frontmatter_type(is_comment: bool, origin: ContentOrigin) -> str:
    if origin is ContentOrigin.UPVOTED:
        return FRONTMATTER_TYPE_UPVOTED
    if origin is ContentOrigin.SUBMITTED:
        return FRONTMATTER_TYPE_USER_COMMENT if is_comment else FRONTMATTER_TYPE_USER_POST
    if origin is ContentOrigin.COMMENTED:
        return FRONTMATTER_TYPE_USER_COMMENT
    return FRONTMATTER_TYPE_COMMENT if is_comment else FRONTMATTER_TYPE_POST


def parent_type(parent_id: str) -> str:
    """``comment`` for ``t1_`` fullnames, ``post`` for anything else."""
    return "comment" if parent_id.startswith("t1_") else "post"


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\r", " ").replace("\n", " ")
    return f'"{escaped}"'


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_edited(edited: bool | float) -> str:
    if isinstance(edited, bool):
        return "true"
    return format_timestamp(edited) or "true"


class Frontmatter:
    """Insertion-ordered key/value lines rendered between ``---`` fences."""

    def __init__(self) -> None:
        self._entries: List[Tuple[str, str]] = []

    def add(self, key: str, value: Any) -> None:
        self._entries.append((key, format_value(value)))

    def add_quoted(self, key: str, text: str) -> None:
        self._entries.append((key, quote(text)))

    def get(self, key: str) -> str | None:
        for existing, value in self._entries:
            if existing == key:
                return value
        return None

    def keys(self) -> List[str]:
        return [key for key, _ in self._entries]

    def __contains__(self, key: object) -> bool:
        return any(existing == key for existing, _ in self._entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        lines = ["---"]
        lines.extend(f"{key}: {value}" for key, value in self._entries)
        lines.append("---")
        return "\n".join(lines) + "\n\n"


def build_frontmatter(
    item: Item,
    origin: ContentOrigin,
    settings: FormatterSettings,
    media_info: MediaInfo,
    *,
    comments: Sequence[Comment] = (),
    gallery_images: List[GalleryImage] | None = None,
) -> Frontmatter:
    """Derive the metadata block for ``item``.

    Content keys are read from the crosspost-resolved item; ``id`` and the
    crosspost provenance keys always describe ``item`` as it was given.
    """
    effective = effective_item(item, settings)
    is_comment = isinstance(item, Comment)
    fm = Frontmatter()

    fm.add("type", frontmatter_type(is_comment, origin))
    fm.add("content_origin", origin.value)
    fm.add("subreddit", effective.subreddit)
    fm.add("author", effective.author)
    fm.add("created", format_timestamp(effective.created_utc))
    fm.add("date", format_date(effective.created_utc))
    fm.add("permalink", f"{REDDIT_WEB_URL}{effective.permalink}")
    fm.add("id", item.id)

    if origin is ContentOrigin.SAVED:
        fm.add("saved", True)

    original = crosspost_origin(item)
    if original is not None and is_crosspost(item) and settings.preserve_crosspost_metadata:
        fm.add("is_crosspost", True)
        fm.add("crosspost_subreddit", item.subreddit)
        fm.add("original_subreddit", original.subreddit)
        fm.add("original_author", original.author)
        fm.add("original_id", original.id)

    if isinstance(effective, Post):
        _add_post_keys(fm, effective, media_info, comments, gallery_images)
    elif isinstance(effective, Comment):
        _add_comment_keys(fm, effective)
    return fm


def _add_post_keys(
    fm: Frontmatter,
    post: Post,
    media_info: MediaInfo,
    comments: Sequence[Comment],
    gallery_images: List[GalleryImage] | None,
) -> None:
    fm.add_quoted("title", post.title)
    fm.add("score", post.score)
    fm.add("num_comments", post.num_comments)
    fm.add("upvote_ratio", "unknown" if post.upvote_ratio is None else post.upvote_ratio)
    if post.link_flair_text:
        fm.add_quoted("flair", post.link_flair_text)

    is_gallery = is_gallery_post(post)
    if is_gallery:
        fm.add("post_type", "gallery")
    elif post.poll is not None:
        fm.add("post_type", "poll")
    elif post.is_self:
        fm.add("post_type", "text")
    elif post.url:
        fm.add("post_type", media_info.type)

    if post.url and not post.is_self:
        fm.add("url", post.url)
        if media_info.domain:
            fm.add("domain", media_info.domain)

    if media_info.is_media and media_info.media_kind is not None:
        fm.add("media_type", media_info.media_kind.value)
        if post.preview:
            fm.add("thumbnail", unescape_media_url(post.preview[0].url))

    if is_gallery:
        images = gallery_images if gallery_images is not None else extract_gallery_images(post)
        fm.add("gallery_count", len(images))

    if post.poll is not None:
        poll = post.poll
        fm.add("poll_total_votes", poll.total_vote_count)
        fm.add("poll_options_count", len(poll.options))
        if poll.voting_end_timestamp:
            # Poll deadlines are reported in milliseconds.
            fm.add("poll_ends", format_timestamp(poll.voting_end_timestamp / 1000))

    if comments:
        fm.add("exported_comments", count_comments(comments))

    _add_enrichment_keys(fm, post)


def _add_enrichment_keys(fm: Frontmatter, post: Post) -> None:
    if post.total_awards_received > 0:
        fm.add("total_awards", post.total_awards_received)
        if post.awardings:
            names = [
                f"{award.name} ({award.count})" if award.count > 1 else award.name
                for award in post.awardings
            ]
            fm.add("awards", f"[{', '.join(names)}]")
    if post.gilded > 0:
        fm.add("gilded", post.gilded)
    for key, flag in (
        ("stickied", post.stickied),
        ("spoiler", post.spoiler),
        ("archived", post.archived),
        ("locked", post.locked),
        ("nsfw", post.over_18),
        ("contest_mode", post.contest_mode),
    ):
        if flag:
            fm.add(key, True)
    if post.edited:
        fm.add("edited", format_edited(post.edited))
    if post.suggested_sort:
        fm.add("suggested_sort", post.suggested_sort)


def _add_comment_keys(fm: Frontmatter, comment: Comment) -> None:
    fm.add_quoted("post_title", comment.link_title)
    fm.add("score", comment.score)
    fm.add("is_submitter", comment.is_submitter)
    if comment.parent_id:
        fm.add("parent_id", comment.parent_id)
        fm.add("parent_type", parent_type(comment.parent_id))
    if comment.link_id:
        fm.add("link_id", comment.link_id)
    if comment.depth is not None:
        fm.add("depth", comment.depth)
    if comment.distinguished:
        fm.add("distinguished", comment.distinguished)
    if comment.edited:
        fm.add("edited", format_edited(comment.edited))
    if comment.archived:
        fm.add("archived", True)
    if comment.locked:
        fm.add("locked", True)
    if comment.parent_comments:
        fm.add("has_parent_context", True)
        fm.add("parent_context_count", len(comment.parent_comments))
    if comment.replies:
        fm.add("has_replies", True)
        fm.add("reply_count", count_comments(comment.replies))
