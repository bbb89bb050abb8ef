"""Typed records for Reddit posts and comments plus derived media values."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Union

KIND_COMMENT = "t1"
KIND_POST = "t3"
MAX_REPLY_DEPTH = 5


class ContentOrigin(str, Enum):
    """Why an item entered the pipeline."""

    SAVED = "saved"
    UPVOTED = "upvoted"
    SUBMITTED = "submitted"
    COMMENTED = "commented"


class MediaKind(str, Enum):
    IMAGE = "image"
    REDDIT_IMAGE = "reddit-image"
    REDDIT_VIDEO = "reddit-video"
    IMGUR = "imgur"
    VIDEO = "video"
    YOUTUBE = "youtube"
    GIF_PLATFORM = "gif-platform"


@dataclass(slots=True, frozen=True)
class MediaInfo:
    """Classification of a post's external URL.

    ``type`` is the coarse bucket (image, video, gif, link) while
    ``media_kind`` names the host family, or ``None`` for plain links.
    """

    type: str = "link"
    media_kind: MediaKind | None = None
    is_media: bool = False
    domain: str = ""
    can_embed: bool = False


@dataclass(slots=True, frozen=True)
class GalleryImage:
    media_id: str
    url: str
    index: int
    caption: str | None = None
    width: int | None = None
    height: int | None = None
    is_animated: bool = False
    mp4_url: str | None = None
    outbound_url: str | None = None


@dataclass(slots=True, frozen=True)
class PreviewImage:
    url: str
    width: int | None = None
    height: int | None = None


@dataclass(slots=True, frozen=True)
class GalleryEntry:
    media_id: str
    caption: str | None = None
    outbound_url: str | None = None


@dataclass(slots=True, frozen=True)
class MediaMetadata:
    """One entry of Reddit's ``media_metadata`` side table."""

    media_id: str
    status: str | None = None
    encoding: str | None = None
    source_url: str | None = None
    gif_url: str | None = None
    mp4_url: str | None = None
    width: int | None = None
    height: int | None = None
    preview_urls: tuple[str, ...] = ()


@dataclass(slots=True)
class GalleryDescriptor:
    items: list[GalleryEntry] = field(default_factory=list)
    metadata: dict[str, MediaMetadata] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PollOption:
    id: str
    text: str
    vote_count: int | None = None


@dataclass(slots=True)
class PollData:
    options: list[PollOption] = field(default_factory=list)
    total_vote_count: int = 0
    voting_end_timestamp: float | None = None
    user_selection: str | None = None


@dataclass(slots=True, frozen=True)
class Award:
    name: str
    count: int = 1


@dataclass(slots=True, kw_only=True)
class ItemBase:
    """Fields shared by posts and comments."""

    id: str
    author: str = "[deleted]"
    subreddit: str = ""
    created_utc: float = 0.0
    score: int = 0
    permalink: str = ""
    name: str = ""
    distinguished: str | None = None
    edited: bool | float = False
    archived: bool = False
    locked: bool = False

    @property
    def fullname(self) -> str:
        return self.name or f"{self.kind}_{self.id}"

    @property
    def kind(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError


@dataclass(slots=True, kw_only=True)
class Post(ItemBase):
    title: str = ""
    selftext: str = ""
    url: str | None = None
    domain: str = ""
    link_flair_text: str | None = None
    num_comments: int = 0
    upvote_ratio: float | None = None
    is_self: bool = False
    preview: list[PreviewImage] = field(default_factory=list)
    is_gallery: bool = False
    gallery: GalleryDescriptor | None = None
    poll: PollData | None = None
    crosspost_parent: str | None = None
    crosspost_parent_list: list[Post] = field(default_factory=list)
    stickied: bool = False
    spoiler: bool = False
    over_18: bool = False
    total_awards_received: int = 0
    awardings: list[Award] = field(default_factory=list)
    gilded: int = 0
    contest_mode: bool = False
    suggested_sort: str | None = None

    @property
    def kind(self) -> str:
        return KIND_POST

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> Post:
        crossposts = [
            cls.from_data(parent)
            for parent in data.get("crosspost_parent_list") or []
            if isinstance(parent, dict)
        ]
        return cls(
            **_base_fields(data),
            title=str(data.get("title") or ""),
            selftext=str(data.get("selftext") or ""),
            url=data.get("url_overridden_by_dest") or data.get("url") or None,
            domain=str(data.get("domain") or ""),
            link_flair_text=data.get("link_flair_text") or None,
            num_comments=_as_int(data.get("num_comments")),
            upvote_ratio=_as_float(data.get("upvote_ratio")),
            is_self=bool(data.get("is_self")),
            preview=_parse_preview(data.get("preview")),
            is_gallery=bool(data.get("is_gallery")),
            gallery=_parse_gallery(data.get("gallery_data"), data.get("media_metadata")),
            poll=_parse_poll(data.get("poll_data")),
            crosspost_parent=data.get("crosspost_parent") or None,
            crosspost_parent_list=crossposts,
            stickied=bool(data.get("stickied")),
            spoiler=bool(data.get("spoiler")),
            over_18=bool(data.get("over_18")),
            total_awards_received=_as_int(data.get("total_awards_received")),
            awardings=_parse_awards(data.get("all_awardings")),
            gilded=_as_int(data.get("gilded")),
            contest_mode=bool(data.get("contest_mode")),
            suggested_sort=data.get("suggested_sort") or None,
        )


@dataclass(slots=True, kw_only=True)
class Comment(ItemBase):
    body: str = ""
    parent_id: str | None = None
    link_id: str | None = None
    link_title: str = ""
    link_permalink: str = ""
    link_author: str | None = None
    depth: int | None = None
    is_submitter: bool = False
    parent_comments: list[Comment] = field(default_factory=list)
    replies: list[Comment] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return KIND_COMMENT

    @classmethod
    def from_data(cls, data: dict[str, Any], *, depth: int | None = None) -> Comment:
        declared_depth = data.get("depth")
        if depth is None and isinstance(declared_depth, int) and declared_depth >= 0:
            depth = declared_depth
        return cls(
            **_base_fields(data),
            body=str(data.get("body") or ""),
            parent_id=data.get("parent_id") or None,
            link_id=data.get("link_id") or None,
            link_title=str(data.get("link_title") or ""),
            link_permalink=_link_path(data.get("link_permalink")),
            link_author=data.get("link_author") or None,
            depth=depth,
            is_submitter=bool(data.get("is_submitter")),
        )


Item = Union[Post, Comment]


def parse_item(thing: dict[str, Any]) -> Item:
    """Build a :class:`Post` or :class:`Comment` from a ``{"kind", "data"}`` thing."""
    kind = thing.get("kind")
    data = thing.get("data")
    if not isinstance(data, dict):
        raise ValueError(f"Reddit thing has no data payload: {thing!r:.80}")
    if kind == KIND_POST:
        return Post.from_data(data)
    if kind == KIND_COMMENT:
        return Comment.from_data(data)
    raise ValueError(f"Unsupported Reddit thing kind: {kind!r}")


def listing_children(listing: Any) -> list[dict[str, Any]]:
    if not isinstance(listing, dict):
        return []
    data = listing.get("data")
    if not isinstance(data, dict):
        return []
    children = data.get("children") or []
    return [child for child in children if isinstance(child, dict)]


def parse_comment_tree(
    children: Iterable[dict[str, Any]],
    *,
    depth: int = 0,
    max_depth: int = MAX_REPLY_DEPTH,
    upvote_threshold: int = 0,
) -> List[Comment]:
    """Turn a raw comment listing into a nested :class:`Comment` tree.

    ``more`` placeholders are dropped, as are comments scoring below
    ``upvote_threshold``. Replies deeper than ``max_depth`` are not parsed.
    """
    comments: List[Comment] = []
    for child in children:
        if child.get("kind") != KIND_COMMENT:
            continue
        data = child.get("data")
        if not isinstance(data, dict):
            continue
        if _as_int(data.get("score")) < upvote_threshold:
            continue
        comment = Comment.from_data(data, depth=depth)
        if depth < max_depth:
            comment.replies = parse_comment_tree(
                listing_children(data.get("replies")),
                depth=depth + 1,
                max_depth=max_depth,
                upvote_threshold=upvote_threshold,
            )
        comments.append(comment)
    return comments


def _base_fields(data: dict[str, Any]) -> dict[str, Any]:
    item_id = data.get("id")
    if not item_id:
        raise ValueError("Reddit item is missing its id")
    edited = data.get("edited")
    if isinstance(edited, bool) or edited is None:
        edited_value: bool | float = bool(edited)
    else:
        edited_value = _as_float(edited) or False
    return {
        "id": str(item_id),
        "author": str(data.get("author") or "[deleted]"),
        "subreddit": str(data.get("subreddit") or ""),
        "created_utc": _as_float(data.get("created_utc")) or 0.0,
        "score": _as_int(data.get("score")),
        "permalink": str(data.get("permalink") or ""),
        "name": str(data.get("name") or ""),
        "distinguished": data.get("distinguished") or None,
        "edited": edited_value,
        "archived": bool(data.get("archived")),
        "locked": bool(data.get("locked")),
    }


def _link_path(value: Any) -> str:
    if not value:
        return ""
    link = str(value)
    for prefix in ("https://www.reddit.com", "https://reddit.com", "https://old.reddit.com"):
        if link.startswith(prefix):
            return link[len(prefix):]
    return link


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_preview(preview: Any) -> list[PreviewImage]:
    if not isinstance(preview, dict):
        return []
    images: list[PreviewImage] = []
    for image in preview.get("images") or []:
        source = image.get("source") if isinstance(image, dict) else None
        if not isinstance(source, dict) or not source.get("url"):
            continue
        images.append(
            PreviewImage(
                url=str(source["url"]),
                width=_as_optional_int(source.get("width")),
                height=_as_optional_int(source.get("height")),
            )
        )
    return images


def _parse_gallery(gallery_data: Any, media_metadata: Any) -> GalleryDescriptor | None:
    if not isinstance(gallery_data, dict):
        return None
    entries: list[GalleryEntry] = []
    for raw in gallery_data.get("items") or []:
        if not isinstance(raw, dict) or not raw.get("media_id"):
            continue
        entries.append(
            GalleryEntry(
                media_id=str(raw["media_id"]),
                caption=raw.get("caption") or None,
                outbound_url=raw.get("outbound_url") or None,
            )
        )
    metadata: dict[str, MediaMetadata] = {}
    if isinstance(media_metadata, dict):
        for media_id, raw in media_metadata.items():
            if not isinstance(raw, dict):
                continue
            source = raw.get("s") if isinstance(raw.get("s"), dict) else {}
            previews = tuple(
                str(p["u"]) for p in raw.get("p") or [] if isinstance(p, dict) and p.get("u")
            )
            metadata[str(media_id)] = MediaMetadata(
                media_id=str(media_id),
                status=raw.get("status"),
                encoding=raw.get("e"),
                source_url=source.get("u"),
                gif_url=source.get("gif"),
                mp4_url=source.get("mp4"),
                width=_as_optional_int(source.get("x")),
                height=_as_optional_int(source.get("y")),
                preview_urls=previews,
            )
    return GalleryDescriptor(items=entries, metadata=metadata)


def _parse_poll(poll_data: Any) -> PollData | None:
    if not isinstance(poll_data, dict):
        return None
    options = [
        PollOption(
            id=str(raw.get("id") or ""),
            text=str(raw.get("text") or ""),
            vote_count=_as_optional_int(raw.get("vote_count")),
        )
        for raw in poll_data.get("options") or []
        if isinstance(raw, dict)
    ]
    return PollData(
        options=options,
        total_vote_count=_as_int(poll_data.get("total_vote_count")),
        voting_end_timestamp=_as_float(poll_data.get("voting_end_timestamp")),
        user_selection=poll_data.get("user_selection") or None,
    )


def _parse_awards(raw_awards: Any) -> list[Award]:
    awards: list[Award] = []
    for raw in raw_awards or []:
        if isinstance(raw, dict) and raw.get("name"):
            awards.append(Award(name=str(raw["name"]), count=_as_int(raw.get("count")) or 1))
    return awards
