"""Include/exclude rules deciding which items become notes."""
from __future__ import annotations

import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .media import analyze_post_media
from .models import Comment, Item, Post

logger = logging.getLogger(__name__)

FILTER_MODES = ("include", "exclude")
POST_TYPES = ("text", "link", "image", "video")
DATE_PRESETS = ("all", "last_day", "last_week", "last_month", "last_year", "custom")
DAY_SECONDS = 24 * 60 * 60
PRESET_WINDOWS = {
    "last_day": DAY_SECONDS,
    "last_week": 7 * DAY_SECONDS,
    "last_month": 30 * DAY_SECONDS,
    "last_year": 365 * DAY_SECONDS,
}
FILTER_KINDS = (
    "subreddit",
    "score",
    "date",
    "postType",
    "content",
    "author",
    "domain",
    "nsfw",
    "commentCount",
)


def normalize_tokens(values: Iterable[str] | None) -> List[str]:
    if not values:
        return []
    return [token for token in (str(raw).strip().lower() for raw in values) if token]


def _check_mode(name: str, mode: str) -> str:
    normalized = str(mode).strip().lower()
    if normalized not in FILTER_MODES:
        raise ValueError(f"Unsupported {name}: {mode} (choose include or exclude)")
    return normalized


@dataclass(slots=True)
class FilterSettings:
    """Which items to keep. The defaults keep everything."""

    subreddits: List[str] = field(default_factory=list)
    subreddit_mode: str = "exclude"
    subreddit_regex: str | re.Pattern[str] | None = None
    authors: List[str] = field(default_factory=list)
    author_mode: str = "exclude"
    min_score: int | None = None
    max_score: int | None = None
    min_upvote_ratio: float | None = None
    include_post_types: Tuple[str, ...] = POST_TYPES
    include_posts: bool = True
    include_comments: bool = True
    date_preset: str = "all"
    date_start: float | None = None
    date_end: float | None = None
    min_comments: int | None = None
    max_comments: int | None = None
    domains: List[str] = field(default_factory=list)
    domain_mode: str = "exclude"
    flairs: List[str] = field(default_factory=list)
    flair_mode: str = "include"
    title_keywords: List[str] = field(default_factory=list)
    title_mode: str = "include"
    content_keywords: List[str] = field(default_factory=list)
    content_mode: str = "include"
    exclude_nsfw: bool = False

    def __post_init__(self) -> None:
        self.subreddits = [name.removeprefix("r/") for name in normalize_tokens(self.subreddits)]
        self.authors = [name.removeprefix("u/") for name in normalize_tokens(self.authors)]
        self.domains = normalize_tokens(self.domains)
        self.flairs = normalize_tokens(self.flairs)
        self.title_keywords = normalize_tokens(self.title_keywords)
        self.content_keywords = normalize_tokens(self.content_keywords)
        self.subreddit_mode = _check_mode("subreddit_mode", self.subreddit_mode)
        self.author_mode = _check_mode("author_mode", self.author_mode)
        self.domain_mode = _check_mode("domain_mode", self.domain_mode)
        self.flair_mode = _check_mode("flair_mode", self.flair_mode)
        self.title_mode = _check_mode("title_mode", self.title_mode)
        self.content_mode = _check_mode("content_mode", self.content_mode)

        if isinstance(self.subreddit_regex, str):
            if self.subreddit_regex.strip():
                try:
                    self.subreddit_regex = re.compile(self.subreddit_regex, re.IGNORECASE)
                except re.error as exc:
                    raise ValueError(f"Invalid subreddit regex {self.subreddit_regex!r}: {exc}") from exc
            else:
                self.subreddit_regex = None

        post_types = tuple(normalize_tokens(self.include_post_types))
        unknown = [token for token in post_types if token not in POST_TYPES]
        if unknown:
            raise ValueError(f"Unsupported post types: {unknown}. Allowed: {', '.join(POST_TYPES)}")
        if not post_types:
            raise ValueError("include_post_types must name at least one post type")
        self.include_post_types = post_types
        if not self.include_posts and not self.include_comments:
            raise ValueError("Excluding both posts and comments leaves nothing to export")

        if self.date_preset not in DATE_PRESETS:
            raise ValueError(f"Unsupported date preset: {self.date_preset}")
        if self.date_start is not None and self.date_end is not None and self.date_start > self.date_end:
            raise ValueError("date_start must not be after date_end")
        if self.min_score is not None and self.max_score is not None and self.min_score > self.max_score:
            raise ValueError("min_score must not exceed max_score")
        if self.min_comments is not None and self.max_comments is not None and self.min_comments > self.max_comments:
            raise ValueError("min_comments must not exceed max_comments")
        if self.min_upvote_ratio is not None and not 0 <= self.min_upvote_ratio <= 1:
            raise ValueError("min_upvote_ratio must be between 0 and 1")

    @property
    def active(self) -> bool:
        return self != FilterSettings()


@dataclass(slots=True, frozen=True)
class FilterResult:
    passes: bool
    reason: str = ""
    kind: str = ""


PASS = FilterResult(True)


@dataclass(slots=True)
class FilterReport:
    passed: List[Item] = field(default_factory=list)
    filtered: List[Tuple[Item, FilterResult]] = field(default_factory=list)
    breakdown: Counter = field(default_factory=Counter)


def determine_post_type(post: Post) -> str:
    """``text``, ``image``, ``video`` or ``link``; GIFs count as images."""
    if post.is_self:
        return "text"
    media_type = analyze_post_media(post).type
    if media_type == "video":
        return "video"
    if media_type in {"image", "gif"}:
        return "image"
    return "link"


def _matches_list(mode: str, matched: bool) -> bool:
    """Whether an item passes a list rule in ``mode`` given whether it matched."""
    return matched if mode == "include" else not matched


class FilterEngine:
    """Applies :class:`FilterSettings` to posts and comments.

    Rules run in a fixed order and the first failing rule decides the
    result, so every filtered item is counted under exactly one kind.
    """

    def __init__(self, settings: FilterSettings | None = None) -> None:
        self.settings = settings or FilterSettings()

    def check(self, item: Item, *, now: float | None = None) -> FilterResult:
        now = time.time() if now is None else now
        checks = (
            lambda: self._check_post_type(item),
            lambda: self._check_nsfw(item),
            lambda: self._check_subreddit(item),
            lambda: self._check_author(item),
            lambda: self._check_score(item),
            lambda: self._check_date(item, now),
            lambda: self._check_comment_count(item),
            lambda: self._check_domain(item),
            lambda: self._check_flair(item),
            lambda: self._check_title(item),
            lambda: self._check_content(item),
        )
        for run in checks:
            result = run()
            if not result.passes:
                return result
        return PASS

    def filter_items(self, items: Iterable[Item], *, now: float | None = None) -> FilterReport:
        report = FilterReport()
        for item in items:
            result = self.check(item, now=now)
            if result.passes:
                report.passed.append(item)
                continue
            logger.debug("Filtered %s: %s", item.id, result.reason)
            report.filtered.append((item, result))
            report.breakdown[result.kind] += 1
        return report

    def _check_post_type(self, item: Item) -> FilterResult:
        settings = self.settings
        if isinstance(item, Comment):
            if not settings.include_comments:
                return FilterResult(False, "Comments excluded", "postType")
            return PASS
        if not settings.include_posts:
            return FilterResult(False, "Posts excluded", "postType")
        post_type = determine_post_type(item)
        if post_type not in settings.include_post_types:
            return FilterResult(False, f"Post type '{post_type}' excluded", "postType")
        return PASS

    def _check_nsfw(self, item: Item) -> FilterResult:
        if self.settings.exclude_nsfw and getattr(item, "over_18", False):
            return FilterResult(False, "NSFW content excluded", "nsfw")
        return PASS

    def _check_subreddit(self, item: Item) -> FilterResult:
        settings = self.settings
        subreddit = item.subreddit.lower()
        regex = settings.subreddit_regex
        if regex is not None:
            matched = bool(regex.search(subreddit))
            if not _matches_list(settings.subreddit_mode, matched):
                reason = (
                    f"Subreddit 'r/{item.subreddit}' doesn't match regex pattern"
                    if settings.subreddit_mode == "include"
                    else f"Subreddit 'r/{item.subreddit}' matches excluded regex pattern"
                )
                return FilterResult(False, reason, "subreddit")
        if settings.subreddits:
            matched = subreddit in settings.subreddits
            if not _matches_list(settings.subreddit_mode, matched):
                where = "not in include list" if settings.subreddit_mode == "include" else "in exclude list"
                return FilterResult(False, f"Subreddit 'r/{item.subreddit}' {where}", "subreddit")
        return PASS

    def _check_author(self, item: Item) -> FilterResult:
        settings = self.settings
        if not settings.authors:
            return PASS
        matched = item.author.lower() in settings.authors
        if not _matches_list(settings.author_mode, matched):
            where = "not in include list" if settings.author_mode == "include" else "in exclude list"
            return FilterResult(False, f"Author 'u/{item.author}' {where}", "author")
        return PASS

    def _check_score(self, item: Item) -> FilterResult:
        settings = self.settings
        if settings.min_score is not None and item.score < settings.min_score:
            return FilterResult(False, f"Score {item.score} below minimum {settings.min_score}", "score")
        if settings.max_score is not None and item.score > settings.max_score:
            return FilterResult(False, f"Score {item.score} above maximum {settings.max_score}", "score")
        ratio = getattr(item, "upvote_ratio", None)
        if settings.min_upvote_ratio is not None and ratio is not None and ratio < settings.min_upvote_ratio:
            return FilterResult(
                False,
                f"Upvote ratio {ratio:.0%} below minimum {settings.min_upvote_ratio:.0%}",
                "score",
            )
        return PASS

    def _check_date(self, item: Item, now: float) -> FilterResult:
        settings = self.settings
        created = item.created_utc
        window = PRESET_WINDOWS.get(settings.date_preset)
        if window is not None and created < now - window:
            label = settings.date_preset.replace("_", " ")
            return FilterResult(False, f"Item is older than {label}", "date")
        if settings.date_preset == "custom":
            if settings.date_start is not None and created < settings.date_start:
                return FilterResult(False, "Item is before start date", "date")
            if settings.date_end is not None and created > settings.date_end:
                return FilterResult(False, "Item is after end date", "date")
        return PASS

    def _check_comment_count(self, item: Item) -> FilterResult:
        if not isinstance(item, Post):
            return PASS
        settings = self.settings
        count = item.num_comments
        if settings.min_comments is not None and count < settings.min_comments:
            return FilterResult(
                False, f"Comment count {count} below minimum {settings.min_comments}", "commentCount"
            )
        if settings.max_comments is not None and count > settings.max_comments:
            return FilterResult(
                False, f"Comment count {count} above maximum {settings.max_comments}", "commentCount"
            )
        return PASS

    def _check_domain(self, item: Item) -> FilterResult:
        settings = self.settings
        if not isinstance(item, Post) or item.is_self or not item.domain or not settings.domains:
            return PASS
        domain = item.domain.lower()
        matched = any(domain == entry or domain.endswith(f".{entry}") for entry in settings.domains)
        if not _matches_list(settings.domain_mode, matched):
            where = "not in include list" if settings.domain_mode == "include" else "in exclude list"
            return FilterResult(False, f"Domain '{item.domain}' {where}", "domain")
        return PASS

    def _check_flair(self, item: Item) -> FilterResult:
        settings = self.settings
        if not isinstance(item, Post) or not settings.flairs:
            return PASS
        flair = (item.link_flair_text or "").lower()
        matched = bool(flair) and any(entry in flair for entry in settings.flairs)
        if settings.flair_mode == "include" and not flair:
            return FilterResult(False, "Post has no flair (flair filter active)", "content")
        if not _matches_list(settings.flair_mode, matched):
            where = "not in include list" if settings.flair_mode == "include" else "in exclude list"
            return FilterResult(False, f"Flair '{item.link_flair_text}' {where}", "content")
        return PASS

    def _check_title(self, item: Item) -> FilterResult:
        settings = self.settings
        if not settings.title_keywords:
            return PASS
        title = (item.link_title if isinstance(item, Comment) else item.title).lower()
        matched = any(keyword in title for keyword in settings.title_keywords)
        if not _matches_list(settings.title_mode, matched):
            reason = (
                "Title does not contain required keywords"
                if settings.title_mode == "include"
                else "Title contains excluded keywords"
            )
            return FilterResult(False, reason, "content")
        return PASS

    def _check_content(self, item: Item) -> FilterResult:
        settings = self.settings
        if not settings.content_keywords:
            return PASS
        content = (item.body if isinstance(item, Comment) else item.selftext).lower()
        if not content:
            if settings.content_mode == "include":
                return FilterResult(False, "No content to search for keywords", "content")
            return PASS
        matched = any(keyword in content for keyword in settings.content_keywords)
        if not _matches_list(settings.content_mode, matched):
            reason = (
                "Content does not contain required keywords"
                if settings.content_mode == "include"
                else "Content contains excluded keywords"
            )
            return FilterResult(False, reason, "content")
        return PASS
