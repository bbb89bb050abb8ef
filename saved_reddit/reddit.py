"""Public Reddit JSON endpoints: threads, comment context, replies and user listings."""
from __future__ import annotations

import logging
import time
from typing import Any, List
from urllib.parse import urlparse

import requests

from .models import (
    KIND_COMMENT,
    KIND_POST,
    MAX_REPLY_DEPTH,
    Comment,
    Item,
    Post,
    listing_children,
    parse_comment_tree,
    parse_item,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "saved-reddit/0.1 (markdown note exporter)"
BASE_URL = "https://www.reddit.com"
LISTING_PAGE_SIZE = 100
MIN_DELAY_SECONDS = 1.0
USER_SECTIONS = ("submitted", "comments")


def build_session(user_agent: str = DEFAULT_USER_AGENT, verify: bool = True) -> requests.Session:
    """Session for Reddit's public ``.json`` endpoints, identified by ``user_agent``."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent or DEFAULT_USER_AGENT
    session.headers["Accept"] = "application/json"
    session.verify = verify
    return session


def fetch_json(
    session: requests.Session,
    url: str,
    *,
    params: dict | None = None,
    retries: int = 3,
    backoff: float = 1.0,
) -> Any:
    """GET ``url`` and decode JSON, retrying with exponential backoff.

    HTTP 429 responses do not use up an attempt; they wait a minute (growing
    by a minute each time) before trying again.
    """
    last_exc: Exception | None = None
    attempt = 0
    rate_limit_wait = 60
    while attempt < retries:
        try:
            response = session.get(url, params=params, timeout=30)
        except requests.exceptions.RequestException as exc:
            attempt += 1
            last_exc = exc
            if attempt >= retries:
                break
            _retry_pause(url, attempt, retries, backoff, "Request error", exc)
            continue

        if response.status_code == 429:
            last_exc = RuntimeError("HTTP 429 Too Many Requests")
            logger.warning(
                "Rate limited fetching %s; waiting %d seconds before retrying.",
                url,
                rate_limit_wait,
            )
            time.sleep(rate_limit_wait)
            rate_limit_wait += 60
            continue

        attempt += 1
        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as exc:
            last_exc = exc
            label = "HTTP error"
        except ValueError as exc:
            last_exc = exc
            label = "Failed to decode JSON"
        if attempt >= retries:
            break
        _retry_pause(url, attempt, retries, backoff, label, last_exc)
    raise RuntimeError(f"Failed to fetch {url!r}: {last_exc}") from last_exc


def _retry_pause(
    url: str, attempt: int, retries: int, backoff: float, label: str, exc: Exception | None
) -> None:
    wait_time = backoff * (2 ** (attempt - 1))
    logger.warning(
        "%s fetching %s (attempt %d/%d): %s; retrying in %.1f seconds",
        label,
        url,
        attempt,
        retries,
        exc,
        wait_time,
    )
    time.sleep(wait_time)


def normalize_permalink(link: str) -> str:
    """Reduce a Reddit URL or permalink to its path, e.g. ``/r/python/comments/abc/title``."""
    parsed = urlparse(link.strip())
    path = parsed.path if parsed.netloc or link.strip().startswith("/") else f"/{parsed.path}"
    path = path.rstrip("/")
    if path.endswith(".json"):
        path = path[: -len(".json")]
    if not path:
        raise ValueError(f"Not a Reddit permalink: {link!r}")
    return path


def permalink_json_url(link: str) -> str:
    return f"{BASE_URL}{normalize_permalink(link)}.json"


def is_comment_permalink(link: str) -> bool:
    """``/r/<sub>/comments/<post>/<slug>/<comment>`` has a comment id as its sixth segment."""
    segments = [segment for segment in normalize_permalink(link).split("/") if segment]
    return len(segments) >= 6 and segments[2] == "comments"


def _thread_parts(payload: Any, url: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    if not isinstance(payload, list) or len(payload) < 2:
        raise ValueError(f"Unexpected thread payload from {url}")
    post_children = listing_children(payload[0])
    if not post_children or post_children[0].get("kind") != KIND_POST:
        raise ValueError(f"Thread payload from {url} has no post")
    return post_children[0], listing_children(payload[1])


def fetch_post_thread(
    session: requests.Session,
    permalink: str,
    *,
    upvote_threshold: int = 0,
    max_depth: int = MAX_REPLY_DEPTH,
    comment_limit: int = LISTING_PAGE_SIZE,
) -> tuple[Post, List[Comment]]:
    """Fetch a post and its comment tree, top comments first."""
    url = permalink_json_url(permalink)
    params = {"raw_json": 1, "limit": comment_limit, "depth": max_depth, "sort": "top"}
    payload = fetch_json(session, url, params=params)
    post_thing, comment_children = _thread_parts(payload, url)
    post = Post.from_data(post_thing["data"])
    comments = parse_comment_tree(
        comment_children, max_depth=max_depth, upvote_threshold=upvote_threshold
    )
    logger.info("Fetched post %s with %d top-level comment(s)", post.id, len(comments))
    return post, comments


def _comment_id(permalink: str) -> str:
    return normalize_permalink(permalink).rsplit("/", 1)[-1]


def _attach_post(comment: Comment, post_data: dict[str, Any]) -> None:
    if not comment.link_title:
        comment.link_title = str(post_data.get("title") or "")
    if not comment.link_author:
        comment.link_author = post_data.get("author") or None
    if not comment.link_permalink:
        comment.link_permalink = str(post_data.get("permalink") or "")


def fetch_comment_with_context(
    session: requests.Session,
    permalink: str,
    *,
    context_depth: int = 3,
) -> Comment:
    """Fetch a comment together with up to ``context_depth`` ancestors.

    Reddit returns the chain root first; ``parent_comments`` is stored
    nearest first and ``depth`` is the number of ancestors found.
    """
    depth = max(1, min(int(context_depth), 10))
    url = permalink_json_url(permalink)
    payload = fetch_json(session, url, params={"raw_json": 1, "context": depth})
    post_thing, comment_children = _thread_parts(payload, url)
    target_id = _comment_id(permalink)

    stack: list[tuple[dict[str, Any], list[dict[str, Any]]]] = [
        (child, []) for child in reversed(comment_children)
    ]
    while stack:
        child, ancestors = stack.pop()
        if child.get("kind") != KIND_COMMENT:
            continue
        data = child.get("data") or {}
        if data.get("id") == target_id:
            comment = Comment.from_data(data, depth=len(ancestors))
            comment.parent_comments = [Comment.from_data(parent) for parent in reversed(ancestors)]
            _attach_post(comment, post_thing["data"])
            return comment
        replies = listing_children(data.get("replies"))
        stack.extend((reply, ancestors + [data]) for reply in reversed(replies))
    raise ValueError(f"Comment {target_id} not found in {url}")


def fetch_comment_replies(
    session: requests.Session,
    permalink: str,
    *,
    max_depth: int = 2,
) -> List[Comment]:
    """Replies below a comment, depth-annotated from 1 and cut off at ``max_depth``."""
    depth = max(1, min(int(max_depth), MAX_REPLY_DEPTH))
    url = permalink_json_url(permalink)
    payload = fetch_json(session, url, params={"raw_json": 1, "depth": depth + 1, "limit": LISTING_PAGE_SIZE})
    _, comment_children = _thread_parts(payload, url)
    target_id = _comment_id(permalink)
    for child in comment_children:
        data = child.get("data") or {}
        if child.get("kind") == KIND_COMMENT and data.get("id") == target_id:
            return parse_comment_tree(
                listing_children(data.get("replies")), depth=1, max_depth=depth
            )
    return []


def fetch_user_items(
    session: requests.Session,
    username: str,
    section: str,
    *,
    limit: int | None = None,
    delay: float = MIN_DELAY_SECONDS,
) -> List[Item]:
    """Page through a user's public ``submitted`` or ``comments`` listing."""
    if section not in USER_SECTIONS:
        raise ValueError(f"Unsupported user section: {section}")
    url = f"{BASE_URL}/user/{username}/{section}.json"
    delay = max(delay, MIN_DELAY_SECONDS)
    items: List[Item] = []
    cursor: str | None = None

    while limit is None or len(items) < limit:
        page_size = LISTING_PAGE_SIZE if limit is None else min(LISTING_PAGE_SIZE, limit - len(items))
        params: dict[str, Any] = {"raw_json": 1, "limit": page_size}
        if cursor:
            params["after"] = cursor
            time.sleep(delay)
        listing = fetch_json(session, url, params=params)
        children = listing_children(listing)
        for child in children:
            try:
                items.append(parse_item(child))
            except ValueError as exc:
                logger.warning("Skipping listing entry for u/%s: %s", username, exc)
        cursor = (listing.get("data") or {}).get("after") if isinstance(listing, dict) else None
        if not children or not cursor:
            break

    if limit is not None:
        items = items[:limit]
    logger.info("Fetched %d item(s) from u/%s/%s", len(items), username, section)
    return items


def items_from_payload(payload: Any) -> List[Item]:
    """Items from saved Reddit JSON: a thing, a listing, a list of either, or a thread."""
    if isinstance(payload, dict) and payload.get("kind") == "Listing":
        return [parse_item(child) for child in listing_children(payload)]
    if isinstance(payload, dict):
        return [parse_item(payload)]
    if isinstance(payload, list):
        if len(payload) == 2 and all(isinstance(part, dict) and part.get("kind") == "Listing" for part in payload):
            # A saved thread: only the post itself is an item.
            return [parse_item(child) for child in listing_children(payload[0])]
        items: List[Item] = []
        for entry in payload:
            items.extend(items_from_payload(entry))
        return items
    raise ValueError("Unrecognised Reddit JSON payload")
