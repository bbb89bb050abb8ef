"""External link extraction and Wayback Machine lookups."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List
from urllib.parse import urlparse

import requests

from .models import Comment, Item, Post

logger = logging.getLogger(__name__)

WAYBACK_AVAILABLE_API = "https://archive.org/wayback/available"
WAYBACK_SAVE_URL = "https://web.archive.org/save/"
WAYBACK_TIMEOUT = 10

URL_PATTERN = re.compile(r"https?://[^\s)\]]+")
TRAILING_PUNCTUATION = re.compile(r"[.,;:!?]+$")
REDDIT_DOMAINS = (
    "reddit.com",
    "www.reddit.com",
    "old.reddit.com",
    "new.reddit.com",
    "i.redd.it",
    "v.redd.it",
    "preview.redd.it",
)


@dataclass(slots=True, frozen=True)
class ExternalLink:
    url: str
    source: str  # "url" or "body"
    domain: str


@dataclass(slots=True, frozen=True)
class WaybackResult:
    is_archived: bool
    archived_url: str | None = None
    timestamp: str | None = None
    error: str | None = None


def extract_domain(url: str) -> str | None:
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname or None


def is_reddit_domain(domain: str) -> bool:
    return any(domain == known or domain.endswith(f".{known}") for known in REDDIT_DOMAINS)


def extract_external_links(item: Item) -> List[ExternalLink]:
    """Non-Reddit links from a post's url field and from the item's text, de-duplicated."""
    links: List[ExternalLink] = []
    seen: set[str] = set()

    if isinstance(item, Post) and item.url and not item.is_self:
        domain = extract_domain(item.url)
        if domain and not is_reddit_domain(domain):
            links.append(ExternalLink(item.url, "url", domain))
            seen.add(item.url)

    text = item.selftext if isinstance(item, Post) else item.body if isinstance(item, Comment) else ""
    for match in URL_PATTERN.findall(text or ""):
        url = TRAILING_PUNCTUATION.sub("", match)
        if url in seen:
            continue
        domain = extract_domain(url)
        if domain and not is_reddit_domain(domain):
            links.append(ExternalLink(url, "body", domain))
            seen.add(url)
    return links


class LinkPreserver:
    """Render the external links section, optionally consulting the Wayback Machine."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        check_wayback: bool = False,
        include_archive_links: bool = True,
        timeout: float = WAYBACK_TIMEOUT,
    ) -> None:
        self.session = session
        self.check_wayback = check_wayback and session is not None
        self.include_archive_links = include_archive_links
        self.timeout = timeout

    def check_wayback_archive(self, url: str) -> WaybackResult:
        if self.session is None:
            return WaybackResult(False, error="no session")
        try:
            response = self.session.get(
                WAYBACK_AVAILABLE_API,
                params={"url": url},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            if response.status_code != 200:
                return WaybackResult(False, error=f"API returned status {response.status_code}")
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.debug("Wayback lookup failed for %s: %s", url, exc)
            return WaybackResult(False, error=str(exc))

        closest = (payload.get("archived_snapshots") or {}).get("closest") if isinstance(payload, dict) else None
        if not isinstance(closest, dict):
            return WaybackResult(False)
        return WaybackResult(
            is_archived=closest.get("available") is True,
            archived_url=closest.get("url"),
            timestamp=closest.get("timestamp"),
        )

    def render_section(self, item: Item) -> str:
        links = extract_external_links(item)
        if not links:
            return ""

        lines = [f"\n\n---\n\n> [!abstract]- External Links ({len(links)})"]
        for link in links:
            archived_url = None
            if self.check_wayback:
                result = self.check_wayback_archive(link.url)
                if result.is_archived:
                    archived_url = result.archived_url
            lines.append(f"> - [{link.domain}]({link.url}) *({link.source})*")
            if self.include_archive_links:
                if archived_url:
                    lines.append(f">   - [Archived version →]({archived_url})")
                else:
                    lines.append(f">   - [Save to archive →]({WAYBACK_SAVE_URL}{link.url})")
        return "\n".join(lines) + "\n\n"
