"""Assemble a complete markdown note for a Reddit post or comment."""
from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from pathlib import PurePath
from typing import List, Sequence

from .comments import CommentTreeRenderer
from .config import FormatterSettings
from .crosspost import crosspost_origin, effective_item, is_crosspost
from .frontmatter import build_frontmatter
from .links import LinkPreserver
from .markdown import REDDIT_WEB_URL, convert_reddit_markdown
from .media import (
    MediaDownloader,
    ProgressCallback,
    analyze_post_media,
    download_gallery_images,
    extract_gallery_images,
    extract_youtube_id,
    is_gallery_post,
    media_filename,
    normalize_media_url,
    should_download_media,
    unescape_media_url,
)
from .models import Comment, ContentOrigin, GalleryImage, Item, MediaInfo, MediaKind, Post

logger = logging.getLogger(__name__)

SEPARATOR = " · "
POLL_BAR_WIDTH = 20

ORIGIN_LABELS = {
    ContentOrigin.SAVED: ("🔖", "Saved"),
    ContentOrigin.UPVOTED: ("👍", "Upvoted"),
    ContentOrigin.SUBMITTED: ("📝", "Your Post"),
    ContentOrigin.COMMENTED: ("💬", "Your Comment"),
}


def local_name(path: str) -> str:
    return PurePath(path).name


class ContentFormatter:
    """Turn one item into a note: frontmatter, header, body, comments and footer.

    Only media downloads touch the outside world, and their failures degrade to
    remote links. Nothing is cached between items.
    """

    def __init__(
        self,
        settings: FormatterSettings | None = None,
        *,
        downloader: MediaDownloader | None = None,
        links: LinkPreserver | None = None,
    ) -> None:
        self.settings = settings or FormatterSettings()
        self.downloader = downloader
        self.links = links or LinkPreserver(include_archive_links=self.settings.include_archive_links)
        self.comments = CommentTreeRenderer(
            parent_context_max_chars=self.settings.parent_context_max_chars
        )

    def format_item(
        self,
        item: Item,
        origin: ContentOrigin = ContentOrigin.SAVED,
        comments: Sequence[Comment] = (),
        progress: ProgressCallback | None = None,
    ) -> str:
        effective = effective_item(item, self.settings)
        media_info = analyze_post_media(effective) if isinstance(effective, Post) else MediaInfo()
        gallery_images: List[GalleryImage] | None = None
        if isinstance(effective, Post) and is_gallery_post(effective):
            gallery_images = extract_gallery_images(effective)

        frontmatter = build_frontmatter(
            item,
            origin,
            self.settings,
            media_info,
            comments=comments if isinstance(effective, Post) else (),
            gallery_images=gallery_images,
        )
        parts = [frontmatter.render()]

        if isinstance(effective, Comment):
            parts.append(self.format_comment_header(effective, origin))
            body = effective.body
        else:
            parts.append(
                self.format_post_header(effective, media_info, origin, item, gallery_images, progress)
            )
            body = effective.selftext

        if body:
            parts.append(convert_reddit_markdown(body))

        if isinstance(effective, Post) and comments:
            parts.append(self.comments.render_comments_section(comments, item.author))
        if isinstance(effective, Comment) and effective.replies:
            parts.append(self.comments.render_replies(effective.replies, effective.link_author))

        if self.settings.extract_external_links:
            parts.append(self.links.render_section(effective))

        parts.append(self.format_footer(effective, origin))
        return "".join(parts)

    # Headers

    def format_post_header(
        self,
        post: Post,
        media_info: MediaInfo,
        origin: ContentOrigin,
        original: Item,
        gallery_images: List[GalleryImage] | None = None,
        progress: ProgressCallback | None = None,
    ) -> str:
        emoji, label = ORIGIN_LABELS[origin]
        badges = []
        if post.stickied:
            badges.append("📌 Stickied")
        if post.locked:
            badges.append("🔒 Locked")
        if post.archived:
            badges.append("📦 Archived")
        if post.spoiler:
            badges.append("⚠️ Spoiler")
        if post.over_18:
            badges.append("🔞 NSFW")
        if post.total_awards_received > 0:
            badges.append(f"🏆 {post.total_awards_received} awards")

        meta = [f"**r/{post.subreddit}**"]
        if post.link_flair_text:
            meta.append(f"`{post.link_flair_text}`")
        meta.extend([f"u/{post.author}", f"{post.score} points", f"{post.num_comments} comments"])

        content = f"> [!info] {emoji} {label}\n> {SEPARATOR.join(meta)}\n"
        if badges:
            content += f"> \n> {SEPARATOR.join(badges)}\n"
        content += "\n"

        source = crosspost_origin(original)
        if source is not None and is_crosspost(original) and self.settings.preserve_crosspost_metadata:
            content += f"> [!tip] Crosspost\n> Original: r/{source.subreddit} by u/{source.author}\n\n"

        content += f"# {post.title}\n\n"

        if is_gallery_post(post):
            images = gallery_images if gallery_images is not None else extract_gallery_images(post)
            content += self.format_gallery(post, images, progress)
        elif post.poll is not None:
            content += self.format_poll(post)
        elif media_info.is_media:
            content += self.format_media(post, media_info)
        elif post.url and not post.is_self:
            content += f"🔗 **External Link:** [{media_info.domain}]({post.url})\n\n"
        return content

    def format_comment_header(self, comment: Comment, origin: ContentOrigin) -> str:
        emoji, label = ORIGIN_LABELS[origin]
        op_badge = f"{SEPARATOR}OP" if comment.is_submitter else ""
        depth_info = f"{SEPARATOR}Depth {comment.depth}" if comment.depth else ""

        content = f"> [!quote] {emoji} {label}\n"
        content += (
            f"> r/{comment.subreddit}{SEPARATOR}u/{comment.author}{op_badge}"
            f"{SEPARATOR}{comment.score} points{depth_info}\n"
        )
        if comment.parent_id:
            if comment.parent_id.startswith("t1_"):
                content += "> \n> Reply to comment\n"
            else:
                content += "> \n> Top-level comment\n"
        content += "\n"

        content += f"# Comment on: {comment.link_title or 'Unknown Post'}\n\n"
        content += f"[View original post →]({REDDIT_WEB_URL}{comment.link_permalink})\n\n"

        if comment.parent_comments:
            content += self.comments.render_parent_context(comment.parent_comments, comment.link_author)
            content += "## Your Comment\n\n"
        return content

    # Media

    def download_single(self, post: Post, media_info: MediaInfo) -> str | None:
        url = post.url or ""
        if self.downloader is None or not should_download_media(media_info, url, self.settings):
            return None
        download_url = normalize_media_url(url)
        try:
            filename = media_filename(post, download_url, media_info)
            return self.downloader.download(download_url, filename)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error downloading media for %s: %s", post.id, exc)
            return None

    def format_media(self, post: Post, media_info: MediaInfo) -> str:
        url = post.url or ""
        local_path = self.download_single(post, media_info)
        preview = post.preview[0] if post.preview else None
        thumbnail = unescape_media_url(preview.url) if preview else None
        kind = media_info.media_kind

        if kind in (MediaKind.IMAGE, MediaKind.REDDIT_IMAGE, MediaKind.IMGUR):
            content = "📸 **Image**\n\n"
            content += self._embed(local_path) if local_path else f"![{post.title}]({url})\n\n"
            if preview and preview.width and preview.height:
                content += f"*Resolution: {preview.width}×{preview.height}*\n\n"
            return content

        if kind is MediaKind.VIDEO:
            content = "🎥 **Video**\n\n"
            content += self._embed(local_path) if local_path else f"[📹 Watch Video]({url})\n\n"
            if thumbnail:
                content += f"![Video Thumbnail]({thumbnail})\n\n"
            return content

        if kind is MediaKind.REDDIT_VIDEO:
            content = "🎥 **Reddit Video**\n\n"
            content += "> ⚠️ Reddit-hosted video - view on Reddit for best experience\n\n"
            content += f"[📹 Watch on Reddit]({REDDIT_WEB_URL}{post.permalink})\n\n"
            if thumbnail:
                content += f"![Video Thumbnail]({thumbnail})\n\n"
            return content

        if kind is MediaKind.YOUTUBE:
            content = "🎬 **YouTube Video**\n\n"
            content += f"[▶️ Watch on YouTube]({url})\n\n"
            video_id = extract_youtube_id(url)
            if video_id:
                content += (
                    '<iframe width="560" height="315" '
                    f'src="https://www.youtube.com/embed/{video_id}" '
                    'frameborder="0" allowfullscreen></iframe>\n\n'
                )
            return content

        if kind is MediaKind.GIF_PLATFORM:
            content = "🎞️ **GIF/Animation**\n\n"
            content += self._embed(local_path) if local_path else f"[🎭 View Animation]({url})\n\n"
            return content

        return f"🔗 **Media Link:** [{media_info.domain}]({url})\n\n"

    @staticmethod
    def _embed(local_path: str) -> str:
        name = local_name(local_path)
        return f"![[{name}]]\n\n*Downloaded locally: {name}*\n\n"

    def format_gallery(
        self,
        post: Post,
        images: List[GalleryImage],
        progress: ProgressCallback | None = None,
    ) -> str:
        if not images:
            return "> [!warning] Gallery post with no accessible images\n\n"

        total = len(images)
        plural = "" if total == 1 else "s"
        content = f"> [!example] Gallery ({total} image{plural})\n\n"

        local_paths: List[str | None] = []
        if self.downloader is not None and self.settings.any_downloads:
            try:
                local_paths = download_gallery_images(
                    self.downloader, post, images, self.settings, progress
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error downloading gallery images for %s: %s", post.id, exc)
                local_paths = []

        for position, image in enumerate(images, start=1):
            content += f"### {position}/{total}"
            if image.caption:
                content += f": {image.caption}"
            content += "\n\n"

            size = f"{image.width}×{image.height}" if image.width and image.height else None
            local_path = local_paths[position - 1] if position <= len(local_paths) else None
            if local_path:
                content += f"![[{local_name(local_path)}]]\n\n"
                details = (["Animated"] if image.is_animated else []) + ([size] if size else [])
                if details:
                    content += f"*{SEPARATOR.join(details)}*\n\n"
            else:
                if image.is_animated and image.mp4_url:
                    content += f"[View animation →]({image.mp4_url})\n\n"
                else:
                    content += f"![Image {position}]({image.url})\n\n"
                if size:
                    content += f"*{size}*\n\n"

            if image.outbound_url:
                content += f"[External link →]({image.outbound_url})\n\n"
        return content

    def format_poll(self, post: Post, *, now: float | None = None) -> str:
        poll = post.poll
        if poll is None:
            return ""
        now_ms = (time.time() if now is None else now) * 1000
        voted = f"{SEPARATOR}You voted" if poll.user_selection else ""
        totals = f"> {poll.total_vote_count:,} total votes\n\n"

        if poll.voting_end_timestamp and now_ms > poll.voting_end_timestamp:
            content = f"> [!success] Poll (Ended){voted}\n{totals}"
        elif poll.voting_end_timestamp:
            ends = datetime.fromtimestamp(poll.voting_end_timestamp / 1000, tz=timezone.utc)
            content = f"> [!info] Poll (Ends {ends:%Y-%m-%d %H:%M} UTC){voted}\n{totals}"
        else:
            content = f"> [!info] Poll{voted}\n{totals}"

        content += "| Option | Votes | % |\n|--------|-------:|----:|\n"
        for option in poll.options:
            votes = option.vote_count or 0
            share = votes / poll.total_vote_count * 100 if poll.total_vote_count > 0 else 0.0
            marker = " ✓" if poll.user_selection and poll.user_selection == option.id else ""
            content += f"| {option.text}{marker} | {votes:,} | {share:.1f}% |\n"
        content += "\n"

        if poll.total_vote_count > 0:
            content += "### Results\n\n"
            for option in poll.options:
                share = (option.vote_count or 0) / poll.total_vote_count * 100
                filled = min(round(share / 5), POLL_BAR_WIDTH)
                bar = "█" * filled + "░" * (POLL_BAR_WIDTH - filled)
                content += f"**{option.text}**\n`{bar}` {share:.1f}%\n\n"
        return content

    # Footer

    def format_footer(self, item: Item, origin: ContentOrigin) -> str:
        tags = ["#reddit", f"#r-{item.subreddit.lower()}"]
        if isinstance(item, Post) and item.link_flair_text:
            tags.append("#" + re.sub(r"\s+", "-", item.link_flair_text.lower()))
        tags.append(f"#reddit-{origin.value}")
        if isinstance(item, Comment):
            tags.append("#reddit-comment")
        else:
            tags.append("#reddit-post")
            if is_gallery_post(item):
                tags.append("#reddit-gallery")
            if item.poll is not None:
                tags.append("#reddit-poll")

        links = [f"[View on Reddit →]({REDDIT_WEB_URL}{item.permalink})"]
        if isinstance(item, Post) and item.url and not item.is_self:
            links.append(f"[Original source →]({item.url})")
        return f"\n\n---\n\n{' '.join(tags)}\n\n{SEPARATOR.join(links)}"
