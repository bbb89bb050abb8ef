"""Command line entry point: turn Reddit posts and comments into markdown notes."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence

import requests

from .config import (
    COMMENT_CONTEXT_DEFAULT,
    COMMENT_REPLY_DEPTH_DEFAULT,
    DEFAULT_MEDIA_FOLDER,
    FormatterSettings,
)
from .filters import DATE_PRESETS, DAY_SECONDS, FILTER_KINDS, FILTER_MODES, FilterEngine, FilterSettings
from .formatter import ContentFormatter
from .links import LinkPreserver
from .media import MediaDownloader
from .models import Comment, ContentOrigin, Item, Post
from .reddit import (
    DEFAULT_USER_AGENT,
    MIN_DELAY_SECONDS,
    USER_SECTIONS,
    build_session,
    fetch_comment_replies,
    fetch_comment_with_context,
    fetch_post_thread,
    fetch_user_items,
    is_comment_permalink,
    items_from_payload,
)
from .store import FILENAME_TEMPLATE_PRESETS, FOLDER_TEMPLATE_PRESETS, DocumentStore

logger = logging.getLogger(__name__)


def _default_output_root() -> Path:
    env_override = os.environ.get("SAVED_REDDIT_OUTPUT_DIR")
    if env_override:
        return Path(env_override).expanduser().resolve()
    return Path.cwd() / "saved_reddit_notes"


def _parse_csv(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_day(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a YYYY-MM-DD date, got {value!r}") from exc


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Convert Reddit posts and comments into markdown notes with frontmatter, "
            "comment threads and optionally downloaded media."
        )
    )
    parser.add_argument(
        "urls",
        nargs="*",
        help="Post or comment permalinks (full URLs or /r/... paths).",
    )
    parser.add_argument(
        "--json",
        dest="json_files",
        action="append",
        default=[],
        help="Reddit JSON file (a thing, listing or thread) to convert. May be repeated.",
    )
    parser.add_argument(
        "--user",
        dest="users",
        action="append",
        default=[],
        help="Export a user's public submissions and/or comments. May be repeated.",
    )
    parser.add_argument(
        "--user-sections",
        default="submitted,comments",
        help="Comma-separated user listings to export (choices: submitted, comments).",
    )
    parser.add_argument(
        "--user-limit",
        type=int,
        default=100,
        help="Maximum items per user listing; use 0 for no cap (default: 100).",
    )
    parser.add_argument(
        "--origin",
        choices=[origin.value for origin in ContentOrigin],
        default=ContentOrigin.SAVED.value,
        help="Content origin recorded for URL and JSON inputs (default: saved).",
    )
    parser.add_argument(
        "--include-comments",
        action="store_true",
        help="Export the comment thread below posts.",
    )
    parser.add_argument(
        "--comment-upvote-threshold",
        type=int,
        default=0,
        help="Minimum score for exported post comments (default: 0).",
    )
    parser.add_argument(
        "--comment-context",
        type=int,
        default=None,
        metavar="N",
        help=(
            f"Include up to N parent comments above exported comments "
            f"(1-10, e.g. {COMMENT_CONTEXT_DEFAULT})."
        ),
    )
    parser.add_argument(
        "--include-replies",
        action="store_true",
        help="Include replies below exported comments.",
    )
    parser.add_argument(
        "--reply-depth",
        type=int,
        default=COMMENT_REPLY_DEPTH_DEFAULT,
        help=f"Reply levels to include with --include-replies (1-5, default: {COMMENT_REPLY_DEPTH_DEFAULT}).",
    )
    parser.add_argument("--download-images", action="store_true", help="Download linked images.")
    parser.add_argument("--download-gifs", action="store_true", help="Download GIFs and animations.")
    parser.add_argument("--download-videos", action="store_true", help="Download video files.")
    parser.add_argument(
        "--download-media",
        action="store_true",
        help="Shorthand for --download-images --download-gifs --download-videos.",
    )
    parser.add_argument(
        "--media-folder",
        default=DEFAULT_MEDIA_FOLDER,
        help=f"Folder for downloaded media, relative to the output directory (default: {DEFAULT_MEDIA_FOLDER}).",
    )
    parser.add_argument(
        "--import-crosspost-original",
        action="store_true",
        help="Render the original post's content instead of the crosspost.",
    )
    parser.add_argument(
        "--no-crosspost-metadata",
        dest="preserve_crosspost_metadata",
        action="store_false",
        help="Omit crosspost frontmatter keys and the crosspost notice.",
    )
    parser.add_argument(
        "--extract-links",
        action="store_true",
        help="Append a section listing external links found in the item.",
    )
    parser.add_argument(
        "--check-wayback",
        action="store_true",
        help="Look up each external link in the Wayback Machine (requires --extract-links).",
    )
    parser.add_argument(
        "--no-archive-links",
        dest="include_archive_links",
        action="store_false",
        help="Do not add archive / save-to-archive links to the external links section.",
    )
    parser.add_argument(
        "--organize-by-subreddit",
        action="store_true",
        help="Place notes in one folder per subreddit.",
    )
    parser.add_argument(
        "--folder-template",
        default="",
        help=(
            "Folder layout below the output directory using {subreddit}, {author}, {type}, {origin}, "
            "{year}, {month}, {day}, {title}, {id}, {flair}, {postType} and {score}, "
            f"or a preset name ({', '.join(FOLDER_TEMPLATE_PRESETS)}). Overrides --organize-by-subreddit."
        ),
    )
    parser.add_argument(
        "--filename-template",
        default="",
        help=(
            "Note filename using the same placeholders as --folder-template, "
            f"or a preset name ({', '.join(FILENAME_TEMPLATE_PRESETS)})."
        ),
    )
    parser.add_argument(
        "--no-skip-existing",
        dest="skip_existing",
        action="store_false",
        help="Write notes even when a note with the same Reddit id already exists.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=2.0,
        help=f"Delay in seconds between Reddit requests (minimum enforced: {MIN_DELAY_SECONDS}).",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="Custom User-Agent header to send with requests.",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Disable TLS certificate verification (only if you trust the network).",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help=(
            "Directory where notes are written. Defaults to ./saved_reddit_notes "
            "(override with SAVED_REDDIT_OUTPUT_DIR)."
        ),
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO).",
    )

    filters = parser.add_argument_group("filters", "Only export items matching these rules.")
    filters.add_argument("--subreddits", default="", help="Comma-separated subreddit names to match.")
    filters.add_argument(
        "--subreddit-mode",
        choices=FILTER_MODES,
        default="exclude",
        help="Whether --subreddits and --subreddit-regex select or drop matches (default: exclude).",
    )
    filters.add_argument("--subreddit-regex", default="", help="Case-insensitive regex matched against subreddit names.")
    filters.add_argument("--authors", default="", help="Comma-separated author names to match.")
    filters.add_argument("--author-mode", choices=FILTER_MODES, default="exclude", help="(default: exclude)")
    filters.add_argument("--min-score", type=int, default=None, help="Drop items scoring below this.")
    filters.add_argument("--max-score", type=int, default=None, help="Drop items scoring above this.")
    filters.add_argument(
        "--min-upvote-ratio",
        type=float,
        default=None,
        help="Drop posts whose upvote ratio (0-1) is below this.",
    )
    filters.add_argument(
        "--post-types",
        default="text,link,image,video",
        help="Comma-separated post types to keep (default: text,link,image,video).",
    )
    filters.add_argument("--skip-posts", action="store_true", help="Export comments only.")
    filters.add_argument("--skip-comments", action="store_true", help="Export posts only.")
    filters.add_argument(
        "--date-range",
        choices=DATE_PRESETS,
        default=None,
        help="Keep items newer than the preset window; 'custom' uses --since/--until.",
    )
    filters.add_argument("--since", type=_parse_day, default=None, help="Keep items created on or after YYYY-MM-DD (UTC).")
    filters.add_argument("--until", type=_parse_day, default=None, help="Keep items created on or before YYYY-MM-DD (UTC).")
    filters.add_argument("--min-comments", type=int, default=None, help="Drop posts with fewer comments.")
    filters.add_argument("--max-comments", type=int, default=None, help="Drop posts with more comments.")
    filters.add_argument("--domains", default="", help="Comma-separated link domains to match (subdomains included).")
    filters.add_argument("--domain-mode", choices=FILTER_MODES, default="exclude", help="(default: exclude)")
    filters.add_argument("--flairs", default="", help="Comma-separated flair text to match (substring).")
    filters.add_argument("--flair-mode", choices=FILTER_MODES, default="include", help="(default: include)")
    filters.add_argument("--title-keywords", default="", help="Comma-separated words to look for in titles.")
    filters.add_argument("--title-mode", choices=FILTER_MODES, default="include", help="(default: include)")
    filters.add_argument("--content-keywords", default="", help="Comma-separated words to look for in bodies.")
    filters.add_argument("--content-mode", choices=FILTER_MODES, default="include", help="(default: include)")
    filters.add_argument("--exclude-nsfw", action="store_true", help="Drop posts marked NSFW.")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> FormatterSettings:
    return FormatterSettings(
        download_images=args.download_images or args.download_media,
        download_gifs=args.download_gifs or args.download_media,
        download_videos=args.download_videos or args.download_media,
        media_folder=args.media_folder,
        preserve_crosspost_metadata=args.preserve_crosspost_metadata,
        import_crosspost_original=args.import_crosspost_original,
        extract_external_links=args.extract_links,
        check_wayback_archive=args.check_wayback,
        include_archive_links=args.include_archive_links,
        comment_context_depth=args.comment_context or COMMENT_CONTEXT_DEFAULT,
        comment_reply_depth=args.reply_depth,
        comment_upvote_threshold=args.comment_upvote_threshold,
    )


def build_filter_settings(args: argparse.Namespace) -> FilterSettings:
    date_preset = args.date_range or ("custom" if args.since or args.until else "all")
    return FilterSettings(
        subreddits=_parse_csv(args.subreddits),
        subreddit_mode=args.subreddit_mode,
        subreddit_regex=args.subreddit_regex,
        authors=_parse_csv(args.authors),
        author_mode=args.author_mode,
        min_score=args.min_score,
        max_score=args.max_score,
        min_upvote_ratio=args.min_upvote_ratio,
        include_post_types=tuple(_parse_csv(args.post_types)),
        include_posts=not args.skip_posts,
        include_comments=not args.skip_comments,
        date_preset=date_preset,
        date_start=args.since.timestamp() if args.since else None,
        date_end=args.until.timestamp() + DAY_SECONDS - 1 if args.until else None,
        min_comments=args.min_comments,
        max_comments=args.max_comments,
        domains=_parse_csv(args.domains),
        domain_mode=args.domain_mode,
        flairs=_parse_csv(args.flairs),
        flair_mode=args.flair_mode,
        title_keywords=_parse_csv(args.title_keywords),
        title_mode=args.title_mode,
        content_keywords=_parse_csv(args.content_keywords),
        content_mode=args.content_mode,
        exclude_nsfw=args.exclude_nsfw,
    )


class NoteExporter:
    """Fetch whatever extra context an item needs, format it and store the note."""

    def __init__(
        self,
        *,
        session: requests.Session,
        formatter: ContentFormatter,
        store: DocumentStore,
        settings: FormatterSettings,
        include_comments: bool = False,
        include_context: bool = False,
        include_replies: bool = False,
        skip_existing: bool = True,
        delay: float = MIN_DELAY_SECONDS,
        filters: FilterEngine | None = None,
    ) -> None:
        self.session = session
        self.formatter = formatter
        self.store = store
        self.settings = settings
        self.include_comments = include_comments
        self.include_context = include_context
        self.include_replies = include_replies
        self.skip_existing = skip_existing
        self.delay = max(delay, MIN_DELAY_SECONDS)
        self.filters = filters
        self.written = 0
        self.skipped = 0
        self.filtered = 0
        self.filter_breakdown: Counter = Counter()

    def _pause(self) -> None:
        time.sleep(self.delay)

    def _passes_filters(self, item: Item) -> bool:
        if self.filters is None:
            return True
        result = self.filters.check(item)
        if result.passes:
            return True
        logger.info("Filtered %s: %s", item.id, result.reason)
        self.filtered += 1
        self.filter_breakdown[result.kind] += 1
        return False

    def from_permalink(self, url: str, origin: ContentOrigin) -> None:
        if is_comment_permalink(url):
            comment = fetch_comment_with_context(
                self.session, url, context_depth=self.settings.comment_context_depth
            )
            if not self.include_context:
                comment.parent_comments = []
            if not self._passes_filters(comment):
                return
            self._add_replies(comment)
            self.export(comment, origin)
            return

        post, comments = fetch_post_thread(
            self.session, url, upvote_threshold=self.settings.comment_upvote_threshold
        )
        if not self._passes_filters(post):
            return
        self.export(post, origin, comments if self.include_comments else [])

    def from_item(self, item: Item, origin: ContentOrigin) -> None:
        """Export an item that came from a listing or a JSON file."""
        comments: List[Comment] = []
        if self.skip_existing and self.store.contains(item.id):
            logger.info("Skipping %s: note already exists", item.id)
            self.skipped += 1
            return
        if not self._passes_filters(item):
            return
        if isinstance(item, Post) and self.include_comments and item.permalink:
            self._pause()
            _, comments = fetch_post_thread(
                self.session,
                item.permalink,
                upvote_threshold=self.settings.comment_upvote_threshold,
            )
        elif isinstance(item, Comment) and item.permalink:
            if self.include_context:
                self._pause()
                context = fetch_comment_with_context(
                    self.session, item.permalink, context_depth=self.settings.comment_context_depth
                )
                item.parent_comments = context.parent_comments
                item.depth = context.depth
                item.link_author = item.link_author or context.link_author
            self._add_replies(item)
        self.export(item, origin, comments)

    def _add_replies(self, comment: Comment) -> None:
        if not self.include_replies or not comment.permalink:
            return
        self._pause()
        comment.replies = fetch_comment_replies(
            self.session, comment.permalink, max_depth=self.settings.comment_reply_depth
        )

    def _progress(self, item_id: str):
        def report(current: int, total: int) -> None:
            logger.debug("Gallery %s: %d/%d media processed", item_id, current, total)

        return report

    def export(self, item: Item, origin: ContentOrigin, comments: Sequence[Comment] = ()) -> Path | None:
        if self.skip_existing and self.store.contains(item.id):
            logger.info("Skipping %s: note already exists", item.id)
            self.skipped += 1
            return None
        content = self.formatter.format_item(item, origin, comments, progress=self._progress(item.id))
        path = self.store.write(item, origin, content)
        if path is None:
            self.skipped += 1
        else:
            self.written += 1
        return path


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    user_sections = _parse_csv(args.user_sections)
    invalid = [section for section in user_sections if section not in USER_SECTIONS]
    if invalid:
        raise SystemExit(
            f"Invalid value(s) for --user-sections: {invalid}. Allowed: {', '.join(USER_SECTIONS)}"
        )

    urls = [url.strip() for url in args.urls if url and url.strip()]
    users = [name.strip() for name in args.users if name and name.strip()]
    if not urls and not args.json_files and not users:
        raise SystemExit("Nothing to do. Provide permalinks, --json files or --user names.")

    try:
        settings = build_settings(args)
        filter_settings = build_filter_settings(args)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    output_root = Path(args.output_dir).expanduser().resolve() if args.output_dir else _default_output_root()
    output_root.mkdir(parents=True, exist_ok=True)

    session = build_session(args.user_agent, not args.insecure)
    downloader = (
        MediaDownloader(session, output_root / settings.media_folder) if settings.any_downloads else None
    )
    links = LinkPreserver(
        session,
        check_wayback=settings.check_wayback_archive,
        include_archive_links=settings.include_archive_links,
    )
    exporter = NoteExporter(
        session=session,
        formatter=ContentFormatter(settings, downloader=downloader, links=links),
        store=DocumentStore(
            output_root,
            organize_by_subreddit=args.organize_by_subreddit,
            folder_template=args.folder_template,
            filename_template=args.filename_template,
        ),
        settings=settings,
        include_comments=args.include_comments,
        include_context=args.comment_context is not None,
        include_replies=args.include_replies,
        skip_existing=args.skip_existing,
        delay=args.delay,
        filters=FilterEngine(filter_settings) if filter_settings.active else None,
    )
    origin = ContentOrigin(args.origin)

    for index, url in enumerate(urls):
        if index:
            time.sleep(exporter.delay)
        try:
            exporter.from_permalink(url, origin)
        except Exception as exc:  # noqa: BLE001 - continue with remaining permalinks
            print(f"Failed to export {url}: {exc}", file=sys.stderr)

    for json_file in args.json_files:
        try:
            payload = json.loads(Path(json_file).read_text(encoding="utf-8"))
            items = items_from_payload(payload)
        except (OSError, ValueError) as exc:
            print(f"Failed to read {json_file}: {exc}", file=sys.stderr)
            continue
        for item in items:
            try:
                exporter.from_item(item, origin)
            except Exception as exc:  # noqa: BLE001 - keep processing other items
                print(f"Failed to export {item.id} from {json_file}: {exc}", file=sys.stderr)

    section_origins = {"submitted": ContentOrigin.SUBMITTED, "comments": ContentOrigin.COMMENTED}
    limit = args.user_limit if args.user_limit > 0 else None
    for user in users:
        for section in user_sections:
            try:
                items = fetch_user_items(session, user, section, limit=limit, delay=exporter.delay)
            except Exception as exc:  # noqa: BLE001 - move on to the next listing
                print(f"Failed to fetch u/{user}/{section}: {exc}", file=sys.stderr)
                continue
            for item in items:
                try:
                    exporter.from_item(item, section_origins[section])
                except Exception as exc:  # noqa: BLE001 - keep processing other items
                    print(f"Failed to export {item.id} for u/{user}: {exc}", file=sys.stderr)

    logger.info(
        "Done: %d note(s) written, %d skipped, %d filtered",
        exporter.written,
        exporter.skipped,
        exporter.filtered,
    )
    if exporter.filtered:
        breakdown = ", ".join(
            f"{kind}: {exporter.filter_breakdown[kind]}" for kind in FILTER_KINDS if exporter.filter_breakdown[kind]
        )
        logger.info("Filtered by %s", breakdown)


if __name__ == "__main__":
    main()
