"""Public package surface for saved-reddit."""
from .comments import CommentTreeRenderer, count_comments
from .config import FormatterSettings
from .crosspost import crosspost_origin, effective_item, is_crosspost
from .filters import FilterEngine, FilterResult, FilterSettings, determine_post_type
from .formatter import ContentFormatter
from .frontmatter import Frontmatter, build_frontmatter, frontmatter_type, parent_type
from .links import LinkPreserver, extract_external_links
from .markdown import convert_reddit_markdown, decode_entities, truncate_text
from .media import (
    MediaDownloader,
    analyze_media,
    extract_gallery_images,
    is_gallery_post,
    media_filename,
    should_download_media,
)
from .models import (
    Comment,
    ContentOrigin,
    GalleryImage,
    Item,
    MediaInfo,
    MediaKind,
    Post,
    parse_comment_tree,
    parse_item,
)
from .reddit import (
    BASE_URL,
    DEFAULT_USER_AGENT,
    build_session,
    fetch_comment_replies,
    fetch_comment_with_context,
    fetch_json,
    fetch_post_thread,
    fetch_user_items,
)
from .sanitize import is_path_safe, sanitize_filename, sanitize_subreddit_name
from .store import DocumentStore, apply_template, template_variables

__version__ = "0.1.0"

__all__ = [
    "BASE_URL",
    "DEFAULT_USER_AGENT",
    "Comment",
    "CommentTreeRenderer",
    "ContentFormatter",
    "ContentOrigin",
    "DocumentStore",
    "FilterEngine",
    "FilterResult",
    "FilterSettings",
    "FormatterSettings",
    "Frontmatter",
    "GalleryImage",
    "Item",
    "LinkPreserver",
    "MediaDownloader",
    "MediaInfo",
    "MediaKind",
    "Post",
    "analyze_media",
    "apply_template",
    "build_frontmatter",
    "build_session",
    "convert_reddit_markdown",
    "count_comments",
    "crosspost_origin",
    "decode_entities",
    "determine_post_type",
    "effective_item",
    "extract_external_links",
    "extract_gallery_images",
    "fetch_comment_replies",
    "fetch_comment_with_context",
    "fetch_json",
    "fetch_post_thread",
    "fetch_user_items",
    "frontmatter_type",
    "is_crosspost",
    "is_gallery_post",
    "is_path_safe",
    "media_filename",
    "parent_type",
    "parse_comment_tree",
    "parse_item",
    "sanitize_filename",
    "sanitize_subreddit_name",
    "should_download_media",
    "template_variables",
    "truncate_text",
    "__version__",
]
