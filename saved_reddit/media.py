"""Media classification, gallery resolution, asset naming and downloads."""
from __future__ import annotations

import logging
import re
from contextlib import closing
from pathlib import Path, PurePosixPath
from typing import Callable, List
from urllib.parse import urlparse

import requests

from .config import FormatterSettings
from .models import GalleryImage, MediaInfo, MediaKind, Post
from .sanitize import is_path_safe, sanitize_filename

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".avi", ".mkv")

IMAGE_PATTERN = re.compile(r"\.(jpg|jpeg|png|webp|bmp|svg)(\?|$)", re.IGNORECASE)
GIF_PATTERN = re.compile(r"\.gif(\?|$)", re.IGNORECASE)
VIDEO_PATTERN = re.compile(r"\.(mp4|webm|mov|avi|mkv)(\?|$)", re.IGNORECASE)

REDDIT_IMAGE_DOMAIN = "i.redd.it"
REDDIT_VIDEO_DOMAIN = "v.redd.it"
IMGUR_DOMAIN = "imgur.com"
YOUTUBE_DOMAINS = ("youtube.com", "youtu.be")
GIF_PLATFORMS = ("gfycat.com", "redgifs.com")

GALLERY_URL_PATTERNS = (
    "/gallery/",
    "/album/",
    "imgur.com/gallery/",
    "imgur.com/a/",
    "reddit.com/gallery/",
)

YOUTUBE_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"youtube\.com/watch\?.*v=([^&\n?#]+)"),
)

MEDIA_FILENAME_MAX_TITLE_LENGTH = 50
MEDIA_FILENAME_MAX_URL_PART_LENGTH = 20

IMAGE_KINDS = {MediaKind.IMAGE, MediaKind.REDDIT_IMAGE, MediaKind.IMGUR}
TYPE_EXTENSIONS = {"image": "jpg", "gif": "gif", "video": "mp4"}

ProgressCallback = Callable[[int, int], None]


def analyze_media(url: str | None, domain: str | None = "") -> MediaInfo:
    """Classify ``url`` by host first and by file extension second."""
    domain = domain or ""
    if not url:
        return MediaInfo(domain=domain)

    host = domain.lower()
    url_lower = url.lower()

    if REDDIT_IMAGE_DOMAIN in host:
        return MediaInfo("image", MediaKind.REDDIT_IMAGE, True, domain, True)
    if REDDIT_VIDEO_DOMAIN in host:
        # Reddit serves video and audio as separate DASH streams.
        return MediaInfo("video", MediaKind.REDDIT_VIDEO, True, domain, False)
    if IMGUR_DOMAIN in host:
        return MediaInfo("image", MediaKind.IMGUR, True, domain, True)
    if any(candidate in host for candidate in YOUTUBE_DOMAINS):
        return MediaInfo("video", MediaKind.YOUTUBE, True, domain, False)
    if any(candidate in host for candidate in GIF_PLATFORMS):
        return MediaInfo("gif", MediaKind.GIF_PLATFORM, True, domain, False)
    if any(ext in url_lower for ext in IMAGE_EXTENSIONS):
        return MediaInfo("image", MediaKind.IMAGE, True, domain, True)
    if any(ext in url_lower for ext in VIDEO_EXTENSIONS):
        return MediaInfo("video", MediaKind.VIDEO, True, domain, True)
    return MediaInfo(domain=domain)


def analyze_post_media(post: Post) -> MediaInfo:
    return analyze_media(post.url or "", post.domain)


def is_gallery_url(url: str) -> bool:
    url_lower = url.lower()
    return any(pattern in url_lower for pattern in GALLERY_URL_PATTERNS)


def should_download_media(media_info: MediaInfo, url: str, settings: FormatterSettings) -> bool:
    if not url or is_gallery_url(url):
        return False

    kind = media_info.media_kind
    if kind in IMAGE_KINDS:
        return settings.download_images
    if kind is MediaKind.GIF_PLATFORM:
        return settings.download_gifs
    if kind is MediaKind.VIDEO:
        return settings.download_videos

    url_lower = url.lower()
    if settings.download_images and IMAGE_PATTERN.search(url_lower):
        return True
    if settings.download_gifs and GIF_PATTERN.search(url_lower):
        return True
    if settings.download_videos and VIDEO_PATTERN.search(url_lower):
        return True
    return False


def normalize_media_url(url: str) -> str:
    """Point ``.gifv`` pages at the MP4 they wrap."""
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    path = parsed.path or ""
    if not path.lower().endswith(".gifv"):
        return url
    stem = PurePosixPath(path).stem
    if host == "imgur.com" and stem:
        return f"https://i.imgur.com/{stem}.mp4"
    return parsed._replace(path=path[:-5] + ".mp4").geturl()


def extract_youtube_id(url: str) -> str | None:
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def unescape_media_url(url: str | None) -> str | None:
    if not url:
        return None
    return url.replace("&amp;", "&")


def is_gallery_post(post: Post) -> bool:
    gallery = post.gallery
    return gallery is not None and bool(gallery.items) and bool(gallery.metadata)


def extract_gallery_images(post: Post) -> List[GalleryImage]:
    """Resolve a gallery's declared items into downloadable images.

    Entries whose metadata is missing, not ``valid`` or without any URL are
    skipped with a warning. ``index`` keeps the declared position, so skipped
    entries leave gaps instead of renumbering the survivors.
    """
    gallery = post.gallery
    if gallery is None:
        return []

    images: List[GalleryImage] = []
    for index, entry in enumerate(gallery.items):
        metadata = gallery.metadata.get(entry.media_id)
        if metadata is None:
            logger.warning("Gallery %s: no metadata for media %s, skipping", post.id, entry.media_id)
            continue
        if metadata.status != "valid":
            logger.warning(
                "Gallery %s: media %s has status %r, skipping",
                post.id,
                entry.media_id,
                metadata.status,
            )
            continue

        is_animated = metadata.encoding == "AnimatedImage"
        mp4_url = unescape_media_url(metadata.mp4_url) if is_animated else None
        if is_animated:
            url = unescape_media_url(metadata.gif_url) or mp4_url or unescape_media_url(metadata.source_url)
        else:
            url = unescape_media_url(metadata.source_url)
            if not url and metadata.preview_urls:
                url = unescape_media_url(metadata.preview_urls[-1])
        if not url:
            logger.warning("Gallery %s: media %s has no usable URL, skipping", post.id, entry.media_id)
            continue

        images.append(
            GalleryImage(
                media_id=entry.media_id,
                url=url,
                index=index,
                caption=entry.caption,
                width=metadata.width,
                height=metadata.height,
                is_animated=is_animated,
                mp4_url=mp4_url,
                outbound_url=entry.outbound_url,
            )
        )
    return images


def url_extension(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")
    return suffix if suffix.isalnum() else ""


def media_extension(url: str, media_info: MediaInfo | None) -> str:
    explicit = url_extension(url)
    if explicit:
        return explicit
    if media_info is not None and media_info.media_kind is not None:
        return TYPE_EXTENSIONS.get(media_info.type, "unknown")
    return "unknown"


def format_ordinal(ordinal: int, total: int | None) -> str:
    width = len(str(max(total or 0, ordinal)))
    return f"{ordinal:0{width}d}"


def media_filename(
    post: Post,
    url: str,
    media_info: MediaInfo | None = None,
    *,
    ordinal: int | None = None,
    total: int | None = None,
    extension: str | None = None,
) -> str:
    """Deterministic asset filename: ``<title>-<id>-<url part or ordinal>.<ext>``.

    Titles that look like path traversal fall back to ``media-<id>``.
    """
    ext = extension or media_extension(url, media_info)
    post_id = post.id or "unknown"
    title = post.title or "reddit-media"

    if not is_path_safe(title):
        logger.warning("Unsafe media filename detected: %s", title)
        suffix = f"-{format_ordinal(ordinal, total)}" if ordinal is not None else ""
        return f"media-{post_id}{suffix}.{ext}"

    short_title = sanitize_filename(title)[:MEDIA_FILENAME_MAX_TITLE_LENGTH].strip()
    if ordinal is not None:
        disambiguator = format_ordinal(ordinal, total)
    else:
        stem = PurePosixPath(urlparse(url).path).stem
        disambiguator = sanitize_filename(stem or "media")[:MEDIA_FILENAME_MAX_URL_PART_LENGTH].strip()
    return f"{short_title}-{post_id}-{disambiguator}.{ext}"


class MediaDownloader:
    """Fetch media into ``media_folder``; an existing file is never fetched again."""

    def __init__(
        self,
        session: requests.Session,
        media_folder: Path | str,
        *,
        timeout: float = 60.0,
    ) -> None:
        self.session = session
        self.media_folder = Path(media_folder)
        self.timeout = timeout

    def download(self, url: str, filename: str) -> str | None:
        folder = self.media_folder
        dest_path = folder / filename
        if dest_path.resolve().parent != folder.resolve():
            logger.warning("Refusing to write media outside %s: %s", folder, filename)
            return None

        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Failed to create media folder %s: %s", folder, exc)
            return None

        if dest_path.exists():
            logger.info("Media already exists, skipping %s", dest_path)
            return dest_path.as_posix()

        partial_path = dest_path.with_name(f"{dest_path.name}.part")
        try:
            with closing(self.session.get(url, stream=True, timeout=self.timeout)) as response:
                if response.status_code != 200:
                    logger.warning(
                        "Failed to download media %s (status %s)", url, response.status_code
                    )
                    return None
                with partial_path.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=8192):
                        if chunk:
                            fh.write(chunk)
            partial_path.replace(dest_path)
            return dest_path.as_posix()
        except requests.exceptions.RequestException as exc:
            logger.warning("Failed to download media %s: %s", url, exc)
        except OSError as exc:
            logger.warning("Failed to write media %s: %s", url, exc)
        partial_path.unlink(missing_ok=True)
        return None


def gallery_download_target(
    image: GalleryImage, settings: FormatterSettings
) -> tuple[str, str] | None:
    """Pick the URL and extension to fetch for ``image``, or ``None`` to skip it."""
    if image.is_animated:
        if settings.download_videos and image.mp4_url:
            return image.mp4_url, "mp4"
        if settings.download_gifs:
            return image.url, "mp4" if image.url == image.mp4_url else "gif"
        return None
    if settings.download_images:
        return image.url, url_extension(image.url) or "jpg"
    return None


def download_gallery_images(
    downloader: MediaDownloader,
    post: Post,
    images: List[GalleryImage],
    settings: FormatterSettings,
    progress: ProgressCallback | None = None,
) -> List[str | None]:
    """Download gallery images one after another.

    The result lines up with ``images``; entries are ``None`` when the image
    was not selected for download or the download failed. ``progress`` is
    called with ``(current, total)`` after every attempt.
    """
    total = len(images)
    local_paths: List[str | None] = []
    for ordinal, image in enumerate(images, start=1):
        local_path: str | None = None
        target = gallery_download_target(image, settings)
        if target is not None:
            url, extension = target
            filename = media_filename(post, url, ordinal=ordinal, total=total, extension=extension)
            local_path = downloader.download(url, filename)
        local_paths.append(local_path)
        if progress is not None:
            progress(ordinal, total)
    return local_paths
