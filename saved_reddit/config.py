"""Settings consumed by the formatting pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MEDIA_FOLDER = "Attachments"
PARENT_CONTEXT_MAX_CHARS = 500
COMMENT_CONTEXT_DEFAULT = 3
COMMENT_CONTEXT_MAX = 10
COMMENT_REPLY_DEPTH_DEFAULT = 2
COMMENT_REPLY_DEPTH_MAX = 5


@dataclass(slots=True)
class FormatterSettings:
    """Options that shape a rendered note and its media side effects."""

    download_images: bool = False
    download_gifs: bool = False
    download_videos: bool = False
    media_folder: Path = field(default_factory=lambda: Path(DEFAULT_MEDIA_FOLDER))
    preserve_crosspost_metadata: bool = True
    import_crosspost_original: bool = False
    extract_external_links: bool = False
    check_wayback_archive: bool = False
    include_archive_links: bool = True
    parent_context_max_chars: int = PARENT_CONTEXT_MAX_CHARS
    comment_context_depth: int = COMMENT_CONTEXT_DEFAULT
    comment_reply_depth: int = COMMENT_REPLY_DEPTH_DEFAULT
    comment_upvote_threshold: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.media_folder, Path):
            if not str(self.media_folder).strip():
                raise ValueError("media_folder must not be empty")
            self.media_folder = Path(str(self.media_folder))
        if ".." in self.media_folder.parts:
            raise ValueError(f"media_folder may not traverse upwards: {self.media_folder}")
        self.parent_context_max_chars = max(4, int(self.parent_context_max_chars))
        self.comment_context_depth = max(1, min(int(self.comment_context_depth), COMMENT_CONTEXT_MAX))
        self.comment_reply_depth = max(1, min(int(self.comment_reply_depth), COMMENT_REPLY_DEPTH_MAX))
        self.comment_upvote_threshold = int(self.comment_upvote_threshold)
        if self.check_wayback_archive and not self.extract_external_links:
            raise ValueError("check_wayback_archive requires extract_external_links")

    @property
    def any_downloads(self) -> bool:
        return self.download_images or self.download_gifs or self.download_videos
