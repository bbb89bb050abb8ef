"""File-backed note storage: naming, collision handling and duplicate detection."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .filters import determine_post_type
from .models import Comment, ContentOrigin, Item, Post
from .sanitize import is_path_safe, sanitize_filename, sanitize_subreddit_name

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"
ORIGIN_PREFIXES = {
    ContentOrigin.UPVOTED: "[Upvoted]",
    ContentOrigin.SUBMITTED: "[My Post]",
    ContentOrigin.COMMENTED: "[My Comment]",
}
TEMPLATE_PATTERN = re.compile(r"\{([A-Za-z]+)\}")
FOLDER_TEMPLATE_PRESETS = {
    "flat": "",
    "bySubreddit": "{subreddit}",
    "byDate": "{year}/{month}",
    "bySubredditAndDate": "{subreddit}/{year}/{month}",
    "byType": "{type}s",
    "byOrigin": "{origin}",
    "bySubredditAndType": "{subreddit}/{type}s",
    "comprehensive": "{origin}/{subreddit}/{year}",
}
FILENAME_TEMPLATE_PRESETS = {
    "titleOnly": "{title}",
    "titleWithDate": "{year}-{month}-{day} {title}",
    "subredditAndTitle": "{subreddit} - {title}",
    "idAndTitle": "{id} - {title}",
    "dateAndTitle": "{year}{month}{day} - {title}",
}


def note_title(item: Item, origin: ContentOrigin) -> str:
    """Raw (unsanitised) note name, e.g. ``[Upvoted] Comment - Some post``."""
    if isinstance(item, Comment):
        title = f"Comment - {item.link_title or 'Unknown'}"
    else:
        title = item.title if isinstance(item, Post) else ""
    return _with_origin_prefix(title, origin)


def _with_origin_prefix(name: str, origin: ContentOrigin) -> str:
    prefix = ORIGIN_PREFIXES.get(origin)
    return f"{prefix} {name}" if prefix else name


def template_variables(item: Item, origin: ContentOrigin) -> dict[str, str]:
    """Values for ``{name}`` placeholders; text values are already filename-safe.

    Dates use UTC so folders match the dates written into the note.
    """
    created = datetime.fromtimestamp(item.created_utc, tz=timezone.utc)
    if isinstance(item, Comment):
        raw_title = item.link_title or f"Comment by {item.author}"
        flair = ""
        post_type = ""
    else:
        raw_title = item.title or "Untitled"
        flair = item.link_flair_text or ""
        post_type = determine_post_type(item)
    return {
        "subreddit": sanitize_subreddit_name(item.subreddit or "unknown"),
        "author": sanitize_filename(item.author or "unknown"),
        "type": "comment" if isinstance(item, Comment) else "post",
        "origin": origin.value,
        "year": f"{created.year:04d}",
        "month": f"{created.month:02d}",
        "day": f"{created.day:02d}",
        "title": sanitize_filename(raw_title),
        "id": item.id,
        "flair": sanitize_filename(flair) if flair else "",
        "posttype": post_type,
        "score": str(item.score or 0),
    }


def apply_template(template: str, variables: dict[str, str]) -> str:
    """Fill ``{name}`` placeholders (case-insensitive); unknown ones become empty."""
    if not template:
        return ""
    result = TEMPLATE_PATTERN.sub(lambda match: variables.get(match.group(1).lower(), ""), template)
    result = re.sub(r"/+", "/", result)
    return result.rstrip("/")


def read_frontmatter_id(path: Path) -> str | None:
    """``id`` value from a note's leading ``---`` block, if there is one."""
    with path.open("r", encoding="utf-8") as fh:
        if fh.readline().strip() != "---":
            return None
        for line in fh:
            stripped = line.strip()
            if stripped == "---":
                break
            if stripped.startswith("id:"):
                return stripped[len("id:"):].strip() or None
    return None


class DocumentStore:
    """Write notes under ``root``, one markdown file per Reddit item.

    ``folder_template`` and ``filename_template`` take ``{name}`` placeholders
    (see :func:`template_variables`). Without a folder template,
    ``organize_by_subreddit`` still gives one folder per subreddit.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        organize_by_subreddit: bool = False,
        folder_template: str = "",
        filename_template: str = "",
    ) -> None:
        self.root = Path(root)
        self.organize_by_subreddit = organize_by_subreddit
        self.folder_template = FOLDER_TEMPLATE_PRESETS.get(folder_template, folder_template or "")
        self.filename_template = FILENAME_TEMPLATE_PRESETS.get(filename_template, filename_template or "")
        self._known_ids: set[str] | None = None

    def iter_notes(self) -> Iterator[Path]:
        if not self.root.exists():
            return iter(())
        return (path for path in sorted(self.root.rglob(f"*{NOTE_SUFFIX}")) if path.is_file())

    def existing_ids(self) -> set[str]:
        if self._known_ids is None:
            known: set[str] = set()
            for path in self.iter_notes():
                try:
                    item_id = read_frontmatter_id(path)
                except (OSError, UnicodeDecodeError) as exc:
                    logger.warning("Could not read %s: %s", path, exc)
                    continue
                if item_id:
                    known.add(item_id)
            self._known_ids = known
            logger.info("Found %d existing note(s) in %s", len(known), self.root)
        return self._known_ids

    def contains(self, item_id: str) -> bool:
        return item_id in self.existing_ids()

    def folder_for(self, item: Item, origin: ContentOrigin = ContentOrigin.SAVED) -> Path:
        if not self.folder_template:
            if self.organize_by_subreddit and item.subreddit:
                return self.root / sanitize_subreddit_name(item.subreddit)
            return self.root
        rendered = apply_template(self.folder_template, template_variables(item, origin))
        folder = self.root
        for segment in rendered.split("/"):
            if not segment.strip(" ."):
                continue
            folder = folder / sanitize_filename(segment)
        return folder

    def note_name(self, item: Item, origin: ContentOrigin) -> str:
        """Raw note name before sanitising, origin prefix included."""
        if not self.filename_template:
            return note_title(item, origin)
        variables = template_variables(item, origin)
        name = apply_template(self.filename_template, variables) or variables["id"]
        return _with_origin_prefix(name, origin)

    def target_path(self, item: Item, origin: ContentOrigin) -> Path | None:
        """Free path for ``item``'s note or ``None`` when its name is unsafe.

        Taken names get `` 1``, `` 2``, ... appended until one is free.
        """
        raw_name = self.note_name(item, origin)
        if not is_path_safe(raw_name):
            logger.warning("Skipping potentially unsafe filename: %s", raw_name)
            return None
        name = sanitize_filename(raw_name)
        folder = self.folder_for(item, origin)
        candidate = folder / f"{name}{NOTE_SUFFIX}"
        counter = 1
        while candidate.exists():
            candidate = folder / f"{name} {counter}{NOTE_SUFFIX}"
            counter += 1
        return candidate

    def write(self, item: Item, origin: ContentOrigin, content: str) -> Path | None:
        path = self.target_path(item, origin)
        if path is None:
            return None
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if self._known_ids is not None:
            self._known_ids.add(item.id)
        logger.info("Wrote %s", path)
        return path
