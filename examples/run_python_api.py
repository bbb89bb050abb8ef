from __future__ import annotations

from pathlib import Path

from saved_reddit import (
    ContentFormatter,
    ContentOrigin,
    DocumentStore,
    FormatterSettings,
    MediaDownloader,
    build_session,
    fetch_post_thread,
)


def main() -> None:
    """Demonstrate the Python API by turning one post and its comments into a note."""
    session = build_session("saved-reddit-example/0.1", verify=True)
    output_root = Path("./example_notes")

    settings = FormatterSettings(download_images=True, media_folder="Attachments")
    formatter = ContentFormatter(
        settings,
        downloader=MediaDownloader(session, output_root / settings.media_folder),
    )

    post, comments = fetch_post_thread(
        session,
        "https://www.reddit.com/r/Python/comments/1abcde/example_post/",
        upvote_threshold=5,
    )
    content = formatter.format_item(post, ContentOrigin.SAVED, comments)

    path = DocumentStore(output_root).write(post, ContentOrigin.SAVED, content)
    print(f"Wrote {path}")


if __name__ == "__main__":
    main()
