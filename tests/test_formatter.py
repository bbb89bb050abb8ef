from __future__ import annotations

from pathlib import Path

from saved_reddit.config import FormatterSettings
from saved_reddit.formatter import ContentFormatter
from saved_reddit.media import MediaDownloader
from saved_reddit.models import Comment, ContentOrigin, Post


class FakeResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code

    def iter_content(self, chunk_size: int = 8192):  # noqa: D401 - generator helper
        yield b"bytes"

    def close(self) -> None:
        pass


class FakeSession:
    def __init__(self, *, status_code: int = 200, error: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.status_code = status_code
        self.error = error

    def get(self, url: str, *, stream: bool, timeout: float):  # noqa: D401 - signature matches requests
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


def _self_post(**overrides) -> Post:
    fields = dict(
        id="abc123",
        title='Test "Quoted" Title',
        author="poster",
        subreddit="Python",
        created_utc=1700000000,
        score=100,
        permalink="/r/Python/comments/abc123/test/",
        num_comments=2,
        upvote_ratio=0.9,
        is_self=True,
        selftext="Hello &amp; welcome to u/poster's thread",
    )
    fields.update(overrides)
    return Post(**fields)


def _image_post() -> Post:
    return Post(
        id="img1",
        title="Cute cat",
        author="catlover",
        subreddit="aww",
        created_utc=1700000000,
        score=10,
        permalink="/r/aww/comments/img1/cute_cat/",
        url="https://i.redd.it/cat.jpg",
        domain="i.redd.it",
    )


def _gallery_post(*, statuses: tuple[str, str] = ("valid", "valid")) -> Post:
    return Post.from_data(
        {
            "id": "gal1",
            "title": "My Gallery",
            "author": "shooter",
            "subreddit": "pics",
            "created_utc": 1700000000,
            "permalink": "/r/pics/comments/gal1/my_gallery/",
            "is_gallery": True,
            "url": "https://www.reddit.com/gallery/gal1",
            "domain": "reddit.com",
            "gallery_data": {
                "items": [
                    {"media_id": "a", "caption": "First"},
                    {"media_id": "c", "outbound_url": "https://example.com/more"},
                ]
            },
            "media_metadata": {
                "a": {"status": statuses[0], "e": "Image", "s": {"u": "https://i.redd.it/a.jpg", "x": 640, "y": 480}},
                "c": {
                    "status": statuses[1],
                    "e": "AnimatedImage",
                    "s": {"gif": "https://i.redd.it/c.gif", "mp4": "https://i.redd.it/c.mp4"},
                },
            },
        }
    )


def _comment(parent_id: str) -> Comment:
    return Comment(
        id="c1",
        author="alice",
        subreddit="Python",
        created_utc=1700000000,
        score=3,
        body="I agree",
        permalink="/r/Python/comments/abc123/test/c1/",
        parent_id=parent_id,
        link_id="t3_abc123",
        link_title="Test",
        link_permalink="/r/Python/comments/abc123/test/",
        link_author="poster",
    )


def test_self_post_end_to_end() -> None:
    note = ContentFormatter().format_item(_self_post())

    frontmatter, _, rest = note.partition("\n---\n\n")
    assert note.startswith("---\ntype: reddit-post\n")
    assert 'title: "Test \\"Quoted\\" Title"' in frontmatter
    assert "score: 100" in frontmatter
    assert "\nurl:" not in frontmatter
    assert "> [!info] 🔖 Saved\n> **r/Python** · u/poster · 100 points · 2 comments\n" in rest
    assert '# Test "Quoted" Title\n\n' in rest
    assert "Hello & welcome to [u/poster](https://reddit.com/u/poster)'s thread" in rest
    assert "#reddit #r-python #reddit-saved #reddit-post" in rest
    assert note.endswith("[View on Reddit →](https://reddit.com/r/Python/comments/abc123/test/)")


def test_post_badges_and_origin_label() -> None:
    post = _self_post(stickied=True, over_18=True, total_awards_received=2, link_flair_text="Help Wanted")

    note = ContentFormatter().format_item(post, ContentOrigin.SUBMITTED)

    assert "type: reddit-user-post" in note
    assert "> [!info] 📝 Your Post\n" in note
    assert "**r/Python** · `Help Wanted` · u/poster" in note
    assert "> \n> 📌 Stickied · 🔞 NSFW · 🏆 2 awards\n" in note
    assert "#help-wanted #reddit-submitted #reddit-post" in note


def test_reply_comment_indicator() -> None:
    note = ContentFormatter().format_item(_comment("t1_parent"))

    assert "> [!quote] 🔖 Saved\n" in note
    assert "> r/Python · u/alice · 3 points\n" in note
    assert "Reply to comment" in note
    assert "Top-level comment" not in note
    assert "# Comment on: Test\n" in note
    assert "[View original post →](https://reddit.com/r/Python/comments/abc123/test/)" in note
    assert "I agree" in note
    assert "#reddit-comment" in note


def test_top_level_comment_indicator() -> None:
    note = ContentFormatter().format_item(_comment("t3_abc123"))

    assert "Top-level comment" in note
    assert "Reply to comment" not in note
    assert "parent_type: post" in note


def test_comment_with_context_and_replies() -> None:
    comment = _comment("t1_p1")
    comment.depth = 2
    comment.parent_comments = [
        Comment(id="p1", author="near", body="nearest", score=1, created_utc=1700000000),
        Comment(id="p0", author="poster", body="root", score=1, created_utc=1700000000),
    ]
    comment.replies = [Comment(id="r1", author="bob", body="a reply", depth=1, created_utc=1700000000)]

    note = ContentFormatter().format_item(comment)

    assert " · Depth 2\n" in note
    assert "> [!note]- Parent Context (2 comments)\n" in note
    assert "> **u/near** · 1 points" in note
    assert "> > **u/poster** 👑 OP · 1 points" in note
    assert "## Your Comment\n\nI agree" in note
    assert "## Replies (1)" in note
    assert "> **u/bob** · 0 points" in note


def test_post_comments_section() -> None:
    comments = [Comment(id="c1", author="poster", body="op reply", score=4, created_utc=1700000000)]

    note = ContentFormatter().format_item(_self_post(), comments=comments)

    assert "exported_comments: 1" in note
    assert "## Comments (1)" in note
    assert "**u/poster** 👑 OP · 4 points" in note


def test_crosspost_renders_original_content() -> None:
    original = _self_post(
        id="orig",
        title="Original title",
        author="orig_author",
        subreddit="original_sub",
        selftext="original body",
        permalink="/r/original_sub/comments/orig/original_title/",
    )
    crosspost = _self_post(
        id="xpost",
        title="Crossposted",
        selftext="crosspost body",
        crosspost_parent="t3_orig",
        crosspost_parent_list=[original],
    )

    note = ContentFormatter(FormatterSettings(import_crosspost_original=True)).format_item(crosspost)

    assert "> [!tip] Crosspost\n> Original: r/original_sub by u/orig_author\n" in note
    assert "# Original title\n" in note
    assert "original body" in note
    assert "crosspost body" not in note
    assert "id: xpost" in note
    assert "crosspost_subreddit: Python" in note
    assert "#r-original_sub" in note
    assert "(https://reddit.com/r/original_sub/comments/orig/original_title/)" in note


def test_crosspost_comments_crown_the_crossposter() -> None:
    original = _self_post(id="orig", author="orig", subreddit="original_sub", selftext="original body")
    crosspost = _self_post(
        id="xpost",
        author="xposter",
        crosspost_parent="t3_orig",
        crosspost_parent_list=[original],
    )
    comments = [
        Comment(id="k1", author="xposter", body="my crosspost", created_utc=1700000000),
        Comment(id="k2", author="orig", body="hello from the source", created_utc=1700000000),
    ]

    note = ContentFormatter(FormatterSettings(import_crosspost_original=True)).format_item(
        crosspost, comments=comments
    )

    assert "**u/xposter** 👑 OP · 0 points" in note
    assert "**u/orig** · 0 points" in note
    assert "**u/orig** 👑 OP" not in note


def test_image_post_embeds_downloaded_file(tmp_path: Path) -> None:
    session = FakeSession()
    settings = FormatterSettings(download_images=True)
    formatter = ContentFormatter(settings, downloader=MediaDownloader(session, tmp_path / "Attachments"))

    note = formatter.format_item(_image_post())

    assert "📸 **Image**\n\n![[Cute cat-img1-cat.jpg]]\n\n*Downloaded locally: Cute cat-img1-cat.jpg*" in note
    assert (tmp_path / "Attachments" / "Cute cat-img1-cat.jpg").exists()
    assert session.calls == ["https://i.redd.it/cat.jpg"]
    assert "post_type: image" in note
    assert "[Original source →](https://i.redd.it/cat.jpg)" in note


def test_failed_download_falls_back_to_remote_link(tmp_path: Path) -> None:
    settings = FormatterSettings(download_images=True)
    formatter = ContentFormatter(settings, downloader=MediaDownloader(FakeSession(status_code=500), tmp_path))

    note = formatter.format_item(_image_post())

    assert "![Cute cat](https://i.redd.it/cat.jpg)" in note
    assert "![[" not in note


def test_unexpected_download_error_does_not_escape(tmp_path: Path) -> None:
    settings = FormatterSettings(download_images=True)
    session = FakeSession(error=RuntimeError("unexpected"))
    formatter = ContentFormatter(settings, downloader=MediaDownloader(session, tmp_path))

    note = formatter.format_item(_image_post())

    assert "![Cute cat](https://i.redd.it/cat.jpg)" in note


def test_media_not_downloaded_when_disabled(tmp_path: Path) -> None:
    session = FakeSession()
    formatter = ContentFormatter(FormatterSettings(), downloader=MediaDownloader(session, tmp_path))

    note = formatter.format_item(_image_post())

    assert session.calls == []
    assert "![Cute cat](https://i.redd.it/cat.jpg)" in note


def test_youtube_embed() -> None:
    post = Post(
        id="yt1",
        title="Talk",
        subreddit="videos",
        url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        domain="youtube.com",
    )

    note = ContentFormatter().format_item(post)

    assert "[▶️ Watch on YouTube](https://www.youtube.com/watch?v=dQw4w9WgXcQ)" in note
    assert 'src="https://www.youtube.com/embed/dQw4w9WgXcQ"' in note
    assert "media_type: youtube" in note


def test_plain_link_post() -> None:
    post = Post(id="l1", title="Article", subreddit="news", url="https://example.com/story", domain="example.com")

    note = ContentFormatter().format_item(post)

    assert "🔗 **External Link:** [example.com](https://example.com/story)" in note
    assert "post_type: link" in note
    assert "media_type" not in note


def test_gallery_without_downloads() -> None:
    note = ContentFormatter().format_item(_gallery_post())

    assert "post_type: gallery" in note
    assert "gallery_count: 2" in note
    assert "> [!example] Gallery (2 images)" in note
    assert "### 1/2: First\n\n![Image 1](https://i.redd.it/a.jpg)\n\n*640×480*" in note
    assert "### 2/2\n\n[View animation →](https://i.redd.it/c.mp4)" in note
    assert "[External link →](https://example.com/more)" in note
    assert "#reddit-post #reddit-gallery" in note


def test_gallery_downloads_and_progress(tmp_path: Path) -> None:
    session = FakeSession()
    settings = FormatterSettings(download_images=True, download_videos=True)
    formatter = ContentFormatter(settings, downloader=MediaDownloader(session, tmp_path))
    progress: list[tuple[int, int]] = []

    note = formatter.format_item(
        _gallery_post(), progress=lambda current, total: progress.append((current, total))
    )

    assert progress == [(1, 2), (2, 2)]
    assert "![[My Gallery-gal1-1.jpg]]\n\n*640×480*" in note
    assert "![[My Gallery-gal1-2.mp4]]\n\n*Animated*" in note
    assert session.calls == ["https://i.redd.it/a.jpg", "https://i.redd.it/c.mp4"]


def test_gallery_with_no_valid_images() -> None:
    note = ContentFormatter().format_item(_gallery_post(statuses=("failed", "unprocessed")))

    assert "> [!warning] Gallery post with no accessible images" in note
    assert "gallery_count: 0" in note


def test_poll_rendering() -> None:
    post = Post.from_data(
        {
            "id": "poll1",
            "title": "Tabs or spaces?",
            "subreddit": "Python",
            "is_self": True,
            "poll_data": {
                "options": [
                    {"id": "1", "text": "Spaces", "vote_count": 30},
                    {"id": "2", "text": "Tabs", "vote_count": 10},
                ],
                "total_vote_count": 40,
                "voting_end_timestamp": 1700000000000,
                "user_selection": "1",
            },
        }
    )

    note = ContentFormatter().format_item(post)

    assert "post_type: poll" in note
    assert "poll_total_votes: 40" in note
    assert "poll_options_count: 2" in note
    assert "poll_ends: 2023-11-14T22:13:20.000Z" in note
    assert "> [!success] Poll (Ended) · You voted\n> 40 total votes\n" in note
    assert "| Spaces ✓ | 30 | 75.0% |" in note
    assert "| Tabs | 10 | 25.0% |" in note
    assert "**Spaces**\n`" + "█" * 15 + "░" * 5 + "` 75.0%" in note
    assert "#reddit-poll" in note


def test_open_poll_without_deadline() -> None:
    post = Post.from_data(
        {
            "id": "poll2",
            "title": "Open",
            "is_self": True,
            "poll_data": {"options": [{"id": "1", "text": "Only"}], "total_vote_count": 0},
        }
    )

    section = ContentFormatter().format_poll(post)

    assert section.startswith("> [!info] Poll\n> 0 total votes\n")
    assert "| Only | 0 | 0.0% |" in section
    assert "### Results" not in section


def test_external_links_section() -> None:
    post = _self_post(selftext="Read https://example.com/article. Also https://www.reddit.com/r/x")
    settings = FormatterSettings(extract_external_links=True)

    note = ContentFormatter(settings).format_item(post)

    assert "> [!abstract]- External Links (1)\n" in note
    assert "> - [example.com](https://example.com/article) *(body)*\n" in note
    assert ">   - [Save to archive →](https://web.archive.org/save/https://example.com/article)\n" in note
