from __future__ import annotations

from typing import Any

import pytest
import requests

import saved_reddit.reddit as reddit
from saved_reddit.models import Comment, Post
from saved_reddit.reddit import (
    BASE_URL,
    DEFAULT_USER_AGENT,
    build_session,
    fetch_comment_replies,
    fetch_comment_with_context,
    fetch_json,
    fetch_post_thread,
    fetch_user_items,
    is_comment_permalink,
    items_from_payload,
    normalize_permalink,
    permalink_json_url,
)


class FakeJsonResponse:
    def __init__(self, payload: Any = None, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Replays queued responses (or exceptions) and records each request."""

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, dict | None]] = []

    def get(self, url: str, *, params: dict | None = None, timeout: float = 30):  # noqa: D401
        self.requests.append((url, dict(params) if params else None))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(reddit.time, "sleep", recorded.append)
    return recorded


def _listing(children: list[dict], after: str | None = None) -> dict:
    return {"kind": "Listing", "data": {"children": children, "after": after}}


def _post_thing(post_id: str = "p1", **extra) -> dict:
    data = {
        "id": post_id,
        "title": "Thread title",
        "author": "poster",
        "subreddit": "python",
        "permalink": f"/r/python/comments/{post_id}/thread_title/",
        "created_utc": 1700000000,
    }
    data.update(extra)
    return {"kind": "t3", "data": data}


def _comment_thing(comment_id: str, *, score: int = 5, replies: list[dict] | None = None, **extra) -> dict:
    data = {
        "id": comment_id,
        "author": f"user_{comment_id}",
        "body": f"body {comment_id}",
        "score": score,
        "subreddit": "python",
        "created_utc": 1700000000,
        "replies": _listing(replies) if replies else "",
    }
    data.update(extra)
    return {"kind": "t1", "data": data}


def test_build_session_identifies_the_exporter() -> None:
    session = build_session()

    assert session.headers["User-Agent"] == DEFAULT_USER_AGENT
    assert DEFAULT_USER_AGENT.startswith("saved-reddit/")
    assert session.headers["Accept"] == "application/json"
    assert session.verify is True


def test_build_session_custom_agent_and_insecure() -> None:
    session = build_session("my-archiver/2.0", verify=False)

    assert session.headers["User-Agent"] == "my-archiver/2.0"
    assert session.verify is False
    assert build_session("").headers["User-Agent"] == DEFAULT_USER_AGENT


def test_fetch_json_waits_out_rate_limits(sleeps) -> None:
    session = FakeSession(
        [
            FakeJsonResponse(status_code=429),
            FakeJsonResponse(status_code=429),
            FakeJsonResponse({"ok": True}),
        ]
    )

    assert fetch_json(session, "https://example.com/a.json", retries=1) == {"ok": True}
    assert sleeps == [60, 120]
    assert len(session.requests) == 3


def test_fetch_json_backs_off_then_gives_up(sleeps) -> None:
    session = FakeSession([requests.exceptions.ConnectionError("down")] * 3)

    with pytest.raises(RuntimeError, match="Failed to fetch"):
        fetch_json(session, "https://example.com/a.json", retries=3, backoff=1.0)

    assert sleeps == [1.0, 2.0]


def test_fetch_json_retries_http_and_decode_errors(sleeps) -> None:
    session = FakeSession(
        [
            FakeJsonResponse(status_code=503),
            FakeJsonResponse(ValueError("not json")),
            FakeJsonResponse([1, 2]),
        ]
    )

    assert fetch_json(session, "https://example.com/a.json", backoff=0.5) == [1, 2]
    assert sleeps == [0.5, 1.0]


def test_normalize_permalink_variants() -> None:
    expected = "/r/python/comments/abc/title"

    assert normalize_permalink("https://www.reddit.com/r/python/comments/abc/title/") == expected
    assert normalize_permalink("/r/python/comments/abc/title.json") == expected
    assert normalize_permalink("r/python/comments/abc/title") == expected
    assert permalink_json_url("https://old.reddit.com/r/python/comments/abc/title/") == (
        f"{BASE_URL}{expected}.json"
    )
    with pytest.raises(ValueError):
        normalize_permalink("https://www.reddit.com/")


def test_is_comment_permalink() -> None:
    assert is_comment_permalink("https://www.reddit.com/r/python/comments/abc/title/c1/") is True
    assert is_comment_permalink("/r/python/comments/abc/title/") is False


def test_fetch_post_thread_filters_low_scores(sleeps) -> None:
    payload = [
        _listing([_post_thing()]),
        _listing(
            [
                _comment_thing("c1", replies=[_comment_thing("c2"), _comment_thing("c3", score=0)]),
                _comment_thing("c4", score=-2),
                {"kind": "more", "data": {"children": ["x"]}},
            ]
        ),
    ]
    session = FakeSession([FakeJsonResponse(payload)])

    post, comments = fetch_post_thread(
        session, "/r/python/comments/p1/thread_title/", upvote_threshold=1, max_depth=3
    )

    assert isinstance(post, Post)
    assert post.title == "Thread title"
    assert [comment.id for comment in comments] == ["c1"]
    assert [reply.id for reply in comments[0].replies] == ["c2"]
    assert comments[0].depth == 0
    assert comments[0].replies[0].depth == 1
    url, params = session.requests[0]
    assert url == f"{BASE_URL}/r/python/comments/p1/thread_title.json"
    assert params == {"raw_json": 1, "limit": 100, "depth": 3, "sort": "top"}


def test_fetch_post_thread_rejects_non_thread_payload(sleeps) -> None:
    session = FakeSession([FakeJsonResponse({"kind": "Listing", "data": {"children": []}})])

    with pytest.raises(ValueError):
        fetch_post_thread(session, "/r/python/comments/p1/thread_title/")


def test_comment_context_is_nearest_first(sleeps) -> None:
    chain = _comment_thing(
        "p0",
        replies=[_comment_thing("p1", replies=[_comment_thing("c2", is_submitter=True)])],
    )
    payload = [_listing([_post_thing()]), _listing([_comment_thing("other"), chain])]
    session = FakeSession([FakeJsonResponse(payload)])

    comment = fetch_comment_with_context(
        session, "https://www.reddit.com/r/python/comments/p1/thread_title/c2/", context_depth=50
    )

    assert isinstance(comment, Comment)
    assert comment.id == "c2"
    assert comment.depth == 2
    assert [parent.id for parent in comment.parent_comments] == ["p1", "p0"]
    assert comment.link_title == "Thread title"
    assert comment.link_author == "poster"
    assert comment.link_permalink == "/r/python/comments/p1/thread_title/"
    assert session.requests[0][1] == {"raw_json": 1, "context": 10}


def test_comment_context_top_level_comment(sleeps) -> None:
    payload = [_listing([_post_thing()]), _listing([_comment_thing("c2")])]
    session = FakeSession([FakeJsonResponse(payload)])

    comment = fetch_comment_with_context(session, "/r/python/comments/p1/thread_title/c2", context_depth=0)

    assert comment.depth == 0
    assert comment.parent_comments == []
    assert session.requests[0][1]["context"] == 1


def test_comment_context_missing_target(sleeps) -> None:
    payload = [_listing([_post_thing()]), _listing([_comment_thing("c9")])]
    session = FakeSession([FakeJsonResponse(payload)])

    with pytest.raises(ValueError, match="c2"):
        fetch_comment_with_context(session, "/r/python/comments/p1/thread_title/c2")


def test_fetch_comment_replies_annotates_depth(sleeps) -> None:
    target = _comment_thing(
        "c1",
        replies=[_comment_thing("r1", replies=[_comment_thing("r2", replies=[_comment_thing("r3")])])],
    )
    payload = [_listing([_post_thing()]), _listing([target])]
    session = FakeSession([FakeJsonResponse(payload)])

    replies = fetch_comment_replies(session, "/r/python/comments/p1/thread_title/c1", max_depth=2)

    assert [reply.id for reply in replies] == ["r1"]
    assert replies[0].depth == 1
    assert [reply.id for reply in replies[0].replies] == ["r2"]
    assert replies[0].replies[0].depth == 2
    assert replies[0].replies[0].replies == []


def test_fetch_user_items_follows_cursor(sleeps) -> None:
    first_page = _listing(
        [_post_thing("p1"), _comment_thing("c1"), {"kind": "t5", "data": {"id": "sub"}}],
        after="t1_c1",
    )
    second_page = _listing([_post_thing("p2")], after=None)
    session = FakeSession([FakeJsonResponse(first_page), FakeJsonResponse(second_page)])

    items = fetch_user_items(session, "someone", "submitted", delay=0.2)

    assert [item.id for item in items] == ["p1", "c1", "p2"]
    assert isinstance(items[1], Comment)
    assert sleeps == [1.0]
    assert session.requests[0] == (f"{BASE_URL}/user/someone/submitted.json", {"raw_json": 1, "limit": 100})
    assert session.requests[1][1] == {"raw_json": 1, "limit": 100, "after": "t1_c1"}


def test_fetch_user_items_honours_limit(sleeps) -> None:
    page = _listing([_post_thing("p1"), _post_thing("p2")], after="t3_p2")
    session = FakeSession([FakeJsonResponse(page)])

    items = fetch_user_items(session, "someone", "comments", limit=2)

    assert [item.id for item in items] == ["p1", "p2"]
    assert session.requests[0][1] == {"raw_json": 1, "limit": 2}
    assert len(session.requests) == 1


def test_fetch_user_items_rejects_unknown_section() -> None:
    with pytest.raises(ValueError):
        fetch_user_items(FakeSession([]), "someone", "saved")


def test_items_from_payload_shapes() -> None:
    post = _post_thing("p1")
    comment = _comment_thing("c1")

    assert [item.id for item in items_from_payload(post)] == ["p1"]
    assert [item.id for item in items_from_payload(_listing([post, comment]))] == ["p1", "c1"]
    assert [item.id for item in items_from_payload([post, _listing([comment])])] == ["p1", "c1"]
    thread = [_listing([post]), _listing([comment])]
    assert [item.id for item in items_from_payload(thread)] == ["p1"]
    with pytest.raises(ValueError):
        items_from_payload("nope")
