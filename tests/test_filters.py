from __future__ import annotations

import pytest

from saved_reddit.filters import (
    DAY_SECONDS,
    FilterEngine,
    FilterSettings,
    determine_post_type,
)
from saved_reddit.models import Comment, Post

NOW = 1700000000.0


def _post(post_id: str = "p1", **kwargs) -> Post:
    fields = {
        "title": "Learning Python",
        "author": "alice",
        "subreddit": "Python",
        "score": 50,
        "created_utc": NOW - 3600,
        "is_self": True,
        "selftext": "A text post about generators",
        "num_comments": 12,
        "upvote_ratio": 0.95,
    }
    fields.update(kwargs)
    return Post(id=post_id, **fields)


def _comment(comment_id: str = "c1", **kwargs) -> Comment:
    fields = {
        "author": "bob",
        "subreddit": "Python",
        "score": 5,
        "created_utc": NOW - 3600,
        "body": "Use a generator expression",
        "link_title": "Learning Python",
    }
    fields.update(kwargs)
    return Comment(id=comment_id, **fields)


def _check(item, **settings):
    return FilterEngine(FilterSettings(**settings)).check(item, now=NOW)


def test_default_settings_keep_everything() -> None:
    settings = FilterSettings()

    assert settings.active is False
    assert FilterEngine(settings).check(_post(), now=NOW).passes
    assert FilterEngine().check(_comment(), now=NOW).passes
    assert FilterSettings(min_score=1).active is True


def test_determine_post_type() -> None:
    assert determine_post_type(_post()) == "text"
    assert determine_post_type(_post(is_self=False, url="https://i.redd.it/a.jpg", domain="i.redd.it")) == "image"
    assert determine_post_type(_post(is_self=False, url="https://v.redd.it/abc", domain="v.redd.it")) == "video"
    assert determine_post_type(_post(is_self=False, url="https://gfycat.com/x", domain="gfycat.com")) == "image"
    assert determine_post_type(_post(is_self=False, url="https://example.com/a", domain="example.com")) == "link"


def test_post_type_rules() -> None:
    link = _post(is_self=False, url="https://example.com/a", domain="example.com")

    result = _check(link, include_post_types=("text", "image"))

    assert result.passes is False
    assert result.kind == "postType"
    assert result.reason == "Post type 'link' excluded"
    assert _check(_comment(), include_comments=False).reason == "Comments excluded"
    assert _check(_post(), include_posts=False).reason == "Posts excluded"
    assert _check(_comment(), include_posts=False).passes


def test_nsfw_rule() -> None:
    result = _check(_post(over_18=True), exclude_nsfw=True)

    assert (result.passes, result.kind) == (False, "nsfw")
    assert _check(_post(over_18=True)).passes


def test_subreddit_list_defaults_to_exclude() -> None:
    result = _check(_post(subreddit="Python"), subreddits=["r/python"])

    assert result.passes is False
    assert result.kind == "subreddit"
    assert result.reason == "Subreddit 'r/Python' in exclude list"
    assert _check(_post(subreddit="golang"), subreddits=["python"]).passes


def test_subreddit_include_list_and_regex() -> None:
    assert _check(_post(subreddit="golang"), subreddits=["python"], subreddit_mode="include").passes is False
    assert _check(_post(subreddit="Python"), subreddits=[" PYTHON "], subreddit_mode="include").passes

    assert _check(_post(subreddit="learnpython"), subreddit_regex="python$", subreddit_mode="include").passes
    result = _check(_post(subreddit="rust"), subreddit_regex="python$", subreddit_mode="include")
    assert result.reason == "Subreddit 'r/rust' doesn't match regex pattern"
    assert _check(_post(subreddit="learnpython"), subreddit_regex="^learn").passes is False


def test_invalid_regex_is_rejected() -> None:
    with pytest.raises(ValueError):
        FilterSettings(subreddit_regex="(unclosed")


def test_author_rule() -> None:
    assert _check(_post(author="Alice"), authors=["u/alice"]).kind == "author"
    assert _check(_post(author="carol"), authors=["alice"], author_mode="include").passes is False
    assert _check(_post(author="alice"), authors=["alice"], author_mode="include").passes


def test_score_and_upvote_ratio() -> None:
    assert _check(_post(score=3), min_score=10).reason == "Score 3 below minimum 10"
    assert _check(_post(score=300), max_score=100).reason == "Score 300 above maximum 100"
    result = _check(_post(upvote_ratio=0.6), min_upvote_ratio=0.9)
    assert result.kind == "score"
    assert result.reason == "Upvote ratio 60% below minimum 90%"
    assert _check(_comment(), min_upvote_ratio=0.9).passes


def test_date_presets_and_custom_range() -> None:
    recent = _post(created_utc=NOW - 2 * DAY_SECONDS)
    old = _post(created_utc=NOW - 40 * DAY_SECONDS)

    assert _check(recent, date_preset="last_day").kind == "date"
    assert _check(recent, date_preset="last_week").passes
    assert _check(old, date_preset="last_month").reason == "Item is older than last month"
    assert _check(old, date_preset="last_year").passes

    window = {"date_preset": "custom", "date_start": NOW - 10 * DAY_SECONDS, "date_end": NOW - DAY_SECONDS}
    assert _check(recent, **window).passes
    assert _check(old, **window).reason == "Item is before start date"
    assert _check(_post(created_utc=NOW), **window).reason == "Item is after end date"


def test_comment_count_applies_to_posts_only() -> None:
    assert _check(_post(num_comments=2), min_comments=10).kind == "commentCount"
    assert _check(_post(num_comments=200), max_comments=100).passes is False
    assert _check(_comment(), min_comments=10).passes


def test_domain_rule_matches_subdomains() -> None:
    link = _post(is_self=False, url="https://m.youtube.com/watch?v=x", domain="m.youtube.com")

    result = _check(link, domains=["youtube.com"])

    assert (result.passes, result.kind) == (False, "domain")
    assert _check(link, domains=["tube.com"]).passes
    assert _check(link, domains=["example.com"], domain_mode="include").passes is False
    assert _check(_post(domain="self.python"), domains=["self.python"]).passes


def test_flair_rule() -> None:
    flaired = _post(link_flair_text="Discussion Thread")

    assert _check(flaired, flairs=["discussion"]).passes
    assert _check(flaired, flairs=["news"]).reason == "Flair 'Discussion Thread' not in include list"
    assert _check(_post(), flairs=["news"]).reason == "Post has no flair (flair filter active)"
    assert _check(flaired, flairs=["thread"], flair_mode="exclude").kind == "content"
    assert _check(_post(), flairs=["thread"], flair_mode="exclude").passes
    assert _check(_comment(), flairs=["news"]).passes


def test_title_keywords_use_post_title_for_comments() -> None:
    assert _check(_comment(link_title="Rust tips"), title_keywords=["python"]).passes is False
    assert _check(_comment(), title_keywords=["PYTHON"]).passes
    result = _check(_post(), title_keywords=["python"], title_mode="exclude")
    assert (result.kind, result.reason) == ("content", "Title contains excluded keywords")


def test_content_keywords() -> None:
    assert _check(_post(), content_keywords=["generators"]).passes
    assert _check(_comment(), content_keywords=["lambda"]).reason == "Content does not contain required keywords"
    assert _check(_post(selftext=""), content_keywords=["x"]).reason == "No content to search for keywords"
    assert _check(_post(selftext=""), content_keywords=["x"], content_mode="exclude").passes
    assert _check(_comment(), content_keywords=["generator"], content_mode="exclude").passes is False


def test_first_failing_rule_wins() -> None:
    result = _check(_post(over_18=True, score=1), exclude_nsfw=True, min_score=10)

    assert result.kind == "nsfw"


def test_filter_items_reports_breakdown() -> None:
    engine = FilterEngine(FilterSettings(min_score=10, subreddits=["rust"]))
    items = [
        _post("keep"),
        _post("low", score=1),
        _comment("lowc", score=2),
        _post("rusty", subreddit="rust"),
    ]

    report = engine.filter_items(items, now=NOW)

    assert [item.id for item in report.passed] == ["keep"]
    assert [item.id for item, _ in report.filtered] == ["low", "lowc", "rusty"]
    assert report.breakdown == {"score": 2, "subreddit": 1}


@pytest.mark.parametrize(
    "settings",
    [
        {"subreddit_mode": "only"},
        {"include_post_types": ("text", "poll")},
        {"include_post_types": ()},
        {"include_posts": False, "include_comments": False},
        {"date_preset": "last_decade"},
        {"date_start": NOW, "date_end": NOW - 1},
        {"min_score": 10, "max_score": 1},
        {"min_upvote_ratio": 1.5},
    ],
)
def test_invalid_settings_raise(settings: dict) -> None:
    with pytest.raises(ValueError):
        FilterSettings(**settings)
