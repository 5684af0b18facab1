"""
tests/test_fetcher.py -- Unit tests for core/fetcher.py (WordPress client).

The module-level requests.Session is replaced with a MagicMock so no test
touches the network. The CMS base URL is switched on per test by patching
the cached Settings object.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

import core.fetcher as fetcher
from core.config import get_settings
from core.fetcher import ContentUnavailable, fetch_post_by_slug, fetch_posts

BASE = "https://cms.test"


def _wp_post(post_id: int = 1, slug: str = "hello", title: str = "Hello") -> dict:
    return {
        "id": post_id,
        "slug": slug,
        "date": "2026-02-01T09:00:00",
        "status": "publish",
        "link": f"{BASE}/{slug}/",
        "title": {"rendered": title},
        "excerpt": {"rendered": "<p>Short</p>"},
        "content": {"rendered": "<p>Body</p>"},
    }


def _response(payload=None, status: int = 200, bad_json: bool = False) -> MagicMock:
    resp = MagicMock()
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    if bad_json:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session(monkeypatch) -> MagicMock:
    mock = MagicMock()
    monkeypatch.setattr(fetcher, "_session", mock)
    return mock


@pytest.fixture
def cms(monkeypatch, session) -> MagicMock:
    monkeypatch.setattr(get_settings(), "wordpress_url", BASE)
    return session


class TestUnconfigured:
    def test_lenient_fetches_degrade_without_network(self, session) -> None:
        assert fetch_posts() == []
        assert fetch_post_by_slug("hello") is None
        session.get.assert_not_called()

    def test_strict_fetch_raises(self, session) -> None:
        with pytest.raises(ContentUnavailable):
            fetch_posts(strict=True)

    def test_is_cms_configured(self, monkeypatch) -> None:
        assert fetcher.is_cms_configured() is False
        monkeypatch.setattr(get_settings(), "wordpress_url", BASE)
        assert fetcher.is_cms_configured() is True


class TestFetchPosts:
    def test_builds_list_request(self, cms) -> None:
        cms.get.return_value = _response([_wp_post()])
        posts = fetch_posts(page=2, per_page=12, category=4, search="lisbon")
        url = cms.get.call_args.args[0]
        params = cms.get.call_args.kwargs["params"]
        assert url == f"{BASE}/wp-json/wp/v2/posts"
        assert params == {"_embed": "1", "per_page": "12", "page": "2", "categories": "4", "search": "lisbon"}
        assert cms.get.call_args.kwargs["timeout"] == 10
        assert [p.slug for p in posts] == ["hello"]

    def test_skips_non_object_items(self, cms) -> None:
        cms.get.return_value = _response([_wp_post(), "junk", 3])
        assert len(fetch_posts()) == 1

    @pytest.mark.parametrize(
        "response",
        [
            _response(status=500),
            _response(bad_json=True),
            _response({"code": "rest_no_route"}),
        ],
    )
    def test_lenient_failures_return_empty(self, cms, response) -> None:
        cms.get.return_value = response
        assert fetch_posts() == []

    def test_network_error_lenient(self, cms) -> None:
        cms.get.side_effect = requests.ConnectionError("refused")
        assert fetch_posts() == []

    @pytest.mark.parametrize(
        "response",
        [_response(status=503), _response(bad_json=True), _response({"code": "rest_no_route"})],
    )
    def test_strict_failures_raise(self, cms, response) -> None:
        cms.get.return_value = response
        with pytest.raises(ContentUnavailable):
            fetch_posts(strict=True)

    def test_strict_network_error_chains_cause(self, cms) -> None:
        cms.get.side_effect = requests.Timeout("slow")
        with pytest.raises(ContentUnavailable) as excinfo:
            fetch_posts(strict=True)
        assert isinstance(excinfo.value.__cause__, requests.Timeout)


class TestFetchPostBySlug:
    def test_found(self, cms) -> None:
        cms.get.return_value = _response([_wp_post(slug="lisbon-alone", title="Lisbon &amp; me")])
        post = fetch_post_by_slug("lisbon-alone")
        assert post is not None
        assert post.title_text == "Lisbon & me"
        assert cms.get.call_args.kwargs["params"] == {"_embed": "1", "slug": "lisbon-alone"}

    def test_not_found(self, cms) -> None:
        cms.get.return_value = _response([])
        assert fetch_post_by_slug("missing") is None

    def test_error_is_not_found_when_lenient(self, cms) -> None:
        cms.get.return_value = _response(status=404)
        assert fetch_post_by_slug("missing") is None
