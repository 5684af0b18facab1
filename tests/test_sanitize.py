"""
tests/test_sanitize.py -- HTML allow-listing and WordPress payload mapping.
"""

from __future__ import annotations

from core.models import post_from_wp
from core.sanitize import sanitize_html, strip_tags


class TestSanitizeHtml:
    def test_keeps_allowed_markup(self) -> None:
        out = sanitize_html("<p>Hi <strong>there</strong></p>")
        assert out == "<p>Hi <strong>there</strong></p>"

    def test_drops_script_and_its_content(self) -> None:
        out = sanitize_html("<p>ok</p><script>alert(1)</script>")
        assert "script" not in out
        assert "alert" not in out

    def test_drops_event_handlers(self) -> None:
        out = sanitize_html('<img src="https://x.test/a.jpg" onerror="alert(1)">')
        assert "onerror" not in out
        assert 'src="https://x.test/a.jpg"' in out

    def test_drops_javascript_urls(self) -> None:
        out = sanitize_html('<a href="javascript:alert(1)">x</a>')
        assert "javascript" not in out

    def test_links_get_noopener(self) -> None:
        out = sanitize_html('<a href="https://example.com" target="_blank">x</a>')
        assert 'rel="noopener noreferrer"' in out

    def test_non_string_input(self) -> None:
        assert sanitize_html(None) == ""
        assert sanitize_html("") == ""


class TestStripTags:
    def test_plain_text_with_entities_decoded(self) -> None:
        assert strip_tags("<em>Lisbon</em> &amp; Porto") == "Lisbon & Porto"

    def test_empty(self) -> None:
        assert strip_tags("") == ""


class TestPostFromWp:
    def test_full_payload(self) -> None:
        post = post_from_wp(
            {
                "id": "42",
                "slug": "kyoto",
                "date": "2026-03-01T10:00:00",
                "status": "publish",
                "title": {"rendered": "Kyoto <em>alone</em>"},
                "excerpt": {"rendered": "<p>Temples</p>"},
                "content": {"rendered": "<p>Body</p><script>x()</script>"},
                "_embedded": {
                    "wp:featuredmedia": [
                        {
                            "source_url": "https://cms.test/kyoto.jpg",
                            "alt_text": "Gate",
                            "media_details": {"width": 800, "height": 600},
                        }
                    ],
                    "author": [{"name": "Mei"}],
                },
            }
        )
        assert post.id == 42
        assert post.title_text == "Kyoto alone"
        assert post.title_html == "Kyoto <em>alone</em>"
        assert "script" not in post.content_html
        assert post.featured_media is not None
        assert post.featured_media.width == 800
        assert post.author_name == "Mei"

    def test_minimal_payload(self) -> None:
        post = post_from_wp({"id": 1, "slug": "bare"})
        assert post.title_html == ""
        assert post.featured_media is None
        assert post.author_name is None

    def test_media_without_source_url_ignored(self) -> None:
        post = post_from_wp({"id": 1, "slug": "x", "_embedded": {"wp:featuredmedia": [{"code": "rest_forbidden"}]}})
        assert post.featured_media is None
