"""Tests for app.services.extractor: precedence rules and the image list."""

import asyncio

import pytest
from pydantic import ValidationError

from app.services.errors import ParseError
from app.services.extractor import SummaryBuilder, aextract_summary, extract_summary
from app.services.tokenizer import Token, iter_tokens

_PAGE = "https://ex.com/a/b"


def _summarize(head: str, page_url: str = _PAGE):
    html = f"<!DOCTYPE html><html><head>{head}</head><body></body></html>"
    return extract_summary(page_url, iter_tokens([html]))


def _og(prop: str, content: str) -> str:
    return f'<meta property="{prop}" content="{content}">'


def _dump(summary) -> dict:
    return summary.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

class TestTitle:
    def test_title_only(self):
        summary = _summarize("<title>Hello</title>")
        assert _dump(summary) == {"title": "Hello"}

    def test_og_title_after_title_wins(self):
        summary = _summarize("<title>Plain</title>" + _og("og:title", "Graph"))
        assert summary.title == "Graph"

    def test_og_title_before_title_wins(self):
        summary = _summarize(_og("og:title", "Graph") + "<title>Plain</title>")
        assert summary.title == "Graph"

    def test_first_title_is_kept(self):
        summary = _summarize("<title>First</title><title>Second</title>")
        assert summary.title == "First"

    def test_empty_title_tag_leaves_title_unset(self):
        summary = _summarize("<title></title>")
        assert summary.title is None

    def test_token_after_empty_title_is_still_processed(self):
        summary = _summarize("<title></title>" + _og("og:type", "article"))
        assert summary.title is None
        assert summary.kind == "article"

    def test_title_entities_are_decoded(self):
        summary = _summarize("<title>Tom &amp; Jerry</title>")
        assert summary.title == "Tom & Jerry"

    def test_comment_inside_title_is_part_of_the_title(self):
        summary = _summarize("<title><!-- x -->Hello</title>")
        assert summary.title == "<!-- x -->Hello"


# ---------------------------------------------------------------------------
# Scalar Open Graph fields
# ---------------------------------------------------------------------------

class TestScalars:
    def test_open_graph_scalars(self):
        summary = _summarize(
            _og("og:type", "website")
            + _og("og:url", "https://ex.com/canonical")
            + _og("og:site_name", "Example")
        )
        assert _dump(summary) == {
            "type": "website",
            "url": "https://ex.com/canonical",
            "siteName": "Example",
        }

    def test_last_occurrence_wins(self):
        summary = _summarize(_og("og:type", "website") + _og("og:type", "article"))
        assert summary.kind == "article"

    def test_author_last_wins(self):
        summary = _summarize(
            '<meta name="author" content="Ada"><meta name="author" content="Grace">'
        )
        assert summary.author == "Grace"

    def test_property_is_honoured_on_self_closing_tags(self):
        summary = _summarize('<meta property="og:site_name" content="Example" />')
        assert summary.site_name == "Example"


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------

class TestDescription:
    def test_generic_description(self):
        summary = _summarize('<meta name="description" content="Generic">')
        assert summary.description == "Generic"

    def test_first_generic_description_is_kept(self):
        summary = _summarize(
            '<meta name="description" content="First">'
            '<meta name="description" content="Second">'
        )
        assert summary.description == "First"

    def test_og_description_after_generic_wins(self):
        summary = _summarize(
            '<meta name="description" content="Generic">' + _og("og:description", "Graph")
        )
        assert summary.description == "Graph"

    def test_og_description_before_generic_wins(self):
        summary = _summarize(
            _og("og:description", "Graph") + '<meta name="description" content="Generic">'
        )
        assert summary.description == "Graph"


# ---------------------------------------------------------------------------
# Keywords
# ---------------------------------------------------------------------------

class TestKeywords:
    def test_keywords_are_split_and_trimmed(self):
        summary = _summarize('<meta name="keywords" content="a, b ,c">')
        assert summary.keywords == ["a", "b", "c"]

    def test_keywords_are_replaced_wholesale(self):
        summary = _summarize(
            '<meta name="keywords" content="a, b">'
            '<meta name="keywords" content="x">'
        )
        assert summary.keywords == ["x"]

    def test_keywords_absent_when_never_set(self):
        assert "keywords" not in _dump(_summarize("<title>T</title>"))


# ---------------------------------------------------------------------------
# Icon
# ---------------------------------------------------------------------------

class TestIcon:
    def test_icon_with_sizes(self):
        summary = _summarize('<link rel="icon" sizes="32x32" href="/i.png">')
        assert _dump(summary)["icon"] == {"url": "https://ex.com/i.png", "width": 32, "height": 32}

    def test_sizes_any_leaves_dimensions_unset(self):
        summary = _summarize('<link rel="icon" sizes="any" href="/i.svg">')
        assert _dump(summary)["icon"] == {"url": "https://ex.com/i.svg"}

    def test_sizes_width_then_height(self):
        summary = _summarize('<link rel="icon" sizes="48x16" href="/i.png">')
        assert (summary.icon.width, summary.icon.height) == (48, 16)

    def test_unparsable_half_is_left_unset(self):
        summary = _summarize('<link rel="icon" sizes="16xabc" href="/i.png">')
        assert summary.icon.width == 16
        assert summary.icon.height is None

    def test_malformed_sizes_leave_dimensions_unset(self):
        summary = _summarize('<link rel="icon" sizes="big" href="/i.png">')
        assert summary.icon.width is None
        assert summary.icon.height is None

    def test_first_of_several_sizes_is_used(self):
        summary = _summarize('<link rel="icon" sizes="16x16 32x32" href="/i.png">')
        assert (summary.icon.width, summary.icon.height) == (16, 16)

    def test_icon_type(self):
        summary = _summarize('<link rel="icon" type="image/png" href="/i.png">')
        assert _dump(summary)["icon"] == {"url": "https://ex.com/i.png", "type": "image/png"}

    def test_relative_icon_href_is_kept_as_is(self):
        summary = _summarize('<link rel="icon" href="favicon.ico">')
        assert summary.icon.url == "favicon.ico"

    def test_last_icon_wins(self):
        summary = _summarize(
            '<link rel="icon" sizes="16x16" href="/small.png">'
            '<link rel="icon" href="/large.png">'
        )
        assert _dump(summary)["icon"] == {"url": "https://ex.com/large.png"}

    def test_other_link_relations_are_ignored(self):
        summary = _summarize('<link rel="stylesheet" href="/site.css">')
        assert summary.icon is None


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

class TestImages:
    def test_details_attach_to_most_recent_image(self):
        summary = _summarize(
            _og("og:image", "https://ex.com/u1")
            + _og("og:image:width", "100")
            + _og("og:image", "https://ex.com/u2")
            + _og("og:image:width", "200")
        )
        assert _dump(summary)["images"] == [
            {"url": "https://ex.com/u1", "width": 100},
            {"url": "https://ex.com/u2", "width": 200},
        ]

    def test_all_image_details(self):
        summary = _summarize(
            _og("og:image", "/cover.jpg")
            + _og("og:image:secure_url", "https://ex.com/cover.jpg")
            + _og("og:image:type", "image/jpeg")
            + _og("og:image:width", "1200")
            + _og("og:image:height", "630")
            + _og("og:image:alt", "A cover")
        )
        assert _dump(summary)["images"] == [
            {
                "url": "https://ex.com/cover.jpg",
                "secureURL": "https://ex.com/cover.jpg",
                "type": "image/jpeg",
                "width": 1200,
                "height": 630,
                "alt": "A cover",
            }
        ]

    def test_non_numeric_dimensions_are_ignored(self):
        summary = _summarize(
            _og("og:image", "https://ex.com/u1")
            + _og("og:image:width", "wide")
            + _og("og:image:height", "12.5")
        )
        assert _dump(summary)["images"] == [{"url": "https://ex.com/u1"}]

    def test_invalid_dimension_keeps_previous_value(self):
        summary = _summarize(
            _og("og:image", "https://ex.com/u1")
            + _og("og:image:width", "100")
            + _og("og:image:width", "n/a")
        )
        assert summary.images[0].width == 100

    def test_orphan_detail_before_any_image_is_ignored(self):
        summary = _summarize(_og("og:image:width", "100") + "<title>T</title>")
        assert _dump(summary) == {"title": "T"}

    def test_orphan_detail_does_not_attach_to_later_image(self):
        summary = _summarize(
            _og("og:image:alt", "orphan") + _og("og:image", "https://ex.com/u1")
        )
        assert summary.images[0].alt is None

    def test_images_absent_when_none_declared(self):
        assert _summarize("<title>T</title>").images is None

    def test_image_urls_are_resolved(self):
        summary = _summarize(_og("og:image", "/a.png") + _og("og:image", "b.png"))
        assert [image.url for image in summary.images] == ["https://ex.com/a.png", "b.png"]


# ---------------------------------------------------------------------------
# Scan termination and failures
# ---------------------------------------------------------------------------

class TestScanning:
    def test_body_tags_are_ignored(self):
        html = (
            "<html><head><title>Head</title></head>"
            "<body>" + _og("og:title", "Body") + _og("og:image", "https://ex.com/x") + "</body></html>"
        )
        summary = extract_summary(_PAGE, iter_tokens([html]))
        assert _dump(summary) == {"title": "Head"}

    def test_document_without_head_close_is_scanned_to_eof(self):
        summary = extract_summary(_PAGE, iter_tokens(["<title>T</title>" + _og("og:type", "x")]))
        assert summary.kind == "x"

    def test_tokenizer_error_raises_parse_error(self):
        tokens = [
            Token("start", tag="meta", attrs={"property": "og:title", "content": "Lost"}),
            Token("error", error=RuntimeError("broken stream")),
        ]
        with pytest.raises(ParseError):
            extract_summary(_PAGE, tokens)

    def test_feed_returns_false_after_head(self):
        builder = SummaryBuilder(_PAGE)
        assert builder.feed(Token("start", tag="head")) is True
        assert builder.feed(Token("end", tag="head")) is False
        assert builder.feed(Token("start", tag="meta", attrs={"property": "og:title", "content": "Late"})) is False
        assert builder.build().title is None

    def test_summary_is_immutable(self):
        summary = _summarize("<title>T</title>")
        with pytest.raises(ValidationError):
            summary.title = "changed"


class TestAsyncExtraction:
    def test_stops_at_head_and_closes_token_stream(self):
        state = {"after_head": False, "closed": False}

        async def tokens():
            try:
                yield Token("start", tag="title")
                yield Token("text", data="Async")
                yield Token("end", tag="head")
                state["after_head"] = True
                yield Token("start", tag="meta", attrs={"property": "og:title", "content": "Late"})
            finally:
                state["closed"] = True

        summary = asyncio.run(aextract_summary(_PAGE, tokens()))

        assert summary.title == "Async"
        assert state == {"after_head": False, "closed": True}

    def test_async_error_token_raises_parse_error(self):
        async def tokens():
            yield Token("start", tag="head")
            yield Token("error", error=RuntimeError("reset"))

        with pytest.raises(ParseError):
            asyncio.run(aextract_summary(_PAGE, tokens()))
