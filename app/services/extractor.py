"""Head-only extraction of page-summary metadata from a token stream.

:class:`SummaryBuilder` consumes tokens one at a time and applies the
precedence rules between plain HTML tags and Open Graph properties:

* ``<title>`` text fills ``title`` only while it is unset; ``og:title``
  always overwrites it.
* ``<meta name="description">`` fills ``description`` only while it is
  unset; ``og:description`` always overwrites it.
* Every other scalar, ``keywords`` and the icon are last-wins.
* ``og:image`` opens a new image record; the ``og:image:*`` detail
  properties that follow describe that record until the next ``og:image``.

Scanning stops at ``</head>`` or at the end of the document.
"""

import logging
import re
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional

from app.models.summary import PageSummary, PreviewImage
from app.services.errors import ParseError
from app.services.resolver import resolve_link
from app.services.tokenizer import Token

logger = logging.getLogger(__name__)

# Strict decimal integer: optional sign followed by digits, nothing else
_INT_RE = re.compile(r"[+-]?[0-9]+")

# Scalar Open Graph properties that overwrite their summary field unconditionally
_OG_SCALARS = {
    "og:title": "title",
    "og:type": "kind",
    "og:url": "canonical_url",
    "og:site_name": "site_name",
    "og:description": "description",
}

# Open Graph image-detail properties and the image field each one sets
_OG_IMAGE_DETAILS = {
    "og:image:secure_url": "secure_url",
    "og:image:type": "mime_type",
    "og:image:width": "width",
    "og:image:height": "height",
    "og:image:alt": "alt",
}

_NUMERIC_IMAGE_FIELDS = {"width", "height"}


def _parse_int(value: str) -> Optional[int]:
    """Return *value* as an int, or None if it is not a plain decimal number."""
    if _INT_RE.fullmatch(value):
        return int(value)
    return None


def _parse_sizes(sizes: str) -> tuple[Optional[int], Optional[int]]:
    """Parse a ``sizes`` attribute such as ``"32x32"`` into ``(width, height)``.

    Only the first entry of a space-separated list is used.  ``"any"`` and
    malformed halves leave the corresponding dimension as None.
    """
    entries = sizes.split()
    if not entries or entries[0].lower() == "any":
        return None, None
    parts = entries[0].lower().split("x")
    if len(parts) != 2:
        logger.debug("Ignoring malformed icon sizes %r", sizes)
        return None, None
    return _parse_int(parts[0]), _parse_int(parts[1])


def _build_icon(attrs: Mapping[str, str], page_url: str) -> PreviewImage:
    width, height = _parse_sizes(attrs.get("sizes", ""))
    return PreviewImage(
        url=resolve_link(attrs.get("href", ""), page_url),
        mime_type=attrs.get("type"),
        width=width,
        height=height,
    )


class SummaryBuilder:
    """Incrementally builds a :class:`PageSummary` from a stream of tokens.

    Call :meth:`feed` for each token until it returns False, then
    :meth:`build` to obtain the finished summary.  A builder holds the state
    of exactly one document and is not reusable.
    """

    def __init__(self, page_url: str) -> None:
        self.page_url = page_url
        self.done = False
        self._fields: Dict[str, Any] = {}
        self._images: List[Dict[str, Any]] = []
        # Index into _images of the record og:image:* properties apply to
        self._current_image: Optional[int] = None
        self._awaiting_title = False

    def feed(self, token: Token) -> bool:
        """Apply *token*; return False once scanning has finished.

        Raises:
            ParseError: if *token* reports a tokenizer failure.
        """
        if self.done:
            return False

        awaiting_title, self._awaiting_title = self._awaiting_title, False

        if token.type == "error":
            if token.error is not None:
                raise ParseError("Error encountered in processing the web page") from token.error
            self.done = True
        elif token.type == "end":
            if token.tag == "head":
                self.done = True
        elif token.type == "text":
            if awaiting_title and not self._fields.get("title"):
                self._fields["title"] = token.data
        elif token.type in ("start", "self_closing"):
            self._apply_tag(token)

        return not self.done

    def build(self) -> PageSummary:
        """Return the immutable summary accumulated so far."""
        images = [PreviewImage(**image) for image in self._images]
        return PageSummary(**self._fields, images=images or None)

    # ── Rules ────────────────────────────────────────────────────────────────

    def _apply_tag(self, token: Token) -> None:
        tag = token.tag
        attrs = token.attrs
        prop = attrs.get("property", "")
        name = attrs.get("name", "")
        content = attrs.get("content", "")
        fields = self._fields

        if tag == "title" and not fields.get("title"):
            self._awaiting_title = True

        if name == "description" and not fields.get("description"):
            fields["description"] = content

        if prop in _OG_SCALARS:
            fields[_OG_SCALARS[prop]] = content

        if name == "author":
            fields["author"] = content

        if name == "keywords":
            fields["keywords"] = [keyword.strip() for keyword in content.split(",")]

        if tag == "link" and attrs.get("rel") == "icon":
            fields["icon"] = _build_icon(attrs, self.page_url)

        if prop == "og:image":
            self._images.append({"url": resolve_link(content, self.page_url)})
            self._current_image = len(self._images) - 1

        if prop in _OG_IMAGE_DETAILS:
            self._apply_image_detail(_OG_IMAGE_DETAILS[prop], content)

    def _apply_image_detail(self, field: str, content: str) -> None:
        if self._current_image is None:
            logger.debug("Ignoring %s before any og:image on %s", field, self.page_url)
            return
        value: Any = content
        if field in _NUMERIC_IMAGE_FIELDS:
            value = _parse_int(content)
            if value is None:
                return
        self._images[self._current_image][field] = value


def extract_summary(page_url: str, tokens: Iterable[Token]) -> PageSummary:
    """Scan *tokens* up to the end of the document head and return the summary.

    Raises:
        ParseError: if the token stream reports a tokenizer failure.
    """
    builder = SummaryBuilder(page_url)
    for token in tokens:
        if not builder.feed(token):
            break
    return builder.build()


async def aextract_summary(page_url: str, tokens: AsyncIterator[Token]) -> PageSummary:
    """Async counterpart of :func:`extract_summary`.

    The token generator is closed as soon as scanning stops, so the rest of
    the body is never read.
    """
    builder = SummaryBuilder(page_url)
    async with aclosing(tokens):
        async for token in tokens:
            if not builder.feed(token):
                break
    return builder.build()
