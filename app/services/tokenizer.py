"""Incremental HTML tokenizer producing a lazy stream of markup tokens.

The lexing itself is delegated to :class:`html.parser.HTMLParser`; this module
turns its callbacks into :class:`Token` values that can be consumed one at a
time while the page is still downloading.

Comments, doctype declarations and processing instructions produce no
tokens.  The content of ``<title>`` is lexed as text up to ``</title>``, as
HTML does, so ``<title><!-- x -->Hello</title>`` yields the text token
``"<!-- x -->Hello"``; character references in it are still decoded.

Every token stream ends with exactly one ``"error"`` token.  Its ``error``
attribute is ``None`` when the document simply ended, or carries the
exception that interrupted the stream.
"""

import codecs
from html import unescape
from html.parser import HTMLParser
from typing import (
    AsyncIterable,
    AsyncIterator,
    Iterable,
    Iterator,
    List,
    Literal,
    Mapping,
    NamedTuple,
    Optional,
    Union,
)

import httpx
from bs4.dammit import EncodingDetector

TokenType = Literal["start", "end", "self_closing", "text", "error"]

DEFAULT_ENCODING = "utf-8"

# Failures that end a token stream with an error token instead of a clean EOF.
# RequestError covers transport failures and content-decoding failures
# (corrupt gzip/brotli) raised while the body is read.
# HTMLParser reports a malformed marked section (``<![...]>``) with AssertionError.
STREAM_ERRORS = (httpx.RequestError, httpx.StreamError, AssertionError)


class Token(NamedTuple):
    type: TokenType
    tag: str = ""
    attrs: Mapping[str, str] = {}
    data: str = ""
    error: Optional[BaseException] = None


def _known_encoding(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


class Tokenizer(HTMLParser):
    """Push-style tokenizer: feed raw bytes, get back the tokens completed so far."""

    # Raw text up to the matching end tag; title text is unescaped in _flush_text
    CDATA_CONTENT_ELEMENTS = ("script", "style", "title")

    def __init__(self, encoding: Optional[str] = None) -> None:
        super().__init__(convert_charrefs=True)
        self._encoding = _known_encoding(encoding)
        self._decoder = None
        self._pending: List[Token] = []
        self._text: List[str] = []
        self._unescape_text = False

    # ── Public API ────────────────────────────────────────────────────────────

    def feed(self, chunk: Union[bytes, str]) -> List[Token]:
        if isinstance(chunk, bytes):
            chunk = self._decode(chunk)
        super().feed(chunk)
        return self._drain()

    def close(self) -> List[Token]:
        if self._decoder is not None:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                super().feed(tail)
        super().close()
        self._flush_text()
        return self._drain()

    # ── HTMLParser callbacks ──────────────────────────────────────────────────

    def handle_starttag(self, tag, attrs):
        self._emit(Token("start", tag=tag, attrs=_attr_map(attrs)))

    def handle_startendtag(self, tag, attrs):
        self._emit(Token("self_closing", tag=tag, attrs=_attr_map(attrs)))

    def handle_endtag(self, tag):
        self._emit(Token("end", tag=tag))

    def handle_data(self, data):
        # Text may arrive in several pieces (chunk boundaries); keep it until
        # the next tag so consumers always see one complete text token.
        self._text.append(data)

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _decode(self, chunk: bytes) -> str:
        if self._decoder is None:
            encoding = (
                self._encoding
                or _known_encoding(EncodingDetector.find_declared_encoding(chunk, is_html=True))
                or DEFAULT_ENCODING
            )
            self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        return self._decoder.decode(chunk)

    def _emit(self, token: Token) -> None:
        self._flush_text()
        self._pending.append(token)
        self._unescape_text = token.type == "start" and token.tag == "title"

    def _flush_text(self) -> None:
        if self._text:
            data = "".join(self._text)
            if self._unescape_text:
                data = unescape(data)
            self._pending.append(Token("text", data=data))
            self._text = []

    def _drain(self) -> List[Token]:
        tokens, self._pending = self._pending, []
        return tokens


def _attr_map(attrs) -> dict:
    """Convert HTMLParser's attribute pairs to a dict; valueless attributes map to ``""``."""
    return {key: value or "" for key, value in attrs}


def iter_tokens(
    chunks: Iterable[Union[bytes, str]], encoding: Optional[str] = None
) -> Iterator[Token]:
    """Yield tokens for the document made of *chunks*, ending with an ``"error"`` token."""
    tokenizer = Tokenizer(encoding)
    try:
        for chunk in chunks:
            yield from tokenizer.feed(chunk)
        yield from tokenizer.close()
    except STREAM_ERRORS as exc:
        yield Token("error", error=exc)
        return
    yield Token("error")


async def aiter_tokens(
    chunks: AsyncIterable[bytes], encoding: Optional[str] = None
) -> AsyncIterator[Token]:
    """Async counterpart of :func:`iter_tokens` for streamed response bodies."""
    tokenizer = Tokenizer(encoding)
    try:
        async for chunk in chunks:
            for token in tokenizer.feed(chunk):
                yield token
        for token in tokenizer.close():
            yield token
    except STREAM_ERRORS as exc:
        yield Token("error", error=exc)
        return
    yield Token("error")
