"""Summary orchestration: fetch a page, tokenize its head, extract the summary."""

import logging
from typing import Optional

import httpx

from app.models.summary import PageSummary
from app.services.extractor import aextract_summary
from app.services.fetcher import iter_body, open_html_stream, response_charset
from app.services.tokenizer import aiter_tokens

logger = logging.getLogger(__name__)


async def summarize_url(
    url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> PageSummary:
    """Fetch *url* and return the preview metadata found in its ``<head>``.

    The response stream is released on every exit path, including when the
    token stream fails part-way through the document.

    Raises:
        FetchError: if the page cannot be fetched as HTML.
        ParseError: if the body cannot be tokenized up to the end of the head.
    """
    async with open_html_stream(url, transport=transport) as response:
        tokens = aiter_tokens(iter_body(response), encoding=response_charset(response))
        summary = await aextract_summary(url, tokens)

    logger.info(
        "Summary extracted",
        extra={"url": url, "images": len(summary.images or []), "has_icon": summary.icon is not None},
    )
    return summary
