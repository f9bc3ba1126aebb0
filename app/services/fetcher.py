import asyncio
import ipaddress
import logging
import socket
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from urllib.parse import urljoin, urlparse

import httpx

from app.services.errors import (
    InvalidURLError,
    NetworkError,
    NotFoundError,
    ResponseTooLargeError,
    UnsupportedTypeError,
)

logger = logging.getLogger(__name__)

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10 MB
TIMEOUT = 10  # seconds
MAX_REDIRECTS = 10
ALLOWED_SCHEMES = {"http", "https"}
HTML_MEDIA_TYPE = "text/html"


def _is_private_address(hostname: str) -> bool:
    """Return True if *hostname* resolves to a private, loopback, or link-local address."""
    try:
        infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False

    for info in infos:
        raw_ip = info[4][0]
        # Strip IPv6 zone IDs (e.g. "::1%eth0" → "::1")
        raw_ip = raw_ip.split("%")[0]
        try:
            addr = ipaddress.ip_address(raw_ip)
        except ValueError:
            continue
        if addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved:
            return True
    return False


async def _validate_url(url: str) -> None:
    """Raise InvalidURLError if *url* fails SSRF / scheme validation.

    The DNS lookup behind the private-address check blocks, so it runs in a
    worker thread.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidURLError(f"Malformed URL: {exc}") from exc

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise InvalidURLError(f"Scheme '{parsed.scheme}' is not allowed. Use http or https.")

    if not hostname:
        raise InvalidURLError("URL must have a valid hostname.")

    if await asyncio.to_thread(_is_private_address, hostname):
        raise InvalidURLError("Requests to private/internal addresses are not allowed.")


def _check_response(response: httpx.Response) -> None:
    """Raise a FetchError unless *response* is a 200 OK HTML page of acceptable size."""
    if response.status_code != httpx.codes.OK:
        raise NotFoundError("Provided url was not found")

    content_type = response.headers.get("content-type", "").lower()
    if not content_type.startswith(HTML_MEDIA_TYPE):
        raise UnsupportedTypeError("Provided url is not a web page")

    content_length = response.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_CONTENT_SIZE:
        raise ResponseTooLargeError("Response body exceeds the maximum allowed size.")


@asynccontextmanager
async def open_html_stream(
    url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> AsyncIterator[httpx.Response]:
    """Open a streamed GET of *url* and yield the validated HTML response.

    Redirects are followed manually so that every redirect destination is
    validated against the SSRF rules before the next request is made.  The
    response body is left unread; it is released when the context exits,
    whatever the outcome.

    Raises:
        InvalidURLError: if the URL (or a redirect target) fails validation.
        NetworkError: on transport errors, timeouts or too many redirects.
        NotFoundError: if the final response status is not 200.
        UnsupportedTypeError: if the final response is not ``text/html``.
        ResponseTooLargeError: if the declared body size is too large.
    """
    await _validate_url(url)

    current_url = url
    async with httpx.AsyncClient(
        follow_redirects=False, timeout=TIMEOUT, transport=transport
    ) as client:
        for _ in range(MAX_REDIRECTS + 1):
            try:
                request = client.build_request("GET", current_url)
                response = await client.send(request, stream=True)
            except httpx.InvalidURL as exc:
                # e.g. a non-numeric port, which urlparse does not check
                raise InvalidURLError(f"Malformed URL: {exc}") from exc
            except httpx.RequestError as exc:
                raise NetworkError(f"Could not fetch {current_url}: {exc}") from exc

            try:
                if response.is_redirect:
                    location = response.headers.get("location", "")
                    try:
                        next_url = urljoin(current_url, location)
                    except ValueError as exc:
                        raise InvalidURLError(f"Malformed redirect location: {location!r}") from exc
                    await _validate_url(next_url)
                    logger.debug("Following redirect %s -> %s", current_url, next_url)
                    current_url = next_url
                    continue

                _check_response(response)
                yield response
                return
            finally:
                await response.aclose()

    raise NetworkError("Too many redirects.")


async def iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the (content-decoded) body of *response*, enforcing MAX_CONTENT_SIZE.

    Raises:
        ResponseTooLargeError: once more than MAX_CONTENT_SIZE bytes were read.
    """
    total = 0
    async for chunk in response.aiter_bytes():
        total += len(chunk)
        if total > MAX_CONTENT_SIZE:
            raise ResponseTooLargeError("Response body exceeds the maximum allowed size.")
        yield chunk


def response_charset(response: httpx.Response) -> Optional[str]:
    """Return the charset declared in the response's Content-Type header, if any."""
    return response.charset_encoding
