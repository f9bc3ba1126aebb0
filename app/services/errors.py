"""Exceptions raised while summarizing a web page.

Client-caused failures (:class:`InputError`, :class:`FetchError`) map to 400
responses; :class:`ParseError` and :class:`EncodingError` map to 500.
"""


class SummaryError(Exception):
    """Base class for every page-summary failure."""


class InputError(SummaryError):
    """Raised when the target URL was not supplied."""


class FetchError(SummaryError):
    """Raised when the target page could not be fetched as HTML."""


class InvalidURLError(FetchError):
    """Raised when a URL fails scheme or private-address validation."""


class NetworkError(FetchError):
    """Raised on transport failures, timeouts and redirect loops."""


class NotFoundError(FetchError):
    """Raised when the target responds with anything but 200 OK."""


class UnsupportedTypeError(FetchError):
    """Raised when the target's content type is not HTML."""


class ResponseTooLargeError(FetchError):
    """Raised when the response body exceeds the allowed size."""


class ParseError(SummaryError):
    """Raised when the token stream fails before the end of the document head."""


class EncodingError(SummaryError):
    """Raised when a finished summary cannot be serialized."""
