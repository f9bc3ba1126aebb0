import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.services.assembler import JSON_MEDIA_TYPE, encode_summary
from app.services.errors import EncodingError, FetchError, InputError, ParseError
from app.services.summarizer import summarize_url

logger = logging.getLogger(__name__)

SUMMARY_PATH = "/v1/summary"

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()


@router.get(
    SUMMARY_PATH,
    summary="Summarize a web page for link previews",
    description=(
        "Fetches *url* and returns the preview metadata declared in the page's "
        "`<head>`: title, description, author, keywords, icon and Open Graph "
        "images.  Fields the page does not declare are omitted from the response."
    ),
)
@limiter.limit("30/minute")
async def page_summary(
    request: Request,
    url: str = Query(default="", description="URL of the web page to summarize."),
) -> Response:
    """Return the JSON page summary of *url*."""
    logger.info("Summary request received", extra={"url": url})

    try:
        if not url:
            raise InputError("Url not supplied")
        summary = await summarize_url(url)
        body = encode_summary(summary)
    except (InputError, FetchError) as exc:
        logger.warning("Cannot summarize %r – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except (ParseError, EncodingError) as exc:
        logger.error("Error summarizing %s: %s", url, exc)
        raise HTTPException(status_code=500, detail=str(exc))

    return Response(content=body, media_type=JSON_MEDIA_TYPE)
