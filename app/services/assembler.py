"""JSON encoding of finished page summaries."""

from pydantic_core import PydanticSerializationError

from app.models.summary import PageSummary
from app.services.errors import EncodingError

JSON_MEDIA_TYPE = "application/json"


def encode_summary(summary: PageSummary) -> bytes:
    """Serialize *summary* to JSON, leaving out every field that was never set.

    Raises:
        EncodingError: if the summary cannot be serialized.
    """
    try:
        return summary.model_dump_json(by_alias=True).encode()
    except (PydanticSerializationError, ValueError) as exc:
        raise EncodingError(f"Could not encode page summary: {exc}") from exc
