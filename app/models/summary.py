from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

# Values treated as "never set" and dropped from serialized output
_EMPTY_VALUES = (None, "", 0, [])


class _OmitEmptyModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_serializer(mode="wrap")
    def _omit_empty(self, handler) -> dict[str, Any]:
        data = handler(self)
        return {key: value for key, value in data.items() if value not in _EMPTY_VALUES}


class PreviewImage(_OmitEmptyModel):
    """A preview image: an ``og:image`` record or the page icon."""

    url: str = ""
    secure_url: Optional[str] = Field(default=None, alias="secureURL")
    mime_type: Optional[str] = Field(default=None, alias="type")
    width: Optional[int] = None
    height: Optional[int] = None
    alt: Optional[str] = None


class PageSummary(_OmitEmptyModel):
    """Preview metadata collected from the ``<head>`` of a web page."""

    kind: Optional[str] = Field(default=None, alias="type")
    canonical_url: Optional[str] = Field(default=None, alias="url")
    title: Optional[str] = None
    site_name: Optional[str] = Field(default=None, alias="siteName")
    description: Optional[str] = None
    author: Optional[str] = None
    keywords: Optional[List[str]] = None
    icon: Optional[PreviewImage] = None
    images: Optional[List[PreviewImage]] = None
