from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Immutable payload that serialises to camelCase for the public API."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


SearchOrigin = Literal["search", "listing"]


class SearchResultItem(CamelModel):
    """One deduplicated search hit. Identity is `canonical_url`."""

    title: str
    original_url: str
    canonical_url: str
    snippet: str = ""
    published_at: datetime
    origin: SearchOrigin = Field(
        default="search",
        description="Which source produced the item (primary keyword search or listing page).",
    )


class ArticleContent(CamelModel):
    """Best-effort extraction result for a single article page."""

    full_text: str
    source_name: str = ""
    thumbnail_url: str = ""
    journalist: str = ""


class EnrichedArticle(CamelModel):
    """A search hit plus whatever the content fetcher could extract."""

    title: str
    original_url: str
    canonical_url: str
    snippet: str = ""
    published_at: datetime
    origin: SearchOrigin = "search"
    full_text: str = ""
    source_name: str = ""
    thumbnail_url: str = ""
    journalist: str = ""
    enriched: bool = False

    @classmethod
    def from_search_result(
        cls,
        item: SearchResultItem,
        content: Optional[ArticleContent],
    ) -> "EnrichedArticle":
        # A fetch that returned only whitespace is a miss, same as None.
        text = content.full_text.strip() if content is not None else ""
        return cls(
            title=item.title,
            original_url=item.original_url,
            canonical_url=item.canonical_url,
            snippet=item.snippet,
            published_at=item.published_at,
            origin=item.origin,
            full_text=text,
            source_name=content.source_name if content is not None else "",
            thumbnail_url=content.thumbnail_url if content is not None else "",
            journalist=content.journalist if content is not None else "",
            enriched=bool(text),
        )
