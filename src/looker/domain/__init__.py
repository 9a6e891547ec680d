"""Domain layer - value objects shared by the service layer and renderers.

Immutable Pydantic models with no dependency on the index or storage.
"""

from looker.domain.search import SearchHit, SearchResponse, SearchStats


__all__ = ["SearchHit", "SearchResponse", "SearchStats"]
