"""Read-side views over catalog snapshots."""

from .pipeline import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SUGGESTION_LIMIT,
    Page,
    SearchMode,
    analytics,
    browse,
    favorites_only,
    filter_by_category,
    filter_by_text,
    matches_text,
    paginate,
    rank_by_search_count,
    suggest,
    total_searches,
)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SUGGESTION_LIMIT",
    "Page",
    "SearchMode",
    "analytics",
    "browse",
    "favorites_only",
    "filter_by_category",
    "filter_by_text",
    "matches_text",
    "paginate",
    "rank_by_search_count",
    "suggest",
    "total_searches",
]
