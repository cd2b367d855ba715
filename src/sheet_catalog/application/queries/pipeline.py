"""Filter, rank and paginate an in-memory song snapshot.

Every listing surface (home grid, search results, favorites, admin tables)
derives its view through these functions. They are pure: the input
sequence is never mutated and the same input always gives the same output.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Generic, List, Sequence, TypeVar, Union

from ...domain.entities import Song
from ...domain.value_objects import ALL_CATEGORIES, Category

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 15
DEFAULT_SUGGESTION_LIMIT = 5

CategoryFilter = Union[Category, str]


class SearchMode(Enum):
    """How a blank query is treated."""
    SUGGEST = "suggest"  # blank query matches nothing
    BROWSE = "browse"  # blank query matches everything


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a filtered, ordered collection."""
    items: List[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def matches_text(song: Song, query: str) -> bool:
    """Case-insensitive substring match of ``query`` against the song name."""
    return query.lower() in song.name.lower()


def filter_by_text(songs: Sequence[Song], query: str, mode: SearchMode = SearchMode.BROWSE) -> List[Song]:
    """Filter songs by name.

    In SUGGEST mode a blank or whitespace-only query returns nothing, so
    "nothing typed yet" is distinguishable from "no match". In BROWSE mode it
    returns every song.
    """
    if not query.strip():
        return [] if mode is SearchMode.SUGGEST else list(songs)
    return [s for s in songs if matches_text(s, query)]


def suggest(songs: Sequence[Song], query: str, limit: int = DEFAULT_SUGGESTION_LIMIT) -> List[Song]:
    """Live-suggestion lookup for a search box."""
    return filter_by_text(songs, query, SearchMode.SUGGEST)[:limit]


def _coerce_category(category: CategoryFilter) -> Union[Category, str]:
    if isinstance(category, Category) or category == ALL_CATEGORIES:
        return category
    return Category(category)


def filter_by_category(songs: Sequence[Song], category: CategoryFilter = ALL_CATEGORIES) -> List[Song]:
    """Keep songs filed under ``category``; the "All" sentinel keeps everything."""
    category = _coerce_category(category)
    if category == ALL_CATEGORIES:
        return list(songs)
    return [s for s in songs if s.has_category(category)]


def rank_by_search_count(songs: Sequence[Song]) -> List[Song]:
    """Order by descending search count; ties keep their input order."""
    return sorted(songs, key=lambda s: s.search_count, reverse=True)


def paginate(items: Sequence[T], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page[T]:
    """Slice page ``page`` (1-indexed) out of ``items``.

    There is always at least one page, even for an empty collection. A page
    past the end has no items.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    if page < 1:
        raise ValueError(f"page must be 1 or greater, got {page}")

    total_items = len(items)
    total_pages = max(1, math.ceil(total_items / page_size))
    start = (page - 1) * page_size
    return Page(
        items=list(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
    )


def browse(
    songs: Sequence[Song],
    query: str = "",
    category: CategoryFilter = ALL_CATEGORIES,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[Song]:
    """Full-library grid: text filter, category filter, then paginate."""
    filtered = filter_by_category(filter_by_text(songs, query, SearchMode.BROWSE), category)
    return paginate(filtered, page, page_size)


def analytics(songs: Sequence[Song], category: CategoryFilter = ALL_CATEGORIES) -> List[Song]:
    """Admin analytics table: category filter, then rank by popularity."""
    return rank_by_search_count(filter_by_category(songs, category))


def favorites_only(songs: Sequence[Song]) -> List[Song]:
    return [s for s in songs if s.is_favorite]


def total_searches(songs: Sequence[Song]) -> int:
    return sum(s.search_count for s in songs)
