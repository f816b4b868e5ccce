"""Page slicing over an already-ordered result sequence."""
from dataclasses import dataclass
from typing import Generic, List, Sequence, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[T], page: int = 1, limit: int = 20) -> Page[T]:
    """
    Slice ``items`` into a 1-based page.

    Ordering must already be final (a total order), otherwise page
    boundaries are not stable between calls.
    """
    page = max(1, page)
    limit = max(1, limit)
    start = (page - 1) * limit
    return Page(data=list(items[start:start + limit]), total=len(items), page=page, limit=limit)
