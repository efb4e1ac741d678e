"""
Deterministic pagination of the credential listing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    number: int
    total_pages: int
    total_items: int

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages


def total_pages(total_items: int, page_size: int) -> int:
    return max(1, -(-total_items // page_size))


def paginate(items: Sequence[T], page: int, page_size: int) -> Page[T]:
    """Slice `items` for a 1-based page number clamped to [1, total_pages]."""
    if page_size < 1:
        raise ValueError("page_size must be positive")
    pages = total_pages(len(items), page_size)
    number = min(max(page, 1), pages)
    start = (number - 1) * page_size
    return Page(
        items=tuple(items[start:start + page_size]),
        number=number,
        total_pages=pages,
        total_items=len(items),
    )
