"""Page requests and page results.

Page numbers are 1-based at the boundary; repositories work with the
0-based `offset` derived here. Each resource has its own maximum size, so
the maximum is always supplied by the caller of `PageRequest.create`.
"""

import math
from dataclasses import dataclass
from typing import Generic, TypeVar

from cat_engine.errors import ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    """A validated (page, size) pair. Build it with `create`."""

    page: int
    size: int

    @classmethod
    def create(cls, page: int, size: int, max_size: int) -> "PageRequest":
        """Validate page and size against a resource-specific maximum.

        Args:
            page: 1-based page number.
            size: Requested page size.
            max_size: Largest size allowed for this resource.

        Returns:
            The validated PageRequest.

        Raises:
            ValidationError: If page < 1 or size is outside [1, max_size].
        """
        if page < 1:
            raise ValidationError("Page number must be >= 1.", field="page")
        if size < 1 or size > max_size:
            raise ValidationError(f"Page size must be between 1 and {max_size}.", field="size")
        return cls(page=page, size=size)

    @property
    def index(self) -> int:
        """0-based page index."""
        return self.page - 1

    @property
    def offset(self) -> int:
        return self.index * self.size


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus the information needed to navigate."""

    items: list[T]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.size) if self.total else 0
