"""
Job listing query value types.

Normalised filter, sort and page requests handed from the query engine to
the job repository, plus the page result returned to callers. Normalisation
never raises: unknown sort fields fall back to created_at, unknown
directions fall back to descending, and out-of-range page numbers/sizes are
clamped.

Dependencies: dataclasses (stdlib)
System role: Query contract between the query engine and the repository
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Sequence, TypeVar

T = TypeVar("T")

SORTABLE_FIELDS: tuple[str, ...] = (
    "id",
    "title",
    "status",
    "created_at",
    "started_at",
    "completed_at",
    "progress",
)
DEFAULT_SORT_FIELD = "created_at"

FILTERABLE_OPTION_FIELDS: tuple[str, ...] = ("resolution", "quality", "codec")

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class JobFilters:
    """
    Listing filters.

    Attributes:
        owner_id: Restrict to one owner (None = all owners, admin view)
        status: Exact status value
        title_contains: Case-insensitive substring of the title
        option_fields: Exact matches on option snapshot keys
    """

    owner_id: str | None = None
    status: str | None = None
    title_contains: str | None = None
    option_fields: dict[str, str] = field(default_factory=dict)

    def applied(self) -> dict[str, Any]:
        """Filters echoed back to clients (owner scope is implicit)."""
        applied: dict[str, Any] = {
            "status": self.status,
            "title_search": self.title_contains,
        }
        for name in FILTERABLE_OPTION_FIELDS:
            applied[name] = self.option_fields.get(name)
        return applied


@dataclass(frozen=True)
class JobSort:
    field: str = DEFAULT_SORT_FIELD
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def parse(cls, field_name: str | None, direction: str | None) -> "JobSort":
        """Build a sort from raw query values, falling back on anything unknown."""
        sort_field = field_name if field_name in SORTABLE_FIELDS else DEFAULT_SORT_FIELD
        try:
            sort_direction = SortDirection((direction or "").lower())
        except ValueError:
            sort_direction = SortDirection.DESC
        return cls(field=sort_field, direction=sort_direction)


@dataclass(frozen=True)
class PageRequest:
    number: int = 1
    size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def clamp(cls, number: int | None, size: int | None) -> "PageRequest":
        """Clamp page number to >= 1 and size to [1, 100]."""
        page_number = max(1, number if number is not None else 1)
        page_size = size if size is not None else DEFAULT_PAGE_SIZE
        page_size = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, page_size))
        return cls(number=page_number, size=page_size)

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


@dataclass
class JobPage(Generic[T]):
    """One page of listing results."""

    items: Sequence[T]
    total_count: int
    page: PageRequest

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page.size) if self.total_count else 0

    @property
    def has_next(self) -> bool:
        return self.page.number < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page.number > 1
