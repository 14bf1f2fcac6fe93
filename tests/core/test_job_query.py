"""
Test suite for listing query value types.

System role: Verification of sort/page normalisation and page math
"""

import pytest

from mediajobs.core.job_query import (
    DEFAULT_PAGE_SIZE,
    JobFilters,
    JobPage,
    JobSort,
    PageRequest,
    SortDirection,
)


class TestJobSort:
    @pytest.mark.parametrize(
        "field_name, direction, expected",
        [
            ("title", "asc", ("title", SortDirection.ASC)),
            ("progress", "DESC", ("progress", SortDirection.DESC)),
            ("owner_id", "asc", ("created_at", SortDirection.ASC)),
            (None, None, ("created_at", SortDirection.DESC)),
            ("status", "random", ("status", SortDirection.DESC)),
        ],
    )
    def test_parse_falls_back_on_unknown_values(self, field_name, direction, expected) -> None:
        """Test unknown fields use created_at and unknown directions use desc."""
        sort = JobSort.parse(field_name, direction)

        assert (sort.field, sort.direction) == expected


class TestPageRequest:
    @pytest.mark.parametrize(
        "number, size, expected",
        [
            (1, 10, (1, 10)),
            (0, 10, (1, 10)),
            (-3, 0, (1, 1)),
            (2, 500, (2, 100)),
            (None, None, (1, DEFAULT_PAGE_SIZE)),
        ],
    )
    def test_clamp(self, number, size, expected) -> None:
        """Test page numbers are >= 1 and sizes within [1, 100]."""
        page = PageRequest.clamp(number, size)

        assert (page.number, page.size) == expected

    def test_offset(self) -> None:
        assert PageRequest(3, 10).offset == 20


class TestJobPage:
    @pytest.mark.parametrize(
        "total, size, pages",
        [(25, 10, 3), (20, 10, 2), (0, 10, 0), (1, 100, 1)],
    )
    def test_total_pages_is_ceiling(self, total, size, pages) -> None:
        """Test total_pages = ceil(total / size)."""
        page = JobPage(items=[], total_count=total, page=PageRequest(1, size))

        assert page.total_pages == pages

    def test_navigation_flags(self) -> None:
        middle = JobPage(items=[], total_count=25, page=PageRequest(2, 10))
        last = JobPage(items=[], total_count=25, page=PageRequest(3, 10))

        assert middle.has_next and middle.has_prev
        assert not last.has_next


class TestJobFilters:
    def test_applied_reports_every_filter(self) -> None:
        """Test applied() echoes all filters but not the owner scope."""
        filters = JobFilters(owner_id="u", status="pending", option_fields={"codec": "h264"})

        applied = filters.applied()

        assert applied == {
            "status": "pending",
            "title_search": None,
            "resolution": None,
            "quality": None,
            "codec": "h264",
        }
        assert "owner_id" not in applied
