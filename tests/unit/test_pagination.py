from __future__ import annotations

import pytest
from policydesk.domain.services.pagination import PageCursor, Pagination, total_pages
from policydesk.state.slices.policy import PolicySlice
from tests.utils import FakeDataAccess


class TestPagination:
    """Range arithmetic for paginated enrollment queries."""

    @pytest.mark.parametrize(
        ("page", "limit", "expected"),
        [(1, 10, (0, 9)), (2, 10, (10, 19)), (3, 10, (20, 29)), (4, 5, (15, 19))],
    )
    def test_range_is_offset_window(self, page: int, limit: int, expected: tuple[int, int]) -> None:
        assert Pagination(page=page, limit=limit).range == expected

    @pytest.mark.parametrize(
        ("count", "limit", "pages"),
        [(0, 10, 0), (None, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (23, 10, 3)],
    )
    def test_total_pages_rounds_up(self, count: int | None, limit: int, pages: int) -> None:
        assert total_pages(count, limit) == pages

    @pytest.mark.parametrize(("page", "limit"), [(0, 10), (-1, 10), (1, 0)])
    def test_invalid_window_rejected(self, page: int, limit: int) -> None:
        with pytest.raises(ValueError):
            Pagination(page=page, limit=limit)


class TestPageCursor:
    def test_go_to_page_within_bounds(self) -> None:
        cursor = PageCursor(current_page=1, total_pages=3)

        assert cursor.go_to_page(3) is True
        assert cursor.current_page == 3

    @pytest.mark.parametrize("page", [0, 4, -2])
    def test_go_to_page_out_of_bounds_is_noop(self, page: int) -> None:
        cursor = PageCursor(current_page=2, total_pages=3)

        assert cursor.go_to_page(page) is False
        assert cursor.current_page == 2

    def test_can_go_to_leaves_cursor_in_place(self) -> None:
        cursor = PageCursor(current_page=1, total_pages=3)

        assert cursor.can_go_to(2) is True
        assert cursor.can_go_to(1) is False
        assert cursor.can_go_to(4) is False
        assert cursor.current_page == 1

    def test_next_and_previous_stop_at_edges(self) -> None:
        cursor = PageCursor(current_page=1, total_pages=2)

        assert cursor.previous_page() is False
        assert cursor.next_page() is True
        assert cursor.next_page() is False
        assert cursor.current_page == 2


class TestPaginatedFetch:
    """Twenty-three enrollments, ten per page."""

    @pytest.fixture()
    def many_enrollments(self, fake_client: FakeDataAccess) -> FakeDataAccess:
        fake_client.tables["users_policies"] = [
            {"id": index, "user_id": "holder-1", "policy_id": 1, "status": "active"}
            for index in range(1, 24)
        ]
        return fake_client

    @pytest.mark.asyncio
    async def test_third_page_holds_remaining_rows(
        self, policy_slice: PolicySlice, many_enrollments: FakeDataAccess
    ) -> None:
        result = await policy_slice.get_user_policies("holder-1", page=3, limit=10)

        assert result.ok
        assert result.value.total == 3
        assert result.value.count == 23
        assert [row.id for row in result.value.data] == [21, 22, 23]
        query = many_enrollments.queries_for("users_policies")[-1]
        assert query.range == (20, 29)
        assert query.order == ("id", True)
        assert query.count == "exact"

    @pytest.mark.asyncio
    async def test_page_count_lands_in_state(
        self, policy_slice: PolicySlice, many_enrollments: FakeDataAccess
    ) -> None:
        await policy_slice.get_user_policies("holder-1", page=1, limit=10)

        state = policy_slice.runner.store.get_state().policy
        assert state.total_policy_count == 3
        assert state.total_rows == 23
        assert len(state.user_policies) == 10

    @pytest.mark.asyncio
    async def test_invalid_page_rejects_without_query(
        self, policy_slice: PolicySlice, many_enrollments: FakeDataAccess
    ) -> None:
        result = await policy_slice.get_user_policies("holder-1", page=0, limit=10)

        assert not result.ok
        assert many_enrollments.queries_for("users_policies") == []
        assert policy_slice.runner.store.get_state().policy.status == "error"

    @pytest.mark.asyncio
    async def test_second_page_of_twenty_five(
        self, policy_slice: PolicySlice, fake_client: FakeDataAccess
    ) -> None:
        fake_client.tables["users_policies"] = [
            {"id": index, "user_id": "U1", "policy_id": 2, "status": "active"}
            for index in range(1, 26)
        ]

        result = await policy_slice.get_user_policies("U1", page=2, limit=10)

        assert result.ok
        assert fake_client.queries_for("users_policies")[-1].range == (10, 19)
        assert result.value.total == 3
        assert [row.id for row in result.value.data] == list(range(11, 21))
