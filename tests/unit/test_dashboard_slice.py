from __future__ import annotations

from datetime import date

import pytest
from policydesk.domain.models import DashboardPolicy, EnrollmentStatus
from policydesk.state.slices.dashboard import (
    RPC_COUNTS_BY_TYPE_STATUS,
    RPC_MONTHLY_COVERAGE,
    RPC_MONTHLY_COVERAGE_BY_TYPE,
    RPC_PREMIUM_SUM_BY_TYPE,
    DashboardSlice,
)
from tests.utils import FakeDataAccess, RecordingNotifier, RecordingStore


@pytest.fixture()
def reports(fake_client: FakeDataAccess) -> FakeDataAccess:
    fake_client.rpc_results = {
        RPC_COUNTS_BY_TYPE_STATUS: [{"type": "life", "status": "active", "count": 3}],
        RPC_MONTHLY_COVERAGE: [{"month": "2024-01-01", "total_coverage": 150000}],
        RPC_MONTHLY_COVERAGE_BY_TYPE: [
            {"month": "2024-01-01", "type": "life", "total_coverage": 100000}
        ],
        RPC_PREMIUM_SUM_BY_TYPE: [{"type": "life", "total_premium": "120"}],
    }
    return fake_client


class TestDashboardReports:
    @pytest.mark.asyncio
    async def test_load_dashboard_fetches_every_report(
        self, dashboard_slice: DashboardSlice, reports: FakeDataAccess, store: RecordingStore
    ) -> None:
        results = await dashboard_slice.load_dashboard("holder-1")

        assert all(result.ok for result in results)
        assert [name for name, _ in reports.rpc_calls] == [
            RPC_COUNTS_BY_TYPE_STATUS,
            RPC_MONTHLY_COVERAGE,
            RPC_MONTHLY_COVERAGE_BY_TYPE,
            RPC_PREMIUM_SUM_BY_TYPE,
        ]
        assert reports.rpc_calls[0][1] == {"p_user_id": "holder-1"}
        state = store.get_state().dashboard
        assert state.policy_counts_by_type_status[0].count == 3
        assert state.coverage_data[0].total_coverage == 150000
        assert state.coverage_type_data[0].type == "life"
        assert state.premium_by_type[0].total_premium == 120.0

    @pytest.mark.asyncio
    async def test_reports_replace_previous_rows(
        self, dashboard_slice: DashboardSlice, reports: FakeDataAccess, store: RecordingStore
    ) -> None:
        await dashboard_slice.get_coverage_data("holder-1")
        reports.rpc_results[RPC_MONTHLY_COVERAGE] = []

        await dashboard_slice.get_coverage_data("holder-1")

        assert store.get_state().dashboard.coverage_data == []

    @pytest.mark.asyncio
    async def test_failed_report_sets_error_without_notification(
        self,
        dashboard_slice: DashboardSlice,
        reports: FakeDataAccess,
        store: RecordingStore,
        notifier: RecordingNotifier,
    ) -> None:
        reports.failures[RPC_PREMIUM_SUM_BY_TYPE] = "function does not exist"

        result = await dashboard_slice.get_premium_sum_by_type()

        assert not result.ok
        assert store.get_state().dashboard.error == "function does not exist"
        assert notifier.messages == []


class TestDashboardPolicies:
    @pytest.mark.asyncio
    async def test_policies_flattened_with_enrollment_fields(
        self, dashboard_slice: DashboardSlice, store: RecordingStore
    ) -> None:
        result = await dashboard_slice.get_policies("holder-1")

        assert result.ok
        assert [(p.enrollment_id, p.type, p.status) for p in result.value] == [
            (1, "life", EnrollmentStatus.ACTIVE),
            (2, "health", EnrollmentStatus.LAPSED),
        ]
        assert store.get_state().dashboard.filtered_policies == result.value

    @pytest.mark.asyncio
    async def test_filters_narrow_cached_policies(
        self, dashboard_slice: DashboardSlice, store: RecordingStore
    ) -> None:
        await dashboard_slice.get_policies("holder-1")

        result = dashboard_slice.set_filters({"status": "lapsed"})

        assert result.ok
        filtered = store.get_state().dashboard.filtered_policies
        assert [policy.enrollment_id for policy in filtered] == [2]

    @pytest.mark.asyncio
    async def test_local_mutations_respect_active_filters(
        self, dashboard_slice: DashboardSlice, store: RecordingStore
    ) -> None:
        await dashboard_slice.get_policies("holder-1")
        dashboard_slice.set_filters({"type": "life"})
        extra = DashboardPolicy(
            id=1,
            type="life",
            enrollment_id=99,
            status=EnrollmentStatus.ACTIVE,
            user_id="holder-1",
            start_date=date(2024, 1, 1),
        )

        dashboard_slice.add_policy(extra)
        assert [p.enrollment_id for p in store.get_state().dashboard.filtered_policies] == [1, 99]

        dashboard_slice.update_policy(extra.model_copy(update={"type": "auto"}))
        assert [p.enrollment_id for p in store.get_state().dashboard.filtered_policies] == [1]

        dashboard_slice.remove_policy(1)
        assert store.get_state().dashboard.filtered_policies == []
        assert len(store.get_state().dashboard.policies) == 2

    def test_invalid_filter_is_rejected(
        self, dashboard_slice: DashboardSlice, notifier: RecordingNotifier, store: RecordingStore
    ) -> None:
        result = dashboard_slice.set_filters({"status": "expired"})

        assert not result.ok
        assert len(notifier.errors) == 1
        assert store.actions == []
