"""
Dashboard slice: the signed-in user's policies with local filters, and the
aggregate report rows behind the dashboard charts.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field
from policydesk.domain.models import (
    CoverageByType,
    DashboardPolicy,
    MonthlyCoverage,
    PolicyCountByTypeStatus,
    PremiumByType,
    UserPolicy,
)
from policydesk.domain.schemas import DashboardFilters
from policydesk.libs.supabase_client import DataAccessProtocol
from policydesk.state.operations import (
    Action,
    Err,
    Ok,
    OperationRunner,
    OperationStatus,
    Result,
    unwrap,
)
from policydesk.state.reducer import SliceReducer

logger = structlog.get_logger()

GET_POLICIES = "dashboard/getPolicies"
GET_POLICIES_BY_TYPE_STATUS = "dashboard/getPoliciesByTypeStatus"
GET_COVERAGE_DATA = "dashboard/getCoverageData"
GET_COVERAGE_BY_TYPE = "dashboard/getCoverageByType"
GET_PREMIUM_SUM_BY_TYPE = "dashboard/getPremiumSumByType"

SET_FILTERS = "dashboard/setFilters"
ADD_POLICY = "dashboard/addPolicy"
UPDATE_POLICY = "dashboard/updatePolicy"
REMOVE_POLICY = "dashboard/removePolicy"

RPC_COUNTS_BY_TYPE_STATUS = "get_policy_counts_by_type_status"
RPC_MONTHLY_COVERAGE = "get_monthly_coverage"
RPC_MONTHLY_COVERAGE_BY_TYPE = "get_monthly_coverage_by_type"
RPC_PREMIUM_SUM_BY_TYPE = "get_premium_sum_by_type"


class DashboardState(BaseModel):
    policies: list[DashboardPolicy] = Field(default_factory=list)
    filtered_policies: list[DashboardPolicy] = Field(default_factory=list)
    filters: DashboardFilters = Field(default_factory=DashboardFilters)
    status: OperationStatus = OperationStatus.IDLE
    error: str | None = None
    policy_counts_by_type_status: list[PolicyCountByTypeStatus] = Field(default_factory=list)
    coverage_data: list[MonthlyCoverage] = Field(default_factory=list)
    coverage_type_data: list[CoverageByType] = Field(default_factory=list)
    premium_by_type: list[PremiumByType] = Field(default_factory=list)


def apply_filters(
    policies: list[DashboardPolicy], filters: DashboardFilters
) -> list[DashboardPolicy]:
    """Policies matching every set filter."""

    def matches(policy: DashboardPolicy) -> bool:
        if filters.type and policy.type != filters.type:
            return False
        if filters.status and policy.status != filters.status:
            return False
        if filters.start_date and (
            policy.start_date is None or policy.start_date < filters.start_date
        ):
            return False
        if filters.end_date and (policy.end_date is None or policy.end_date > filters.end_date):
            return False
        return True

    return [policy for policy in policies if matches(policy)]


dashboard_reducer: SliceReducer[DashboardState] = SliceReducer("dashboard")


def _refiltered(policies: list[DashboardPolicy], filters: DashboardFilters) -> dict[str, Any]:
    return {
        "policies": policies,
        "filters": filters,
        "filtered_policies": apply_filters(policies, filters),
    }


@dashboard_reducer.on(SET_FILTERS)
def _set_filters(state: DashboardState, action: Action) -> DashboardState:
    return state.model_copy(update=_refiltered(state.policies, action.payload))


@dashboard_reducer.on(ADD_POLICY)
def _add_policy(state: DashboardState, action: Action) -> DashboardState:
    return state.model_copy(update=_refiltered([*state.policies, action.payload], state.filters))


@dashboard_reducer.on(UPDATE_POLICY)
def _update_policy(state: DashboardState, action: Action) -> DashboardState:
    updated: DashboardPolicy = action.payload
    policies = [
        updated if policy.enrollment_id == updated.enrollment_id else policy
        for policy in state.policies
    ]
    return state.model_copy(update=_refiltered(policies, state.filters))


@dashboard_reducer.on(REMOVE_POLICY)
def _remove_policy(state: DashboardState, action: Action) -> DashboardState:
    enrollment_id = action.payload
    return state.model_copy(
        update={
            "policies": [p for p in state.policies if p.enrollment_id != enrollment_id],
            "filtered_policies": [
                p for p in state.filtered_policies if p.enrollment_id != enrollment_id
            ],
        }
    )


dashboard_reducer.track(
    GET_POLICIES,
    lambda state, action: _refiltered(action.payload, state.filters),
)
dashboard_reducer.track(
    GET_POLICIES_BY_TYPE_STATUS,
    lambda state, action: {"policy_counts_by_type_status": action.payload},
)
dashboard_reducer.track(GET_COVERAGE_DATA, lambda state, action: {"coverage_data": action.payload})
dashboard_reducer.track(
    GET_COVERAGE_BY_TYPE, lambda state, action: {"coverage_type_data": action.payload}
)
dashboard_reducer.track(
    GET_PREMIUM_SUM_BY_TYPE, lambda state, action: {"premium_by_type": action.payload}
)


class DashboardSlice:
    """Report queries; every fetch replaces the cached rows."""

    def __init__(self, runner: OperationRunner, client: DataAccessProtocol) -> None:
        self.runner = runner
        self.client = client

    async def get_policies(self, user_id: str) -> Result[list[DashboardPolicy]]:
        async def body() -> list[DashboardPolicy]:
            rows = unwrap(
                await self.client.table("users_policies")
                .select("*, policies(*)")
                .eq("user_id", user_id)
                .order("id")
                .execute()
            )
            enrollments = [UserPolicy.model_validate(row) for row in rows or []]
            return [
                DashboardPolicy.from_enrollment(enrollment)
                for enrollment in enrollments
                if enrollment.policies is not None
            ]

        return await self.runner.run(GET_POLICIES, body, arg=user_id)

    async def get_policy_counts_by_type_status(
        self, user_id: str
    ) -> Result[list[PolicyCountByTypeStatus]]:
        async def body() -> list[PolicyCountByTypeStatus]:
            rows = unwrap(
                await self.client.rpc(RPC_COUNTS_BY_TYPE_STATUS, {"p_user_id": user_id})
            )
            return [PolicyCountByTypeStatus.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_POLICIES_BY_TYPE_STATUS, body, arg=user_id)

    async def get_coverage_data(self, user_id: str) -> Result[list[MonthlyCoverage]]:
        async def body() -> list[MonthlyCoverage]:
            rows = unwrap(await self.client.rpc(RPC_MONTHLY_COVERAGE, {"p_user_id": user_id}))
            return [MonthlyCoverage.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_COVERAGE_DATA, body, arg=user_id)

    async def get_coverage_by_type(self, user_id: str) -> Result[list[CoverageByType]]:
        async def body() -> list[CoverageByType]:
            rows = unwrap(
                await self.client.rpc(RPC_MONTHLY_COVERAGE_BY_TYPE, {"p_user_id": user_id})
            )
            return [CoverageByType.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_COVERAGE_BY_TYPE, body, arg=user_id)

    async def get_premium_sum_by_type(self) -> Result[list[PremiumByType]]:
        async def body() -> list[PremiumByType]:
            rows = unwrap(await self.client.rpc(RPC_PREMIUM_SUM_BY_TYPE))
            return [PremiumByType.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_PREMIUM_SUM_BY_TYPE, body)

    async def load_dashboard(self, user_id: str) -> list[Result[Any]]:
        """Fetch every report feeding the dashboard charts, one after another."""
        await logger.ainfo("dashboard_load", user_id=user_id)
        return [
            await self.get_policy_counts_by_type_status(user_id),
            await self.get_coverage_data(user_id),
            await self.get_coverage_by_type(user_id),
            await self.get_premium_sum_by_type(),
        ]

    # --- Local mutations ---

    def set_filters(self, filters: DashboardFilters | dict[str, Any]) -> Result[DashboardFilters]:
        validated = self.runner.validate(DashboardFilters, filters)
        if isinstance(validated, Err):
            return validated
        self.runner.store.dispatch(Action(SET_FILTERS, payload=validated))
        return Ok(validated)

    def add_policy(self, policy: DashboardPolicy) -> None:
        self.runner.store.dispatch(Action(ADD_POLICY, payload=policy))

    def update_policy(self, policy: DashboardPolicy) -> None:
        self.runner.store.dispatch(Action(UPDATE_POLICY, payload=policy))

    def remove_policy(self, enrollment_id: int) -> None:
        self.runner.store.dispatch(Action(REMOVE_POLICY, payload=enrollment_id))
