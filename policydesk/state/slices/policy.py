"""
Policy slice: the policy catalog plus paginated, role-scoped enrollments.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field
from policydesk.core.config import Settings, get_settings
from policydesk.domain.models import Policy, PolicyPage, UserPolicy
from policydesk.domain.schemas import EnrollmentForm
from policydesk.domain.services.pagination import Pagination
from policydesk.libs.supabase_client import DataAccessProtocol, QueryBuilder
from policydesk.state.operations import (
    Action,
    Err,
    OperationRunner,
    OperationStatus,
    Result,
    unwrap,
)
from policydesk.state.reducer import SliceReducer

logger = structlog.get_logger()

GET_POLICIES = "policy/getPolicies"
GET_USER_POLICIES = "policy/getUserPolicies"
GET_POLICIES_BY_AGENT = "policy/getPoliciesByAgent"
GET_POLICIES_BY_ADMIN = "policy/getPoliciesByAdmin"
ADD_POLICY = "userPolicy/addPolicy"
UPDATE_POLICY = "userPolicy/updatePolicy"
DELETE_POLICY = "userPolicy/deletePolicy"

USERS_POLICIES = "users_policies"
AGENT_CLIENTS = "agent_clients"


class PolicyState(BaseModel):
    policies: list[Policy] = Field(default_factory=list)
    user_policies: list[UserPolicy] = Field(default_factory=list)
    status: OperationStatus = OperationStatus.IDLE
    error: str | None = None
    # Number of pages of the last enrollment query, and the rows behind it.
    total_policy_count: int = 0
    total_rows: int = 0


policy_reducer: SliceReducer[PolicyState] = SliceReducer("policy")


def _store_page(state: PolicyState, action: Action) -> dict[str, Any]:
    page: PolicyPage = action.payload
    return {
        "user_policies": page.data,
        "total_policy_count": page.total,
        "total_rows": page.count,
    }


def _replace_enrollments(state: PolicyState, action: Action) -> dict[str, Any]:
    updated = {row.id: row for row in action.payload or []}
    catalog = {policy.id: policy for policy in state.policies}
    rows = []
    for row in state.user_policies:
        fresh = updated.get(row.id)
        if fresh is None:
            rows.append(row)
            continue
        policies = fresh.policies or (
            row.policies if row.policy_id == fresh.policy_id else catalog.get(fresh.policy_id)
        )
        rows.append(
            row.model_copy(
                update={
                    "status": fresh.status,
                    "user_id": fresh.user_id,
                    "policy_id": fresh.policy_id,
                    "policies": policies,
                    "users": row.users if row.user_id == fresh.user_id else None,
                }
            )
        )
    return {"user_policies": rows}


def _evict_enrollment(state: PolicyState, action: Action) -> dict[str, Any]:
    enrollment_id = action.meta.get("arg")
    return {"user_policies": [row for row in state.user_policies if row.id != enrollment_id]}


policy_reducer.track(GET_POLICIES, lambda state, action: {"policies": action.payload})
policy_reducer.track(GET_USER_POLICIES, _store_page)
policy_reducer.track(GET_POLICIES_BY_AGENT, _store_page)
policy_reducer.track(GET_POLICIES_BY_ADMIN, _store_page)
policy_reducer.track(ADD_POLICY)
policy_reducer.track(UPDATE_POLICY, _replace_enrollments)
policy_reducer.track(DELETE_POLICY, _evict_enrollment)


async def resolve_agent_client_ids(client: DataAccessProtocol, agent_id: str) -> list[str]:
    """Ids of the users assigned to an agent."""
    rows = unwrap(
        await client.table(AGENT_CLIENTS).select("client_id").eq("agent_id", agent_id).execute()
    )
    return [str(row["client_id"]) for row in rows or []]


class PolicySlice:
    """Catalog and enrollment operations."""

    def __init__(
        self,
        runner: OperationRunner,
        client: DataAccessProtocol,
        settings: Settings | None = None,
    ) -> None:
        self.runner = runner
        self.client = client
        self.settings = settings or get_settings()

    def _pagination(self, page: int, limit: int | None) -> Pagination:
        return Pagination(page=page, limit=limit or self.settings.default_page_size)

    async def get_policies(self) -> Result[list[Policy]]:
        """Load the whole policy catalog, ordered by id."""

        async def body() -> list[Policy]:
            rows = unwrap(
                await self.client.table("policies").select("*").order("id").execute()
            )
            return [Policy.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_POLICIES, body)

    async def get_user_policies(
        self, user_id: str, page: int = 1, limit: int | None = None
    ) -> Result[PolicyPage]:
        """Enrollments owned by one user (policy holder view)."""

        async def body() -> PolicyPage:
            pagination = self._pagination(page, limit)
            query = (
                self.client.table(USERS_POLICIES)
                .select("*, policies(*)", count="exact")
                .eq("user_id", user_id)
            )
            return await self._fetch_page(query, pagination)

        return await self.runner.run(
            GET_USER_POLICIES, body, arg={"user_id": user_id, "page": page}
        )

    async def get_policies_by_agent(
        self, agent_id: str, page: int = 1, limit: int | None = None
    ) -> Result[PolicyPage]:
        """Enrollments of the agent's assigned clients.

        An agent without clients gets an empty page and no enrollment query is
        sent.
        """

        async def body() -> PolicyPage:
            pagination = self._pagination(page, limit)
            client_ids = await resolve_agent_client_ids(self.client, agent_id)
            if not client_ids:
                await logger.ainfo("agent_without_clients", agent_id=agent_id)
                return PolicyPage.empty()

            query = (
                self.client.table(USERS_POLICIES)
                .select("*, policies(*)", count="exact")
                .in_("user_id", client_ids)
            )
            return await self._fetch_page(query, pagination)

        return await self.runner.run(
            GET_POLICIES_BY_AGENT,
            body,
            arg={"agent_id": agent_id, "page": page},
            error_message="Failed to fetch policies by agent",
        )

    async def get_policies_by_admin(
        self, page: int = 1, limit: int | None = None
    ) -> Result[PolicyPage]:
        """Every enrollment, joined with its policy and user."""

        async def body() -> PolicyPage:
            pagination = self._pagination(page, limit)
            query = self.client.table(USERS_POLICIES).select(
                "*, policies(*), users(*)", count="exact"
            )
            return await self._fetch_page(query, pagination)

        return await self.runner.run(
            GET_POLICIES_BY_ADMIN,
            body,
            arg={"page": page},
            error_message="Failed to fetch policies for admin",
        )

    async def add_policy(self, form: EnrollmentForm | dict[str, Any]) -> Result[list[UserPolicy]]:
        enrollment = self.runner.validate(EnrollmentForm, form)
        if isinstance(enrollment, Err):
            return enrollment

        async def body() -> list[UserPolicy]:
            values = enrollment.model_dump(mode="json", exclude_none=True)
            rows = unwrap(await self.client.table(USERS_POLICIES).insert(values).execute())
            await logger.ainfo(
                "enrollment_created",
                user_id=enrollment.user_id,
                policy_id=enrollment.policy_id,
            )
            return [UserPolicy.model_validate(row) for row in rows or []]

        return await self.runner.run(
            ADD_POLICY,
            body,
            arg=enrollment.model_dump(mode="json"),
            success_message="Policy created successfully",
            notify=True,
        )

    async def update_policy(
        self, enrollment_id: int, form: EnrollmentForm | dict[str, Any]
    ) -> Result[list[UserPolicy]]:
        enrollment = self.runner.validate(EnrollmentForm, form)
        if isinstance(enrollment, Err):
            return enrollment

        async def body() -> list[UserPolicy]:
            values = enrollment.model_dump(mode="json", exclude_none=True)
            rows = unwrap(
                await self.client.table(USERS_POLICIES)
                .update(values)
                .eq("id", enrollment_id)
                .execute()
            )
            await logger.ainfo("enrollment_updated", enrollment_id=enrollment_id)
            return [UserPolicy.model_validate(row) for row in rows or []]

        return await self.runner.run(
            UPDATE_POLICY,
            body,
            arg=enrollment_id,
            success_message="Policy updated successfully",
            notify=True,
        )

    async def delete_policy(self, enrollment_id: int) -> Result[int]:
        async def body() -> int:
            unwrap(
                await self.client.table(USERS_POLICIES).delete().eq("id", enrollment_id).execute()
            )
            await logger.ainfo("enrollment_deleted", enrollment_id=enrollment_id)
            return enrollment_id

        return await self.runner.run(
            DELETE_POLICY,
            body,
            arg=enrollment_id,
            success_message="Policy deleted successfully",
            notify=True,
        )

    async def _fetch_page(self, query: QueryBuilder, pagination: Pagination) -> PolicyPage:
        start, end = pagination.range
        response = await query.order("id").range(start, end).execute()
        rows = unwrap(response)
        count = response.count or 0
        return PolicyPage(
            data=[UserPolicy.model_validate(row) for row in rows or []],
            total=pagination.total_pages(count),
            count=count,
        )
