"""
Role-scoped enrollment queries.

Each role maps to exactly one fetch; mutations of enrollments are checked
against the same scoping rules before they reach the data-access service.
"""

from __future__ import annotations

from typing import Any, assert_never

import structlog
from policydesk.core.auth import Role
from policydesk.domain.models import PolicyPage, UserPolicy
from policydesk.domain.schemas import EnrollmentForm
from policydesk.libs.supabase_client import DataAccessError
from policydesk.state.operations import Err, Result, unwrap
from policydesk.state.slices.policy import (
    USERS_POLICIES,
    PolicySlice,
    resolve_agent_client_ids,
)

logger = structlog.get_logger()


class PolicyQueryRouter:
    """Dispatches enrollment reads and writes by the caller's role."""

    def __init__(self, policies: PolicySlice) -> None:
        self.policies = policies

    async def fetch(
        self, role: Role, user_id: str, page: int = 1, limit: int | None = None
    ) -> Result[PolicyPage]:
        if role is Role.ADMIN:
            return await self.policies.get_policies_by_admin(page, limit)
        elif role is Role.AGENT:
            return await self.policies.get_policies_by_agent(user_id, page, limit)
        elif role is Role.POLICY_HOLDER:
            return await self.policies.get_user_policies(user_id, page, limit)
        else:
            assert_never(role)

    async def authorize_enrollment(self, role: Role, user_id: str, owner_id: str) -> Err | None:
        """None when ``user_id`` (acting as ``role``) may write enrollments of ``owner_id``."""
        if role is Role.ADMIN:
            return None
        elif role is Role.AGENT:
            try:
                clients = await resolve_agent_client_ids(self.policies.client, user_id)
            except DataAccessError as exc:
                return Err(str(exc))
            if owner_id in clients:
                return None
        elif role is Role.POLICY_HOLDER:
            if owner_id == user_id:
                return None
        else:
            assert_never(role)

        await logger.awarning(
            "enrollment_write_denied", role=role.value, user_id=user_id, owner_id=owner_id
        )
        return Err("You are not allowed to manage this user's policies")

    async def enrollment_owner(self, enrollment_id: int) -> str | Err:
        """Current ``user_id`` of an enrollment row."""
        try:
            row = unwrap(
                await self.policies.client.table(USERS_POLICIES)
                .select("user_id")
                .eq("id", enrollment_id)
                .single()
                .execute()
            )
        except DataAccessError as exc:
            await logger.awarning(
                "enrollment_owner_lookup_failed", enrollment_id=enrollment_id, error=str(exc)
            )
            return Err(f"Enrollment {enrollment_id} not found")
        return str(row["user_id"])

    async def add_policy(
        self, role: Role, user_id: str, form: EnrollmentForm | dict[str, Any]
    ) -> Result[list[UserPolicy]]:
        enrollment = self.policies.runner.validate(EnrollmentForm, form)
        if isinstance(enrollment, Err):
            return enrollment
        denied = await self.authorize_enrollment(role, user_id, enrollment.user_id)
        if denied is not None:
            return self.policies.runner.reject(denied)
        return await self.policies.add_policy(enrollment)

    async def update_policy(
        self,
        role: Role,
        user_id: str,
        enrollment_id: int,
        form: EnrollmentForm | dict[str, Any],
    ) -> Result[list[UserPolicy]]:
        """Both the row's current owner and the owner it is moved to must be in scope."""
        enrollment = self.policies.runner.validate(EnrollmentForm, form)
        if isinstance(enrollment, Err):
            return enrollment
        owner = await self.enrollment_owner(enrollment_id)
        if isinstance(owner, Err):
            return self.policies.runner.reject(owner)
        for owner_id in dict.fromkeys((owner, enrollment.user_id)):
            denied = await self.authorize_enrollment(role, user_id, owner_id)
            if denied is not None:
                return self.policies.runner.reject(denied)
        return await self.policies.update_policy(enrollment_id, enrollment)

    async def delete_policy(self, role: Role, user_id: str, enrollment_id: int) -> Result[int]:
        owner = await self.enrollment_owner(enrollment_id)
        if isinstance(owner, Err):
            return self.policies.runner.reject(owner)
        denied = await self.authorize_enrollment(role, user_id, owner)
        if denied is not None:
            return self.policies.runner.reject(denied)
        return await self.policies.delete_policy(enrollment_id)
