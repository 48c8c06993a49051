from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from policydesk.core.auth import Role


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    LAPSED = "lapsed"
    CANCELLED = "cancelled"


class Row(BaseModel):
    """Base for rows returned by the data-access service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RoleRecord(Row):
    """A role row; the name is restricted to the closed role set."""

    id: int | str
    name: Role


class User(Row):
    """User profile row, optionally joined with its role."""

    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    password: str | None = Field(default=None, exclude=True, repr=False)
    created_at: datetime | None = None
    role_id: int | str | None = None
    role: RoleRecord | None = Field(
        default=None,
        validation_alias=AliasChoices("role", "roles"),
    )

    @property
    def role_name(self) -> Role | None:
        return self.role.name if self.role else None


class Policy(Row):
    """Catalog policy product."""

    id: int
    name: str | None = None
    policy_number: str | None = None
    type: str
    coverage: float = 0.0
    premium: float = 0.0
    start_date: date | None = None
    end_date: date | None = None


class UserPolicy(Row):
    """Enrollment of a user in a catalog policy, with optional joins."""

    id: int
    user_id: str
    policy_id: int
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    policies: Policy | None = None
    users: User | None = None


class DashboardPolicy(Policy):
    """A catalog policy flattened with the enrollment fields of one user."""

    enrollment_id: int
    status: EnrollmentStatus
    user_id: str

    @classmethod
    def from_enrollment(cls, enrollment: UserPolicy) -> DashboardPolicy:
        if enrollment.policies is None:
            raise ValueError(f"Enrollment {enrollment.id} was loaded without its policy")
        return cls(
            **enrollment.policies.model_dump(),
            enrollment_id=enrollment.id,
            status=enrollment.status,
            user_id=enrollment.user_id,
        )


class AgentClient(Row):
    agent_id: str
    client_id: str


# --- Aggregate report rows (server-side RPCs) ---


class PolicyCountByTypeStatus(Row):
    type: str
    status: str
    count: int = 0


class MonthlyCoverage(Row):
    month: str
    total_coverage: float = 0.0


class CoverageByType(Row):
    month: str
    type: str | None = None
    total_coverage: float = 0.0


class PremiumByType(Row):
    type: str
    total_premium: float = 0.0


@dataclass(slots=True)
class PolicyPage:
    """One page of enrollments; ``total`` is the number of pages."""

    data: list[UserPolicy]
    total: int
    count: int = 0

    @classmethod
    def empty(cls) -> PolicyPage:
        return cls(data=[], total=0, count=0)
