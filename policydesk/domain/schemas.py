"""Pydantic schemas for the dashboard forms."""

from __future__ import annotations

from datetime import date
from typing import Any, TypeVar

from pydantic import BaseModel, EmailStr, Field, ValidationError, model_validator
from policydesk.domain.models import EnrollmentStatus

FormT = TypeVar("FormT", bound=BaseModel)


class FormValidationError(Exception):
    """Raised when form input fails validation before any network call."""


# --- Auth forms ---


class LoginForm(BaseModel):
    """Sign-in form."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")

    @model_validator(mode="before")
    @classmethod
    def _strip_password(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("password"), str):
            data = {**data, "password": data["password"].strip()}
        return data


class SignUpForm(BaseModel):
    """Self-service sign-up form; new accounts are policy holders."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(
        ...,
        min_length=6,
        max_length=72,
        description="Password (min 6 characters)",
    )
    confirm_password: str = Field(..., description="Password confirmation")

    @model_validator(mode="after")
    def _passwords_match(self) -> SignUpForm:
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class PasswordResetForm(BaseModel):
    email: EmailStr = Field(..., description="Account email to send the reset link to")


class NewPasswordForm(BaseModel):
    password: str = Field(..., min_length=6, max_length=72, description="New password")


# --- Admin forms ---


class UserForm(BaseModel):
    """Create/edit user form used by administrators."""

    id: str | None = Field(None, description="Set when editing an existing user")
    name: str | None = Field(None, max_length=128)
    email: EmailStr = Field(..., description="User email address")
    phone: str | None = Field(None, max_length=32)
    password: str | None = Field(None, min_length=6, max_length=72)
    role_id: int | str = Field(..., description="Role row id")

    @model_validator(mode="after")
    def _password_required_on_create(self) -> UserForm:
        if self.id is None and not self.password:
            raise ValueError("Password is required for new users")
        return self

    def profile_values(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role_id": self.role_id,
        }


class EnrollmentForm(BaseModel):
    """Add/edit a user's enrollment in a catalog policy."""

    user_id: str = Field(..., min_length=1)
    policy_id: int = Field(..., gt=0)
    status: EnrollmentStatus | None = None


class DashboardFilters(BaseModel):
    type: str | None = None
    status: EnrollmentStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


def validate_form(form_cls: type[FormT], data: dict[str, Any] | FormT) -> FormT:
    """Validate raw form input, flattening pydantic errors into one message."""
    if isinstance(data, form_cls):
        return data
    try:
        return form_cls.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError(_first_error(exc)) from exc


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    message = str(error.get("msg", "Invalid input")).removeprefix("Value error, ")
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {message}" if location else message
