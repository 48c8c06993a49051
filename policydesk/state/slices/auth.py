"""
Auth slice: the signed-in user's profile, the managed user list, roles and
agent-client assignments, plus the authentication flows around them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field
from policydesk.core.auth import Role
from policydesk.core.config import Settings, get_settings
from policydesk.domain.models import AgentClient, RoleRecord, User
from policydesk.domain.schemas import (
    LoginForm,
    NewPasswordForm,
    PasswordResetForm,
    SignUpForm,
    UserForm,
)
from policydesk.libs.notifier import NotificationKind
from policydesk.libs.supabase_client import DataAccessError, DataAccessProtocol
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
from policydesk.state.slices.policy import AGENT_CLIENTS, resolve_agent_client_ids

if TYPE_CHECKING:
    from policydesk.session.bridge import SessionBridge, SessionIdentity

logger = structlog.get_logger()

GET_USER_BY_ID = "users/getById"
GET_ALL_USERS = "users/getAll"
GET_ALL_ROLES = "roles/getAll"
CREATE_USER = "users/create"
UPDATE_USER = "users/update"
DELETE_USER = "users/delete"
GET_AGENT_CLIENTS = "users/getClientsByAgent"
ASSIGN_AGENT_CLIENTS = "users/assignAgentClients"
SIGN_UP = "auth/signUp"
REQUEST_PASSWORD_RESET = "auth/requestPasswordReset"
UPDATE_PASSWORD = "auth/updatePassword"

USER_COLUMNS = "*, roles(*)"


class AuthState(BaseModel):
    user_details: User | None = None
    user_list: list[User] = Field(default_factory=list)
    roles: list[RoleRecord] = Field(default_factory=list)
    agent_clients: list[User] = Field(default_factory=list)
    status: OperationStatus = OperationStatus.IDLE
    error: str | None = None


auth_reducer: SliceReducer[AuthState] = SliceReducer("auth")


def _with_role(state: AuthState, user: User) -> User:
    if user.role is not None or user.role_id is None:
        return user
    role = next((role for role in state.roles if role.id == user.role_id), None)
    return user.model_copy(update={"role": role}) if role else user


def _append_user(state: AuthState, action: Action) -> dict[str, Any]:
    return {"user_list": [*state.user_list, _with_role(state, action.payload)]}


def _replace_user(state: AuthState, action: Action) -> dict[str, Any]:
    updated: User = action.payload

    def merge(existing: User) -> User:
        fields = updated.model_dump(exclude_unset=True, exclude={"role"})
        merged = existing.model_copy(update=fields)
        if existing.role_id != merged.role_id:
            merged = _with_role(state, merged.model_copy(update={"role": None}))
        return merged

    update: dict[str, Any] = {
        "user_list": [
            merge(user) if user.id == updated.id else user for user in state.user_list
        ]
    }
    if state.user_details is not None and state.user_details.id == updated.id:
        update["user_details"] = merge(state.user_details)
    return update


def _evict_user(state: AuthState, action: Action) -> dict[str, Any]:
    user_id = action.payload
    return {
        "user_list": [user for user in state.user_list if user.id != user_id],
        "agent_clients": [user for user in state.agent_clients if user.id != user_id],
    }


auth_reducer.track(GET_USER_BY_ID, lambda state, action: {"user_details": action.payload})
auth_reducer.track(GET_ALL_USERS, lambda state, action: {"user_list": action.payload})
auth_reducer.track(GET_ALL_ROLES, lambda state, action: {"roles": action.payload})
auth_reducer.track(CREATE_USER, _append_user)
auth_reducer.track(UPDATE_USER, _replace_user)
auth_reducer.track(DELETE_USER, _evict_user)
auth_reducer.track(GET_AGENT_CLIENTS, lambda state, action: {"agent_clients": action.payload})
auth_reducer.track(ASSIGN_AGENT_CLIENTS)
auth_reducer.track(SIGN_UP)
auth_reducer.track(REQUEST_PASSWORD_RESET)
auth_reducer.track(UPDATE_PASSWORD)


class AuthSlice:
    """User, role and authentication operations."""

    def __init__(
        self,
        runner: OperationRunner,
        client: DataAccessProtocol,
        bridge: SessionBridge,
        settings: Settings | None = None,
    ) -> None:
        self.runner = runner
        self.client = client
        self.bridge = bridge
        self.settings = settings or get_settings()

    # --- Session ---

    async def sign_in(self, form: LoginForm | dict[str, Any]) -> Result[SessionIdentity]:
        """Authenticate and persist the session.

        A rejected sign-in only notifies: the slice is left untouched and no
        token reaches the session store. An accepted one resets the store
        before the profile is loaded.
        """
        credentials = self.runner.validate(LoginForm, form)
        if isinstance(credentials, Err):
            return credentials

        await logger.ainfo("login_attempt", email=credentials.email)
        response = await self.client.auth.sign_in_with_password(
            email=credentials.email, password=credentials.password
        )
        if response.error is not None or response.session is None:
            message = response.error or "Unable to sign in"
            await logger.awarning("login_failed", email=credentials.email, error=message)
            return self._fail(message)

        session = response.session
        user_id = str(session.user.get("id", ""))
        self.client.set_access_token(session.access_token)
        # The new account starts from empty slices.
        self.runner.store.reset()

        profile = await self.get_user_by_id(user_id)
        if isinstance(profile, Err):
            self.client.set_access_token(None)
            return self._fail(profile.message)

        if profile.value.role_name is None:
            self.client.set_access_token(None)
            await logger.awarning("login_without_role", user_id=user_id)
            return self._fail("Account has no dashboard role assigned")

        identity = self.bridge.establish(profile.value, session)
        await logger.ainfo("login_success", user_id=user_id, role=identity.role.value)
        self.runner.notifier.notify(NotificationKind.SUCCESS, "Login success")
        return Ok(identity)

    def logout(self) -> None:
        self.client.set_access_token(None)
        self.bridge.logout()

    async def sign_up(self, form: SignUpForm | dict[str, Any]) -> Result[User]:
        """Create an auth account and its policy-holder profile row."""
        registration = self.runner.validate(SignUpForm, form)
        if isinstance(registration, Err):
            return registration

        async def body() -> User:
            response = await self.client.auth.sign_up(
                email=registration.email, password=registration.password
            )
            if response.error is not None:
                raise DataAccessError(f"Error signing up: {response.error}")
            if not response.user or not response.user.get("id"):
                raise DataAccessError("User details missing after signup.")

            role = unwrap(
                await self.client.table("roles")
                .select("id")
                .eq("name", Role.POLICY_HOLDER.value)
                .single()
                .execute()
            )
            if not role or role.get("id") is None:
                raise DataAccessError("Role ID not found.")

            rows = unwrap(
                await self.client.table("users")
                .insert(
                    {
                        "id": response.user["id"],
                        "email": registration.email,
                        "role_id": role["id"],
                    }
                )
                .execute()
            )
            await logger.ainfo("register_success", email=registration.email)
            return User.model_validate(rows[0])

        return await self.runner.run(
            SIGN_UP,
            body,
            success_message="Confirmation email sent. Please check your inbox.",
            notify=True,
        )

    async def request_password_reset(
        self, form: PasswordResetForm | dict[str, Any]
    ) -> Result[str]:
        request = self.runner.validate(PasswordResetForm, form)
        if isinstance(request, Err):
            return request

        async def body() -> str:
            unwrap(
                await self.client.auth.reset_password_for_email(
                    request.email, redirect_to=self.settings.password_reset_redirect_url
                )
            )
            return request.email

        return await self.runner.run(
            REQUEST_PASSWORD_RESET,
            body,
            success_message="Reset link sent. Check your email.",
            notify=True,
        )

    async def update_password(
        self, form: NewPasswordForm | dict[str, Any], *, access_token: str
    ) -> Result[str]:
        """Set a new password using the token from the reset link."""
        change = self.runner.validate(NewPasswordForm, form)
        if isinstance(change, Err):
            return change

        async def body() -> str:
            response = unwrap(
                await self.client.auth.update_user(
                    password=change.password, access_token=access_token
                )
            )
            return str((response.user or {}).get("id", ""))

        return await self.runner.run(
            UPDATE_PASSWORD,
            body,
            success_message="Password updated. You can now log in.",
            notify=True,
        )

    # --- Users and roles ---

    async def get_user_by_id(self, user_id: str) -> Result[User]:
        async def body() -> User:
            row = unwrap(
                await self.client.table("users")
                .select(USER_COLUMNS)
                .eq("id", user_id)
                .single()
                .execute()
            )
            if not row:
                raise DataAccessError(f"User {user_id} not found")
            return User.model_validate(row)

        return await self.runner.run(GET_USER_BY_ID, body, arg=user_id)

    async def get_all_users(self, role: Role | None = None) -> Result[list[User]]:
        """All users, optionally only those holding ``role``."""

        async def body() -> list[User]:
            if role is None:
                query = self.client.table("users").select(USER_COLUMNS)
            else:
                query = (
                    self.client.table("users")
                    .select("*, roles!inner(*)")
                    .eq("roles.name", role.value)
                )
            rows = unwrap(await query.order("created_at").execute())
            return [User.model_validate(row) for row in rows or []]

        return await self.runner.run(
            GET_ALL_USERS, body, arg=role.value if role else None
        )

    async def get_all_roles(self) -> Result[list[RoleRecord]]:
        async def body() -> list[RoleRecord]:
            rows = unwrap(await self.client.table("roles").select("*").order("id").execute())
            return [RoleRecord.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_ALL_ROLES, body)

    async def create_user(self, form: UserForm | dict[str, Any]) -> Result[User]:
        """Create an auth account plus its profile row (administrators)."""
        user_form = self.runner.validate(UserForm, form)
        if isinstance(user_form, Err):
            return user_form

        async def body() -> User:
            response = await self.client.auth.sign_up(
                email=user_form.email, password=user_form.password or ""
            )
            if response.error is not None or not response.user or not response.user.get("id"):
                raise DataAccessError(response.error or "Error creating user account.")

            rows = unwrap(
                await self.client.table("users")
                .insert({"id": response.user["id"], **user_form.profile_values()})
                .execute()
            )
            await logger.ainfo("user_created", user_id=response.user["id"])
            return User.model_validate(rows[0])

        return await self.runner.run(
            CREATE_USER,
            body,
            success_message="User created successfully!",
            notify=True,
        )

    async def update_user(self, form: UserForm | dict[str, Any]) -> Result[User]:
        user_form = self.runner.validate(UserForm, form)
        if isinstance(user_form, Err):
            return user_form
        if user_form.id is None:
            return self._fail("User id is required for updates")

        async def body() -> User:
            rows = unwrap(
                await self.client.table("users")
                .update(user_form.profile_values())
                .eq("id", user_form.id)
                .execute()
            )
            if not rows:
                raise DataAccessError(f"User {user_form.id} not found")
            await logger.ainfo("user_updated", user_id=user_form.id)
            return User.model_validate(rows[0])

        return await self.runner.run(
            UPDATE_USER,
            body,
            arg=user_form.id,
            success_message="User updated successfully!",
            notify=True,
        )

    async def delete_user(self, user_id: str) -> Result[str]:
        async def body() -> str:
            unwrap(await self.client.table("users").delete().eq("id", user_id).execute())
            await logger.ainfo("user_deleted", user_id=user_id)
            return user_id

        return await self.runner.run(
            DELETE_USER,
            body,
            arg=user_id,
            success_message="User deleted successfully!",
            notify=True,
        )

    # --- Agent clients ---

    async def get_clients_by_agent(self, agent_id: str) -> Result[list[User]]:
        async def body() -> list[User]:
            client_ids = await resolve_agent_client_ids(self.client, agent_id)
            if not client_ids:
                return []
            rows = unwrap(
                await self.client.table("users")
                .select(USER_COLUMNS)
                .in_("id", client_ids)
                .execute()
            )
            return [User.model_validate(row) for row in rows or []]

        return await self.runner.run(GET_AGENT_CLIENTS, body, arg=agent_id)

    async def assign_agent_clients(
        self, agent_id: str, client_ids: list[str]
    ) -> Result[list[AgentClient]]:
        """Replace an agent's client set."""

        async def body() -> list[AgentClient]:
            unwrap(
                await self.client.table(AGENT_CLIENTS).delete().eq("agent_id", agent_id).execute()
            )
            if not client_ids:
                return []
            rows = unwrap(
                await self.client.table(AGENT_CLIENTS)
                .insert([{"agent_id": agent_id, "client_id": cid} for cid in client_ids])
                .execute()
            )
            await logger.ainfo("agent_clients_assigned", agent_id=agent_id, count=len(rows))
            return [AgentClient.model_validate(row) for row in rows or []]

        return await self.runner.run(
            ASSIGN_AGENT_CLIENTS,
            body,
            arg=agent_id,
            success_message="Agent clients updated successfully",
            notify=True,
        )

    def _fail(self, message: str) -> Err:
        self.runner.notifier.notify(NotificationKind.ERROR, message)
        return Err(message)
