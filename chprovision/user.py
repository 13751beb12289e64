"""Users: models and the service that manages them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chprovision.common import ResourceData


@dataclass(frozen=True)
class UserResource:
    """A user as described by the resource configuration."""

    name: str
    password: str = str()
    roles: frozenset = frozenset()


@dataclass
class CHUser:
    """A user as stored on the server."""

    name: str
    roles: list[str] = field(default_factory=list)

    def to_user_resource(self) -> UserResource:
        """Convert to a resource; the password is never read back."""
        return UserResource(name=self.name, roles=frozenset(self.roles))


@dataclass
class UserService:
    """Reads and changes users through a server connection."""

    connection: Any

    def _execute(self, query: str, failure: str) -> None:
        try:
            self.connection.execute(query)
        except Exception as err:
            raise RuntimeError(f"{failure}: {err}") from err

    def get_user(self, user_name: str) -> CHUser | None:
        """Return the user with its default roles, or None if it does not exist."""
        query = f"SELECT name, default_roles_list FROM system.users WHERE name = '{user_name}'"
        try:
            rows = list(self.connection.query(query))
        except Exception as err:
            raise RuntimeError(f"error fetching user: {err}") from err
        if not rows:
            return None
        row = rows[0]
        try:
            return CHUser(name=row["name"], roles=list(row["default_roles_list"] or []))
        except (KeyError, TypeError) as err:
            raise RuntimeError(f"error scanning user: {err}") from err

    def create_user(self, user_plan: UserResource) -> CHUser | None:
        """Create the user with its default roles and return it as stored."""
        roles = sorted(user_plan.roles)
        query = (
            f"CREATE USER {user_plan.name} IDENTIFIED WITH sha256_password "
            f"BY '{user_plan.password}'"
        )
        if roles:
            query = f"{query} DEFAULT ROLE {','.join(roles)}"
        self._execute(query, "error creating user")
        return self.get_user(user_plan.name)

    def update_user(self, user_plan: UserResource, resource_data: ResourceData) -> CHUser | None:
        """Bring the stored user in line with the plan and return it afresh."""
        state_name, _ = resource_data.get_change("name")
        try:
            user = self.get_user(state_name)
        except Exception as err:
            raise RuntimeError(f"error fetching user: {err}") from err
        if user is None:
            raise LookupError(f"user {user_plan.name} not found")

        name_changed = resource_data.has_change("name")
        identity_changed = resource_data.has_change("password")
        roles_changed = resource_data.has_change("roles")

        to_grant: list[str] = []
        to_revoke: list[str] = []
        if roles_changed:
            current = set(user.roles)
            to_grant = [role for role in sorted(user_plan.roles) if role not in current]
            to_revoke = [role for role in user.roles if role not in user_plan.roles]

        if to_grant:
            self._execute(
                f"GRANT {','.join(to_grant)} TO {state_name}",
                "error granting roles to user",
            )
        if to_revoke:
            self._execute(
                f"REVOKE {','.join(to_revoke)} FROM {state_name}",
                "error revoking roles from user",
            )

        rename_clause = f" RENAME TO {user_plan.name}" if name_changed else ""
        identity_clause = ""
        if identity_changed:
            identity_clause = f" IDENTIFIED with sha256_password BY '{user_plan.password}'"
        # Default roles are reset after the grants above have been applied.
        query = (
            f"ALTER USER {state_name}{rename_clause}{identity_clause} "
            f"DEFAULT ROLE {','.join(sorted(user_plan.roles))}"
        )
        self._execute(query, "error updating user")
        return self.get_user(user_plan.name)

    def delete_user(self, name: str) -> None:
        """Drop the user."""
        self.connection.execute(f"DROP USER {name}")