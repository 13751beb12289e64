"""Roles: models, privilege validation and the service that manages them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from chprovision.common import Diagnostic, Diagnostics, ResourceData, Severity

ALLOWED_DB_LEVEL_PRIVILEGES = (
    "SELECT",
    "INSERT",
    "ALTER",
    "CREATE DATABASE",
    "CREATE TABLE",
    "CREATE VIEW",
    "CREATE DICTIONARY",
    "DROP DATABASE",
    "DROP TABLE",
    "DROP DICTIONARY",
    "DROP VIEW",
    "SHOW TABLES",
    "dictGet",
)

ALLOWED_GLOBAL_PRIVILEGES = (
    "REMOTE",
    "SYSTEM RELOAD DICTIONARY",
    "S3",
    "CREATE TEMPORARY TABLE",
)

ALLOWED_PRIVILEGES = ALLOWED_DB_LEVEL_PRIVILEGES + ALLOWED_GLOBAL_PRIVILEGES


@dataclass(frozen=True)
class CHGrant:
    """A privilege granted to a role on a database."""

    role_name: str
    access_type: str
    database: str


@dataclass(frozen=True)
class RoleResource:
    """A role as described by the resource configuration."""

    name: str
    database: str
    privileges: frozenset = frozenset()


@dataclass
class CHRole:
    """A role as stored on the server."""

    name: str
    privileges: list[CHGrant] = field(default_factory=list)

    def to_role_resource(self) -> RoleResource:
        """Convert to a resource; all grants must be on one database."""
        database = ""
        for grant in self.privileges:
            if database and grant.database and grant.database != database:
                raise ValueError(f"role {self.name} has privileges on different databases")
            database = grant.database
        return RoleResource(
            name=self.name,
            database=database,
            privileges=frozenset(self.privileges_list()),
        )

    def privileges_list(self) -> list[str]:
        """Return the access types of all grants, in order."""
        return [grant.access_type for grant in self.privileges]


def is_global_privilege(privilege: str) -> bool:
    """Return True if the privilege may only be granted on all databases."""
    return privilege in ALLOWED_GLOBAL_PRIVILEGES


def validate_privileges(database: str, privileges: Iterable[str]) -> Diagnostics:
    """Check every privilege against the allowed lists for ``database``."""
    diagnostics = Diagnostics()
    for privilege in sorted(set(privileges)):
        if is_global_privilege(privilege) and database != "*":
            diagnostics.append(
                Diagnostic(
                    Severity.ERROR,
                    "wrong value",
                    f"Global privilege {privilege} is only allowed for database '*'",
                )
            )
        elif privilege not in ALLOWED_PRIVILEGES:
            diagnostics.append(
                Diagnostic(
                    Severity.ERROR,
                    "wrong value",
                    f"{privilege} isn't in the allowed privileges list: "
                    f"[{', '.join(ALLOWED_PRIVILEGES)}]",
                )
            )
    return diagnostics


def grant_query(role_name: str, privileges: Iterable[str], database: str) -> str:
    """Build the GRANT statement for privileges on a database."""
    joined = ",".join(privileges)
    if database in ("system", "*"):
        return f"GRANT CURRENT GRANTS ({joined} ON {database}.*) TO {role_name}"
    return f"GRANT {joined} ON {database}.* TO {role_name}"


@dataclass
class RoleService:
    """Reads and changes roles through a server connection."""

    connection: Any

    def _execute(self, query: str, failure: str) -> None:
        try:
            self.connection.execute(query)
        except Exception as err:
            raise RuntimeError(f"{failure}: {err}") from err

    def _role_grants(self, role_name: str) -> list[CHGrant]:
        query = (
            "SELECT role_name, access_type, database FROM system.grants "
            f"WHERE role_name = '{role_name}'"
        )
        try:
            rows = list(self.connection.query(query))
        except Exception as err:
            raise RuntimeError(f"error fetching role grants: {err}") from err
        return [
            CHGrant(
                role_name=row["role_name"],
                access_type=row["access_type"],
                database=row["database"] or "*",
            )
            for row in rows
        ]

    def get_role(self, role_name: str) -> CHRole | None:
        """Return the role with its grants, or None if it does not exist."""
        query = f"SELECT name FROM system.roles WHERE name = '{role_name}'"
        try:
            rows = list(self.connection.query(query))
        except Exception as err:
            raise RuntimeError(f"error fetching role: {err}") from err
        if not rows:
            return None
        return CHRole(name=role_name, privileges=self._role_grants(role_name))

    def update_role(self, role_plan: RoleResource, resource_data: ResourceData) -> CHRole | None:
        """Bring the stored role in line with the plan and return it afresh."""
        state_name, _ = resource_data.get_change("name")
        role = self.get_role(state_name)
        if role is None:
            raise LookupError(f"role {role_plan.name} not found")

        name_changed = resource_data.has_change("name")
        database_changed = resource_data.has_change("database")
        privileges_changed = resource_data.has_change("privileges")

        to_grant: list[str] = []
        to_revoke: list[str] = []
        if privileges_changed:
            current = set(role.privileges_list())
            to_grant = [p for p in sorted(role_plan.privileges) if p not in current]
            to_revoke = [p for p in role.privileges_list() if p not in role_plan.privileges]

        if name_changed:
            self._execute(
                f"ALTER ROLE {role.name} RENAME TO {role_plan.name}",
                f"error renaming role {role.name} to {role_plan.name}",
            )

        if database_changed:
            self._execute(
                f"REVOKE ALL ON *.* FROM {role_plan.name}",
                f"error revoking all privileges from role {role.name}",
            )
            self._execute(
                grant_query(role_plan.name, role.privileges_list(), role_plan.database),
                f"error granting privileges to role {role.name}",
            )

        if to_grant:
            self._execute(
                grant_query(role_plan.name, to_grant, role_plan.database),
                f"error granting privileges to role {role.name}",
            )

        if to_revoke:
            self._execute(
                f"REVOKE {','.join(to_revoke)} ON {role_plan.database}.* FROM {role_plan.name}",
                f"error revoking privileges from role {role.name}",
            )

        return self.get_role(role_plan.name)

    def create_role(self, name: str, database: str, privileges: Iterable[str]) -> CHRole:
        """Create a role and grant it each privilege, dropping it on failure."""
        self._execute(f"CREATE ROLE {name}", "error creating role")
        grants = []
        for privilege in privileges:
            try:
                self.connection.execute(grant_query(name, [privilege], database))
            except Exception as err:
                try:
                    self.connection.execute(f"DROP ROLE {name}")
                except Exception as drop_err:
                    raise RuntimeError(f"error creating role: {err}:{drop_err}") from err
                raise RuntimeError(f"error creating role: {err}") from err
            grants.append(CHGrant(role_name=name, access_type=privilege, database=database))
        return CHRole(name=name, privileges=grants)

    def delete_role(self, name: str) -> None:
        """Drop the role."""
        self.connection.execute(f"DROP ROLE {name}")