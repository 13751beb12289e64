"""The role resource: schema and create, read, update and delete operations."""

from __future__ import annotations

from chprovision.common import (
    ApiClient,
    Attribute,
    Diagnostics,
    Resource,
    ResourceData,
    ValueType,
    diagnostics_from_error,
)
from chprovision.role import RoleResource, RoleService, validate_privileges


def resource_role() -> Resource:
    """Describe the role resource."""
    return Resource(
        description="Resource to manage Clickhouse roles",
        schema={
            "name": Attribute(ValueType.STRING, description="Role name", required=True),
            "database": Attribute(
                ValueType.STRING,
                description=(
                    "Database where to grant permissions to the user. "
                    "You can apply privileges to all databases by using '*'"
                ),
                required=True,
            ),
            "privileges": Attribute(
                ValueType.SET,
                description="Granted privileges to the role. Privileges will be granted at DB level",
                optional=True,
                elem=ValueType.STRING,
            ),
        },
        create=create,
        read=read,
        update=update,
        delete=delete,
    )


def create(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Create the planned role."""
    database = data.get("database")
    name = data.get("name")
    privileges = data.get("privileges") or frozenset()

    diags = validate_privileges(database, privileges)
    if diags.has_error():
        return diags

    try:
        role = RoleService(client.connection).create_role(name, database, sorted(privileges))
    except Exception as err:
        return diagnostics_from_error(f"resource role create: {err}")

    data.id = role.name
    return diags


def read(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Refresh the resource data from the stored role."""
    name = data.get("name")
    try:
        role = RoleService(client.connection).get_role(name)
        if role is None:
            raise LookupError(f"role {name} not found")
        resource = role.to_role_resource()
        data.set("name", resource.name)
        data.set("database", resource.database)
        data.set("privileges", resource.privileges)
    except Exception as err:
        return diagnostics_from_error(f"resource role read: {err}")

    data.id = resource.name
    return Diagnostics()


def update(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Apply changes of name, database and privileges to the role."""
    name = data.get("name")
    database = data.get("database")
    privileges = frozenset(data.get("privileges") or ())

    diags = validate_privileges(database, privileges)
    if diags.has_error():
        return diags

    plan = RoleResource(name=name, database=database, privileges=privileges)
    try:
        role = RoleService(client.connection).update_role(plan, data)
        if role is None:
            raise LookupError(f"role {name} not found after update")
    except Exception as err:
        return diagnostics_from_error(f"resource role update: {err}")

    data.id = role.name
    return diags


def delete(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Drop the role."""
    try:
        RoleService(client.connection).delete_role(data.get("name"))
    except Exception as err:
        return diagnostics_from_error(f"resource role delete: {err}")
    return Diagnostics()