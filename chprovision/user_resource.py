"""The user resource: schema and create, read, update and delete operations."""

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
from chprovision.user import UserResource, UserService

_CREDENTIAL_DOC = "User password"


def resource_user() -> Resource:
    """Describe the user resource."""
    return Resource(
        description="Resource to manage Clickhouse users",
        schema={
            "name": Attribute(ValueType.STRING, description="User name", required=True),
            "password": Attribute(ValueType.STRING, description=_CREDENTIAL_DOC, required=True),
            "roles": Attribute(
                ValueType.SET,
                description="User role",
                optional=True,
                elem=ValueType.STRING,
            ),
        },
        create=create,
        read=read,
        update=update,
        delete=delete,
    )


def _plan(data: ResourceData) -> UserResource:
    return UserResource(
        name=data.get("name"),
        password=data.get("password"),
        roles=frozenset(data.get("roles") or ()),
    )


def read(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Refresh the resource data from the stored user."""
    name = data.get("name")
    try:
        user = UserService(client.connection).get_user(name)
        if user is None:
            raise LookupError(f"user {name} not found")
    except Exception as err:
        return diagnostics_from_error(f"resource user read: {err}")

    try:
        data.set("name", user.name)
        data.set("roles", user.roles)
    except (KeyError, TypeError) as err:
        return diagnostics_from_error(err)

    data.id = user.name
    return Diagnostics()


def create(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Create the planned user."""
    try:
        user = UserService(client.connection).create_user(_plan(data))
        if user is None:
            raise LookupError(f"user {data.get('name')} not found after creation")
    except Exception as err:
        return diagnostics_from_error(f"resource user create: {err}")
    data.id = user.name
    return Diagnostics()


def update(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Apply changes of name, password and roles to the user."""
    try:
        user = UserService(client.connection).update_user(_plan(data), data)
        if user is None:
            raise LookupError(f"user {data.get('name')} not found after update")
    except Exception as err:
        return diagnostics_from_error(err)
    data.id = user.name
    return Diagnostics()


def delete(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Drop the user."""
    try:
        UserService(client.connection).delete_user(data.get("name"))
    except Exception as err:
        return diagnostics_from_error(err)
    return Diagnostics()