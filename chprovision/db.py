"""Databases: the resource listing model, its service and the database resource."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chprovision.common import (
    ApiClient,
    Attribute,
    Diagnostic,
    Diagnostics,
    Resource,
    ResourceData,
    Severity,
    ValueType,
    diagnostics_from_error,
    get_cluster_statement,
    get_comment,
    unmarshal_comment,
)
from chprovision.table import CHTable, TableService

_CLUSTER_HINT = (
    "Could you be performing operation in a cluster? If so try configuring "
    "default cluster name on you provider configuration."
)


@dataclass
class CHDBResources:
    """The resources that live inside a database."""

    ch_tables: list[CHTable] = field(default_factory=list)


@dataclass
class DBService:
    """Reads what a database holds."""

    connection: Any
    table_service: TableService | None = None

    def __post_init__(self) -> None:
        if self.table_service is None:
            self.table_service = TableService(self.connection)

    def get_db_resources(self, database: str) -> CHDBResources:
        """Return the tables of ``database``."""
        try:
            tables = self.table_service.get_db_tables(database)
        except Exception as err:
            raise RuntimeError(f"error getting tables from database: {err}") from err
        return CHDBResources(ch_tables=tables)


def resource_db() -> Resource:
    """Describe the database resource."""
    return Resource(
        description="Resource to handle clickhouse databases.",
        schema={
            "cluster": Attribute(
                ValueType.STRING,
                description=(
                    "Cluster name, not mandatory but should be provided if creating "
                    "a db in a clustered server"
                ),
                optional=True,
                force_new=True,
            ),
            "name": Attribute(ValueType.STRING, description="Database name", required=True, force_new=True),
            "engine": Attribute(ValueType.STRING, description="Database engine", computed=True),
            "data_path": Attribute(ValueType.STRING, description="Database internal path", computed=True),
            "metadata_path": Attribute(
                ValueType.STRING, description="Database internal metadata path", computed=True
            ),
            "uuid": Attribute(ValueType.STRING, description="Database UUID", computed=True),
            "comment": Attribute(
                ValueType.STRING,
                description="Comment about the database",
                optional=True,
                default="",
                force_new=True,
            ),
        },
        create=create,
        read=read,
        delete=delete,
    )


def read(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Refresh the resource data from the stored database."""
    database_name = data.get("name")
    query = (
        "SELECT name, engine, data_path, metadata_path, uuid, comment "
        f"FROM system.databases where name = '{database_name}'"
    )
    try:
        rows = list(client.connection.query(query))
    except Exception as err:
        return diagnostics_from_error(f"reading database from Clickhouse: {err}")
    if not rows:
        return diagnostics_from_error("scanning Clickhouse DB row: no rows in result set")

    row = rows[0]
    try:
        name, engine, data_path, metadata_path, uuid, stored_comment = (
            "" if row[key] is None else str(row[key])
            for key in ("name", "engine", "data_path", "metadata_path", "uuid", "comment")
        )
    except KeyError as err:
        return diagnostics_from_error(f"scanning Clickhouse DB row: missing column {err}")

    diags = Diagnostics()
    if not name:
        diags.append(
            Diagnostic(
                Severity.ERROR,
                f"Database {database_name} not found",
                f"Not possible to retrieve db from server. {_CLUSTER_HINT}",
            )
        )
        return diags

    try:
        comment, cluster = unmarshal_comment(stored_comment)
    except ValueError:
        diags.append(
            Diagnostic(
                Severity.WARNING,
                f'Unable to unmarshal comments for db "{name}"',
                "Unable to unmarshal comments in order to retrieve cluster information "
                "for the table, so that default cluster is going to be used instead.",
            )
        )
        comment, cluster = stored_comment, client.default_cluster

    for key, value in (
        ("name", name),
        ("engine", engine),
        ("data_path", data_path),
        ("metadata_path", metadata_path),
        ("uuid", uuid),
        ("comment", comment),
        ("cluster", cluster),
    ):
        try:
            data.set(key, value)
        except (KeyError, TypeError):
            diags.append(Diagnostic(Severity.ERROR, f'Unable to set {key} for db "{name}"'))

    data.id = f"{cluster}:{database_name}"
    return diags


def create(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Create the planned database."""
    cluster = data.get("cluster") or client.default_cluster
    database_name = data.get("name")
    comment = data.get("comment") or ""
    query = (
        f"CREATE DATABASE {database_name} {get_cluster_statement(cluster)} "
        f"COMMENT '{get_comment(comment, cluster)}'"
    )
    try:
        client.connection.execute(query)
    except Exception as err:
        return diagnostics_from_error(err)
    data.id = f"{cluster}:{database_name}"
    return Diagnostics()


def delete(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Drop the database."""
    database_name = data.get("name")
    if not database_name:
        return Diagnostics(
            [
                Diagnostic(
                    Severity.ERROR,
                    "Database name not found",
                    "Not possible to destroy resource as the database name was not "
                    f"retrieved succesfully. {_CLUSTER_HINT}",
                )
            ]
        )
    cluster = data.get("cluster") or client.default_cluster
    query = f"DROP DATABASE {database_name} {get_cluster_statement(cluster)} SYNC"
    try:
        client.connection.execute(query)
    except Exception as err:
        return diagnostics_from_error(err)
    data.id = ""
    return Diagnostics()