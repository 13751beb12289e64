"""The table resource: schema and create, read and delete operations."""

from __future__ import annotations

from chprovision.common import (
    ApiClient,
    Attribute,
    Diagnostics,
    Resource,
    ResourceData,
    ValueType,
    diagnostics_from_error,
    get_comment,
    map_to_strings,
)
from chprovision.table import (
    TableResource,
    TableService,
    validate_on_cluster_engine,
    validate_partition_by,
    validate_type,
)


def resource_table() -> Resource:
    """Describe the table resource."""
    partition_schema = {
        "by": Attribute(
            ValueType.STRING,
            description="Column to use as part of the partition key",
            required=True,
            force_new=True,
        ),
        "partition_function": Attribute(
            ValueType.STRING,
            description=(
                "Partition function, could be empty or one of following: "
                "toYYYYMM, toYYYYMMDD or toYYYYMMDDhhmmss"
            ),
            optional=True,
            force_new=True,
            validate=validate_partition_by,
        ),
    }
    column_schema = {
        "name": Attribute(ValueType.STRING, description="Column Name", required=True, force_new=True),
        "type": Attribute(
            ValueType.STRING,
            description="Column Type",
            required=True,
            force_new=True,
            validate=validate_type,
        ),
    }
    return Resource(
        description="Resource to manage tables",
        schema={
            "database": Attribute(
                ValueType.STRING,
                description="DB Name where the table will bellow",
                required=True,
                force_new=True,
            ),
            "comment": Attribute(
                ValueType.STRING,
                description=(
                    "Database comment, it will be codified in a json along with come "
                    "metadata information (like cluster name in case of clustering)"
                ),
                optional=True,
                force_new=True,
            ),
            "name": Attribute(ValueType.STRING, description="Table Name", required=True, force_new=True),
            "cluster": Attribute(
                ValueType.STRING,
                description=(
                    "Cluster Name, it is required for Replicated or Distributed tables "
                    "and forbidden in other case"
                ),
                optional=True,
                force_new=True,
            ),
            "engine": Attribute(
                ValueType.STRING,
                description=(
                    "Table engine type (Supported types so far: Distributed, "
                    "ReplicatedReplacingMergeTree, ReplacingMergeTree)"
                ),
                required=True,
                force_new=True,
                validate=validate_on_cluster_engine,
            ),
            "engine_params": Attribute(
                ValueType.LIST,
                description="Engine params in case the engine type requires them",
                required=True,
                force_new=True,
                elem=ValueType.STRING,
            ),
            "order_by": Attribute(
                ValueType.LIST,
                description="Order by columns to use as sorting key",
                optional=True,
                force_new=True,
                elem=ValueType.STRING,
            ),
            "partition_by": Attribute(
                ValueType.LIST,
                description="Partition Key to split data",
                optional=True,
                force_new=True,
                elem=partition_schema,
            ),
            "column": Attribute(
                ValueType.LIST,
                description="Column",
                optional=True,
                force_new=True,
                elem=column_schema,
            ),
        },
        create=create,
        read=read,
        delete=delete,
    )


def _table_id(cluster: str, database: str, name: str) -> str:
    return f"{cluster}:{database}:{name}"


def create(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Create the planned table."""
    cluster = data.get("cluster") or ""
    resource = TableResource(
        database=data.get("database"),
        name=data.get("name"),
        columns=list(data.get("column") or []),
        engine=data.get("engine"),
        cluster=cluster,
        comment=get_comment(data.get("comment") or "", cluster),
        engine_params=map_to_strings(data.get("engine_params") or []),
        order_by=map_to_strings(data.get("order_by") or []),
    )
    resource.set_partition_by(data.get("partition_by") or [])

    if resource.cluster:
        resource.cluster = client.default_cluster

    diags = resource.validate()
    if diags.has_error():
        return diags

    try:
        TableService(client.connection).create_table(resource)
    except Exception as err:
        return diagnostics_from_error(err)

    data.id = _table_id(resource.cluster, resource.database, resource.name)
    return diags


def read(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Refresh the resource data from the stored table."""
    database = data.get("database")
    table_name = data.get("name")

    try:
        table = TableService(client.connection).get_table(database, table_name)
    except Exception as err:
        return diagnostics_from_error(f"reading Clickhouse table: {err}")

    try:
        resource = table.to_resource()
    except Exception as err:
        return diagnostics_from_error(f"transforming Clickhouse table to resource: {err}")

    fields = (
        ("database", resource.database),
        ("name", resource.name),
        ("engine", resource.engine),
        ("engine_params", resource.engine_params),
        ("cluster", resource.cluster),
        ("column", resource.columns),
    )
    for key, value in fields:
        try:
            data.set(key, value)
        except (KeyError, TypeError) as err:
            return diagnostics_from_error(f"setting {key}: {err}")

    data.id = _table_id(resource.cluster, database, table_name)
    return Diagnostics()


def delete(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Drop the table."""
    resource = TableResource(
        database=data.get("database"),
        name=data.get("name"),
        cluster=data.get("cluster") or client.default_cluster,
    )
    try:
        TableService(client.connection).delete_table(resource)
    except Exception as err:
        return diagnostics_from_error(err)
    return Diagnostics()