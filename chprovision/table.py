"""Tables: models, SQL builders, validators and the service that manages them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from chprovision.common import (
    Diagnostic,
    Diagnostics,
    Severity,
    get_cluster_statement,
    quote,
    unmarshal_comment,
)

_ENGINE_PARAMS = re.compile(r"MergeTree\((?P<engine_params>[^)]*)\)")
_PARAM_SEPARATOR = re.compile(r"[, ]+")

PARTITION_FUNCTIONS = ("toYYYYMM", "toYYYYMMDD", "toYYYYMMDDhhmmss")
NUMERIC_TYPES = (
    "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
    "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
    "Float32", "Float64",
)
OTHER_TYPES = (
    "Bool", "String", "UUID", "Date", "Date32", "DateTime", "DateTime64",
    "LowCardinality", "JSON",
)
REPLICATED_ENGINES = ("ReplicatedMergeTree",)
DISTRIBUTED_ENGINES = ("Distributed",)
MERGE_TREE_ENGINES = ("ReplacingMergeTree",)


@dataclass(frozen=True)
class CHColumn:
    """A column of a table as stored on the server."""

    database: str
    table: str
    name: str
    type: str


@dataclass(frozen=True)
class ColumnResource:
    """A column as described by the resource configuration."""

    name: str
    type: str


@dataclass(frozen=True)
class PartitionByResource:
    """One item of a partition key: a column and an optional function."""

    by: str
    partition_function: str = ""


@dataclass
class TableResource:
    """A table as described by the resource configuration."""

    database: str = ""
    name: str = ""
    engine_full: str = ""
    engine: str = ""
    cluster: str = ""
    comment: str = ""
    engine_params: list[str] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    columns: list[Mapping[str, Any]] = field(default_factory=list)
    partition_by: list[PartitionByResource] = field(default_factory=list)

    def column_resources(self) -> list[ColumnResource]:
        """Return the configured columns as column resources."""
        return [ColumnResource(name=column["name"], type=column["type"]) for column in self.columns]

    def set_partition_by(self, partition_by: Iterable[Mapping[str, Any]]) -> None:
        """Append the partition key items described by ``partition_by``."""
        for item in partition_by:
            self.partition_by.append(
                PartitionByResource(
                    by=item["by"],
                    partition_function=item.get("partition_function") or "",
                )
            )

    def has_column(self, column_name: str) -> bool:
        """Return True if a configured column has this name."""
        return any(column.name == column_name for column in self.column_resources())

    def validate(self) -> Diagnostics:
        """Check that sort and partition keys refer to configured columns."""
        diags = Diagnostics()
        for order_field in self.order_by:
            if not self.has_column(order_field):
                diags.append(
                    Diagnostic(
                        Severity.ERROR,
                        "wrong value",
                        f"order by field '{order_field}' is not a column",
                    )
                )
        for item in self.partition_by:
            if not self.has_column(item.by):
                diags.append(
                    Diagnostic(
                        Severity.ERROR,
                        "wrong value",
                        f"partition by field '{item.by}' is not a column",
                    )
                )
        return diags


@dataclass
class CHTable:
    """A table as stored on the server."""

    database: str
    name: str
    engine_full: str = ""
    engine: str = ""
    comment: str = ""
    columns: list[CHColumn] = field(default_factory=list)

    def columns_to_resource(self) -> list[dict[str, str]]:
        """Return the columns as name and type mappings."""
        return [{"name": column.name, "type": column.type} for column in self.columns]

    def to_resource(self) -> TableResource:
        """Convert to a resource, decoding engine parameters and the stored comment."""
        match = _ENGINE_PARAMS.search(self.engine_full)
        engine_params = (
            _PARAM_SEPARATOR.split(match.group("engine_params")) if match else []
        )
        comment, cluster = unmarshal_comment(self.comment)
        return TableResource(
            database=self.database,
            name=self.name,
            engine_full=self.engine_full,
            engine=self.engine,
            cluster=cluster,
            comment=comment,
            engine_params=engine_params,
            columns=self.columns_to_resource(),
        )


def build_columns_sentence(columns: Iterable[ColumnResource]) -> list[str]:
    """Return one column definition line per column."""
    return [f"\t {column.name} {column.type}" for column in columns]


def build_partition_by_sentence(partition_by: Iterable[PartitionByResource]) -> str:
    """Return the PARTITION BY clause, or an empty string."""
    items = [
        f"{item.partition_function}({item.by})" if item.partition_function else item.by
        for item in partition_by
    ]
    return f"PARTITION BY {', '.join(items)}" if items else ""


def build_order_by_sentence(order_by: Iterable[str]) -> str:
    """Return the ORDER BY clause, or an empty string."""
    fields = list(order_by)
    return f"ORDER BY {', '.join(fields)}" if fields else ""


def build_create_on_cluster_sentence(resource: TableResource) -> str:
    """Build the CREATE TABLE statement for a table resource."""
    columns_statement = ""
    if resource.columns:
        lines = build_columns_sentence(resource.column_resources())
        columns_statement = "(" + ",\n".join(lines) + ")\n"
    return (
        f"CREATE TABLE {resource.database}.{resource.name} "
        f"{get_cluster_statement(resource.cluster)} {columns_statement} "
        f"ENGINE = {resource.engine}({', '.join(resource.engine_params)}) "
        f"{build_order_by_sentence(resource.order_by)} "
        f"{build_partition_by_sentence(resource.partition_by)} "
        f"COMMENT '{resource.comment}'"
    )


def _one_of(value: Any, allowed: Iterable[str], groups: Iterable[str]) -> Diagnostics:
    diags = Diagnostics()
    if not isinstance(value, str) or value not in allowed:
        shown = quote([str(value)])[0]
        expected = " ".join(quote(groups))
        diags.append(Diagnostic(Severity.ERROR, "wrong value", f"{shown} is not {expected}"))
    return diags


def validate_partition_by(value: Any) -> Diagnostics:
    """Check that a partition function is one of the supported ones."""
    return _one_of(value, PARTITION_FUNCTIONS, [" ".join(PARTITION_FUNCTIONS)])


def validate_type(value: Any) -> Diagnostics:
    """Check that a column type is one of the supported ones."""
    return _one_of(
        value,
        NUMERIC_TYPES + OTHER_TYPES,
        [" ".join(NUMERIC_TYPES), " ".join(OTHER_TYPES)],
    )


def validate_on_cluster_engine(value: Any) -> Diagnostics:
    """Check that a table engine is one of the supported ones."""
    return _one_of(
        value,
        REPLICATED_ENGINES + DISTRIBUTED_ENGINES + MERGE_TREE_ENGINES,
        [" ".join(REPLICATED_ENGINES), " ".join(DISTRIBUTED_ENGINES), " ".join(MERGE_TREE_ENGINES)],
    )


@dataclass
class TableService:
    """Reads and changes tables through a server connection."""

    connection: Any

    def _query(self, query: str, failure: str) -> list[Mapping[str, Any]]:
        try:
            return list(self.connection.query(query))
        except Exception as err:
            raise RuntimeError(f"{failure}: {err}") from err

    def get_db_tables(self, database: str) -> list[CHTable]:
        """Return the tables of a database, with database and name only."""
        rows = self._query(
            f"SELECT database, name FROM system.tables where database = '{database}'",
            "reading tables from Clickhouse",
        )
        return [CHTable(database=row["database"], name=row["name"]) for row in rows]

    def get_table(self, database: str, table: str) -> CHTable:
        """Return a table with its columns."""
        rows = self._query(
            "SELECT database, name, engine_full, engine, comment FROM system.tables "
            f"where database = '{database}' and name = '{table}'",
            "reading table from Clickhouse",
        )
        if not rows:
            raise LookupError("scanning Clickhouse table row: no rows in result set")
        row = rows[0]
        try:
            columns = self._table_columns(database, table)
        except Exception as err:
            raise RuntimeError(f"getting columns for Clickhouse table: {err}") from err
        return CHTable(
            database=row["database"],
            name=row["name"],
            engine_full=row["engine_full"],
            engine=row["engine"],
            comment=row["comment"],
            columns=columns,
        )

    def _table_columns(self, database: str, table: str) -> list[CHColumn]:
        rows = self._query(
            "SELECT database, table, name, type FROM system.columns "
            f"WHERE database = '{database}' AND table = '{table}'",
            "reading columns from Clickhouse",
        )
        return [
            CHColumn(database=row["database"], table=row["table"], name=row["name"], type=row["type"])
            for row in rows
        ]

    def create_table(self, table_resource: TableResource) -> None:
        """Create the table described by the resource."""
        try:
            self.connection.execute(build_create_on_cluster_sentence(table_resource))
        except Exception as err:
            raise RuntimeError(f"creating Clickhouse table: {err}") from err

    def delete_table(self, table_resource: TableResource) -> None:
        """Drop the table described by the resource."""
        query = (
            f"DROP TABLE {table_resource.database}.{table_resource.name} "
            f"{get_cluster_statement(table_resource.cluster)}"
        )
        try:
            self.connection.execute(query)
        except Exception as err:
            raise RuntimeError(f"deleting Clickhouse table: {err}") from err