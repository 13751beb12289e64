"""The data source listing every database on the server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from chprovision.common import (
    ApiClient,
    Attribute,
    Diagnostics,
    Resource,
    ResourceData,
    ValueType,
    diagnostics_from_error,
)

_FIELDS = ("name", "engine", "data_path", "metadata_path", "uuid", "comment")


@dataclass(frozen=True)
class CHDatabase:
    """A database as listed by the server."""

    name: str
    engine: str
    data_path: str
    metadata_path: str
    uuid: str
    comment: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CHDatabase:
        """Build from a result row; every column must be present."""
        return cls(**{key: "" if row[key] is None else str(row[key]) for key in _FIELDS})

    def as_dict(self) -> dict[str, str]:
        """Return the fields as a mapping."""
        return {key: getattr(self, key) for key in _FIELDS}


def data_source_dbs() -> Resource:
    """Describe the data source of all databases."""
    computed = lambda description: Attribute(  # noqa: E731
        ValueType.STRING, description=description, computed=True
    )
    return Resource(
        description="Datasource to retrieve all databases set in clickhouse instance",
        schema={
            "dbs": Attribute(
                ValueType.LIST,
                computed=True,
                elem={
                    "name": computed("DB Name"),
                    "engine": computed("DB Engine"),
                    "data_path": computed("DB Path"),
                    "metadata_path": computed("Metadata Path"),
                    "uuid": computed("Metadata Path"),
                    "comment": computed(
                        "Database comment, it will be codified in a json along with come "
                        "metadata information (like cluster name in case of clustering)"
                    ),
                },
            ),
        },
        read=read_dbs,
    )


def read_dbs(data: ResourceData, client: ApiClient) -> Diagnostics:
    """Fill ``dbs`` with every database on the server."""
    query = "SELECT name, engine, data_path, metadata_path, uuid, comment FROM system.databases"
    try:
        rows = list(client.connection.query(query))
    except Exception as err:
        return diagnostics_from_error(err)

    try:
        databases = [CHDatabase.from_row(row).as_dict() for row in rows]
    except KeyError as err:
        return diagnostics_from_error(f"scanning database row: missing column {err}")

    try:
        data.set("dbs", databases)
    except (KeyError, TypeError) as err:
        return diagnostics_from_error(err)
    data.id = "databases_read"
    return Diagnostics()