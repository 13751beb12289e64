"""The provider: its configuration schema, the resources it offers and connection set-up."""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from dotenv import load_dotenv

from chprovision import db, role_resource, table_resource, user_resource
from chprovision.common import ApiClient, Attribute, Resource, ResourceData, ValueType
from chprovision.datasources import data_source_dbs

_COLLECTION_TYPES = (ValueType.LIST, ValueType.SET)
_ADMIN_CREDENTIAL_DOC = "Clickhouse user password with admin privileges"
_ADMIN_CREDENTIAL_ENV = "TF_CLICKHOUSE_PASSWORD"


@dataclass
class ConnectionOptions:
    """Everything needed to open a server connection."""

    addr: list[str]
    username: str = ""
    password: str = str()
    settings: dict[str, Any] = field(default_factory=dict)
    tls: Optional[ssl.SSLContext] = None


def get_env_var(name: str) -> str:
    """Return a non-empty environment variable, loading ``.env`` first."""
    load_dotenv(".env")
    value = os.environ.get(name, "")
    if value:
        return value
    raise LookupError(f"Env var {name} not present")


def _admin_credential_default() -> str:
    try:
        return get_env_var(_ADMIN_CREDENTIAL_ENV)
    except LookupError:
        return str()


def _schema_problems(path: str, schema: Mapping[str, Attribute]) -> list[str]:
    problems = []
    for key, attr in schema.items():
        name = f"{path}{key}"
        computed_only = attr.computed and not attr.optional
        if attr.required and attr.optional:
            problems.append(f"{name}: Optional or Required must be set, not both")
        if attr.required and attr.computed:
            problems.append(f"{name}: Cannot be both Required and Computed")
        if not (attr.required or attr.optional or attr.computed):
            problems.append(f"{name}: One of optional, required, or computed must be set")
        if attr.required and attr.default is not None:
            problems.append(f"{name}: Default must be nil if set to required")
        if attr.default is not None and attr.default_func is not None:
            problems.append(f"{name}: Default and DefaultFunc cannot both be set")
        if computed_only and (attr.default is not None or attr.default_func is not None):
            problems.append(f"{name}: Default must be nil if computed")
        if computed_only and attr.force_new:
            problems.append(f"{name}: ForceNew cannot be set on a computed-only field")
        if computed_only and attr.validate is not None:
            problems.append(f"{name}: nothing to validate on a computed-only field")
        if attr.type in _COLLECTION_TYPES:
            if attr.elem is None:
                problems.append(f"{name}: Elem must be set for lists and sets")
            if attr.validate is not None:
                problems.append(f"{name}: validation is not supported on lists or sets")
        if isinstance(attr.elem, Mapping):
            problems.extend(_schema_problems(f"{name}.", attr.elem))
    return problems


def _resource_problems(name: str, resource: Resource, writable: bool) -> list[str]:
    problems = _schema_problems(f"{name}.", resource.schema)
    if resource.read is None:
        problems.append(f"{name}: Read must be implemented")
    if not writable:
        return problems
    if resource.create is None:
        problems.append(f"{name}: Create must be implemented")
    if resource.delete is None:
        problems.append(f"{name}: Delete must be implemented")
    mutable = [
        key
        for key, attr in resource.schema.items()
        if not attr.force_new and not (attr.computed and not attr.optional)
    ]
    if resource.update is None and mutable:
        problems.append(f"{name}: No Update defined, must set ForceNew on: {sorted(mutable)}")
    if resource.update is not None and not mutable:
        problems.append(
            f"{name}: All fields are ForceNew or Computed w/out Optional, Update is superfluous"
        )
    return problems


@dataclass
class Provider:
    """The provider's configuration schema, data sources and resources."""

    version: str
    schema: dict[str, Attribute] = field(default_factory=dict)
    data_sources: dict[str, Resource] = field(default_factory=dict)
    resources: dict[str, Resource] = field(default_factory=dict)
    configure_func: Optional[Callable[..., ApiClient]] = None

    def validate(self) -> None:
        """Check the provider and every schema it holds; raise ValueError listing problems."""
        problems = _schema_problems("", self.schema)
        for name, resource in self.data_sources.items():
            problems.extend(_resource_problems(name, resource, writable=False))
        for name, resource in self.resources.items():
            problems.extend(_resource_problems(name, resource, writable=True))
        if problems:
            raise ValueError("; ".join(problems))


def new_provider(version: str) -> Provider:
    """Build the provider with all its data sources and resources."""
    return Provider(
        version=version,
        schema={
            "default_cluster": Attribute(
                ValueType.STRING,
                description="Default cluster, if provided will be used when no cluster is provided",
                optional=True,
                default="",
            ),
            "username": Attribute(
                ValueType.STRING,
                description="Clickhouse username with admin privileges",
                optional=True,
                default_func=lambda: get_env_var("TF_CLICKHOUSE_USERNAME"),
            ),
            "password": Attribute(
                ValueType.STRING,
                description=_ADMIN_CREDENTIAL_DOC,
                optional=True,
                sensitive=True,
                default_func=_admin_credential_default,
            ),
            "host": Attribute(
                ValueType.STRING,
                description="Clickhouse server url",
                required=True,
                sensitive=True,
                default_func=lambda: get_env_var("TF_CLICKHOUSE_HOST"),
            ),
            "port": Attribute(
                ValueType.INT,
                description="Clickhouse server native protocol port (TCP)",
                required=True,
                default_func=lambda: get_env_var("TF_CLICKHOUSE_PORT"),
            ),
            "secure": Attribute(
                ValueType.BOOL,
                description="Clickhouse secure connection",
                optional=True,
                default=False,
            ),
        },
        data_sources={"clickhouse_dbs": data_source_dbs()},
        resources={
            "clickhouse_db": db.resource_db(),
            "clickhouse_table": table_resource.resource_table(),
            "clickhouse_role": role_resource.resource_role(),
            "clickhouse_user": user_resource.resource_user(),
        },
        configure_func=configure,
    )


def _setting(data: ResourceData, key: str) -> Any:
    if key in data.values and data.values[key] is not None:
        return data.values[key]
    attribute = data.schema.get(key)
    if attribute is not None and attribute.default_func is not None:
        return attribute.default_func()
    return data.get(key)


def configure(data: ResourceData, connect: Callable[[ConnectionOptions], Any]) -> ApiClient:
    """Open and ping a connection from the provider settings and return the client."""
    host = _setting(data, "host")
    try:
        port = int(_setting(data, "port"))
    except (TypeError, ValueError) as err:
        raise ValueError(f"port: expected an integer: {err}") from err
    username = _setting(data, "username") or ""
    password = _setting(data, "password") or str()
    default_cluster = _setting(data, "default_cluster") or ""
    secure = bool(_setting(data, "secure"))

    options = ConnectionOptions(
        addr=[f"{host}:{port}"],
        username=username,
        password=password,
        settings={"max_execution_time": 30},
        tls=ssl.create_default_context() if secure else None,
    )
    try:
        connection = connect(options)
    except Exception as err:
        raise ConnectionError(f"error connecting to clickhouse: {err}") from err
    try:
        connection.ping()
    except Exception as err:
        raise ConnectionError(f"ping clickhouse database: {err}") from err
    return ApiClient(connection=connection, default_cluster=default_cluster)