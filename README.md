# chprovision

Declarative management of ClickHouse objects: databases, tables, roles and
users, plus a data source that lists every database on a server.

Each kind of object has a resource description (a `Resource` with a schema of
`Attribute`s) and a set of operations: `create`, `read`, `delete`, and also
`update` for roles and users. Every operation takes the desired state as a
`ResourceData` and an `ApiClient` that holds the connection and the default
cluster name. Operations report problems by returning `Diagnostics`, which is a
list of `Diagnostic` entries. Each entry has a `Severity` (`ERROR` or
`WARNING`). `Diagnostics.has_error()` tells whether any entry is an error.

## Modules

| Module | Contents |
| --- | --- |
| `chprovision.common` | `ApiClient`, `ResourceData`, `Resource`, `Attribute`, `ValueType`, diagnostics and helpers |
| `chprovision.db` | The database resource (`resource_db`) and `DBService` |
| `chprovision.table` | Table models, SQL builders, validators and `TableService` |
| `chprovision.table_resource` | The table resource (`resource_table`) |
| `chprovision.role` | Role models, privilege validation, `grant_query` and `RoleService` |
| `chprovision.role_resource` | The role resource (`resource_role`) |
| `chprovision.user` | User models and `UserService` |
| `chprovision.user_resource` | The user resource (`resource_user`) |
| `chprovision.datasources` | The database listing (`data_source_dbs`, `read_dbs`, `CHDatabase`) |
| `chprovision.provider` | `new_provider`, `Provider`, `ConnectionOptions`, `configure`, `get_env_var` |
| `chprovision.state` | `set_from_state_attributes` and `check_state_set_attr` for flattened state |

## The connection

The package does not open connections itself. Any object that has these
methods can serve as the connection:

- `execute(query)` runs a statement.
- `query(query)` returns an iterable of row mappings keyed by column name.
- `ping()` is needed only when the connection is created through `configure`.

## Provider settings

`new_provider(version)` returns a `Provider` that holds the configuration
schema, the data source `clickhouse_dbs`, and the resources `clickhouse_db`,
`clickhouse_table`, `clickhouse_role` and `clickhouse_user`.
`Provider.validate()` checks every schema and raises `ValueError` that lists any
problems it finds.

The settings are:

- `host`: the server address. If not set, it is read from `TF_CLICKHOUSE_HOST`.
- `port`: the native protocol (TCP) port. If not set, it is read from `TF_CLICKHOUSE_PORT`.
- `username`: if not set, it is read from `TF_CLICKHOUSE_USERNAME`.
- `password`: if not set, it is read from `TF_CLICKHOUSE_PASSWORD`. If that variable is not set either, it is empty.
- `secure`: whether to use TLS. The default is `False`.
- `default_cluster`: the cluster used when a resource names none. The default is `""`.

`get_env_var(name)` first loads `.env` from the working directory. It then
returns the variable, or raises `LookupError` if the variable is missing or
empty.

`configure(data, connect)` works in these steps:

1. It reads the settings.
2. It builds a `ConnectionOptions` with the address `host:port`, the
   credentials, `max_execution_time` set to 30, and a default SSL context when
   `secure` is set.
3. It calls `connect(options)` and pings the connection it gets back.
4. It returns an `ApiClient`.

If connecting or pinging fails, it raises `ConnectionError`.

## Comments carry metadata

Database and table comments are stored as a small JSON document that also
records the cluster:

```python
from chprovision.common import get_comment, unmarshal_comment, get_cluster_statement

stored = get_comment("sales data", "main")
# '{"comment":"sales data","cluster":"main"}'

comment, cluster = unmarshal_comment(stored)
# ("sales data", "main")

get_cluster_statement("main")   # "ON CLUSTER main"
get_cluster_statement("")       # ""
```

`unmarshal_comment` raises `ValueError` if the stored comment is not such a
document. When reading a database in that case, `db.read` adds a warning. It
then uses the raw comment and the client's default cluster.

## Roles and privileges

A role grants privileges on one database. The global privileges are `REMOTE`,
`SYSTEM RELOAD DICTIONARY`, `S3` and `CREATE TEMPORARY TABLE`. They are allowed
only for the database `*`.

```python
from chprovision.role import validate_privileges, is_global_privilege, grant_query

diags = validate_privileges("analytics", ["SELECT", "REMOTE"])
diags.has_error()   # True: REMOTE is only allowed for database '*'

is_global_privilege("S3")   # True

grant_query("reader", ["SELECT", "INSERT"], "analytics")
# "GRANT SELECT,INSERT ON analytics.* TO reader"
```

For the databases `system` and `*`, `grant_query` produces a
`GRANT CURRENT GRANTS (...)` statement. `RoleService.create_role` grants the
privileges one at a time. If a grant fails, it drops the role again.
`RoleService.update_role` renames the role, moves its grants to another
database, and grants or revokes privileges so that they match the plan.

## Tables

The table engine must be `ReplacingMergeTree`, `ReplicatedMergeTree` or
`Distributed`. A table can have an `ORDER BY` and a `PARTITION BY` list. Each
`PARTITION BY` entry can be wrapped in `toYYYYMM`, `toYYYYMMDD` or
`toYYYYMMDDhhmmss`.

`build_create_on_cluster_sentence` renders the full `CREATE TABLE` statement
for a `TableResource`. `TableResource.validate()` reports any sort key or
partition key that does not name a configured column. The validators
`validate_type`, `validate_partition_by` and `validate_on_cluster_engine`
return error diagnostics for values that are not allowed. `CHTable.to_resource`
recovers the engine parameters from the full engine description.

## Users

`UserService.create_user` creates a user identified with `sha256_password`,
with optional default roles. `UserService.update_user` grants and revokes roles
as needed. It then renames the user and changes the password if the plan asks
for it, and resets the default roles.

## What the package does not do

- It has no command-line program.
- It ships no database driver. You must supply the connection, or a `connect`
  callable for `configure`.
- It does not compute plans and it does not store state. The caller builds each
  `ResourceData` from the planned values and the previous state, and calls the
  operations.
- Attribute validators are attached to the schema, but the operations do not run
  them. The caller decides when to apply them.

## Running the tests

Install the package with its `test` extra, then run `pytest` from the project root.