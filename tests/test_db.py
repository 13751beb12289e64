import re

import pytest

from chprovision.common import ApiClient, ResourceData, Severity
from chprovision.db import CHDBResources, DBService, create, delete, read, resource_db
from chprovision.table import CHTable

DB_NAME = "testing_db"
DB_NAME_2 = "testing_db_2"
DB_COMMENT = "This is a testing database"
DB_COMMENT_2 = "This is a testing database 2"


class FakeServer:
    def __init__(self):
        self.databases = {}
        self.executed = []

    def execute(self, query):
        self.executed.append(query)
        created = re.match(r"CREATE DATABASE (\S+) .*?COMMENT '(.*)'$", query, re.S)
        if created:
            name = created.group(1)
            if name in self.databases:
                raise RuntimeError(f"database {name} already exists")
            self.databases[name] = {
                "name": name,
                "engine": "Atomic",
                "data_path": f"/data/{name}/",
                "metadata_path": f"/meta/{name}/",
                "uuid": "00000000-0000-0000-0000-000000000001",
                "comment": created.group(2).replace("\\'", "'"),
            }
            return
        dropped = re.match(r"DROP DATABASE (\S+)", query)
        if dropped:
            if dropped.group(1) not in self.databases:
                raise RuntimeError("unknown database")
            del self.databases[dropped.group(1)]

    def query(self, query):
        found = re.search(r"where name = '([^']*)'", query)
        if found and found.group(1) in self.databases:
            return [dict(self.databases[found.group(1)])]
        return []


def data_for(**values):
    return ResourceData(values=values, schema=resource_db().schema)


def apply_and_read(server, client, name, comment):
    data = data_for(name=name, comment=comment)
    assert not create(data, client).has_error()
    state = data_for(name=name)
    diags = read(state, client)
    assert not diags.has_error()
    return data, state


def test_acceptance_steps_create_rename_recomment():
    server = FakeServer()
    client = ApiClient(server)

    data, state = apply_and_read(server, client, DB_NAME, DB_COMMENT)
    assert re.match("^" + DB_NAME, state.get("name"))
    assert re.match("^" + DB_COMMENT, state.get("comment"))

    assert not delete(state, client).has_error()
    data, state = apply_and_read(server, client, DB_NAME_2, DB_COMMENT)
    assert re.match("^" + DB_NAME_2, state.get("name"))
    assert re.match("^" + DB_COMMENT, state.get("comment"))

    assert not delete(state, client).has_error()
    data, state = apply_and_read(server, client, DB_NAME_2, DB_COMMENT_2)
    assert state.get("name") == DB_NAME_2
    assert state.get("comment") == DB_COMMENT_2
    assert list(server.databases) == [DB_NAME_2]


def test_create_query_and_id():
    server = FakeServer()
    data = data_for(name=DB_NAME, comment="c")
    create(data, ApiClient(server))
    assert server.executed == [
        'CREATE DATABASE testing_db  COMMENT \'{"comment":"c","cluster":""}\''
    ]
    assert data.id == ":testing_db"


def test_create_uses_default_cluster():
    server = FakeServer()
    data = data_for(name=DB_NAME)
    create(data, ApiClient(server, default_cluster="main"))
    assert "ON CLUSTER main" in server.executed[0]
    assert data.id == "main:testing_db"
    state = data_for(name=DB_NAME)
    read(state, ApiClient(server))
    assert state.get("cluster") == "main"
    assert state.id == "main:testing_db"


def test_create_reports_server_error():
    server = FakeServer()
    client = ApiClient(server)
    create(data_for(name=DB_NAME), client)
    diags = create(data_for(name=DB_NAME), client)
    assert diags.has_error()
    assert "already exists" in diags[0].summary


def test_read_fills_computed_fields():
    server = FakeServer()
    client = ApiClient(server)
    _, state = apply_and_read(server, client, DB_NAME, DB_COMMENT)
    stored = server.databases[DB_NAME]
    assert state.get("engine") == stored["engine"]
    assert state.get("data_path") == stored["data_path"]
    assert state.get("metadata_path") == stored["metadata_path"]
    assert state.get("uuid") == stored["uuid"]


def test_read_missing_database():
    diags = read(data_for(name="absent"), ApiClient(FakeServer()))
    assert diags.has_error()
    assert diags[0].summary.startswith("scanning Clickhouse DB row:")


def test_read_empty_name_is_not_found():
    server = FakeServer()
    server.databases["ghost"] = {
        "name": "",
        "engine": "",
        "data_path": "",
        "metadata_path": "",
        "uuid": "",
        "comment": "",
    }
    diags = read(data_for(name="ghost"), ApiClient(server))
    assert diags[0].severity is Severity.ERROR
    assert diags[0].summary == "Database ghost not found"


def test_read_plain_comment_falls_back_to_default_cluster():
    server = FakeServer()
    server.databases["plain"] = {
        "name": "plain",
        "engine": "Atomic",
        "data_path": "/d/",
        "metadata_path": "/m/",
        "uuid": "u",
        "comment": "free text",
    }
    state = data_for(name="plain")
    diags = read(state, ApiClient(server, default_cluster="dflt"))
    assert not diags.has_error()
    assert [d.severity for d in diags] == [Severity.WARNING]
    assert state.get("comment") == "free text"
    assert state.get("cluster") == "dflt"
    assert state.id == "dflt:plain"


def test_delete_with_cluster():
    server = FakeServer()
    client = ApiClient(server)
    create(data_for(name=DB_NAME, cluster="c1"), client)
    state = data_for(name=DB_NAME, cluster="c1")
    state.id = "c1:testing_db"
    assert not delete(state, client).has_error()
    assert server.executed[-1] == "DROP DATABASE testing_db ON CLUSTER c1 SYNC"
    assert state.id == ""


def test_delete_without_name_is_error():
    server = FakeServer()
    diags = delete(data_for(), ApiClient(server))
    assert diags.has_error()
    assert diags[0].summary == "Database name not found"
    assert server.executed == []


def test_schema_defaults():
    schema = resource_db().schema
    assert schema["comment"].default == ""
    assert schema["name"].required and schema["name"].force_new
    assert data_for(name="x").get("comment") == ""


class TablesConnection:
    def __init__(self, rows=None, fail=False):
        self.rows = rows or []
        self.fail = fail

    def query(self, query):
        if self.fail:
            raise RuntimeError("boom")
        return list(self.rows)


def test_get_db_resources_lists_tables():
    conn = TablesConnection(rows=[{"database": "d", "name": "t1"}, {"database": "d", "name": "t2"}])
    result = DBService(conn).get_db_resources("d")
    assert result == CHDBResources(ch_tables=[CHTable(database="d", name="t1"), CHTable(database="d", name="t2")])


def test_get_db_resources_wraps_errors():
    with pytest.raises(RuntimeError, match="^error getting tables from database: "):
        DBService(TablesConnection(fail=True)).get_db_resources("d")