from chprovision.common import ApiClient, ResourceData, ValueType
from chprovision.role_resource import create, delete, read, resource_role, update

ROLE = "test_role_1"
OTHER_ROLE = "test_role_2"
DB = "role_role_db_1"


class FakeConnection:
    def __init__(self, grants=None, fail_on=()):
        self.grants = dict(grants or {})
        self.executed = []
        self.fail_on = tuple(fail_on)

    def execute(self, query):
        self.executed.append(query)
        if any(fragment in query for fragment in self.fail_on):
            raise RuntimeError(f"failed: {query}")

    def query(self, query):
        name = query.split("'")[1]
        if "system.roles" in query:
            return [{"name": name}] if name in self.grants else []
        return [
            {"role_name": name, "access_type": access, "database": database}
            for access, database in self.grants.get(name, [])
        ]


def make_data(values, previous=None):
    return ResourceData(values=values, previous=previous or {}, schema=resource_role().schema)


def test_schema_shape():
    resource = resource_role()
    assert resource.schema["name"].required
    assert resource.schema["database"].required
    assert resource.schema["privileges"].type is ValueType.SET
    assert resource.create is create and resource.delete is delete


def test_create_rejects_invalid_privilege_without_touching_server():
    conn = FakeConnection()
    data = make_data({"name": ROLE, "database": DB, "privileges": ["NOT_ALLOWED_PRIVILEGE"]})
    diags = create(data, ApiClient(conn))
    assert diags.has_error()
    assert "NOT_ALLOWED_PRIVILEGE isn't in the allowed privileges list" in diags[0].detail
    assert conn.executed == []
    assert data.id == ""


def test_create_sets_id():
    conn = FakeConnection()
    data = make_data({"name": ROLE, "database": DB, "privileges": ["SELECT"]})
    diags = create(data, ApiClient(conn))
    assert not diags.has_error()
    assert data.id == ROLE
    assert conn.executed[0] == f"CREATE ROLE {ROLE}"
    assert len(conn.executed) == 2


def test_create_failure_reports_and_rolls_back():
    conn = FakeConnection(fail_on=["GRANT"])
    data = make_data({"name": ROLE, "database": DB, "privileges": ["SELECT"]})
    diags = create(data, ApiClient(conn))
    assert diags.has_error()
    assert diags[0].summary.startswith("resource role create:")
    assert conn.executed[-1] == f"DROP ROLE {ROLE}"


def test_read_populates_data():
    conn = FakeConnection({ROLE: [("SELECT", DB), ("INSERT", DB)]})
    data = make_data({"name": ROLE})
    diags = read(data, ApiClient(conn))
    assert not diags.has_error()
    assert data.get("database") == DB
    assert data.get("privileges") == frozenset({"SELECT", "INSERT"})
    assert data.id == ROLE


def test_read_missing_role():
    data = make_data({"name": ROLE})
    diags = read(data, ApiClient(FakeConnection()))
    assert diags.has_error()
    assert diags[0].summary.startswith("resource role read:")
    assert data.id == ""


def test_read_mixed_databases():
    conn = FakeConnection({ROLE: [("SELECT", DB), ("INSERT", "other_db")]})
    diags = read(make_data({"name": ROLE}), ApiClient(conn))
    assert diags.has_error()
    assert "different databases" in diags[0].summary


def test_update_renames_and_sets_id():
    conn = FakeConnection({ROLE: [("SELECT", DB)], OTHER_ROLE: [("SELECT", DB)]})
    data = make_data(
        {"name": OTHER_ROLE, "database": DB, "privileges": ["SELECT"]},
        previous={"name": ROLE, "database": DB, "privileges": ["SELECT"]},
    )
    diags = update(data, ApiClient(conn))
    assert not diags.has_error()
    assert data.id == OTHER_ROLE
    assert len(conn.executed) == 1
    assert ROLE in conn.executed[0] and OTHER_ROLE in conn.executed[0]


def test_update_rejects_global_privilege_on_database():
    conn = FakeConnection({ROLE: [("SELECT", DB)]})
    data = make_data(
        {"name": ROLE, "database": DB, "privileges": ["REMOTE"]},
        previous={"name": ROLE, "database": DB, "privileges": ["SELECT"]},
    )
    diags = update(data, ApiClient(conn))
    assert diags.has_error()
    assert conn.executed == []


def test_update_missing_role():
    data = make_data(
        {"name": ROLE, "database": DB, "privileges": ["SELECT"]},
        previous={"name": ROLE, "database": DB, "privileges": []},
    )
    diags = update(data, ApiClient(FakeConnection()))
    assert diags.has_error()
    assert diags[0].summary.startswith("resource role update:")


def test_delete():
    conn = FakeConnection()
    diags = delete(make_data({"name": ROLE}), ApiClient(conn))
    assert diags == []
    assert conn.executed == [f"DROP ROLE {ROLE}"]


def test_delete_failure():
    conn = FakeConnection(fail_on=["DROP"])
    diags = delete(make_data({"name": ROLE}), ApiClient(conn))
    assert diags.has_error()
    assert diags[0].summary.startswith("resource role delete:")