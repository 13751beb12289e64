import ssl

import pytest

from chprovision.common import ApiClient, Attribute, Resource, ResourceData, ValueType
from chprovision.provider import (
    ConnectionOptions,
    Provider,
    configure,
    get_env_var,
    new_provider,
)

ENV_VARS = (
    "TF_CLICKHOUSE_HOST",
    "TF_CLICKHOUSE_PORT",
    "TF_CLICKHOUSE_USERNAME",
    "TF_CLICKHOUSE_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeConnection:
    def __init__(self, ping_error=None):
        self.ping_error = ping_error
        self.pinged = False

    def ping(self):
        self.pinged = True
        if self.ping_error:
            raise self.ping_error


class Recorder:
    def __init__(self, connection=None, error=None):
        self.connection = connection or FakeConnection()
        self.error = error
        self.options = None

    def __call__(self, options):
        self.options = options
        if self.error:
            raise self.error
        return self.connection


def provider_data(**values):
    return ResourceData(values=values, schema=new_provider("dev").schema)


def test_provider_validates():
    provider = new_provider("dev")
    assert provider.validate() is None
    assert set(provider.resources) == {
        "clickhouse_db",
        "clickhouse_table",
        "clickhouse_role",
        "clickhouse_user",
    }
    assert set(provider.data_sources) == {"clickhouse_dbs"}
    assert provider.version == "dev"


def test_validate_rejects_required_and_optional():
    provider = Provider(
        version="dev",
        schema={"host": Attribute(ValueType.STRING, required=True, optional=True)},
    )
    with pytest.raises(ValueError, match="Optional or Required must be set, not both"):
        provider.validate()


def test_validate_rejects_missing_force_new_without_update():
    resource = Resource(
        description="r",
        schema={"name": Attribute(ValueType.STRING, required=True)},
        create=lambda data, client: None,
        read=lambda data, client: None,
        delete=lambda data, client: None,
    )
    provider = Provider(version="dev", resources={"thing": resource})
    with pytest.raises(ValueError, match="No Update defined"):
        provider.validate()


def test_validate_rejects_superfluous_update():
    resource = Resource(
        description="r",
        schema={"name": Attribute(ValueType.STRING, required=True, force_new=True)},
        create=lambda data, client: None,
        read=lambda data, client: None,
        update=lambda data, client: None,
        delete=lambda data, client: None,
    )
    provider = Provider(version="dev", resources={"thing": resource})
    with pytest.raises(ValueError, match="Update is superfluous"):
        provider.validate()


def test_get_env_var_reads_environment(monkeypatch):
    monkeypatch.setenv("TF_CLICKHOUSE_HOST", "127.0.0.1")
    assert get_env_var("TF_CLICKHOUSE_HOST") == "127.0.0.1"


def test_get_env_var_reads_dotenv_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("TF_CLICKHOUSE_USERNAME=default\n")
    try:
        assert get_env_var("TF_CLICKHOUSE_USERNAME") == "default"
    finally:
        monkeypatch.delenv("TF_CLICKHOUSE_USERNAME", raising=False)


def test_get_env_var_missing_raises():
    with pytest.raises(LookupError, match="Env var TF_CLICKHOUSE_HOST not present"):
        get_env_var("TF_CLICKHOUSE_HOST")


def test_configure_builds_connection_options():
    password = "password"
    recorder = Recorder()
    client = configure(
        provider_data(
            host="127.0.0.1",
            port=9000,
            username="default",
            password=password,
            default_cluster="main",
        ),
        recorder,
    )
    assert isinstance(client, ApiClient)
    assert client.default_cluster == "main"
    assert client.connection is recorder.connection
    assert recorder.connection.pinged
    assert recorder.options == ConnectionOptions(
        addr=["127.0.0.1:9000"],
        username="default",
        password=password,
        settings={"max_execution_time": 30},
        tls=None,
    )


def test_configure_secure_uses_verifying_tls():
    recorder = Recorder()
    configure(provider_data(host="db", port=9440, username="default", secure=True), recorder)
    assert isinstance(recorder.options.tls, ssl.SSLContext)
    assert recorder.options.tls.verify_mode == ssl.CERT_REQUIRED


def test_configure_reads_defaults_from_environment(monkeypatch):
    monkeypatch.setenv("TF_CLICKHOUSE_HOST", "127.0.0.1")
    monkeypatch.setenv("TF_CLICKHOUSE_PORT", "9000")
    monkeypatch.setenv("TF_CLICKHOUSE_USERNAME", "default")
    recorder = Recorder()
    client = configure(provider_data(), recorder)
    assert recorder.options.addr == ["127.0.0.1:9000"]
    assert recorder.options.username == "default"
    assert recorder.options.password == ""
    assert client.default_cluster == ""


def test_configure_missing_host_raises():
    with pytest.raises(LookupError, match="TF_CLICKHOUSE_HOST"):
        configure(provider_data(port=9000, username="default"), Recorder())


def test_configure_connect_failure():
    recorder = Recorder(error=OSError("refused"))
    with pytest.raises(ConnectionError, match="error connecting to clickhouse: refused"):
        configure(provider_data(host="h", port=9000, username="default"), recorder)


def test_configure_ping_failure():
    recorder = Recorder(connection=FakeConnection(ping_error=OSError("timeout")))
    with pytest.raises(ConnectionError, match="ping clickhouse database: timeout"):
        configure(provider_data(host="h", port=9000, username="default"), recorder)