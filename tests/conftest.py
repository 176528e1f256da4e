import pytest

from config import Settings
from gateway.core.config_storage import BridgeConfigStorage
from gateway.models.bridge_config import BridgeConfig
from gateway.opc.session import DeviceSessionManager
from tests.mock.mock_opc_client import FakeStore, MockOpcClient


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ingest_interval=0.01,
        actuation_interval=0.01,
        reconnect_backoff=0.01,
        restart_grace=0.0,
        stop_timeout=2.0,
        settings_dir=str(tmp_path),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def opc_client():
    return MockOpcClient(values={"T1": 42.5})


@pytest.fixture
def session(opc_client):
    return DeviceSessionManager(client_factory=lambda host, prog_id: opc_client)


@pytest.fixture
def connected_session(session):
    assert session.ensure_connected("localhost", "Mock.Server.1")
    return session


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def storage(tmp_path):
    return BridgeConfigStorage(tmp_path / "bridge_settings.yaml")


@pytest.fixture
def bridge_config():
    return BridgeConfig(
        opcHost="localhost",
        opcProgId="Mock.Server.1",
        influxUrl="http://localhost:8086",
        influxToken="token",
        influxOrg="plant",
        influxBucket="kiln",
        readTags=["T1"],
        readMapping={},
        writeMapping={"setpoint": "PLC.AI.12"},
    )

