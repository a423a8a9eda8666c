import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest
from solana.rpc.core import RPCException

from room_program.errors import RpcUnavailable
from rpc_manager import CircuitState, FailoverClient, RPCEndpoint, RPCManager, check_rpc_health
from security.audit import AuditEventType, audit_logger

from conftest import DEVNET_GENESIS


class StubClient:
    def __init__(self, name, fail_with=None):
        self.name = name
        self.fail_with = fail_with
        self.calls = 0

    async def get_genesis_hash(self):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.name


def manager_with(*clients):
    endpoints = []
    for client in clients:
        endpoint = RPCEndpoint(f"https://{client.name}.test", client.name)
        endpoint._client = client
        endpoints.append(endpoint)
    return RPCManager(endpoints)


def test_fails_over_on_transport_error():
    primary = StubClient("primary", httpx.ConnectError("refused"))
    backup = StubClient("backup")
    manager = manager_with(primary, backup)

    result = asyncio.run(FailoverClient(manager).get_genesis_hash())

    assert result == "backup"
    assert manager.endpoints[0].failure_count == 1
    assert manager.endpoints[1].success_count == 1


def test_node_errors_are_not_failed_over():
    primary = StubClient("primary", RPCException({"message": "invalid param"}))
    backup = StubClient("backup")
    manager = manager_with(primary, backup)

    with pytest.raises(RPCException):
        asyncio.run(manager.call_with_failover(lambda c: c.get_genesis_hash()))
    assert backup.calls == 0


def test_all_endpoints_down():
    manager = manager_with(
        StubClient("primary", httpx.ConnectError("refused")),
        StubClient("backup", OSError("network unreachable")),
    )

    with pytest.raises(RpcUnavailable):
        asyncio.run(manager.call_with_failover(lambda c: c.get_genesis_hash()))

    events = audit_logger.get_recent_events(event_type=AuditEventType.RPC_FAILURE)
    assert events and events[0]["severity"] == "critical"


def test_circuit_opens_after_threshold_and_skips_endpoint():
    primary = StubClient("primary", httpx.ConnectError("refused"))
    backup = StubClient("backup")
    manager = manager_with(primary, backup)

    for _ in range(4):
        asyncio.run(manager.call_with_failover(lambda c: c.get_genesis_hash()))

    assert manager.endpoints[0].circuit_state is CircuitState.OPEN
    assert primary.calls == 3
    assert manager.get_status()["failed_endpoints"] == 1


def test_open_circuit_half_opens_after_timeout():
    endpoint = RPCEndpoint("https://primary.test", "primary")
    for _ in range(3):
        endpoint.record_failure()
    assert not endpoint.should_attempt()

    endpoint.last_failure_time = datetime.utcnow() - timedelta(seconds=61)

    assert endpoint.should_attempt()
    assert endpoint.circuit_state is CircuitState.HALF_OPEN
    endpoint.record_success()
    endpoint.record_success()
    assert endpoint.circuit_state is CircuitState.CLOSED


def test_reset_all_circuits():
    manager = manager_with(StubClient("primary"))
    manager.endpoints[0].circuit_state = CircuitState.OPEN

    manager.reset_all_circuits()

    assert manager.get_status()["healthy_endpoints"] == 1


def test_from_env_orders_endpoints(monkeypatch):
    monkeypatch.setenv("RPC_URL", "https://primary.test")
    monkeypatch.setenv("BACKUP_RPC_URL_1", "https://backup.test")
    monkeypatch.delenv("BACKUP_RPC_URL_2", raising=False)

    manager = RPCManager.from_env("devnet")

    assert [e.url for e in manager.endpoints] == [
        "https://primary.test",
        "https://backup.test",
        "https://api.devnet.solana.com",
    ]


def test_requires_an_endpoint():
    with pytest.raises(ValueError):
        RPCManager([])


class GenesisStub(StubClient):
    def __init__(self, name, genesis="", fail_with=None):
        super().__init__(name, fail_with)
        self.genesis = genesis

    async def get_genesis_hash(self):
        await super().get_genesis_hash()
        return SimpleNamespace(value=self.genesis)


def test_health_check_reports_cluster_per_endpoint():
    manager = manager_with(
        GenesisStub("primary", DEVNET_GENESIS),
        GenesisStub("backup", fail_with=httpx.ConnectError("refused")),
    )

    health = asyncio.run(check_rpc_health(manager))

    assert health["total_endpoints"] == 2
    assert health["healthy"] == 1
    primary, backup = health["results"]
    assert primary["cluster"] == "devnet"
    assert backup["status"] == "unhealthy"
    assert "refused" in backup["error"]
