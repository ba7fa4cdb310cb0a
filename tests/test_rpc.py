import pytest
from fastapi.testclient import TestClient

from staking.rpc import api
from staking.core.clock import ManualClock
from staking.core.events import EventBus
from staking.core.factory import PoolFactory
from staking.core.ledger import AssetRegistry

OWNER = "stk1owner"


@pytest.fixture
def client():
    return TestClient(api.app)


@pytest.fixture
def factory(monkeypatch):
    clock = ManualClock(5_000)
    registry = AssetRegistry()
    for asset in ("RWD", "LP-X"):
        registry.create(asset)
    f = PoolFactory(registry=registry, reward_asset="RWD", activation_time=5_000,
                    owner=OWNER, distribution_duration=600_000, clock=clock, bus=EventBus())
    f.reward_ledger.mint(f.address, 6_000_000 * 10**18)
    f.deploy(OWNER, "LP-X", 6_000_000 * 10**18)
    f.activate("LP-X")

    pool = f.get_pool("LP-X")
    pool.staked_ledger.mint("alice", 50)
    pool.staked_ledger.approve("alice", pool.address, 50)
    pool.stake("alice", 50)
    clock.set(5_100)

    monkeypatch.setattr(api, "factory", f)
    return f


def test_not_initialized(client, monkeypatch):
    monkeypatch.setattr(api, "factory", None)
    resp = client.get("/status")
    assert resp.status_code == 503


def test_status(client, factory):
    data = client.get("/status").json()
    assert data["factory"] == factory.address
    assert data["reward_asset"] == "RWD"
    assert data["activation_time"] == 5_000
    assert data["now"] == 5_100
    assert data["pools"] == 1


def test_pools(client, factory):
    pools = client.get("/pools").json()["pools"]
    assert len(pools) == 1
    p = pools[0]
    assert p["staked_asset"] == "LP-X"
    assert p["address"] == factory.pool_address("LP-X")
    assert p["total_staked"] == "50"
    # Large integers travel as strings
    assert p["reward_rate"] == str(10 * 10**18)
    assert p["pending_reward_amount"] == "0"


def test_pool_detail(client, factory):
    data = client.get("/pool/LP-X").json()
    assert data["distribution_duration"] == 600_000
    assert data["applicable_time"] == 5_100
    assert data["participants"] == 1
    assert data["reward_for_duration"] == str(6_000_000 * 10**18)


def test_unknown_pool(client, factory):
    assert client.get("/pool/LP-NOPE").status_code == 404
    assert client.get("/pool/LP-NOPE/account/alice").status_code == 404


def test_account(client, factory):
    data = client.get("/pool/LP-X/account/alice").json()
    assert data["pool"] == factory.pool_address("LP-X")
    assert data["balance"] == "50"
    assert data["earned"] == str(100 * 10 * 10**18)

    empty = client.get("/pool/LP-X/account/bob").json()
    assert empty["balance"] == "0"
    assert empty["earned"] == "0"


def test_metrics_endpoint(client, factory):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "rewardpool_total_staked" in resp.text
    assert factory.pool_address("LP-X") in resp.text
