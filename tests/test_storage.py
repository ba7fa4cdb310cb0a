import pytest
import os
import shutil

from staking.storage.db import StorageDB
from staking.core.factory import PoolFactory
from staking.core.ledger import AssetLedger, AssetRegistry
from staking.core.clock import ManualClock
from staking.core.events import EventBus
from protocol.config.params import SCALE

TEST_DB_DIR = "./test_staking_db"
OWNER = "stk1owner"


@pytest.fixture
def db():
    if os.path.exists(TEST_DB_DIR):
        shutil.rmtree(TEST_DB_DIR)
    os.makedirs(TEST_DB_DIR)

    store = StorageDB(os.path.join(TEST_DB_DIR, "state.db"))
    yield store

    store.close()
    if os.path.exists(TEST_DB_DIR):
        shutil.rmtree(TEST_DB_DIR)


def test_state_store_basics(db):
    assert db.get_state("missing") is None
    db.set_state("ledger:A", "1")
    db.set_state("ledger:B", "2")
    db.set_state("pool:x", "3")
    assert db.get_state_by_prefix("ledger:") == {"ledger:A": "1", "ledger:B": "2"}

    db.delete_state("ledger:A")
    assert db.get_state("ledger:A") is None

    db.clear_state()
    assert db.get_state_by_prefix("") == {}


def test_ledger_round_trip(db):
    ledger = AssetLedger("STK")
    ledger.mint("alice", 10**30)  # larger than sqlite INTEGER
    ledger.approve("alice", "pool", 77)
    ledger.nonces["alice"] = 3
    ledger.persist(db)

    loaded = AssetLedger.load(db, "STK")
    assert loaded.balance_of("alice") == 10**30
    assert loaded.total_supply == 10**30
    assert loaded.allowance("alice", "pool") == 77
    assert loaded.nonce_of("alice") == 3
    assert AssetLedger.load(db, "NOPE") is None


def test_factory_and_pools_round_trip(db):
    clock = ManualClock(1_000)
    registry = AssetRegistry()
    for asset in ("RWD", "LP-A"):
        registry.create(asset)

    factory = PoolFactory(registry=registry, reward_asset="RWD", activation_time=1_000,
                          owner=OWNER, distribution_duration=600_000, clock=clock, bus=EventBus())
    factory.reward_ledger.mint(factory.address, 6_000_000 * SCALE)
    factory.deploy(OWNER, "LP-A", 6_000_000 * SCALE)
    factory.activate("LP-A")

    pool = factory.get_pool("LP-A")
    pool.staked_ledger.mint("alice", 100)
    pool.staked_ledger.approve("alice", pool.address, 100)
    pool.stake("alice", 100)
    clock.set(1_100)
    pool.claim("alice")

    for ledger in registry:
        ledger.persist(db)
    factory.persist(db)

    # Reload into fresh objects
    registry2 = AssetRegistry()
    for key in db.get_state_by_prefix("ledger:"):
        registry2.register(AssetLedger.load(db, key.split(":", 1)[1]))
    factory2 = PoolFactory.load(db, factory.address, registry2, clock=clock, bus=EventBus())

    assert factory2.snapshot() == factory.snapshot()
    pool2 = factory2.get_pool("LP-A")
    assert pool2.snapshot() == pool.snapshot()
    assert pool2.reward_rate == 10 * SCALE

    clock.set(1_200)
    assert pool2.earned("alice") == pool.earned("alice")
    assert pool2.claim("alice") == 100 * 10 * SCALE


def test_load_missing_factory(db):
    assert PoolFactory.load(db, "stkfactory1missing", AssetRegistry()) is None
