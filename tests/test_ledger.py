"""
Tests for AssetLedger / AssetRegistry.
"""
import pytest

from staking.core.ledger import AssetLedger, AssetRegistry
from protocol.types.common import LedgerError


@pytest.fixture
def ledger():
    ledger = AssetLedger("STK")
    ledger.mint("alice", 1_000)
    return ledger


def test_mint_and_supply(ledger):
    assert ledger.balance_of("alice") == 1_000
    assert ledger.total_supply == 1_000
    assert ledger.balance_of("nobody") == 0


def test_transfer(ledger):
    assert ledger.transfer("alice", "bob", 400) is True
    assert ledger.balance_of("alice") == 600
    assert ledger.balance_of("bob") == 400


def test_transfer_insufficient_balance(ledger):
    assert ledger.transfer("alice", "bob", 1_001) is False
    assert ledger.balance_of("alice") == 1_000
    assert ledger.balance_of("bob") == 0


@pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
def test_malformed_amount_raises(ledger, amount):
    with pytest.raises(LedgerError):
        ledger.transfer("alice", "bob", amount)


def test_transfer_from_uses_allowance(ledger):
    ledger.approve("alice", "pool", 500)
    assert ledger.transfer_from("pool", "alice", "pool", 300) is True
    assert ledger.allowance("alice", "pool") == 200
    assert ledger.balance_of("pool") == 300


def test_transfer_from_refusals(ledger):
    assert ledger.transfer_from("pool", "alice", "pool", 1) is False

    ledger.approve("alice", "pool", 5_000)
    assert ledger.transfer_from("pool", "alice", "pool", 2_000) is False
    assert ledger.allowance("alice", "pool") == 5_000
    assert ledger.balance_of("alice") == 1_000


def test_hook_failure_leaves_allowance(ledger):
    ledger.approve("alice", "pool", 500)

    def boom(sender, recipient, amount):
        raise RuntimeError("hook")

    ledger.hooks.append(boom)
    with pytest.raises(RuntimeError):
        ledger.transfer_from("pool", "alice", "pool", 100)
    assert ledger.allowance("alice", "pool") == 500
    assert ledger.balance_of("alice") == 1_000


def test_atomic_rolls_back(ledger):
    ledger.approve("alice", "pool", 500)
    with pytest.raises(ValueError):
        with ledger.atomic():
            ledger.transfer("alice", "bob", 100)
            ledger.transfer_from("pool", "alice", "carol", 200)
            ledger.mint("dave", 50)
            raise ValueError("abort")

    assert ledger.balance_of("alice") == 1_000
    assert ledger.balance_of("bob") == 0
    assert ledger.balance_of("carol") == 0
    assert ledger.balance_of("dave") == 0
    assert ledger.allowance("alice", "pool") == 500
    assert ledger.total_supply == 1_000


def test_atomic_commits(ledger):
    with ledger.atomic():
        ledger.transfer("alice", "bob", 100)
    assert ledger.balance_of("bob") == 100


def test_nested_atomic_folds_into_outer(ledger):
    with pytest.raises(ValueError):
        with ledger.atomic():
            with ledger.atomic():
                ledger.transfer("alice", "bob", 100)
            ledger.transfer("alice", "carol", 100)
            raise ValueError("abort")
    assert ledger.balance_of("alice") == 1_000
    assert ledger.balance_of("bob") == 0


def test_inner_atomic_rollback_keeps_outer(ledger):
    with ledger.atomic():
        ledger.transfer("alice", "bob", 100)
        with pytest.raises(ValueError):
            with ledger.atomic():
                ledger.transfer("alice", "carol", 100)
                raise ValueError("abort inner")
    assert ledger.balance_of("bob") == 100
    assert ledger.balance_of("carol") == 0
    assert ledger.balance_of("alice") == 900


def test_movements_outside_atomic_are_not_journaled(ledger):
    ledger.transfer("alice", "bob", 100)
    with ledger.atomic():
        pass
    assert ledger.balance_of("bob") == 100


def test_registry():
    reg = AssetRegistry([AssetLedger("A")])
    reg.create("B")
    assert "A" in reg and "B" in reg
    assert reg.get("C") is None
    assert sorted(l.asset_id for l in reg) == ["A", "B"]
    with pytest.raises(LedgerError):
        reg.create("A")
