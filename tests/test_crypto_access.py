import pytest

from protocol.crypto.keys import generate_private_key, public_key_from_private, sign, verify, recover_public_keys
from protocol.crypto.addresses import address_from_pubkey, derive_contract_address, decode_address, is_valid_address
from protocol.crypto.hash import sha256
from protocol.types.common import Role, Unauthorized, ReentrantCall
from protocol.types.pool import PoolState
from staking.core.access import AccessControl, CallGuard
from staking.core.clock import ManualClock


# ═══════════════════════════════════════════════════════════════════
# KEYS & ADDRESSES
# ═══════════════════════════════════════════════════════════════════

def test_sign_verify_and_recover():
    priv = generate_private_key()
    pub = public_key_from_private(priv)
    msg = sha256(b"permit")

    sig = sign(msg, priv)
    assert len(sig) == 64
    assert verify(msg, sig, pub)
    assert not verify(sha256(b"other"), sig, pub)
    assert pub in recover_public_keys(msg, sig)


def test_recover_rejects_wrong_length():
    with pytest.raises(ValueError):
        recover_public_keys(sha256(b"x"), b"\x01" * 65)


def test_addresses():
    pub = public_key_from_private(generate_private_key())
    addr = address_from_pubkey(pub)
    assert addr.startswith("stk1")
    assert is_valid_address(addr, expected_prefix="stk")
    assert not is_valid_address(addr, expected_prefix="stkpool")
    assert not is_valid_address("not-an-address")

    prefix, h20 = decode_address(addr)
    assert prefix == "stk"
    assert len(h20) == 20


def test_contract_addresses_are_deterministic():
    a = derive_contract_address("stk1factory", "LP-A", "stkpool")
    assert a == derive_contract_address("stk1factory", "LP-A", "stkpool")
    assert a != derive_contract_address("stk1factory", "LP-B", "stkpool")
    assert a != derive_contract_address("stk1other", "LP-A", "stkpool")
    assert is_valid_address(a, expected_prefix="stkpool")


# ═══════════════════════════════════════════════════════════════════
# ACCESS CONTROL & CALL GUARD
# ═══════════════════════════════════════════════════════════════════

def test_access_control():
    access = AccessControl({Role.OWNER: ["stk1owner"]})
    assert access.has_role(Role.OWNER, "stk1owner")
    assert not access.has_role(Role.FUNDING_AUTHORITY, "stk1owner")

    access.grant(Role.FUNDING_AUTHORITY, "stk1funder")
    access.require(Role.FUNDING_AUTHORITY, "stk1funder")

    access.revoke(Role.FUNDING_AUTHORITY, "stk1funder")
    with pytest.raises(Unauthorized):
        access.require(Role.FUNDING_AUTHORITY, "stk1funder")


class Holder:
    def __init__(self):
        self.state = PoolState(address="p", staked_asset="S", reward_asset="R",
                               funding_authority="a", distribution_duration=10)
        self.guard = CallGuard("holder")

    def transaction(self):
        return self.guard.transaction(lambda: self.state, self._restore)

    def _restore(self, state):
        self.state = state


def test_guard_restores_state_on_error():
    h = Holder()
    with pytest.raises(RuntimeError):
        with h.transaction():
            h.state.total_staked = 99
            h.state.balances["x"] = 99
            raise RuntimeError("fail")
    assert h.state.total_staked == 0
    assert h.state.balances == {}
    assert not h.guard.entered


def test_guard_rejects_reentry():
    h = Holder()
    with h.transaction():
        with pytest.raises(ReentrantCall):
            with h.transaction():
                pass
        assert h.guard.entered
    assert not h.guard.entered


def test_guard_defers_events_until_commit():
    h = Holder()
    seen = []
    with h.transaction():
        h.guard.defer(lambda **data: seen.append(data), n=1)
        assert seen == []
    assert seen == [{"n": 1}]

    with pytest.raises(RuntimeError):
        with h.transaction():
            h.guard.defer(lambda **data: seen.append(data), n=2)
            raise RuntimeError("fail")
    assert seen == [{"n": 1}]

    # Outside a transaction events go out immediately
    h.guard.defer(lambda **data: seen.append(data), n=3)
    assert seen[-1] == {"n": 3}


# ═══════════════════════════════════════════════════════════════════
# CLOCK
# ═══════════════════════════════════════════════════════════════════

def test_manual_clock():
    clock = ManualClock(10)
    assert clock.now() == 10
    assert clock.advance(5) == 15
    clock.set(20)
    assert clock.now() == 20
    with pytest.raises(ValueError):
        clock.set(19)
    with pytest.raises(ValueError):
        clock.advance(-1)
