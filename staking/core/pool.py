# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward pool: stake one asset, earn another at a shared per-second rate.

Accounting works on a single accumulator, reward_per_token_stored: the reward
one unit of stake has earned since the pool was created (scaled by SCALE).
A participant only stores the accumulator value at their last settlement, so
each stake/withdraw/claim costs O(1) regardless of how many events happened
in between:

    earned = balance * (reward_per_token() - reward_per_token_paid) // SCALE + rewards

Every mutating call settles the acting participant first, then mutates.
"""
from typing import Optional
import json
import logging

from protocol.types.pool import PoolState, AccountView
from protocol.types.common import (
    EventType, Role, LedgerError,
    InvalidAmount, InsufficientBalance, TransferFailed, InsufficientFunding,
)
from protocol.config.params import SCALE, CURRENT_NETWORK
from protocol.crypto.addresses import derive_contract_address
from .access import AccessControl, CallGuard
from .clock import SystemClock
from .events import EventBus, event_bus
from .ledger import AssetLedger

logger = logging.getLogger(__name__)


class RewardPool:
    def __init__(self,
                 staked_ledger: AssetLedger,
                 reward_ledger: AssetLedger,
                 funding_authority: str,
                 distribution_duration: Optional[int] = None,
                 clock=None,
                 address: Optional[str] = None,
                 access: Optional[AccessControl] = None,
                 bus: Optional[EventBus] = None,
                 state: Optional[PoolState] = None):
        self.staked_ledger = staked_ledger
        self.reward_ledger = reward_ledger
        self.clock = clock or SystemClock()
        self.bus = bus or event_bus

        if state is None:
            duration = CURRENT_NETWORK.distribution_duration if distribution_duration is None else distribution_duration
            if duration <= 0:
                raise ValueError(f"distribution_duration must be positive, got {duration}")
            state = PoolState(
                address=address or derive_contract_address(
                    funding_authority, staked_ledger.asset_id, CURRENT_NETWORK.bech32_prefix_pool
                ),
                staked_asset=staked_ledger.asset_id,
                reward_asset=reward_ledger.asset_id,
                funding_authority=funding_authority,
                distribution_duration=duration,
            )
        elif state.staked_asset != staked_ledger.asset_id or state.reward_asset != reward_ledger.asset_id:
            raise ValueError("Pool state does not match the supplied ledgers")
        self.state = state

        self.access = access or AccessControl({Role.FUNDING_AUTHORITY: [state.funding_authority]})
        self._guard = CallGuard(f"pool {state.address}")

    @property
    def address(self) -> str:
        return self.state.address

    @property
    def staked_asset(self) -> str:
        return self.state.staked_asset

    @property
    def reward_asset(self) -> str:
        return self.state.reward_asset

    @property
    def distribution_duration(self) -> int:
        return self.state.distribution_duration

    @property
    def reward_rate(self) -> int:
        with self._guard.lock:
            return self.state.reward_rate

    @property
    def period_finish(self) -> int:
        with self._guard.lock:
            return self.state.period_finish

    @property
    def last_update_time(self) -> int:
        with self._guard.lock:
            return self.state.last_update_time

    @property
    def reward_per_token_stored(self) -> int:
        with self._guard.lock:
            return self.state.reward_per_token_stored

    # --- Views ---
    # Views wait for an open transaction on another thread to commit or roll back
    def total_staked(self) -> int:
        with self._guard.lock:
            return self.state.total_staked

    def balance_of(self, participant: str) -> int:
        with self._guard.lock:
            return self.state.balances.get(participant, 0)

    def applicable_time(self) -> int:
        """Right edge of the integration window: accrual stops at period_finish."""
        with self._guard.lock:
            return min(self.clock.now(), self.state.period_finish)

    def reward_per_token(self) -> int:
        with self._guard.lock:
            s = self.state
            if s.total_staked == 0:
                # Nobody captures emission while the pool is empty
                return s.reward_per_token_stored
            elapsed = self.applicable_time() - s.last_update_time
            return s.reward_per_token_stored + elapsed * s.reward_rate * SCALE // s.total_staked

    def earned(self, participant: str) -> int:
        with self._guard.lock:
            s = self.state
            paid = s.reward_per_token_paid.get(participant, 0)
            return (
                self.balance_of(participant) * (self.reward_per_token() - paid) // SCALE
                + s.rewards.get(participant, 0)
            )

    def reward_for_current_duration(self) -> int:
        with self._guard.lock:
            return self.state.reward_rate * self.state.distribution_duration

    def account(self, participant: str) -> AccountView:
        with self._guard.lock:
            return AccountView(
                address=participant,
                balance=self.balance_of(participant),
                earned=self.earned(participant),
                reward_per_token_paid=self.state.reward_per_token_paid.get(participant, 0),
            )

    def snapshot(self) -> PoolState:
        with self._guard.lock:
            return self.state.model_copy(deep=True)

    # --- Settlement ---
    def _settle(self, participant: Optional[str]) -> None:
        """Folds accrual up to now into stored state; `None` settles only the pool."""
        s = self.state
        s.reward_per_token_stored = self.reward_per_token()
        s.last_update_time = self.applicable_time()
        if participant is not None:
            s.rewards[participant] = self.earned(participant)
            s.reward_per_token_paid[participant] = s.reward_per_token_stored

    def _transaction(self):
        return self._guard.transaction(lambda: self.state, self._restore)

    def _restore(self, state: PoolState) -> None:
        self.state = state

    # --- Mutations ---
    def stake(self, caller: str, amount: int) -> None:
        self._require_positive(amount)
        with self._transaction():
            self._stake(caller, amount)

    def stake_with_preauthorization(self, caller: str, amount: int, deadline: int, signature: bytes) -> None:
        """Stake using a signed permit instead of a prior approve."""
        self._require_positive(amount)
        with self._transaction():
            # A failed pull must also give back the permit nonce
            with self.staked_ledger.atomic():
                self.staked_ledger.permit(
                    owner=caller,
                    spender=self.address,
                    value=amount,
                    deadline=deadline,
                    signature=signature,
                    now=self.clock.now(),
                )
                self._stake(caller, amount)

    def withdraw(self, caller: str, amount: int) -> None:
        self._require_positive(amount)
        with self._transaction():
            self._withdraw(caller, amount)

    def claim(self, caller: str) -> int:
        """Pays out settled rewards. Returns the amount paid (0 is not an error)."""
        with self._transaction():
            return self._claim(caller)

    def exit(self, caller: str) -> int:
        """Withdraws the whole balance, then claims. Returns the reward paid."""
        with self._transaction():
            # Two movements: a failed claim must also undo the withdraw transfer
            with self.staked_ledger.atomic(), self.reward_ledger.atomic():
                balance = self.balance_of(caller)
                if balance > 0:
                    self._withdraw(caller, balance)
                return self._claim(caller)

    def notify_new_reward_amount(self, caller: str, reward_amount: int) -> None:
        """
        Starts a new distribution window funded with `reward_amount`.

        Unemitted reward from a running window is rolled into the new one, and
        the window always restarts at full length from now.

        Raises:
            Unauthorized: caller is not the funding authority
            InvalidAmount: negative amount
            InsufficientFunding: pool custody cannot sustain the new rate
        """
        self.access.require(Role.FUNDING_AUTHORITY, caller)
        if not isinstance(reward_amount, int) or isinstance(reward_amount, bool) or reward_amount < 0:
            raise InvalidAmount(f"Reward amount must be a non-negative integer, got {reward_amount!r}")

        with self._transaction():
            s = self.state
            self._settle(None)

            now = self.clock.now()
            if now >= s.period_finish:
                reward_rate = reward_amount // s.distribution_duration
            else:
                remaining = s.period_finish - now
                leftover = remaining * s.reward_rate
                reward_rate = (reward_amount + leftover) // s.distribution_duration

            custody = self.reward_ledger.balance_of(self.address)
            if reward_rate > custody // s.distribution_duration:
                raise InsufficientFunding(
                    f"Reward rate {reward_rate} exceeds custody {custody} over {s.distribution_duration}s"
                )

            s.reward_rate = reward_rate
            s.last_update_time = now
            s.period_finish = now + s.distribution_duration
            s.total_funded += reward_amount

            logger.info(f"Pool {self.address}: reward {reward_amount} added, rate {reward_rate}/s until {s.period_finish}")
            self._guard.defer(self.bus.emit, event_type=EventType.REWARD_ADDED,
                              pool=self.address, amount=reward_amount, reward_rate=reward_rate)

    # --- Internals (run inside an open transaction) ---
    def _stake(self, caller: str, amount: int) -> None:
        s = self.state
        self._settle(caller)
        s.total_staked += amount
        s.balances[caller] = self.balance_of(caller) + amount
        self._pull(caller, amount)

        logger.debug(f"Pool {self.address}: {caller} staked {amount} (total {s.total_staked})")
        self._guard.defer(self.bus.emit, event_type=EventType.STAKED,
                          pool=self.address, participant=caller, amount=amount)

    def _withdraw(self, caller: str, amount: int) -> None:
        s = self.state
        balance = self.balance_of(caller)
        if amount > balance:
            raise InsufficientBalance(f"Withdraw {amount} exceeds staked balance {balance}")
        self._settle(caller)
        s.total_staked -= amount
        s.balances[caller] = balance - amount
        self._push(self.staked_ledger, caller, amount)

        logger.debug(f"Pool {self.address}: {caller} withdrew {amount} (total {s.total_staked})")
        self._guard.defer(self.bus.emit, event_type=EventType.WITHDRAWN,
                          pool=self.address, participant=caller, amount=amount)

    def _claim(self, caller: str) -> int:
        s = self.state
        self._settle(caller)
        reward = s.rewards.get(caller, 0)
        if reward <= 0:
            return 0
        s.rewards[caller] = 0
        s.total_paid += reward
        self._push(self.reward_ledger, caller, reward)

        logger.debug(f"Pool {self.address}: paid {reward} to {caller}")
        self._guard.defer(self.bus.emit, event_type=EventType.REWARD_PAID,
                          pool=self.address, participant=caller, amount=reward)
        return reward

    def _pull(self, owner: str, amount: int) -> None:
        try:
            ok = self.staked_ledger.transfer_from(self.address, owner, self.address, amount)
        except LedgerError as e:
            raise TransferFailed(f"Pull of {amount} {self.staked_asset} from {owner} failed: {e}") from e
        if not ok:
            raise TransferFailed(f"Pull of {amount} {self.staked_asset} from {owner} refused")

    def _push(self, ledger: AssetLedger, recipient: str, amount: int) -> None:
        try:
            ok = ledger.transfer(self.address, recipient, amount)
        except LedgerError as e:
            raise TransferFailed(f"Push of {amount} {ledger.asset_id} to {recipient} failed: {e}") from e
        if not ok:
            raise TransferFailed(f"Push of {amount} {ledger.asset_id} to {recipient} refused")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")

    # --- Persistence ---
    def persist(self, db) -> None:
        """Writes pool state to the state store under pool:<address>."""
        db.set_state(f"pool:{self.address}", json.dumps(self.snapshot().model_dump()))

    @classmethod
    def load(cls, db, address: str, staked_ledger: AssetLedger, reward_ledger: AssetLedger,
             clock=None, bus: Optional[EventBus] = None) -> Optional["RewardPool"]:
        raw_json = db.get_state(f"pool:{address}")
        if not raw_json:
            return None
        state = PoolState.model_validate(json.loads(raw_json))
        return cls(
            staked_ledger=staked_ledger,
            reward_ledger=reward_ledger,
            funding_authority=state.funding_authority,
            clock=clock,
            bus=bus,
            state=state,
        )
