# MIT License
# Copyright (c) 2025 Hashborn

"""
Pool factory: deploys one RewardPool per staked asset and funds them.

Funding amounts are recorded at deployment and pushed no earlier than
activation_time, either for every deployed pool (activate_all) or for a
single asset (activate). Each pool is funded at most once through the
factory.
"""
from typing import Dict, List, Optional
import json
import logging

from protocol.types.factory import FactoryState, PoolInfo, ActivationResult
from protocol.types.common import (
    EventType, Role, ProtocolError, LedgerError,
    InvalidAmount, AlreadyDeployed, NotDeployed, NoPoolsDeployed, NotYetActive,
    FundingTransferFailed, InvalidActivationTime, UnknownAsset,
)
from protocol.config.params import CURRENT_NETWORK
from protocol.crypto.addresses import derive_contract_address
from .access import AccessControl, CallGuard
from .clock import SystemClock
from .events import EventBus, event_bus
from .ledger import AssetLedger, AssetRegistry
from .pool import RewardPool

logger = logging.getLogger(__name__)


class PoolFactory:
    def __init__(self,
                 registry: AssetRegistry,
                 reward_asset: str,
                 activation_time: int,
                 owner: str,
                 distribution_duration: Optional[int] = None,
                 clock=None,
                 address: Optional[str] = None,
                 bus: Optional[EventBus] = None,
                 state: Optional[FactoryState] = None):
        self.registry = registry
        self.clock = clock or SystemClock()
        self.bus = bus or event_bus

        if state is None:
            now = self.clock.now()
            if activation_time < now:
                raise InvalidActivationTime(f"Activation time {activation_time} is before now ({now})")
            duration = CURRENT_NETWORK.distribution_duration if distribution_duration is None else distribution_duration
            if duration <= 0:
                raise ValueError(f"distribution_duration must be positive, got {duration}")
            state = FactoryState(
                address=address or derive_contract_address(
                    owner, f"{reward_asset}:{activation_time}", CURRENT_NETWORK.bech32_prefix_factory
                ),
                owner=owner,
                reward_asset=reward_asset,
                activation_time=activation_time,
                distribution_duration=duration,
            )
        self.state = state

        self.reward_ledger = self._ledger(state.reward_asset)
        self.access = AccessControl({Role.OWNER: [state.owner]})
        self.pools: Dict[str, RewardPool] = {}
        self._guard = CallGuard(f"factory {state.address}")

    @property
    def address(self) -> str:
        return self.state.address

    @property
    def activation_time(self) -> int:
        return self.state.activation_time

    @property
    def deployed_assets(self) -> List[str]:
        with self._guard.lock:
            return list(self.state.deployed_assets)

    def pool_info(self, staked_asset: str) -> Optional[PoolInfo]:
        """Copy of the committed PoolInfo for `staked_asset`, if deployed."""
        with self._guard.lock:
            info = self.state.pool_info.get(staked_asset)
            return info.model_copy() if info else None

    def pool_address(self, staked_asset: str) -> Optional[str]:
        info = self.pool_info(staked_asset)
        return info.pool_address if info else None

    def get_pool(self, staked_asset: str) -> Optional[RewardPool]:
        with self._guard.lock:
            return self.pools.get(staked_asset)

    def snapshot(self) -> FactoryState:
        with self._guard.lock:
            return self.state.model_copy(deep=True)

    def _ledger(self, asset_id: str) -> AssetLedger:
        ledger = self.registry.get(asset_id)
        if ledger is None:
            raise UnknownAsset(f"No ledger registered for asset {asset_id}")
        return ledger

    def _transaction(self):
        return self._guard.transaction(lambda: self.state, self._restore)

    def _restore(self, state: FactoryState) -> None:
        self.state = state

    def deploy(self, caller: str, staked_asset: str, reward_amount: int) -> str:
        """
        Creates the pool for `staked_asset` and records its pending funding.

        Returns:
            Address of the new pool
        """
        self.access.require(Role.OWNER, caller)
        if not isinstance(reward_amount, int) or isinstance(reward_amount, bool) or reward_amount < 0:
            raise InvalidAmount(f"Reward amount must be a non-negative integer, got {reward_amount!r}")

        with self._transaction():
            info = self.state.pool_info.get(staked_asset)
            if info is not None and info.pool_address:
                raise AlreadyDeployed(f"Pool for {staked_asset} already deployed at {info.pool_address}")

            pool = RewardPool(
                staked_ledger=self._ledger(staked_asset),
                reward_ledger=self.reward_ledger,
                funding_authority=self.address,
                distribution_duration=self.state.distribution_duration,
                clock=self.clock,
                address=derive_contract_address(self.address, staked_asset, CURRENT_NETWORK.bech32_prefix_pool),
                bus=self.bus,
            )
            self.state.pool_info[staked_asset] = PoolInfo(
                pool_address=pool.address,
                pending_reward_amount=reward_amount,
            )
            self.state.deployed_assets.append(staked_asset)
            self.pools[staked_asset] = pool

            logger.info(f"Deployed pool {pool.address} for {staked_asset} (pending reward {reward_amount})")
            self._guard.defer(self.bus.emit, event_type=EventType.POOL_DEPLOYED,
                              factory=self.address, pool=pool.address,
                              staked_asset=staked_asset, amount=reward_amount)
            return pool.address

    def activate_all(self) -> List[ActivationResult]:
        """
        Funds every deployed pool in deployment order.

        A failing pool is logged and reported in the result list; the other
        pools are still funded.
        """
        if not self.deployed_assets:
            raise NoPoolsDeployed("No pools deployed")
        self._require_active()

        results: List[ActivationResult] = []
        for staked_asset in self.deployed_assets:
            try:
                amount = self.activate(staked_asset)
                results.append(ActivationResult(staked_asset=staked_asset, funded_amount=amount))
            except ProtocolError as e:
                logger.warning(f"Activation of {staked_asset} failed: {type(e).__name__}: {e}")
                self.bus.emit(EventType.POOL_ACTIVATION_FAILED,
                              factory=self.address, staked_asset=staked_asset, error=type(e).__name__)
                results.append(ActivationResult(staked_asset=staked_asset, error=f"{type(e).__name__}: {e}"))
        return results

    def activate(self, staked_asset: str) -> int:
        """
        Pushes the pending reward for one asset into its pool.

        Returns:
            Amount pushed (0 when the pool was already funded)

        Raises:
            NotYetActive, NotDeployed, FundingTransferFailed, InsufficientFunding
        """
        self._require_active()
        info = self.state.pool_info.get(staked_asset)
        if info is None or not info.pool_address:
            raise NotDeployed(f"No pool deployed for {staked_asset}")

        with self._transaction():
            info = self.state.pool_info[staked_asset]
            amount = info.pending_reward_amount
            if amount <= 0:
                return 0

            pool = self.pools[staked_asset]
            with self.reward_ledger.atomic():
                info.pending_reward_amount = 0
                try:
                    ok = self.reward_ledger.transfer(self.address, pool.address, amount)
                except LedgerError as e:
                    raise FundingTransferFailed(f"Funding {pool.address} with {amount} failed: {e}") from e
                if not ok:
                    raise FundingTransferFailed(
                        f"Funding {pool.address} with {amount} refused "
                        f"(factory holds {self.reward_ledger.balance_of(self.address)})"
                    )
                pool.notify_new_reward_amount(self.address, amount)

            logger.info(f"Activated pool {pool.address} for {staked_asset} with {amount}")
            self._guard.defer(self.bus.emit, event_type=EventType.POOL_ACTIVATED,
                              factory=self.address, pool=pool.address,
                              staked_asset=staked_asset, amount=amount)
            return amount

    def _require_active(self) -> None:
        now = self.clock.now()
        if now < self.state.activation_time:
            raise NotYetActive(f"Activation starts at {self.state.activation_time} (now {now})")

    # --- Persistence ---
    def persist(self, db) -> None:
        """Writes factory state and every deployed pool."""
        db.set_state(f"factory:{self.address}", json.dumps(self.snapshot().model_dump()))
        for pool in list(self.pools.values()):
            pool.persist(db)

    @classmethod
    def load(cls, db, address: str, registry: AssetRegistry,
             clock=None, bus: Optional[EventBus] = None) -> Optional["PoolFactory"]:
        raw_json = db.get_state(f"factory:{address}")
        if not raw_json:
            return None
        state = FactoryState.model_validate(json.loads(raw_json))
        factory = cls(
            registry=registry,
            reward_asset=state.reward_asset,
            activation_time=state.activation_time,
            owner=state.owner,
            clock=clock,
            bus=bus,
            state=state,
        )
        for staked_asset in state.deployed_assets:
            pool = RewardPool.load(
                db,
                state.pool_info[staked_asset].pool_address,
                staked_ledger=factory._ledger(staked_asset),
                reward_ledger=factory.reward_ledger,
                clock=factory.clock,
                bus=factory.bus,
            )
            if pool is None:
                raise NotDeployed(f"Pool state for {staked_asset} missing from store")
            factory.pools[staked_asset] = pool
        return factory
