from pydantic import BaseModel, Field
from typing import Dict

class PoolState(BaseModel):
    """Accounting state of a single reward pool."""
    address: str                # Bech32 pool address (stkpool1...)
    staked_asset: str           # Asset id of the staked ledger
    reward_asset: str           # Asset id of the reward ledger
    funding_authority: str      # Only caller allowed to notify new rewards
    distribution_duration: int  # Length of one funding window in seconds

    total_staked: int = 0
    reward_rate: int = 0                # Reward units emitted per second
    period_finish: int = 0              # 0 = never funded
    last_update_time: int = 0
    reward_per_token_stored: int = 0    # Scaled by SCALE

    # Per-participant settlement snapshots
    balances: Dict[str, int] = Field(default_factory=dict)
    reward_per_token_paid: Dict[str, int] = Field(default_factory=dict)
    rewards: Dict[str, int] = Field(default_factory=dict)

    # Lifetime totals (conservation checks and metrics)
    total_funded: int = 0
    total_paid: int = 0

class AccountView(BaseModel):
    """Read-only view of one participant in a pool."""
    address: str
    balance: int
    earned: int
    reward_per_token_paid: int
