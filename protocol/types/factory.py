from pydantic import BaseModel, Field
from typing import Dict, List, Optional

class PoolInfo(BaseModel):
    pool_address: str
    pending_reward_amount: int = 0

class FactoryState(BaseModel):
    address: str
    owner: str
    reward_asset: str
    activation_time: int
    distribution_duration: int
    deployed_assets: List[str] = Field(default_factory=list)   # Append-only, deployment order
    pool_info: Dict[str, PoolInfo] = Field(default_factory=dict)

class ActivationResult(BaseModel):
    """Outcome of one asset's activation inside a batch activation."""
    staked_asset: str
    funded_amount: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
