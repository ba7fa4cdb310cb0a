# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

# Fixed-point scale of the reward-per-token accumulator
SCALE = 10**18

# Token precision used for display and genesis amounts
DECIMALS = 18

DAY = 86_400

# Default funding window (60 days)
DEFAULT_DISTRIBUTION_DURATION = 60 * DAY

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 distribution_duration: int,
                 bech32_prefix_acc: str = "stk",
                 bech32_prefix_pool: str = "stkpool",
                 bech32_prefix_factory: str = "stkfactory",
                 # Delay between factory construction and the first allowed activation
                 activation_delay: int = 0,
                 # Devnet specific: default funding for pools created from genesis
                 default_pool_reward: int = 0):
        if distribution_duration <= 0:
            raise ValueError(f"distribution_duration must be positive, got {distribution_duration}")
        self.network_id = network_id
        self.distribution_duration = distribution_duration
        self.bech32_prefix_acc = bech32_prefix_acc
        self.bech32_prefix_pool = bech32_prefix_pool
        self.bech32_prefix_factory = bech32_prefix_factory
        self.activation_delay = activation_delay
        self.default_pool_reward = default_pool_reward

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        distribution_duration=600_000,
        activation_delay=0,
        default_pool_reward=6_000_000 * 10**DECIMALS,
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        distribution_duration=7 * DAY,
        activation_delay=DAY,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        distribution_duration=DEFAULT_DISTRIBUTION_DURATION,
        activation_delay=7 * DAY,
    ),
}

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
