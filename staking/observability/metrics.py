# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports reward pool metrics in Prometheus format.

Metrics:
- Pool operations (stake, withdraw, claim) and amounts
- Rewards funded / paid per pool
- Total staked, reward rate, period finish per pool (gauges)
- Factory deployments and activation failures
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

from protocol.types.common import EventType

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS
# ═══════════════════════════════════════════════════════════════════

pool_operations_total = Counter(
    'rewardpool_operations_total',
    'Total number of pool operations',
    ['operation'],
    registry=metrics_registry
)

staked_amount_total = Counter(
    'rewardpool_staked_amount_total',
    'Total units staked per pool',
    ['pool'],
    registry=metrics_registry
)

withdrawn_amount_total = Counter(
    'rewardpool_withdrawn_amount_total',
    'Total units withdrawn per pool',
    ['pool'],
    registry=metrics_registry
)

rewards_paid_total = Counter(
    'rewardpool_rewards_paid_total',
    'Total reward units paid out per pool',
    ['pool'],
    registry=metrics_registry
)

rewards_funded_total = Counter(
    'rewardpool_rewards_funded_total',
    'Total reward units notified per pool',
    ['pool'],
    registry=metrics_registry
)

pool_total_staked = Gauge(
    'rewardpool_total_staked',
    'Units currently staked in the pool',
    ['pool'],
    registry=metrics_registry
)

pool_reward_rate = Gauge(
    'rewardpool_reward_rate',
    'Reward units emitted per second',
    ['pool'],
    registry=metrics_registry
)

pool_period_finish = Gauge(
    'rewardpool_period_finish',
    'Unix time at which the current funding window ends',
    ['pool'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# FACTORY METRICS
# ═══════════════════════════════════════════════════════════════════

pools_deployed_total = Counter(
    'rewardpool_factory_pools_deployed_total',
    'Total number of pools deployed',
    registry=metrics_registry
)

activations_total = Counter(
    'rewardpool_factory_activations_total',
    'Total number of successful pool activations',
    registry=metrics_registry
)

activation_failures_total = Counter(
    'rewardpool_factory_activation_failures_total',
    'Total number of failed pool activations in batch activation',
    ['error'],
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def _on_staked(pool: str, amount: int, **_):
    pool_operations_total.labels(operation='stake').inc()
    staked_amount_total.labels(pool=pool).inc(amount)


def _on_withdrawn(pool: str, amount: int, **_):
    pool_operations_total.labels(operation='withdraw').inc()
    withdrawn_amount_total.labels(pool=pool).inc(amount)


def _on_reward_paid(pool: str, amount: int, **_):
    pool_operations_total.labels(operation='claim').inc()
    rewards_paid_total.labels(pool=pool).inc(amount)


def _on_reward_added(pool: str, amount: int, reward_rate: int, **_):
    pool_operations_total.labels(operation='notify_reward').inc()
    rewards_funded_total.labels(pool=pool).inc(amount)
    pool_reward_rate.labels(pool=pool).set(reward_rate)


def _on_pool_deployed(**_):
    pools_deployed_total.inc()


def _on_pool_activated(**_):
    activations_total.inc()


def _on_activation_failed(error: str, **_):
    activation_failures_total.labels(error=error).inc()


_HANDLERS = {
    EventType.STAKED: _on_staked,
    EventType.WITHDRAWN: _on_withdrawn,
    EventType.REWARD_PAID: _on_reward_paid,
    EventType.REWARD_ADDED: _on_reward_added,
    EventType.POOL_DEPLOYED: _on_pool_deployed,
    EventType.POOL_ACTIVATED: _on_pool_activated,
    EventType.POOL_ACTIVATION_FAILED: _on_activation_failed,
}


def register_event_metrics(bus):
    """
    Subscribe the metric handlers to an event bus.

    Args:
        bus: EventBus instance
    """
    for event_type, handler in _HANDLERS.items():
        bus.subscribe(event_type, handler)


def update_pool_metrics(factory):
    """
    Update gauges from current pool state.
    Called when metrics are scraped. Only updates Gauges, not Counters.

    Args:
        factory: PoolFactory instance
    """
    for pool in list(factory.pools.values()):
        pool_total_staked.labels(pool=pool.address).set(pool.total_staked())
        pool_reward_rate.labels(pool=pool.address).set(pool.reward_rate)
        pool_period_finish.labels(pool=pool.address).set(pool.period_finish)
