from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
import logging

from protocol.config.params import CURRENT_NETWORK
from ..core.factory import PoolFactory
from ..core.pool import RewardPool
from ..observability.metrics import metrics_registry, update_pool_metrics

logger = logging.getLogger(__name__)

app = FastAPI(title="Staking Rewards Node RPC")

factory: Optional[PoolFactory] = None


def _factory() -> PoolFactory:
    if not factory:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return factory


def _pool(staked_asset: str) -> RewardPool:
    pool = _factory().get_pool(staked_asset)
    if not pool:
        raise HTTPException(status_code=404, detail="Pool not found")
    return pool


def _pool_summary(staked_asset: str, pool: RewardPool) -> dict:
    info = _factory().pool_info(staked_asset)
    return {
        "staked_asset": staked_asset,
        "address": pool.address,
        "reward_asset": pool.reward_asset,
        "pending_reward_amount": str(info.pending_reward_amount) if info else "0",
        "total_staked": str(pool.total_staked()),
        "reward_rate": str(pool.reward_rate),
        "period_finish": pool.period_finish,
    }


@app.get("/status")
async def get_status():
    f = _factory()
    return {
        "network": CURRENT_NETWORK.network_id,
        "factory": f.address,
        "reward_asset": f.state.reward_asset,
        "activation_time": f.activation_time,
        "now": f.clock.now(),
        "pools": len(f.deployed_assets),
    }


@app.get("/pools")
async def get_pools():
    f = _factory()
    return {
        "pools": [_pool_summary(asset, f.pools[asset]) for asset in f.deployed_assets]
    }


@app.get("/pool/{staked_asset}")
async def get_pool(staked_asset: str):
    pool = _pool(staked_asset)
    summary = _pool_summary(staked_asset, pool)
    summary.update({
        "distribution_duration": pool.distribution_duration,
        "last_update_time": pool.last_update_time,
        "applicable_time": pool.applicable_time(),
        "reward_per_token": str(pool.reward_per_token()),
        "reward_for_duration": str(pool.reward_for_current_duration()),
        "participants": len([b for b in pool.snapshot().balances.values() if b > 0]),
    })
    return summary


@app.get("/pool/{staked_asset}/account/{address}")
async def get_account(staked_asset: str, address: str):
    pool = _pool(staked_asset)
    view = pool.account(address)
    return {
        "pool": pool.address,
        "address": view.address,
        "balance": str(view.balance),
        "earned": str(view.earned),
    }


@app.get("/metrics")
async def get_metrics():
    """Prometheus scrape endpoint."""
    if factory:
        update_pool_metrics(factory)
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
