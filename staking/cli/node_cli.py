import argparse
import os
import sys
import logging
import asyncio
import json
from typing import Optional
from uvicorn import Config, Server

from protocol.crypto.keys import generate_private_key, public_key_from_private
from protocol.crypto.addresses import address_from_pubkey
from protocol.config.params import CURRENT_NETWORK, DECIMALS
from protocol.types.common import ProtocolError
from ..core.clock import SystemClock
from ..core.events import event_bus
from ..core.factory import PoolFactory
from ..core.ledger import AssetLedger, AssetRegistry
from ..observability.metrics import register_event_metrics
from ..storage.db import StorageDB
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

DEFAULT_REWARD_ASSET = "RWD"
DEFAULT_STAKED_ASSETS = ["LP-STK-RWD", "LP-STK-USD"]

def _owner_address(data_dir: str) -> str:
    key_path = os.path.join(data_dir, "owner_key.hex")
    with open(key_path, "r") as f:
        priv_hex = f.read().strip()
    pub = public_key_from_private(bytes.fromhex(priv_hex))
    return address_from_pubkey(pub, prefix=CURRENT_NETWORK.bech32_prefix_acc)

def cmd_init(args):
    """Initialize node: owner key and genesis.json in the data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, "owner_key.hex")
    if not os.path.exists(key_path):
        priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        print("Generated new factory owner key.")
    else:
        print(f"Key already exists at {key_path}")
    owner = _owner_address(data_dir)
    print(f"Owner address: {owner}")

    genesis_path = os.path.join(data_dir, "genesis.json")
    if os.path.exists(genesis_path):
        print(f"Genesis already exists at {genesis_path}")
        return

    reward = CURRENT_NETWORK.default_pool_reward
    genesis_data = {
        "network": CURRENT_NETWORK.network_id,
        "owner": owner,
        "reward_asset": DEFAULT_REWARD_ASSET,
        "activation_time": SystemClock().now() + CURRENT_NETWORK.activation_delay,
        "pools": [
            {"staked_asset": asset, "reward_amount": reward}
            for asset in DEFAULT_STAKED_ASSETS
        ],
        # asset -> {address: amount}
        "alloc": {
            asset: {owner: 1_000_000 * 10**DECIMALS}
            for asset in DEFAULT_STAKED_ASSETS
        },
    }
    with open(genesis_path, "w") as f:
        f.write(json.dumps(genesis_data, indent=2))
    print(f"\nNode initialized in {data_dir}")

def build_from_genesis(genesis: dict, registry: AssetRegistry, clock=None) -> PoolFactory:
    """Creates ledgers, the factory and its pools from a genesis document."""
    reward_asset = genesis["reward_asset"]
    pools = genesis.get("pools", [])

    for asset in [reward_asset] + [p["staked_asset"] for p in pools]:
        if asset not in registry:
            registry.create(asset)

    for asset, alloc in genesis.get("alloc", {}).items():
        ledger = registry.get(asset) or registry.create(asset)
        for address, amount in alloc.items():
            ledger.mint(address, int(amount))

    clock = clock or SystemClock()
    activation_time = int(genesis["activation_time"])
    if activation_time < clock.now():
        logger.warning(f"Genesis activation time {activation_time} already passed, activating from now")
        activation_time = clock.now()

    factory = PoolFactory(
        registry=registry,
        reward_asset=reward_asset,
        activation_time=activation_time,
        owner=genesis["owner"],
        clock=clock,
    )
    # Factory custody covers every pending funding
    total_reward = sum(int(p["reward_amount"]) for p in pools)
    if total_reward:
        factory.reward_ledger.mint(factory.address, total_reward)

    for p in pools:
        factory.deploy(genesis["owner"], p["staked_asset"], int(p["reward_amount"]))

    logger.info(f"Built factory {factory.address} with {len(pools)} pool(s) from genesis")
    return factory

def load_or_build(data_dir: str, db: StorageDB) -> PoolFactory:
    genesis_path = os.path.join(data_dir, "genesis.json")
    if not os.path.exists(genesis_path):
        raise FileNotFoundError(f"No genesis.json in {data_dir}. Run 'init' first.")
    with open(genesis_path, "r") as f:
        genesis = json.load(f)

    factory_address: Optional[str] = db.get_state("factory_address")
    if factory_address:
        registry = AssetRegistry()
        for key in db.get_state_by_prefix("ledger:"):
            registry.register(AssetLedger.load(db, key.split(":", 1)[1]))
        factory = PoolFactory.load(db, factory_address, registry)
        if factory:
            logger.info(f"Loaded factory {factory.address} from store")
            return factory
        logger.warning(f"Factory {factory_address} missing from store, rebuilding from genesis")

    registry = AssetRegistry()
    factory = build_from_genesis(genesis, registry)
    persist_all(db, factory)
    return factory

def persist_all(db: StorageDB, factory: PoolFactory):
    for ledger in factory.registry:
        ledger.persist(db)
    factory.persist(db)
    db.set_state("factory_address", factory.address)

async def activation_watcher(factory: PoolFactory, db: StorageDB):
    """Funds all pools once the activation time has passed."""
    delay = factory.activation_time - factory.clock.now()
    if delay > 0:
        logger.info(f"Waiting {delay}s for activation time {factory.activation_time}")
        await asyncio.sleep(delay)
    try:
        results = factory.activate_all()
    except ProtocolError as e:
        logger.error(f"Batch activation failed: {e}")
        return
    for r in results:
        if r.ok:
            logger.info(f"Pool for {r.staked_asset} funded with {r.funded_amount}")
    persist_all(db, factory)

async def run_node_async(args):
    data_dir = args.datadir
    db_path = os.path.join(data_dir, "state.db")

    print("Starting staking rewards node...")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    db = StorageDB(db_path)
    factory = load_or_build(data_dir, db)
    register_event_metrics(event_bus)

    # Inject dependencies into RPC
    api.factory = factory

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    watcher = asyncio.create_task(activation_watcher(factory, db))
    try:
        await server.serve()
    finally:
        watcher.cancel()
        persist_all(db, factory)
        db.close()

def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)

def main():
    parser = argparse.ArgumentParser(description="Staking Rewards Node CLI")
    parser.add_argument("--datadir", default="./.stakingrewards", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    subparsers.add_parser("init", help="Initialize node configuration")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
