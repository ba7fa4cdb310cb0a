# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
from protocol.config.params import DECIMALS

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("STK_NODE", DEFAULT_NODE)

def fmt_amount(raw) -> str:
    """Raw integer units (int or decimal string) -> human readable token amount."""
    value = int(raw)
    whole, frac = divmod(value, 10**DECIMALS)
    if frac == 0:
        return str(whole)
    return f"{whole}.{str(frac).rjust(DECIMALS, '0').rstrip('0')}"

def _get(args, path: str) -> dict:
    url = get_node_url(args)
    try:
        resp = requests.get(f"{url}{path}", timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

# --- Query Commands ---
def cmd_query_status(args):
    data = _get(args, "/status")
    print(json.dumps(data, indent=2))

def cmd_query_pools(args):
    data = _get(args, "/pools")
    pools = data.get("pools", [])
    if not pools:
        print("No pools deployed.")
        return

    print(f"{'Staked asset':<15} {'Pool':<50} {'Total staked':>20} {'Rate/s':>14}")
    print("-" * 102)
    for p in pools:
        print(f"{p['staked_asset']:<15} {p['address']:<50} {fmt_amount(p['total_staked']):>20} {fmt_amount(p['reward_rate']):>14}")

def cmd_query_pool(args):
    data = _get(args, f"/pool/{args.staked_asset}")
    print(json.dumps(data, indent=2))

def cmd_query_account(args):
    data = _get(args, f"/pool/{args.staked_asset}/account/{args.address}")
    print(f"Pool:    {data['pool']}")
    print(f"Staked:  {fmt_amount(data['balance'])}")
    print(f"Earned:  {fmt_amount(data['earned'])}")

def main():
    parser = argparse.ArgumentParser(description="Staking Rewards CLI")
    parser.add_argument("--node", help="Node RPC URL")
    subparsers = parser.add_subparsers(dest="command")

    # query
    p_query = subparsers.add_parser("query", help="Query pool state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node and factory status")
    sp_query.add_parser("pools", help="List deployed pools")

    pq_pool = sp_query.add_parser("pool", help="Show pool details")
    pq_pool.add_argument("staked_asset", help="Staked asset id")

    pq_acc = sp_query.add_parser("account", help="Show a participant's stake and earned reward")
    pq_acc.add_argument("staked_asset", help="Staked asset id")
    pq_acc.add_argument("address", help="Participant address")

    args = parser.parse_args()

    if args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "pools": cmd_query_pools(args)
        elif args.subcommand == "pool": cmd_query_pool(args)
        elif args.subcommand == "account": cmd_query_account(args)
        else: p_query.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
