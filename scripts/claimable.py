#!/usr/bin/env python3
"""
============================================================================
Accrual Keeper v1.0.0
Claimable CLI - Read-Only Accrual Inspection
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Purpose: Show the decoded global state or one identity's claimable amount

USAGE:
    python -m scripts.claimable --state

    python -m scripts.claimable --owner <identity> --token-account <address>

    python -m scripts.claimable --owner <identity> --balance 250000000

Reads RPC_URL, PROGRAM_ID and DISTRIBUTION_MINT from the environment.
Never signs and never submits.

Error Codes:
    - EXIT 0: Success
    - EXIT 1: Ledger read failed
    - EXIT 2: Invalid arguments or configuration

============================================================================
"""

import os
import sys
import argparse
from typing import List, Optional

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

from keeper.ledger import LedgerClient, LedgerClientError
from keeper.logic.accrual import compute_claimable
from services.keeper_config import get_keeper_config

# Load environment variables
load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Claimable CLI - inspect accrual state without signing anything",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--state",
        action="store_true",
        help="Print the decoded global accrual state"
    )
    parser.add_argument(
        "--owner",
        help="Identity whose claimable amount to compute"
    )
    balance_group = parser.add_mutually_exclusive_group()
    balance_group.add_argument(
        "--token-account",
        help="Owner's distribution token account (balance is read from the ledger)"
    )
    balance_group.add_argument(
        "--balance",
        type=int,
        help="Owner's token balance in minor units (skips the balance read)"
    )
    return parser


def main(argv: Optional[List[str]] = None, client: Optional[LedgerClient] = None) -> int:
    """
    Main entry point for the claimable CLI.

    Returns:
        Exit code (0 = success, 1 = ledger failure, 2 = invalid args)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.state and not args.owner:
        parser.print_usage()
        print("error: one of --state or --owner is required")
        return 2

    if args.owner and args.token_account is None and args.balance is None:
        print("error: --owner needs --token-account or --balance")
        return 2

    if args.balance is not None and args.balance < 0:
        print("error: --balance must be non-negative")
        return 2

    if client is None:
        config = get_keeper_config(validate=False)
        if not config.program_id or not config.distribution_mint:
            print("error: PROGRAM_ID and DISTRIBUTION_MINT must be set")
            return 2
        client = LedgerClient(
            rpc_url=config.rpc_url,
            program_id=config.program_id,
            distribution_mint=config.distribution_mint,
        )

    try:
        state = client.read_global_state()

        if args.state:
            print("=" * 60)
            print("  GLOBAL ACCRUAL STATE")
            print("=" * 60)
            print(f"  Paused:                  {state.paused}")
            print(f"  Last update:             {state.last_update_ts}")
            print(f"  Global index:            {state.global_index}")
            print(f"  Max per period:          {state.max_per_period}")
            print(f"  Max per window:          {state.max_per_window}")
            print(f"  Distributed this window: {state.distributed_this_window}")
            print(f"  Window start:            {state.window_start_ts}")
            print(f"  Reward vault:            {state.reward_vault}")
            print("=" * 60)

        if args.owner:
            user = client.read_user_state(args.owner)
            if args.balance is not None:
                balance = args.balance
            else:
                balance = client.read_balance(args.token_account)

            claimable = compute_claimable(
                state.global_index,
                user.user_index,
                user.pending_rewards,
                balance,
            )
            print(f"Owner:           {args.owner}")
            print(f"Token balance:   {balance}")
            print(f"User index:      {user.user_index}")
            print(f"Pending rewards: {user.pending_rewards}")
            print(f"Claimable:       {claimable}")
    except LedgerClientError as e:
        print(f"[FAILED] {e}")
        return 1
    finally:
        client.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
