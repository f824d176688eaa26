"""
Dispenser Inspector
===================
Read-only look at the dispenser: current threshold, queued NFTs and,
optionally, one user's accumulated (unawarded) upvotes.

Usage:
    upvote-bot-inspect
    upvote-bot-inspect --user 0xAbC...
"""

import os
import sys
import asyncio
import argparse
from pathlib import Path

from dotenv import load_dotenv
from web3 import AsyncWeb3, Web3

from .config import ConfigError, format_config_error
from .dispenser import DispenserClient


async def inspect(dispenser: DispenserClient, user=None) -> dict:
    required, queued = await asyncio.gather(dispenser.upvotes_required(), dispenser.get_queued_nfts())
    report = {
        "dispenser": dispenser.address,
        "upvotesRequired": required,
        "queuedNFTs": queued,
        "queuedCount": len(queued),
    }
    if user:
        report["user"] = Web3.to_checksum_address(user)
        report["userUpvotes"] = await dispenser.user_upvotes(user)
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Inspect the NFT dispenser")
    parser.add_argument("--env", "-e", default=".env", help="Path to .env file")
    parser.add_argument("--user", default=None, help="Also show this address's accumulated upvotes")
    args = parser.parse_args(argv)

    if Path(args.env).exists():
        load_dotenv(dotenv_path=args.env)

    missing = [name for name in ("BASE_MAINNET_RPC_URL", "DISPENSER_ADDRESS") if not os.getenv(name)]
    if missing:
        print(format_config_error(ConfigError(missing=missing)), file=sys.stderr)
        return 1

    try:
        address = Web3.to_checksum_address(os.environ["DISPENSER_ADDRESS"])
        if args.user:
            Web3.to_checksum_address(args.user)
    except ValueError as e:
        print(f"❌ Invalid address: {e}", file=sys.stderr)
        return 1

    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(os.environ["BASE_MAINNET_RPC_URL"]))
    dispenser = DispenserClient(w3, address)

    print(f"Checking queued NFTs for dispenser: {address}")
    try:
        report = asyncio.run(inspect(dispenser, args.user))
    except Exception as e:
        print(f"❌ Read failed: {e}", file=sys.stderr)
        return 1

    print(f"🎯 Upvotes required: {report['upvotesRequired']}")
    print(f"🧊 Queued NFTs: {[str(n) for n in report['queuedNFTs']]}")
    print(f"📊 Total queued: {report['queuedCount']}")
    if "user" in report:
        print(f"🗳️  {report['user']} has {report['userUpvotes']} unawarded upvotes")
    return 0


if __name__ == "__main__":
    sys.exit(main())
