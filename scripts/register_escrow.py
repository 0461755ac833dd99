#!/usr/bin/env python3
"""
Register escrow contract addresses.

Adds each address to the known-escrow set with a Pending placeholder
row, so transactions sent to it are picked up from the next scan on.
A later EscrowCreated event overwrites the placeholder fields.

Usage:
    python scripts/register_escrow.py 0xabc... 0xdef...
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from eth_utils import is_address
from loguru import logger

from escrow_indexer.config.database import create_engine, create_session_maker
from escrow_indexer.repositories.escrow_repository import EscrowRepository

# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def register_escrows(addresses: list[str]) -> int:
    """
    Insert placeholder rows for unknown addresses.

    Args:
        addresses: Contract addresses

    Returns:
        Number of newly registered escrows
    """
    invalid = [addr for addr in addresses if not is_address(addr)]
    if invalid:
        logger.error(f"Invalid addresses: {invalid}")
        sys.exit(1)

    engine = create_engine()
    session_maker = create_session_maker(engine)
    created = 0

    try:
        async with session_maker() as session:
            repo = EscrowRepository(session)
            for address in addresses:
                if await repo.register_placeholder(address):
                    created += 1
                    logger.info(f"Registered {address.lower()}")
                else:
                    logger.info(f"Already known: {address.lower()}")
            await session.commit()
    finally:
        await engine.dispose()

    logger.success(f"Registered {created} new escrows")
    return created


def main():
    parser = argparse.ArgumentParser(description="Register known escrow addresses")
    parser.add_argument("addresses", nargs="+", help="Escrow contract addresses")
    args = parser.parse_args()

    asyncio.run(register_escrows(args.addresses))


if __name__ == "__main__":
    main()
