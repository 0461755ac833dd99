"""
Escrow Indexer entry point.

Loads configuration, sets up logging and runs the indexer until a
termination signal arrives.
"""

import asyncio
import sys

from loguru import logger

from escrow_indexer.exceptions import FatalConfigError


async def run() -> None:
    """Build the driver and run it until shutdown."""
    # Settings are validated on import
    from escrow_indexer.config.logging import setup_logging
    from escrow_indexer.config.settings import settings
    from escrow_indexer.services.indexer_driver import IndexerDriver

    setup_logging(settings)
    await IndexerDriver(settings).run_forever()


def main() -> None:
    """Console script entry point."""
    try:
        asyncio.run(run())
    except FatalConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Indexer stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Indexer crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
