"""
Chain client.

Async facade over a sync Web3 HTTP provider. Calls run in a thread
pool with a timeout; every failure surfaces as TransientChainError.
"""

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from loguru import logger
from web3 import Web3
from web3.exceptions import BlockNotFound, TransactionNotFound

from escrow_indexer.config.constants import (
    BLOCKCHAIN_EXECUTOR_TIMEOUT,
    BLOCKCHAIN_EXECUTOR_WORKERS,
)
from escrow_indexer.exceptions import TransientChainError

T = TypeVar("T")


class ChainClient:
    """
    Read-only chain access used by the scanner and the poller.

    Provides:
    - get_block_number(): current head
    - get_block(n): block with full transaction bodies
    - get_transaction_receipt(hash): receipt with logs
    """

    def __init__(
        self,
        w3: Web3,
        *,
        timeout: float = BLOCKCHAIN_EXECUTOR_TIMEOUT,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            w3: Web3 instance (HTTP provider)
            timeout: Per-call timeout in seconds
            executor: Thread pool for blocking calls
        """
        self.w3 = w3
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=BLOCKCHAIN_EXECUTOR_WORKERS,
            thread_name_prefix="chain-rpc",
        )

    @classmethod
    def from_url(cls, rpc_url: str, *, request_timeout: int) -> "ChainClient":
        """
        Create client for an HTTP JSON-RPC endpoint.

        Args:
            rpc_url: HTTP endpoint
            request_timeout: HTTP request timeout in seconds
        """
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        return cls(w3, timeout=float(request_timeout))

    async def _call(
        self,
        fn: Callable[[], T],
        operation_name: str,
        block_number: int | None = None,
    ) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, fn),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise TransientChainError(
                f"{operation_name} timed out after {self.timeout}s",
                block_number=block_number,
            ) from e
        except (BlockNotFound, TransactionNotFound) as e:
            raise TransientChainError(
                f"{operation_name} not found: {e}", block_number=block_number
            ) from e
        except TransientChainError:
            raise
        except Exception as e:
            raise TransientChainError(
                f"{operation_name} failed: {e}", block_number=block_number
            ) from e

    async def get_block_number(self) -> int:
        """
        Get current block number.

        Returns:
            Chain head block number
        """
        return int(
            await self._call(lambda: self.w3.eth.block_number, "eth_blockNumber")
        )

    async def get_block(self, block_number: int) -> Any:
        """
        Get block with full transactions.

        Args:
            block_number: Block to fetch

        Returns:
            Block data (AttributeDict with "transactions")

        Raises:
            TransientChainError: On RPC failure or missing block
        """
        block = await self._call(
            lambda: self.w3.eth.get_block(block_number, full_transactions=True),
            f"eth_getBlockByNumber({block_number})",
            block_number=block_number,
        )
        if block is None:
            raise TransientChainError(
                f"Block {block_number} not available", block_number=block_number
            )
        return block

    async def get_transaction_receipt(
        self, tx_hash: Any, block_number: int | None = None
    ) -> Any:
        """
        Get transaction receipt.

        Args:
            tx_hash: Transaction hash
            block_number: Block of the transaction (for error context)

        Returns:
            Receipt data (AttributeDict with "logs")

        Raises:
            TransientChainError: On RPC failure or missing receipt
        """
        receipt = await self._call(
            lambda: self.w3.eth.get_transaction_receipt(tx_hash),
            "eth_getTransactionReceipt",
            block_number=block_number,
        )
        if receipt is None:
            raise TransientChainError(
                f"Receipt for {tx_hash!r} not available", block_number=block_number
            )
        return receipt

    def close(self) -> None:
        """Shut down the RPC thread pool without waiting for hung calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("[Chain] RPC executor shut down")
