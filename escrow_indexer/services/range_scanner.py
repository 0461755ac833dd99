"""
Range Scanner.

Walks a block range, picks transactions sent to known escrow
contracts, classifies the logs those contracts emitted and hands
each candidate event to the dispatcher.
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from escrow_indexer.exceptions import TransientChainError
from escrow_indexer.models.enums import EscrowEventType
from escrow_indexer.repositories.escrow_repository import EscrowRepository
from escrow_indexer.services.blockchain.chain_client import ChainClient
from escrow_indexer.services.event_classifier import (
    EventRegistry,
    encode_payload,
    to_hex,
)


@dataclass(frozen=True)
class CandidateEvent:
    """Classified, not yet applied event extracted from one log."""

    event_type: EscrowEventType
    escrow_address: str
    block_number: int
    log_index: int
    raw_data: str
    transaction_hash: str | None = None

    @property
    def key(self) -> tuple[int, int]:
        """Natural key (block_number, log_index)."""
        return self.block_number, self.log_index

    def to_message(self) -> dict[str, Any]:
        """Queue payload: everything needed to apply the effect."""
        return {
            "event_type": self.event_type.value,
            "escrow_address": self.escrow_address,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "transaction_hash": self.transaction_hash,
            "raw_data": self.raw_data,
        }


@dataclass
class ScanResult:
    """Outcome of one scan pass."""

    from_block: int
    to_block: int
    candidates: list[CandidateEvent] = field(default_factory=list)
    failed_blocks: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)  # block -> last error
    dispatched: int = 0

    @property
    def last_contiguous_block(self) -> int:
        """
        Last block such that every block up to it was scanned.

        Returns from_block - 1 when the first block failed.
        """
        if not self.failed_blocks:
            return self.to_block
        return min(self.failed_blocks) - 1


Dispatch = Callable[[CandidateEvent], Awaitable[bool]]


class RangeScanner:
    """
    Block range scanner.

    Per-block failures are logged and the block is skipped; the scan
    goes on with the next block and the failure is reported in the
    ScanResult so the caller does not advance the cursor past it.
    """

    def __init__(
        self,
        chain: ChainClient,
        session_maker: async_sessionmaker[AsyncSession],
        registry: EventRegistry,
        dispatch: Dispatch | None = None,
        seed_addresses: Iterable[str] = (),
    ) -> None:
        """
        Initialize scanner.

        Args:
            chain: Chain client
            session_maker: Session factory for escrow lookups
            registry: Event signature registry
            dispatch: Called for each candidate; returns True if newly recorded
            seed_addresses: Addresses treated as known escrows
        """
        self.chain = chain
        self.session_maker = session_maker
        self.registry = registry
        self.dispatch = dispatch
        self.seed_addresses = {addr.lower() for addr in seed_addresses}

    async def scan(self, from_block: int, to_block: int) -> ScanResult:
        """
        Scan [from_block, to_block], both inclusive.

        Args:
            from_block: First block
            to_block: Last block

        Returns:
            ScanResult with candidates and skipped blocks

        Raises:
            ValueError: If the range is invalid
        """
        if from_block < 0 or to_block < 0:
            raise ValueError("Block numbers must be non-negative")
        if from_block > to_block:
            raise ValueError("from_block must be <= to_block")

        result = ScanResult(from_block=from_block, to_block=to_block)

        for block_number in range(from_block, to_block + 1):
            try:
                candidates = await self.scan_block(block_number)
                for candidate in candidates:
                    if self.dispatch is not None and await self.dispatch(candidate):
                        result.dispatched += 1
                result.candidates.extend(candidates)
            except TransientChainError as e:
                logger.warning(f"[Scanner] Skipping block {block_number}: {e}")
                result.failed_blocks.append(block_number)
                result.errors[block_number] = str(e)
            except Exception as e:
                logger.exception(f"[Scanner] Error processing block {block_number}: {e}")
                result.failed_blocks.append(block_number)
                result.errors[block_number] = f"{type(e).__name__}: {e}"

        if result.candidates or result.failed_blocks:
            logger.info(
                f"[Scanner] Blocks [{from_block}, {to_block}]: "
                f"candidates={len(result.candidates)}, "
                f"dispatched={result.dispatched}, "
                f"failed_blocks={result.failed_blocks}"
            )
        return result

    async def scan_block(self, block_number: int) -> list[CandidateEvent]:
        """
        Extract candidate events from one block.

        Args:
            block_number: Block to scan

        Returns:
            Candidates in log order

        Raises:
            TransientChainError: If the block or a receipt cannot be read
        """
        block = await self.chain.get_block(block_number)
        transactions = block.get("transactions") or []

        # Contract creations have no recipient
        targets = [tx for tx in transactions if tx.get("to")]
        if not targets:
            return []

        known = await self._known_escrows({str(tx["to"]) for tx in targets})
        if not known:
            return []

        candidates: list[CandidateEvent] = []
        for tx in targets:
            escrow_address = str(tx["to"]).lower()
            if escrow_address not in known:
                continue

            receipt = await self.chain.get_transaction_receipt(
                tx["hash"], block_number=block_number
            )
            tx_hash = to_hex(tx["hash"])

            for position, log in enumerate(receipt.get("logs") or []):
                if str(log.get("address", "")).lower() != escrow_address:
                    continue

                topics = list(log.get("topics") or [])
                event_type = self.registry.classify(topics)
                payload = self.registry.decode(event_type, topics, log.get("data"))
                log_index = log.get("logIndex")

                candidates.append(
                    CandidateEvent(
                        event_type=event_type,
                        escrow_address=escrow_address,
                        block_number=block_number,
                        log_index=int(log_index) if log_index is not None else position,
                        transaction_hash=tx_hash,
                        raw_data=encode_payload(payload),
                    )
                )

        return candidates

    async def _known_escrows(self, addresses: set[str]) -> set[str]:
        normalized = {addr.lower() for addr in addresses}
        known = normalized & self.seed_addresses

        async with self.session_maker() as session:
            known |= await EscrowRepository(session).find_known_addresses(normalized)
        return known
