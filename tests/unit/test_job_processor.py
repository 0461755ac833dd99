"""
Tests for worker-side job handling.

Checks ledger status transitions around the projector:
queued -> processing -> completed, failures recorded with last_error,
completed jobs skipped on redelivery.
"""

import pytest

from escrow_indexer.exceptions import ApplicationError, EscrowNotFoundError
from escrow_indexer.models.enums import EscrowEventType, EscrowStatus, JobStatus
from escrow_indexer.repositories.escrow_repository import EscrowRepository
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.services.event_classifier import encode_payload
from escrow_indexer.services.job_processor import JobProcessor, parse_message
from escrow_indexer.services.range_scanner import CandidateEvent
from tests.fakes import BUYER, ESCROW_A, SELLER, TOKEN


def make_candidate(event_type, payload=None, block_number=100, log_index=0):
    return CandidateEvent(
        event_type=event_type,
        escrow_address=ESCROW_A,
        block_number=block_number,
        log_index=log_index,
        transaction_hash="0x" + "ef" * 32,
        raw_data=encode_payload(payload or {"data": "0x", "topics": []}),
    )


async def record(session_maker, candidate):
    async with session_maker() as session:
        await QueueJobRepository(session).insert_if_absent(
            block_number=candidate.block_number,
            log_index=candidate.log_index,
            event_type=candidate.event_type.value,
            escrow_address=candidate.escrow_address,
            raw_data=candidate.raw_data,
            transaction_hash=candidate.transaction_hash,
        )
        await session.commit()


async def get_job(session_maker, block_number=100, log_index=0):
    async with session_maker() as session:
        return await QueueJobRepository(session).get_job(block_number, log_index)


async def create_escrow(session_maker):
    async with session_maker() as session:
        await EscrowRepository(session).upsert_created(
            address=ESCROW_A,
            seller=SELLER,
            buyer=BUYER,
            token=TOKEN,
            amount="1000",
            timeout=0,
        )
        await session.commit()


class TestParseMessage:
    """Queue payload validation."""

    def test_parses_candidate_message(self):
        """A scanner message round-trips through parse_message."""
        candidate = make_candidate(EscrowEventType.FUNDED, {"amount": "5"})

        block_number, log_index, event_type, address, payload = parse_message(
            candidate.to_message()
        )

        assert (block_number, log_index) == (100, 0)
        assert event_type == EscrowEventType.FUNDED
        assert address == ESCROW_A
        assert payload == {"amount": "5"}

    def test_missing_key_rejected(self):
        """Messages without a key field are application errors."""
        message = make_candidate(EscrowEventType.FUNDED).to_message()
        del message["log_index"]

        with pytest.raises(ApplicationError, match="Malformed"):
            parse_message(message)

    def test_unknown_event_type_rejected(self):
        """Event type names must be known."""
        message = make_candidate(EscrowEventType.FUNDED).to_message()
        message["event_type"] = "Exploded"

        with pytest.raises(ApplicationError):
            parse_message(message)

    def test_invalid_json_rejected(self):
        """raw_data must be JSON."""
        message = make_candidate(EscrowEventType.FUNDED).to_message()
        message["raw_data"] = "{not json"

        with pytest.raises(ApplicationError):
            parse_message(message)


class TestJobProcessor:
    """Ledger transitions."""

    @pytest.mark.asyncio
    async def test_success_marks_completed(self, session_maker):
        """A successful job ends completed with one attempt."""
        await create_escrow(session_maker)
        candidate = make_candidate(EscrowEventType.FUNDED)
        await record(session_maker, candidate)

        applied = await JobProcessor(session_maker).process(candidate.to_message())

        job = await get_job(session_maker)
        assert applied is True
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
        assert job.last_error is None

        async with session_maker() as session:
            escrow = await EscrowRepository(session).get_by_address(ESCROW_A)
        assert escrow.status == EscrowStatus.FUNDED

    @pytest.mark.asyncio
    async def test_failure_marks_failed_and_reraises(self, session_maker):
        """Errors are recorded on the ledger row and re-raised."""
        candidate = make_candidate(EscrowEventType.CONFIRMED_BY_SELLER)
        await record(session_maker, candidate)

        with pytest.raises(EscrowNotFoundError):
            await JobProcessor(session_maker).process(candidate.to_message())

        job = await get_job(session_maker)
        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert "EscrowNotFoundError" in job.last_error

    @pytest.mark.asyncio
    async def test_failed_job_can_complete_on_redelivery(self, session_maker):
        """failed -> processing -> completed once the cause is gone."""
        candidate = make_candidate(EscrowEventType.CONFIRMED_BY_SELLER)
        await record(session_maker, candidate)
        processor = JobProcessor(session_maker)

        with pytest.raises(EscrowNotFoundError):
            await processor.process(candidate.to_message())

        await create_escrow(session_maker)
        assert await processor.process(candidate.to_message()) is True

        job = await get_job(session_maker)
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 2
        assert job.last_error is None

    @pytest.mark.asyncio
    async def test_completed_job_is_skipped(self, session_maker):
        """Redelivery of a completed job does not re-apply it."""
        await create_escrow(session_maker)
        funded = make_candidate(EscrowEventType.FUNDED, log_index=0)
        confirmed = make_candidate(EscrowEventType.CONFIRMED_BY_SELLER, log_index=1)
        await record(session_maker, funded)
        await record(session_maker, confirmed)
        processor = JobProcessor(session_maker)

        await processor.process(funded.to_message())
        await processor.process(confirmed.to_message())
        applied = await processor.process(funded.to_message())

        async with session_maker() as session:
            escrow = await EscrowRepository(session).get_by_address(ESCROW_A)
        job = await get_job(session_maker, log_index=0)
        assert applied is False
        assert escrow.status == EscrowStatus.CONFIRMED
        assert job.attempts == 1

    @pytest.mark.asyncio
    async def test_created_failure_leaves_no_escrow(self, session_maker):
        """A failed EscrowCreated writes nothing but the ledger error."""
        candidate = make_candidate(EscrowEventType.ESCROW_CREATED, {"data": "0x12"})
        await record(session_maker, candidate)

        with pytest.raises(ApplicationError):
            await JobProcessor(session_maker).process(candidate.to_message())

        async with session_maker() as session:
            assert await EscrowRepository(session).get_by_address(ESCROW_A) is None
        job = await get_job(session_maker)
        assert job.status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_event_completes(self, session_maker):
        """Unknown events complete without touching escrows."""
        candidate = make_candidate(EscrowEventType.UNKNOWN)
        await record(session_maker, candidate)

        assert await JobProcessor(session_maker).process(candidate.to_message()) is True

        job = await get_job(session_maker)
        assert job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_message_without_ledger_row_still_applies(self, session_maker):
        """A message whose ledger row is gone is still applied."""
        await create_escrow(session_maker)
        candidate = make_candidate(EscrowEventType.TIMED_OUT)

        assert await JobProcessor(session_maker).process(candidate.to_message()) is True

        async with session_maker() as session:
            escrow = await EscrowRepository(session).get_by_address(ESCROW_A)
        assert escrow.status == EscrowStatus.TIMED_OUT


class TestLateRedelivery:
    """Jobs delivered after later events already applied."""

    @pytest.mark.asyncio
    async def test_late_funded_completes_without_regression(self, session_maker):
        """A Funded job processed after Confirmed completes and keeps Confirmed."""
        await create_escrow(session_maker)
        funded = make_candidate(EscrowEventType.FUNDED, log_index=0)
        confirmed = make_candidate(EscrowEventType.CONFIRMED_BY_SELLER, log_index=1)
        await record(session_maker, funded)
        await record(session_maker, confirmed)
        processor = JobProcessor(session_maker)

        await processor.process(confirmed.to_message())
        applied = await processor.process(funded.to_message())

        async with session_maker() as session:
            escrow = await EscrowRepository(session).get_by_address(ESCROW_A)
        job = await get_job(session_maker, log_index=0)
        assert applied is True
        assert job.status == JobStatus.COMPLETED
        assert escrow.status == EscrowStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_late_created_keeps_funded(self, session_maker):
        """An EscrowCreated job after Funded fills fields without resetting status."""
        async with session_maker() as session:
            await EscrowRepository(session).register_placeholder(ESCROW_A)
            await session.commit()
        funded = make_candidate(EscrowEventType.FUNDED, block_number=101)
        created = make_candidate(
            EscrowEventType.ESCROW_CREATED,
            {
                "seller": SELLER,
                "buyer": BUYER,
                "token": TOKEN,
                "amount": "500",
                "timeout": 0,
                "data": "0x",
                "topics": [],
            },
            block_number=100,
        )
        await record(session_maker, funded)
        await record(session_maker, created)
        processor = JobProcessor(session_maker)

        await processor.process(funded.to_message())
        await processor.process(created.to_message())

        async with session_maker() as session:
            escrow = await EscrowRepository(session).get_by_address(ESCROW_A)
        assert escrow.status == EscrowStatus.FUNDED
        assert escrow.seller == SELLER
        assert escrow.amount == "500"
        assert (await get_job(session_maker, block_number=100)).status == JobStatus.COMPLETED
