"""
Response Dispatcher - Answers OracleRequests

For each request record, every registered identity holding the requested
index submits one response with its own status code. Submissions for one
record run concurrently and fail independently.
"""

import asyncio
import logging
from typing import List, Optional

from common.errors import LedgerError, SubmissionFailure
from common.ledger import CONNECTION_ERRORS, Ledger
from common.schemas import Identity, RequestRecord, ResponseAttempt, ResponseOutcome
from coordinator.registry import OracleRegistry
from coordinator.status_codes import StatusCodeSource

logger = logging.getLogger(__name__)


class ResponseDispatcher:
    """
    Submits oracle responses for request records.

    Nothing is retried within a record. A later duplicate of the same event
    is answered again from scratch.
    """

    def __init__(
        self,
        registry: OracleRegistry,
        status_codes: StatusCodeSource,
        ledger: Ledger,
        submission_timeout: Optional[float] = None
    ):
        """
        Initialize response dispatcher.

        Args:
            registry: Registry to match identities against
            status_codes: Source of the status code each oracle reports
            ledger: Ledger to submit responses to
            submission_timeout: Seconds allowed per submission (None for no limit)
        """
        self.registry = registry
        self.status_codes = status_codes
        self.ledger = ledger
        self.submission_timeout = submission_timeout

    async def _submit(self, attempt: ResponseAttempt) -> str:
        record = attempt.record
        call = self.ledger.submit_response(
            attempt.address,
            record.request_index,
            record.airline,
            record.flight,
            record.timestamp,
            int(attempt.status_code)
        )
        try:
            if self.submission_timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout=self.submission_timeout)
        except asyncio.TimeoutError as e:
            raise SubmissionFailure(
                attempt.address, record.request_index,
                f"timed out after {self.submission_timeout}s"
            ) from e
        except (LedgerError, *CONNECTION_ERRORS) as e:
            raise SubmissionFailure(
                attempt.address, record.request_index, str(e) or type(e).__name__
            ) from e

    async def submit(self, attempt: ResponseAttempt) -> ResponseOutcome:
        """
        Submit one response and report how it went.

        Args:
            attempt: Identity, record and status code to submit

        Returns:
            ResponseOutcome, successful or not
        """
        try:
            tx_hash = await self._submit(attempt)
        except SubmissionFailure as e:
            logger.warning(
                f"Oracle Response from: {attempt.address} failed for "
                f"{attempt.record.describe()}: {e.reason}"
            )
            return ResponseOutcome(attempt=attempt, success=False, error=e.reason)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.error(
                f"Oracle Response from: {attempt.address} failed unexpectedly for "
                f"{attempt.record.describe()}: {reason}",
                exc_info=True
            )
            return ResponseOutcome(attempt=attempt, success=False, error=reason)

        logger.info(
            f"Oracle Response from: {attempt.address} Status Code: "
            f"{int(attempt.status_code)} ({attempt.status_code.name})"
        )
        return ResponseOutcome(attempt=attempt, success=True, tx_hash=tx_hash)

    def plan(self, record: RequestRecord) -> List[ResponseAttempt]:
        """
        Build one attempt per matching identity.

        Status codes are drawn in registration order, one draw per identity.
        """
        matches: List[Identity] = self.registry.matching(record.request_index)
        return [
            ResponseAttempt(
                address=identity.address,
                record=record,
                status_code=self.status_codes.next()
            )
            for identity in matches
            if identity.indexes
        ]

    async def handle(self, record: RequestRecord) -> List[ResponseOutcome]:
        """
        Answer one request record.

        Args:
            record: Request to answer

        Returns:
            One outcome per matched identity, in registration order
        """
        attempts = self.plan(record)

        if not attempts:
            logger.warning(f"No oracle holds index {record.request_index}, dropped request {record.describe()}")
            return []

        logger.debug(f"Dispatching {len(attempts)} responses for {record.describe()}")
        outcomes = await asyncio.gather(*(self.submit(attempt) for attempt in attempts))
        return list(outcomes)
