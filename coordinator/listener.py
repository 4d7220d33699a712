"""
Request Listener - OracleRequest event stream

Turns the ledger's raw OracleRequest events into RequestRecords. Malformed
events are skipped. A dropped subscription is reopened with backoff from the
position of the last delivered event.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Mapping, Optional, Tuple

from pydantic import ValidationError

from common.errors import DecodeFailure, LedgerConnectionError
from common.ledger import Ledger
from common.schemas import RequestRecord

logger = logging.getLogger(__name__)


def decode_event(event: Mapping[str, Any]) -> RequestRecord:
    """
    Decode one raw event.

    Raises:
        DecodeFailure: If the event is missing fields or has bad values
    """
    try:
        return RequestRecord.from_event(event)
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise DecodeFailure(str(e), event) from e


def _event_position(event: Mapping[str, Any]) -> Optional[Tuple[int, int]]:
    try:
        block_number = event.get("blockNumber")
        log_index = event.get("logIndex")
    except AttributeError:
        return None
    if block_number is None or log_index is None:
        return None
    return (int(block_number), int(log_index))


class RequestListener:
    """
    Produces RequestRecords from the ledger's OracleRequest events.

    Records come out in emission order. Duplicate emissions are delivered as
    duplicate records.
    """

    def __init__(
        self,
        ledger: Ledger,
        reconnect_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        reconnect_max_attempts: int = 10
    ):
        """
        Initialize request listener.

        Args:
            ledger: Ledger to read events from
            reconnect_delay: First backoff delay in seconds
            reconnect_max_delay: Upper bound for the backoff delay
            reconnect_max_attempts: Consecutive failed reconnects before giving up
        """
        self.ledger = ledger
        self.reconnect_delay = reconnect_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.reconnect_max_attempts = reconnect_max_attempts

        self.last_position: Optional[Tuple[int, int]] = None
        self.events_seen = 0
        self.events_skipped = 0
        self.reconnects = 0

    def _resume_block(self, from_block: int) -> int:
        if self.last_position is None:
            return from_block
        # Re-read the last block: it may hold events after the one we delivered
        return self.last_position[0]

    async def subscribe(self, from_block: int = 0) -> AsyncIterator[RequestRecord]:
        """
        Stream request records starting at a block.

        The stream only ends by cancellation or by running out of reconnect
        attempts.

        Args:
            from_block: First block to read events from

        Yields:
            RequestRecord per decodable OracleRequest event

        Raises:
            LedgerConnectionError: After reconnect_max_attempts consecutive failures
        """
        failures = 0
        # Set only after a reconnect: events up to here were already delivered
        replay_until: Optional[Tuple[int, int]] = None

        while True:
            block = self._resume_block(from_block)
            events = self.ledger.request_events(block)
            try:
                async for event in events:
                    position = _event_position(event)
                    if replay_until is not None and position is not None:
                        if position <= replay_until:
                            continue
                        replay_until = None

                    self.events_seen += 1
                    failures = 0
                    if position is not None:
                        self.last_position = position

                    try:
                        record = decode_event(event)
                    except DecodeFailure as e:
                        self.events_skipped += 1
                        logger.warning(f"Skipping malformed OracleRequest event: {e.reason}")
                        continue

                    logger.info(f"Event: {record.describe()}")
                    yield record

                # A ledger stream that runs dry is treated like a dropped one
                raise LedgerConnectionError("Event stream ended")

            except LedgerConnectionError as e:
                failures += 1
                if failures > self.reconnect_max_attempts:
                    logger.error(f"Giving up on event stream after {failures - 1} reconnect attempts: {e}")
                    raise

                delay = min(
                    self.reconnect_delay * (2 ** (failures - 1)),
                    self.reconnect_max_delay
                )
                self.reconnects += 1
                replay_until = self.last_position
                logger.warning(
                    f"Event stream lost ({e}); reconnecting from block "
                    f"{self._resume_block(from_block)} in {delay:.1f}s "
                    f"(attempt {failures}/{self.reconnect_max_attempts})"
                )
                await asyncio.sleep(delay)

            finally:
                aclose = getattr(events, "aclose", None)
                if aclose is not None:
                    await aclose()
