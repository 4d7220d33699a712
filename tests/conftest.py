"""
Oracle Coordinator - Test Fixtures

Provides an in-memory ledger and shared helpers. The FakeLedger implements
the same Ledger interface Web3Ledger does, so the coordinator code under test
is unchanged.
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from common.config import CoordinatorConfig
from common.errors import LedgerError, LedgerConnectionError
from common.ledger import Ledger

ADDRESS_A = "0x00000000000000000000000000000000000000A1"
ADDRESS_B = "0x00000000000000000000000000000000000000B2"
ADDRESS_C = "0x00000000000000000000000000000000000000C3"
AIRLINE = "0x0000000000000000000000000000000000000A11"


def make_event(
    index: int,
    flight: str = "ND1309",
    timestamp: int = 1700000000,
    block: int = 1,
    log_index: int = 0,
    airline: str = AIRLINE
) -> dict:
    """Raw OracleRequest log as the ledger would return it"""
    return {
        "event": "OracleRequest",
        "args": {
            "index": index,
            "airline": airline,
            "flight": flight,
            "timestamp": timestamp,
        },
        "blockNumber": block,
        "logIndex": log_index,
    }


class FakeLedger(Ledger):
    """
    In-memory ledger.

    Args:
        accounts: Addresses returned by accounts()
        assignments: address -> indexes handed out at registration
        reject_registration: Addresses whose registration is rejected
        reject_submission: Addresses whose responses are rejected
        fail_plan: Per subscription, how many events to deliver before the
            connection drops (consumed one entry per subscription)
    """

    def __init__(
        self,
        accounts: Optional[List[str]] = None,
        assignments: Optional[Dict[str, Iterable[int]]] = None,
        reject_registration: Iterable[str] = (),
        reject_submission: Iterable[str] = (),
        fail_plan: Optional[List[int]] = None,
        connect_error: bool = False
    ):
        self._accounts = list(accounts or [])
        self.assignments = {address: frozenset(indexes) for address, indexes in (assignments or {}).items()}
        self.reject_registration = set(reject_registration)
        self.reject_submission = set(reject_submission)
        self.fail_plan = list(fail_plan or [])
        self.connect_error = connect_error

        self.chain: List[dict] = []
        self.registrations: List[tuple] = []
        self.submissions: List[tuple] = []
        self.subscriptions: List[int] = []
        self.connected = False
        self.disconnected = False

        # Submissions wait on this gate; open by default
        self.submit_gate = asyncio.Event()
        self.submit_gate.set()
        self.register_delays: Dict[str, float] = {}
        self.active_submissions = 0
        self.peak_submissions = 0
        self.started_submissions = 0

        self._appended = asyncio.Event()

    def emit(self, *events: dict) -> None:
        self.chain.extend(events)
        self._appended.set()

    async def connect(self) -> None:
        if self.connect_error:
            raise LedgerConnectionError("Failed to connect to ledger")
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnected = True

    async def accounts(self) -> List[str]:
        return list(self._accounts)

    async def register(self, address: str, stake_wei: int) -> None:
        delay = self.register_delays.get(address)
        if delay:
            await asyncio.sleep(delay)
        if address in self.reject_registration:
            raise LedgerError("Registration fee is required")
        self.registrations.append((address, stake_wei))

    async def get_assigned_indexes(self, address: str):
        return self.assignments.get(address, frozenset())

    async def request_events(self, from_block: int):
        self.subscriptions.append(from_block)
        fail_after = self.fail_plan.pop(0) if self.fail_plan else None
        delivered = 0
        cursor = 0

        while True:
            while cursor < len(self.chain):
                event = self.chain[cursor]
                cursor += 1
                if event.get("blockNumber", 0) < from_block:
                    continue
                if fail_after is not None and delivered >= fail_after:
                    raise LedgerConnectionError("connection reset by peer")
                delivered += 1
                yield event

            if fail_after is not None:
                raise LedgerConnectionError("connection reset by peer")

            self._appended.clear()
            await self._appended.wait()

    async def submit_response(self, address, request_index, airline, flight, timestamp, status_code) -> str:
        self.started_submissions += 1
        self.active_submissions += 1
        self.peak_submissions = max(self.peak_submissions, self.active_submissions)
        try:
            await self.submit_gate.wait()
            if address in self.reject_submission:
                raise LedgerError("Index does not match oracle request")
            self.submissions.append((address, request_index, airline, flight, timestamp, status_code))
            return f"0x{len(self.submissions):064x}"
        finally:
            self.active_submissions -= 1


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll until predicate() is true or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def abc_ledger():
    """Ledger assigning A={1,4}, B={4}, C={9}"""
    return FakeLedger(
        accounts=[ADDRESS_A, ADDRESS_B, ADDRESS_C],
        assignments={
            ADDRESS_A: {1, 4},
            ADDRESS_B: {4},
            ADDRESS_C: {9},
        }
    )


@pytest.fixture
def coordinator_config():
    """Config that registers accounts 0..2 and never waits long"""
    return CoordinatorConfig(
        oracle_offset=0,
        oracle_count=3,
        max_concurrent_records=4,
        submission_timeout=5.0,
        registration_timeout=5.0,
        reconnect_delay=0.0,
        reconnect_max_delay=0.0,
        reconnect_max_attempts=3,
        log_dir=""
    )
