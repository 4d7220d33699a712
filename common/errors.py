"""
Flight-status oracle - Error Types

Per-identity and per-record failures are recoverable and contained where they
happen. LedgerConnectionError raised during bootstrap and BootstrapExhausted
are fatal for the process.
"""

from typing import Optional


class CoordinatorError(Exception):
    """Base class for coordinator errors"""


class LedgerError(CoordinatorError):
    """The ledger rejected a call (reverted transaction, failed receipt)"""


class LedgerConnectionError(CoordinatorError, ConnectionError):
    """The ledger node could not be reached or the subscription dropped"""


class RegistrationFailure(CoordinatorError):
    """An identity could not be registered as an oracle"""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Registration failed for {address}: {reason}")


class DecodeFailure(CoordinatorError):
    """A raw ledger event could not be turned into a RequestRecord"""

    def __init__(self, reason: str, event: Optional[object] = None):
        self.reason = reason
        self.event = event
        super().__init__(f"Could not decode event: {reason}")


class SubmissionFailure(CoordinatorError):
    """The ledger rejected or timed out on an oracle response"""

    def __init__(self, address: str, request_index: int, reason: str):
        self.address = address
        self.request_index = request_index
        self.reason = reason
        super().__init__(f"Submission from {address} for index {request_index} failed: {reason}")


class BootstrapExhausted(CoordinatorError):
    """No identity could be registered, so there is nobody to answer requests"""
