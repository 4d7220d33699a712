"""
Flight-status oracle - Data Schemas

Pydantic models shared by the coordinator, the ledger client and the status API.
"""

from enum import IntEnum
from datetime import datetime, UTC
from typing import Optional, Dict, Any, List, FrozenSet, Mapping

from pydantic import BaseModel, Field, ConfigDict, field_validator


class StatusCode(IntEnum):
    """Flight status an oracle reports for a request"""
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


class OracleBaseModel(BaseModel):
    """Base class for all immutable oracle records"""
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True
    )

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, json_str: str):
        """Deserialize from JSON string"""
        return cls.model_validate_json(json_str)


# ============================================
# Identities
# ============================================

class Identity(OracleBaseModel):
    """One oracle persona controlled by this process"""
    address: str = Field(..., min_length=1)
    indexes: FrozenSet[int] = frozenset()

    @field_validator("indexes")
    @classmethod
    def _non_negative(cls, value: FrozenSet[int]) -> FrozenSet[int]:
        if any(index < 0 for index in value):
            raise ValueError("indexes must be non-negative")
        return value

    @property
    def is_registered(self) -> bool:
        return bool(self.indexes)


class RegistrationReport(BaseModel):
    """Outcome of bootstrapping a pool of identities"""
    registered: List[Identity] = []
    failures: Dict[str, str] = {}
    skipped: List[str] = []

    @property
    def registered_count(self) -> int:
        return len(self.registered)

    @property
    def exhausted(self) -> bool:
        """True when not a single identity made it into the registry"""
        return not self.registered


# ============================================
# Requests
# ============================================

class RequestRecord(OracleBaseModel):
    """Normalized OracleRequest event emitted by the ledger"""
    request_index: int = Field(..., ge=0)
    airline: str = Field(..., min_length=1)
    flight: str
    timestamp: int = Field(..., ge=0)

    # Position of the event in the chain, used to resume a dropped subscription
    block_number: Optional[int] = None
    log_index: Optional[int] = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "RequestRecord":
        """
        Build a record from a raw OracleRequest log.

        Args:
            event: Log mapping with "args", "blockNumber" and "logIndex" keys

        Raises:
            KeyError, TypeError, ValueError: If the event cannot be decoded
        """
        args = event["args"]
        return cls(
            request_index=int(args["index"]),
            airline=str(args["airline"]),
            flight=str(args["flight"]),
            timestamp=int(args["timestamp"]),
            block_number=event.get("blockNumber"),
            log_index=event.get("logIndex"),
        )

    @property
    def position(self) -> Optional[tuple]:
        if self.block_number is None or self.log_index is None:
            return None
        return (self.block_number, self.log_index)

    def describe(self) -> str:
        return f"index={self.request_index} airline={self.airline} flight={self.flight} timestamp={self.timestamp}"


# ============================================
# Responses
# ============================================

class ResponseAttempt(OracleBaseModel):
    """One (identity, record, status code) submission"""
    address: str
    record: RequestRecord
    status_code: StatusCode


class ResponseOutcome(OracleBaseModel):
    """Result of submitting a ResponseAttempt to the ledger"""
    attempt: ResponseAttempt
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ============================================
# Process status
# ============================================

class CoordinatorStatus(BaseModel):
    """Liveness snapshot exposed by the status endpoint"""
    state: str
    bootstrapped: bool
    registered_count: int
    last_request_handled_at: Optional[datetime] = None
    records_handled: int = 0
    responses_submitted: int = 0
    responses_failed: int = 0
