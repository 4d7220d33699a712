"""
Coordinator - Off-chain oracle response service for FlightSurety

Registers a pool of oracle identities with the ledger and answers
OracleRequest events for every identity holding the requested index.
"""

from .registry import OracleRegistry
from .listener import RequestListener
from .dispatcher import ResponseDispatcher
from .status_codes import StatusCodeSource, RandomStatusCodeSource, FixedStatusCodeSource

__all__ = [
    "OracleRegistry",
    "RequestListener",
    "ResponseDispatcher",
    "StatusCodeSource",
    "RandomStatusCodeSource",
    "FixedStatusCodeSource",
]
