"""
Status Code Sources

Supply the status code an oracle reports. Production oracles draw at random,
so responses for the same request disagree and the ledger's quorum has to
settle them. Tests substitute a fixed sequence.
"""

import itertools
import random
from abc import ABC, abstractmethod
from typing import Optional

from common.schemas import StatusCode

STATUS_CODES = tuple(StatusCode)


class StatusCodeSource(ABC):
    """Produces one StatusCode per call"""

    @abstractmethod
    def next(self) -> StatusCode:
        pass


class RandomStatusCodeSource(StatusCodeSource):
    """Uniform, independent draw on every call"""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def next(self) -> StatusCode:
        return self._random.choice(STATUS_CODES)


class FixedStatusCodeSource(StatusCodeSource):
    """Cycles through a fixed sequence of codes"""

    def __init__(self, *codes: StatusCode):
        if not codes:
            raise ValueError("At least one status code is required")
        self._codes = itertools.cycle([StatusCode(code) for code in codes])

    def next(self) -> StatusCode:
        return next(self._codes)
