"""
Oracle Registry - Locally controlled oracle identities

Registers each identity with the ledger and remembers the index set the
ledger assigned to it. Written only while bootstrapping, read-only while
requests are being dispatched.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from common.errors import LedgerError, RegistrationFailure
from common.ledger import CONNECTION_ERRORS, Ledger
from common.schemas import Identity, RegistrationReport

logger = logging.getLogger(__name__)


class OracleRegistry:
    """
    Registry of oracle identities and their assigned indexes.

    Identities are kept in registration order so that matching is
    deterministic. Only identities with a non-empty index set are stored.
    """

    def __init__(self, ledger: Ledger, registration_timeout: Optional[float] = None):
        """
        Initialize empty registry.

        Args:
            ledger: Ledger used for registration and index lookup
            registration_timeout: Seconds allowed per identity (None for no limit)
        """
        self.ledger = ledger
        self.registration_timeout = registration_timeout
        self._identities: Dict[str, Identity] = {}
        self._lock = asyncio.Lock()

    async def _register_one(self, identity: Identity, stake_wei: int) -> Identity:
        """
        Register a single identity and fetch its indexes.

        Raises:
            RegistrationFailure: If the ledger rejects it or assigns no index
        """
        address = identity.address
        try:
            await self.ledger.register(address, stake_wei)
            indexes = await self.ledger.get_assigned_indexes(address)
        except (LedgerError, *CONNECTION_ERRORS) as e:
            raise RegistrationFailure(address, str(e) or type(e).__name__) from e

        if not indexes:
            raise RegistrationFailure(address, "ledger assigned no indexes")

        return identity.model_copy(update={"indexes": frozenset(indexes)})

    async def _attempt(self, identity: Identity, stake_wei: int) -> Identity:
        if self.registration_timeout is None:
            return await self._register_one(identity, stake_wei)
        try:
            return await asyncio.wait_for(
                self._register_one(identity, stake_wei),
                timeout=self.registration_timeout
            )
        except asyncio.TimeoutError as e:
            raise RegistrationFailure(
                identity.address, f"timed out after {self.registration_timeout}s"
            ) from e

    async def register_all(
        self,
        identities: Iterable[Identity],
        stake_wei: int
    ) -> RegistrationReport:
        """
        Register every identity in the pool with the ledger.

        Identities are registered concurrently and committed in pool order.
        A failure for one identity is recorded in the report and does not
        affect the others.

        Args:
            identities: Pool of identities to register
            stake_wei: Stake sent with each registration

        Returns:
            RegistrationReport with registered identities, failures and skips
        """
        report = RegistrationReport()
        pending: List[Identity] = []
        seen = set()

        for identity in identities:
            if identity.address in self._identities or identity.address in seen:
                logger.info(f"Oracle {identity.address} already registered, skipping")
                report.skipped.append(identity.address)
                continue
            seen.add(identity.address)
            pending.append(identity)

        results = await asyncio.gather(
            *(self._attempt(identity, stake_wei) for identity in pending),
            return_exceptions=True
        )

        async with self._lock:
            for identity, result in zip(pending, results):
                if isinstance(result, RegistrationFailure):
                    logger.warning(f"Oracle registration failed for {result.address}: {result.reason}")
                    report.failures[identity.address] = result.reason
                    continue
                if isinstance(result, Exception):
                    reason = f"{type(result).__name__}: {result}"
                    logger.error(f"Oracle registration failed for {identity.address}: {reason}")
                    report.failures[identity.address] = reason
                    continue
                if isinstance(result, BaseException):
                    raise result

                self._identities[result.address] = result
                report.registered.append(result)
                logger.info(f"Oracle Registered at: {result.address} indexes={sorted(result.indexes)}")

        return report

    def matching(self, request_index: int) -> List[Identity]:
        """
        Find every registered identity holding an index.

        Args:
            request_index: Index carried by the request

        Returns:
            Matching identities in registration order
        """
        return [
            identity
            for identity in self._identities.values()
            if identity.indexes and request_index in identity.indexes
        ]

    def get(self, address: str) -> Optional[Identity]:
        return self._identities.get(address)

    def identities(self) -> List[Identity]:
        return list(self._identities.values())

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, address: object) -> bool:
        return address in self._identities
