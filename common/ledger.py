"""
Flight-status oracle - Ledger Client

The ledger is the FlightSuretyApp contract. The coordinator only needs four
things from it: oracle registration, index lookup, the OracleRequest event
stream and response submission. Ledger is the abstract collaborator;
Web3Ledger talks to an Ethereum node through web3.py.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator, FrozenSet, List, Mapping, Optional

import aiohttp
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import Web3Exception, TimeExhausted

from .errors import LedgerError, LedgerConnectionError

logger = logging.getLogger(__name__)

# Errors that mean the node is unreachable rather than that it refused a call
CONNECTION_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)

# Subset of the FlightSuretyApp ABI used by the coordinator
ORACLE_ABI: List[dict] = [
    {
        "type": "function",
        "name": "registerOracle",
        "inputs": [],
        "outputs": [],
        "stateMutability": "payable",
    },
    {
        "type": "function",
        "name": "getMyIndexes",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8[3]"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "submitOracleResponse",
        "inputs": [
            {"name": "index", "type": "uint8"},
            {"name": "airline", "type": "address"},
            {"name": "flight", "type": "string"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "statusCode", "type": "uint8"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "OracleRequest",
        "anonymous": False,
        "inputs": [
            {"name": "index", "type": "uint8", "indexed": False},
            {"name": "airline", "type": "address", "indexed": False},
            {"name": "flight", "type": "string", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]


def load_abi(path: str) -> List[dict]:
    """
    Load a contract ABI from a truffle build artifact or a bare ABI file.

    Args:
        path: Path to FlightSuretyApp.json (artifact with an "abi" key) or an ABI list

    Returns:
        ABI as a list of entries
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        if "abi" not in data:
            raise ValueError(f"No 'abi' key in {path}")
        return data["abi"]
    return data


class Ledger(ABC):
    """
    Abstract ledger collaborator.

    Every call may suspend; none of them may block the event loop.
    """

    async def connect(self) -> None:
        """Establish the connection to the ledger"""

    async def disconnect(self) -> None:
        """Release the connection to the ledger"""

    @abstractmethod
    async def accounts(self) -> List[str]:
        """Addresses the ledger node lets this process sign for"""

    @abstractmethod
    async def register(self, address: str, stake_wei: int) -> None:
        """
        Stake funds to register one oracle identity.

        Raises:
            LedgerError: If the ledger rejects the registration
        """

    @abstractmethod
    async def get_assigned_indexes(self, address: str) -> FrozenSet[int]:
        """Index set the ledger assigned to a registered identity"""

    @abstractmethod
    def request_events(self, from_block: int) -> AsyncIterator[Mapping[str, Any]]:
        """
        Raw OracleRequest events at or after a block.

        Each event carries "args", "blockNumber" and "logIndex".

        Raises:
            LedgerConnectionError: If the subscription drops
        """

    @abstractmethod
    async def submit_response(
        self,
        address: str,
        request_index: int,
        airline: str,
        flight: str,
        timestamp: int,
        status_code: int
    ) -> str:
        """
        Submit one oracle response as the given identity.

        Returns:
            Transaction hash

        Raises:
            LedgerError: If the ledger rejects the response
        """


class Web3Ledger(Ledger):
    """
    FlightSuretyApp contract accessed through an Ethereum JSON-RPC node.

    Transactions are sent from node-managed accounts, so the node must have
    the oracle addresses unlocked (ganache / truffle develop do by default).
    """

    def __init__(
        self,
        url: str,
        contract_address: str,
        abi: Optional[List[dict]] = None,
        gas_limit: int = 9999999,
        poll_interval: float = 2.0,
        receipt_timeout: float = 120.0,
        max_retries: int = 5,
        retry_delay: float = 5.0
    ):
        """
        Initialize ledger client.

        Args:
            url: JSON-RPC endpoint of the node
            contract_address: Deployed FlightSuretyApp address
            abi: Contract ABI (defaults to ORACLE_ABI)
            gas_limit: Gas sent with every transaction
            poll_interval: Seconds between event log polls
            receipt_timeout: Seconds to wait for a transaction receipt
            max_retries: Maximum connection attempts
            retry_delay: Delay between connection attempts in seconds
        """
        self.url = url
        self.contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self.abi = abi or ORACLE_ABI
        self.gas_limit = gas_limit
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self.w3 = AsyncWeb3(AsyncHTTPProvider(url))
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=self.abi)

        logger.info(f"Ledger client initialized: {url} contract={self.contract_address}")

    async def connect(self) -> None:
        """
        Check that the node answers, retrying a few times before giving up.

        Raises:
            LedgerConnectionError: If the node is unreachable after all retries
        """
        last_error = None

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Connecting to ledger (attempt {attempt + 1}/{self.max_retries})...")
                if await self.w3.is_connected():
                    block = await self.w3.eth.block_number
                    logger.info(f"Connected to ledger at block {block}")
                    return
                last_error = "node did not answer"
            except CONNECTION_ERRORS as e:
                last_error = e

            logger.warning(f"Connection attempt {attempt + 1} failed: {last_error}")
            if attempt < self.max_retries - 1:
                logger.info(f"Retrying in {self.retry_delay} seconds...")
                await asyncio.sleep(self.retry_delay)

        error_msg = f"Failed to connect to ledger after {self.max_retries} attempts: {last_error}"
        logger.error(error_msg)
        raise LedgerConnectionError(error_msg)

    async def disconnect(self) -> None:
        try:
            await self.w3.provider.disconnect()
        except NotImplementedError:
            pass
        logger.info("Disconnected from ledger")

    async def accounts(self) -> List[str]:
        try:
            return list(await self.w3.eth.accounts)
        except CONNECTION_ERRORS as e:
            raise LedgerConnectionError(f"Could not list accounts: {e}") from e

    async def _transact(self, call, tx_params: dict) -> str:
        try:
            tx_hash = await call.transact(tx_params)
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except CONNECTION_ERRORS as e:
            raise LedgerConnectionError(str(e)) from e
        except TimeExhausted as e:
            raise LedgerError(f"No receipt after {self.receipt_timeout}s") from e
        except (Web3Exception, ValueError) as e:
            raise LedgerError(str(e)) from e

        if receipt["status"] != 1:
            raise LedgerError(f"Transaction {AsyncWeb3.to_hex(tx_hash)} reverted")
        return AsyncWeb3.to_hex(tx_hash)

    async def register(self, address: str, stake_wei: int) -> None:
        await self._transact(
            self.contract.functions.registerOracle(),
            {"from": address, "value": stake_wei, "gas": self.gas_limit}
        )

    async def get_assigned_indexes(self, address: str) -> FrozenSet[int]:
        try:
            indexes = await self.contract.functions.getMyIndexes().call({"from": address})
        except CONNECTION_ERRORS as e:
            raise LedgerConnectionError(str(e)) from e
        except (Web3Exception, ValueError) as e:
            raise LedgerError(str(e)) from e
        return frozenset(int(index) for index in indexes)

    async def request_events(self, from_block: int) -> AsyncIterator[Mapping[str, Any]]:
        next_block = from_block

        while True:
            try:
                latest = await self.w3.eth.block_number
                logs = []
                if latest >= next_block:
                    logs = await self.contract.events.OracleRequest.get_logs(
                        from_block=next_block,
                        to_block=latest
                    )
            except CONNECTION_ERRORS as e:
                raise LedgerConnectionError(f"Event subscription lost: {e}") from e
            except Web3Exception as e:
                # Node-side RPC failures while polling are retried like a dropped connection
                raise LedgerConnectionError(f"Event polling failed: {e}") from e

            for log in logs:
                yield log

            next_block = max(next_block, latest + 1)
            await asyncio.sleep(self.poll_interval)

    async def submit_response(
        self,
        address: str,
        request_index: int,
        airline: str,
        flight: str,
        timestamp: int,
        status_code: int
    ) -> str:
        call = self.contract.functions.submitOracleResponse(
            request_index,
            AsyncWeb3.to_checksum_address(airline),
            flight,
            timestamp,
            int(status_code)
        )
        return await self._transact(call, {"from": address, "gas": self.gas_limit})
