"""
Oracle Coordinator Main Entry Point

Starts the coordinator service:
1. Connects to the ledger
2. Registers the oracle identity pool
3. Starts the status endpoint
4. Listens for OracleRequest events and dispatches responses
5. Shuts down gracefully on SIGINT / SIGTERM
"""

import asyncio
import contextlib
import logging
import signal
import sys
from datetime import datetime, UTC
from enum import Enum
from typing import List, Optional, Set

import uvicorn

from api.main import create_app
from common.config import CoordinatorConfig
from common.errors import BootstrapExhausted, LedgerConnectionError
from common.file_logger import setup_file_logger
from common.ledger import Ledger, Web3Ledger, load_abi
from common.schemas import CoordinatorStatus, Identity, RegistrationReport, RequestRecord
from coordinator.dispatcher import ResponseDispatcher
from coordinator.listener import RequestListener
from coordinator.registry import OracleRegistry
from coordinator.status_codes import RandomStatusCodeSource, StatusCodeSource

logger = logging.getLogger(__name__)


class CoordinatorState(str, Enum):
    BOOTSTRAPPING = "bootstrapping"
    LISTENING = "listening"
    DISPATCHING = "dispatching"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class CoordinatorProcess:
    """
    Wires registry, listener and dispatcher together.

    Bootstraps the registry once, then pulls request records and dispatches
    them with bounded concurrency until stopped.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: CoordinatorConfig,
        status_codes: Optional[StatusCodeSource] = None
    ):
        """
        Initialize coordinator components.

        Args:
            ledger: Ledger collaborator
            config: Coordinator settings
            status_codes: Status code source (random by default)
        """
        self.ledger = ledger
        self.config = config
        self.status_codes = status_codes or RandomStatusCodeSource(config.status_code_seed)

        self.registry = OracleRegistry(ledger, registration_timeout=config.registration_timeout)
        self.listener = RequestListener(
            ledger,
            reconnect_delay=config.reconnect_delay,
            reconnect_max_delay=config.reconnect_max_delay,
            reconnect_max_attempts=config.reconnect_max_attempts
        )
        self.dispatcher = ResponseDispatcher(
            self.registry,
            self.status_codes,
            ledger,
            submission_timeout=config.submission_timeout
        )

        self.state = CoordinatorState.BOOTSTRAPPING
        self.bootstrapped = False
        self.registration_report: Optional[RegistrationReport] = None
        self.last_request_handled_at: Optional[datetime] = None
        self.records_handled = 0
        self.responses_submitted = 0
        self.responses_failed = 0

        self._slots = asyncio.Semaphore(config.max_concurrent_records)
        self._inflight: Set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()

    def _set_state(self, state: CoordinatorState) -> None:
        if state != self.state:
            logger.debug(f"State {self.state.value} -> {state.value}")
            self.state = state

    def _set_activity(self, busy: bool) -> None:
        # Only toggles between listening and dispatching
        if self.state in (CoordinatorState.LISTENING, CoordinatorState.DISPATCHING):
            self._set_state(CoordinatorState.DISPATCHING if busy else CoordinatorState.LISTENING)

    # ============================================
    # Bootstrapping
    # ============================================

    async def acquire_identities(self) -> List[Identity]:
        """
        Build the identity pool.

        Uses ORACLE_ADDRESSES when configured, otherwise the node's accounts
        from oracle_offset to oracle_offset + oracle_count.
        """
        if self.config.oracle_addresses:
            addresses = self.config.oracle_addresses
        else:
            accounts = await self.ledger.accounts()
            start = self.config.oracle_offset
            addresses = accounts[start:start + self.config.oracle_count]
        return [Identity(address=address) for address in addresses]

    async def bootstrap(self) -> RegistrationReport:
        """
        Connect to the ledger and register the identity pool.

        Raises:
            LedgerConnectionError: If the ledger cannot be reached
            BootstrapExhausted: If no identity could be registered
        """
        self._set_state(CoordinatorState.BOOTSTRAPPING)
        await self.ledger.connect()

        identities = await self.acquire_identities()
        if not identities:
            raise BootstrapExhausted("Identity pool is empty")

        logger.info(f"Registering {len(identities)} oracles...")
        report = await self.registry.register_all(identities, self.config.oracle_stake_wei)
        self.registration_report = report

        if len(self.registry) == 0:
            raise BootstrapExhausted(
                f"All {len(report.failures)} oracle registrations failed"
            )

        logger.info(
            f"Registered {report.registered_count} oracles "
            f"({len(report.failures)} failed, {len(report.skipped)} skipped)"
        )
        self.bootstrapped = True
        self._set_state(CoordinatorState.LISTENING)
        return report

    # ============================================
    # Listening / dispatching
    # ============================================

    async def _dispatch(self, record: RequestRecord) -> None:
        try:
            outcomes = await self.dispatcher.handle(record)
            for outcome in outcomes:
                if outcome.success:
                    self.responses_submitted += 1
                else:
                    self.responses_failed += 1
        except Exception as e:
            logger.error(f"Error dispatching {record.describe()}: {e}", exc_info=True)
        finally:
            self.records_handled += 1
            self.last_request_handled_at = datetime.now(UTC)
            self._slots.release()

    def _dispatch_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not self._inflight:
            self._set_activity(busy=False)

    async def _intake(self, stream) -> None:
        """Pull records and start a dispatch task for each, waiting for a free slot first"""
        while True:
            await self._slots.acquire()
            try:
                record = await anext(stream)
            except StopAsyncIteration:
                self._slots.release()
                return
            except BaseException:
                self._slots.release()
                raise

            task = asyncio.create_task(self._dispatch(record))
            self._inflight.add(task)
            task.add_done_callback(self._dispatch_done)
            self._set_activity(busy=True)

    async def listen(self) -> None:
        """
        Consume request records until stopped.

        Raises:
            LedgerConnectionError: If the event stream cannot be re-established
        """
        stream = self.listener.subscribe(self.config.from_block)
        intake = asyncio.create_task(self._intake(stream))
        stop = asyncio.create_task(self._stop_event.wait())

        logger.info(f"Listening for OracleRequest events from block {self.config.from_block}")
        done, _ = await asyncio.wait({intake, stop}, return_when=asyncio.FIRST_COMPLETED)

        self._set_state(CoordinatorState.SHUTTING_DOWN)
        error = None

        if intake in done:
            if not intake.cancelled():
                error = intake.exception()
        else:
            intake.cancel()
            try:
                await intake
            except asyncio.CancelledError:
                pass
        stop.cancel()

        if self._inflight:
            logger.info(f"Waiting for {len(self._inflight)} in-flight dispatches...")
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        await stream.aclose()

        if error is not None:
            raise error

    async def run(self) -> None:
        """Bootstrap, then listen until stopped. Always ends in STOPPED."""
        try:
            await self.bootstrap()
            if not self._stop_event.is_set():
                await self.listen()
        finally:
            self._set_state(CoordinatorState.SHUTTING_DOWN)
            await self.ledger.disconnect()
            self._set_state(CoordinatorState.STOPPED)
            logger.info("Shutdown complete")

    def stop(self) -> None:
        """Request a graceful shutdown"""
        self._stop_event.set()

    def signal_handler(self, sig) -> None:
        """Handle shutdown signals"""
        logger.info(f"Received signal {sig}")
        self.stop()

    def status(self) -> CoordinatorStatus:
        return CoordinatorStatus(
            state=self.state.value,
            bootstrapped=self.bootstrapped,
            registered_count=len(self.registry),
            last_request_handled_at=self.last_request_handled_at,
            records_handled=self.records_handled,
            responses_submitted=self.responses_submitted,
            responses_failed=self.responses_failed
        )


class StatusServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the coordinator"""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    async def serve_checked(self) -> None:
        """Serve until should_exit; a failed startup raises instead of exiting the process"""
        try:
            await self.serve()
        except SystemExit as e:
            raise RuntimeError(f"status endpoint exited with code {e.code}") from e

    async def wait_started(self, task: asyncio.Task, interval: float = 0.05) -> bool:
        while not self.started and not task.done():
            await asyncio.sleep(interval)
        return self.started


def build_ledger(config: CoordinatorConfig) -> Web3Ledger:
    if not config.app_contract_address:
        raise ValueError("APP_CONTRACT_ADDRESS (or LEDGER_CONFIG_FILE) is required")

    abi = load_abi(config.app_contract_abi_path) if config.app_contract_abi_path else None
    return Web3Ledger(
        url=config.ledger_url,
        contract_address=config.app_contract_address,
        abi=abi,
        gas_limit=config.gas_limit,
        poll_interval=config.poll_interval,
        max_retries=config.connect_max_retries,
        retry_delay=config.connect_retry_delay
    )


async def main(config: Optional[CoordinatorConfig] = None) -> int:
    """
    Main entry point.

    Returns:
        Process exit code: 0 on normal shutdown, 1 on fatal failure
    """
    if config is None:
        try:
            config = CoordinatorConfig.from_env()
        except (ValueError, OSError) as e:
            setup_file_logger("oracle-coordinator", output_dir=None).error(f"Invalid configuration: {e}")
            return 1

    service_logger = setup_file_logger(
        "oracle-coordinator",
        log_level=config.log_level,
        output_dir=config.log_dir
    )

    try:
        ledger = build_ledger(config)
    except (ValueError, OSError) as e:
        service_logger.error(f"Invalid configuration: {e}")
        return 1

    coordinator = CoordinatorProcess(ledger, config)

    loop = asyncio.get_running_loop()
    handled_signals = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, coordinator.signal_handler, sig)
            handled_signals.append(sig)

    server = StatusServer(uvicorn.Config(
        create_app(coordinator),
        host=config.status_host,
        port=config.status_port,
        log_level=config.log_level.lower()
    ))
    server_task = asyncio.create_task(server.serve_checked())

    exit_code = 0
    try:
        if not await server.wait_started(server_task):
            error = server_task.exception() if not server_task.cancelled() else None
            service_logger.error(
                f"Status endpoint failed to start on {config.status_host}:{config.status_port}: {error}"
            )
            return 1
        service_logger.info(f"Status endpoint on http://{config.status_host}:{config.status_port}/status")

        await coordinator.run()
    except (BootstrapExhausted, LedgerConnectionError) as e:
        service_logger.error(f"Fatal: {e}")
        exit_code = 1
    except Exception as e:
        service_logger.error(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        server.should_exit = True
        await asyncio.gather(server_task, return_exceptions=True)
        for sig in handled_signals:
            loop.remove_signal_handler(sig)

    return exit_code


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[COORDINATOR] Interrupted")


if __name__ == "__main__":
    cli()
