"""Process-wide node state.

NodeRuntime is built once at startup from settings (after validate_node_settings)
and installed with install_runtime(); views read it back with get_runtime().
bootstrap() does all of that for both entrypoints: the run_node command and the
WSGI module. Nothing here is created lazily on first use.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from django.db import OperationalError, close_old_connections, connection, connections

from .adapters.archival_adapter import HttpArchivalAdapter, StubArchivalAdapter
from .adapters.chain_adapter import ChainAdapter, StubChainAdapter
from .adapters.storage_adapter import IpfsStorageAdapter, StubStorageAdapter
from .balances import BalanceBook
from .cache import IntentionCache
from .config import validate_node_settings
from .exceptions import RuntimeNotReady, TransientInfraError
from .handlers import HandlerContext
from .ledger import DepositLedger
from .publisher import PublishPipeline
from .seeding import VaultSeeder
from .sequencer import BundleSequencer
from .vaults import VaultRegistry

logger = logging.getLogger(__name__)

_runtime = None


def install_runtime(runtime) -> None:
	global _runtime
	_runtime = runtime


def get_runtime() -> "NodeRuntime":
	if _runtime is None:
		raise RuntimeNotReady("node runtime is not installed")
	return _runtime


def wait_for_database(max_attempts: int, *, sleep=time.sleep) -> int:
	"""
	Open a database connection, backing off 1s, 2s, 4s ... (capped at 30s).
	Returns the attempt that succeeded.
	"""
	for attempt in range(1, max_attempts + 1):
		try:
			connection.ensure_connection()
			logger.info("Database connection validated (attempt %s)", attempt)
			return attempt
		except OperationalError as e:
			if attempt == max_attempts:
				raise TransientInfraError(f"Database unreachable after {max_attempts} attempts: {e}")
			delay = min(2 ** (attempt - 1), 30)
			logger.warning("Database connection failed (attempt %s/%s): %s - retrying in %ss", attempt, max_attempts, e, delay)
			sleep(delay)


class HealthMonitor:
	"""
	Periodic database check on its own thread. The latest result is kept for /health.
	"""

	def __init__(self, interval: float):
		self.interval = float(interval)
		self.last_ok_at: float | None = None
		self.last_error: str | None = None
		self._stop = threading.Event()
		self._thread: threading.Thread | None = None

	def check(self) -> bool:
		try:
			with connection.cursor() as cursor:
				cursor.execute("SELECT 1")
		except OperationalError as e:
			self.last_error = str(e)
			logger.error("Database health check failed: %s", e)
			return False
		finally:
			close_old_connections()
		self.last_ok_at = time.time()
		self.last_error = None
		return True

	def start(self) -> None:
		self._stop.clear()
		self._thread = threading.Thread(target=self._run, name="health-monitor", daemon=True)
		self._thread.start()

	def _run(self) -> None:
		while not self._stop.wait(self.interval):
			self.check()

	def cancel(self) -> None:
		self._stop.set()

	def join(self, timeout: float | None = None) -> None:
		if self._thread is not None:
			self._thread.join(timeout)
			self._thread = None


def build_chain(ledger):
	if settings.CHAIN_BACKEND == "web3":
		return ChainAdapter(
			ledger,
			rpc_url=settings.RPC_URL,
			chain_id=settings.CHAIN_ID,
			private_key=settings.PROPOSER_KEY,
			vault_tracker=settings.VAULT_TRACKER_ADDRESS,
			bundle_tracker=settings.BUNDLE_TRACKER_ADDRESS,
			deposit_contract=settings.DEPOSIT_CONTRACT_ADDRESS,
			scan_blocks=settings.DEPOSIT_SCAN_BLOCKS,
		)
	return StubChainAdapter(
		ledger,
		chain_id=settings.CHAIN_ID,
		proposer_address=settings.PROPOSER_ADDRESS,
		signing_key=settings.PROPOSER_KEY or "stub-proposer-key",
		scan_blocks=settings.DEPOSIT_SCAN_BLOCKS,
	)


def build_storage():
	if settings.STORAGE_BACKEND == "ipfs":
		return IpfsStorageAdapter(settings.PINNER_ENDPOINT, settings.PINNER_TOKEN)
	return StubStorageAdapter()


def build_archival():
	if settings.ARCHIVAL_BACKEND == "http":
		return HttpArchivalAdapter(settings.ARCHIVAL_URL, settings.ARCHIVAL_TOKEN)
	if settings.ARCHIVAL_BACKEND == "stub":
		return StubArchivalAdapter(settings.ARCHIVAL_MAX_BYTES, auto_confirm=settings.ARCHIVAL_STUB_AUTO_CONFIRM)
	return None


class NodeRuntime:

	def __init__(self, *, ledger, registry, cache, chain, pipeline, sequencer, seeder=None, executor=None, health=None, balances=None):
		self.ledger = ledger
		self.balances = balances or BalanceBook()
		self.registry = registry
		self.cache = cache
		self.chain = chain
		self.pipeline = pipeline
		self.sequencer = sequencer
		self.seeder = seeder
		self.executor = executor
		self.health = health
		self._stopped = False
		self.context = HandlerContext(
			ledger=ledger, registry=registry, chain=chain, cache=cache, schedule_seeding=seeder, balances=self.balances,
		)

	@classmethod
	def from_settings(cls, *, detached: bool = True) -> "NodeRuntime":
		"""
		Wire every component from settings. With detached=False archival and
		webhook work runs inline (management commands, tests).
		"""
		ledger = DepositLedger()
		balances = BalanceBook()
		cache = IntentionCache()
		chain = build_chain(ledger)
		executor = ThreadPoolExecutor(max_workers=settings.DETACHED_WORKERS, thread_name_prefix="detached") if detached else None
		pipeline = PublishPipeline(
			build_storage(), chain, build_archival(),
			executor=executor, webhook_enabled=bool(settings.WEBHOOK_URL),
		)
		sequencer = BundleSequencer(
			cache, ledger, chain, pipeline,
			proposer=settings.PROPOSER_ADDRESS, interval=settings.BUNDLE_INTERVAL_SECONDS, balances=balances,
		)
		seeder = VaultSeeder(
			cache, chain,
			proposer_vault_id=settings.PROPOSER_VAULT_ID, grants=settings.SEED_CONFIG, chain_id=settings.SEED_CHAIN_ID,
		)
		return cls(
			ledger=ledger, registry=VaultRegistry(), cache=cache, chain=chain, pipeline=pipeline,
			sequencer=sequencer, seeder=seeder, executor=executor, balances=balances,
			health=HealthMonitor(settings.HEALTH_CHECK_INTERVAL_SECONDS),
		)

	def start(self) -> None:
		wait_for_database(settings.DB_CONNECT_MAX_ATTEMPTS)
		self.ledger.release_active_holds()
		self.balances.release_all()
		self.pipeline.recover_interrupted()
		self.sequencer.start()
		if self.health:
			self.health.start()
		logger.info("Node started (proposer %s)", self.sequencer.proposer)

	def shutdown(self) -> None:
		"""
		Stop both timers, wait for the in-flight cycle, drain detached work,
		then release the database connections. Safe to call more than once.
		"""
		if self._stopped:
			return
		self._stopped = True
		logger.info("Shutting down node")
		if self.health:
			self.health.cancel()
		self.sequencer.stop()
		if self.health:
			self.health.join()
		if self.executor is not None:
			self.executor.shutdown(wait=True)

		dropped = self.cache.clear()
		for entry in dropped:
			for hold_id in entry.hold_ids:
				self.ledger.release_hold(hold_id)
			for reservation in entry.reservations:
				self.balances.release(reservation)
		if dropped:
			logger.warning("Dropped %s unbundled intentions at shutdown", len(dropped))

		connections.close_all()
		logger.info("Node stopped")


def bootstrap(*, detached: bool = True) -> NodeRuntime:
	"""
	Validate settings, build and start the runtime, and install it for the views.
	Raises FatalConfigError or TransientInfraError without installing anything.
	"""
	validate_node_settings()
	runtime = NodeRuntime.from_settings(detached=detached)
	runtime.start()
	install_runtime(runtime)
	return runtime
