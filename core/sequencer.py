"""Bundle sequencer.

Every interval: drain the intention cache into a nonce-tagged bundle, persist it
(settling the deposit holds and balance reservations its executions carry) and
hand it to the publish pipeline. Cycles never overlap; a tick that fires while a
cycle is running is skipped. The cache is only trimmed after the bundle row commits.
"""

import json
import logging
import threading
from enum import Enum

from django.db import DatabaseError, IntegrityError, close_old_connections, transaction
from django.db.models import Max

from .balances import BalanceBook
from .exceptions import NodeError, PublishError
from .models import Bundle

logger = logging.getLogger(__name__)


class SequencerState(str, Enum):
	IDLE = "idle"
	DRAINING = "draining"
	PUBLISHING = "publishing"


def encode_bundle(executions: list[dict], nonce: int) -> str:
	"""
	Canonical bundle text: the exact string that is signed and uploaded.
	"""
	return json.dumps({"bundle": executions, "nonce": nonce}, separators=(",", ":"))


class BundleSequencer:

	def __init__(self, cache, ledger, chain, pipeline, *, proposer: str, interval: float = 10, balances: BalanceBook | None = None):
		self.cache = cache
		self.ledger = ledger
		self.balances = balances or BalanceBook()
		self.chain = chain
		self.pipeline = pipeline
		self.proposer = proposer.lower()
		self.interval = float(interval)
		self.state = SequencerState.IDLE
		self.cycle_count = 0
		self._cycle_lock = threading.Lock()
		self._stop = threading.Event()
		self._thread: threading.Thread | None = None

	def next_nonce(self) -> int:
		"""
		0 for the first bundle, then max(nonce) + 1.
		"""
		last = Bundle.objects.aggregate(m=Max("nonce"))["m"]
		return 0 if last is None else last + 1

	def tick(self) -> Bundle | None:
		"""
		Run one cycle. Returns the persisted bundle, or None when the cycle was
		skipped (cache empty, previous cycle still running, persistence failed,
		every entry rejected).
		"""
		if not self._cycle_lock.acquire(blocking=False):
			logger.warning("Previous bundle cycle still running; skipping tick")
			return None
		try:
			self.cycle_count += 1
			entries = self.cache.snapshot()
			if not entries:
				logger.info("No intentions to propose.")
				self._retry_unpublished()
				return None

			self.state = SequencerState.DRAINING
			try:
				bundle = self._persist(entries)
			except (DatabaseError, NodeError):
				logger.exception("Failed to persist bundle; %s intentions stay cached", len(entries))
				return None
			self.cache.discard(len(entries))
			if bundle is None:
				logger.warning("Every cached intention was rejected; no bundle this cycle")
				return None
			logger.info("Bundle %s persisted with %s intentions", bundle.nonce, bundle.intention_count)

			self.state = SequencerState.PUBLISHING
			try:
				self.pipeline.publish_in_order(bundle)
			except PublishError as e:
				logger.error("Bundle %s persisted but not published: %s", bundle.nonce, e.message)
			return bundle
		finally:
			self.state = SequencerState.IDLE
			self._cycle_lock.release()

	def _retry_unpublished(self) -> None:
		try:
			self.pipeline.republish_pending()
		except PublishError as e:
			logger.error("Republish of pending bundles failed: %s", e.message)

	@transaction.atomic
	def _persist(self, entries) -> Bundle | None:
		"""
		Settle every entry in its own savepoint and write the bundle from the
		ones that settled. A rejected entry is logged, its holds and
		reservations are released, and it leaves the cache with the rest.
		"""
		nonce = self.next_nonce()
		reference = f"bundle:{nonce}"
		accepted = []
		for entry in entries:
			try:
				with transaction.atomic():
					self._settle(entry, reference)
			except (NodeError, IntegrityError) as e:
				logger.error("Dropping execution from bundle %s: %s", nonce, e)
				self._release(entry)
				continue
			accepted.append(entry)
		if not accepted:
			return None

		text = encode_bundle([e.execution for e in accepted], nonce)
		signature = self.chain.sign_message(text)
		return Bundle.objects.create(
			nonce=nonce,
			payload=text.encode("utf-8"),
			proposer=self.proposer,
			signature=signature,
			intention_count=len(accepted),
		)

	def _settle(self, entry, reference: str) -> None:
		for hold_id in entry.hold_ids:
			self.ledger.commit_hold(hold_id, reference)
		self.balances.apply(entry.execution, entry.reservations)

	def _release(self, entry) -> None:
		for hold_id in entry.hold_ids:
			self.ledger.release_hold(hold_id)
		for reservation in entry.reservations:
			self.balances.release(reservation)

	# --- timer -------------------------------------------------------------

	def start(self) -> None:
		if self._thread and self._thread.is_alive():
			return
		self._stop.clear()
		self._thread = threading.Thread(target=self._run, name="bundle-sequencer", daemon=True)
		self._thread.start()
		logger.info("Bundle sequencer started (interval %ss)", self.interval)

	def _run(self) -> None:
		while not self._stop.wait(self.interval):
			try:
				self.tick()
			except Exception:
				logger.exception("Bundle cycle crashed")
			finally:
				close_old_connections()

	def stop(self, timeout: float | None = None) -> None:
		"""
		Cancel the timer and wait for an in-flight cycle to finish.
		"""
		self._stop.set()
		if self._thread is not None:
			self._thread.join(timeout)
			self._thread = None
		with self._cycle_lock:
			pass
		logger.info("Bundle sequencer stopped after %s cycles", self.cycle_count)
