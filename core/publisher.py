"""Publish pipeline for persisted bundles.

1. gzip the signed bundle text and upload it to content-addressed storage (required)
2. propose the content id to the BundleTracker contract (required)
3. archive the same bytes to the long-term tier (detached, outcome on the row)
4. notify the webhook (detached, optional, outcome on the row)

Steps 1-2 run on the caller's thread and outside any database transaction.
A failure there leaves the bundle persisted but unpublished with publish_error
set; republish_pending() drives such bundles again in nonce order, and a new
bundle is only anchored once every earlier one is.
Archival and webhook failures never touch the publish fields.
"""

import gzip
import logging
from concurrent.futures import ThreadPoolExecutor

from django.db import close_old_connections
from django.utils import timezone

from .exceptions import NodeError, PublishError
from .models import ArchivalStatus, Bundle, Proposer, WebhookStatus
from .webhook import send_webhook

logger = logging.getLogger(__name__)


class PublishPipeline:

	def __init__(self, storage, chain, archival=None, *, executor: ThreadPoolExecutor | None = None, webhook_enabled: bool = False, notify=send_webhook):
		self.storage = storage
		self.chain = chain
		self.archival = archival
		self.executor = executor
		self.webhook_enabled = webhook_enabled
		self.notify = notify

	def publish(self, bundle: Bundle) -> Bundle:
		"""
		Upload and anchor one bundle. The row is claimed first, so a bundle that
		is already anchored or being published elsewhere is never anchored twice.
		"""
		claimed = Bundle.objects.filter(pk=bundle.pk, anchor_tx_hash="", publishing=False).update(publishing=True)
		if not claimed:
			raise PublishError(f"bundle {bundle.nonce} is already published or being published", nonce=bundle.nonce)

		try:
			data = gzip.compress(bytes(bundle.payload))
			logger.info("Publishing bundle %s (%s bytes, %s compressed)", bundle.nonce, len(bundle.payload), len(data))
			try:
				if not bundle.content_id:
					bundle.content_id = self.storage.upload(data, name=f"bundle-{bundle.nonce}.json.gz")
					Bundle.objects.filter(pk=bundle.pk).update(content_id=bundle.content_id)
					logger.info("Bundle %s uploaded, CID: %s", bundle.nonce, bundle.content_id)
				bundle.anchor_tx_hash = self.chain.propose_bundle(bundle.content_id)
			except (NodeError, ValueError) as e:
				message = e.message if isinstance(e, NodeError) else f"malformed response: {e}"
				bundle.publish_error = message[:4000]
				Bundle.objects.filter(pk=bundle.pk).update(publish_error=bundle.publish_error)
				raise PublishError(f"bundle {bundle.nonce} publish failed: {message}", nonce=bundle.nonce) from e

			bundle.published_at = timezone.now()
			bundle.publish_error = ""
			Bundle.objects.filter(pk=bundle.pk).update(
				anchor_tx_hash=bundle.anchor_tx_hash, published_at=bundle.published_at, publish_error="",
			)
		finally:
			Bundle.objects.filter(pk=bundle.pk).update(publishing=False)

		Proposer.objects.update_or_create(address=bundle.proposer, defaults={"last_seen": bundle.published_at})
		logger.info("Bundle %s anchored in tx %s", bundle.nonce, bundle.anchor_tx_hash)

		self._schedule_archival(bundle, data)
		self._schedule_webhook(bundle)
		return bundle

	def publish_in_order(self, bundle: Bundle) -> Bundle:
		"""
		Publish `bundle` after every earlier bundle that failed to publish, so
		anchors land in nonce order. While an earlier one still fails, `bundle`
		waits with publish_error set and republish_pending() picks it up later.
		"""
		try:
			self.republish_pending(before=bundle.nonce)
		except PublishError as e:
			bundle.publish_error = f"waiting for earlier bundle: {e.message}"[:4000]
			Bundle.objects.filter(pk=bundle.pk).update(publish_error=bundle.publish_error)
			raise PublishError(f"bundle {bundle.nonce} held back: {e.message}", nonce=bundle.nonce) from e
		return self.publish(bundle)

	def republish_pending(self, before: int | None = None) -> list[int]:
		"""
		Publish bundles whose publish attempt failed, oldest nonce first.
		Bundles still in their first attempt (no publish_error) are left alone.
		Stops at the first failure so anchors stay in nonce order.
		"""
		pending = Bundle.objects.filter(anchor_tx_hash="").exclude(publish_error="")
		if before is not None:
			pending = pending.filter(nonce__lt=before)
		published = []
		for bundle in list(pending.order_by("nonce")):
			self.publish(bundle)
			published.append(bundle.nonce)
		return published

	def recover_interrupted(self) -> int:
		"""
		Startup only: release publish claims left by a stopped process and mark
		unanchored bundles as failed so republish_pending() retries them.
		"""
		unanchored = Bundle.objects.filter(anchor_tx_hash="")
		unanchored.filter(publishing=True).update(publishing=False)
		recovered = unanchored.filter(publish_error="").update(publish_error="interrupted before publish")
		if recovered:
			logger.warning("Marked %s interrupted bundles for republish", recovered)
		return recovered

	# --- archival ----------------------------------------------------------

	def _schedule_archival(self, bundle: Bundle, data: bytes) -> None:
		if self.archival is None:
			Bundle.objects.filter(pk=bundle.pk).update(archival_status=ArchivalStatus.SKIPPED)
			return
		self._detach(self.archive, bundle.pk, bundle.content_id, data)

	def archive(self, bundle_pk: int, content_id: str, data: bytes) -> str:
		"""
		Readiness check, then upload. Every outcome lands on the bundle row.
		"""
		rows = Bundle.objects.filter(pk=bundle_pk)
		try:
			ready, reason = self.archival.check_readiness(len(data))
			if not ready:
				rows.update(archival_status=ArchivalStatus.FAILED, archival_error=f"archival not ready: {reason}"[:4000])
				logger.warning("Archival for %s blocked: %s", content_id, reason)
				return ArchivalStatus.FAILED

			rows.update(archival_status=ArchivalStatus.UPLOADING, archival_error="")
			self.archival.upload(
				data,
				content_id,
				on_complete=lambda piece_id: rows.update(archival_piece_id=piece_id),
				on_tx_submitted=lambda tx_hash: rows.update(archival_tx_hash=tx_hash),
				on_confirmed=lambda: self.confirm_archival(content_id),
			)
		except Exception as e:
			rows.update(archival_status=ArchivalStatus.FAILED, archival_error=str(e)[:4000])
			logger.exception("Archival upload for %s failed", content_id)
			return ArchivalStatus.FAILED
		return rows.values_list("archival_status", flat=True).first()

	def confirm_archival(self, content_id: str, *, piece_id: str | None = None, tx_hash: str | None = None) -> int:
		"""
		Mark archival confirmed for the bundle(s) stored under `content_id`.
		Returns the number of rows updated.
		"""
		fields = {"archival_status": ArchivalStatus.CONFIRMED, "archival_confirmed_at": timezone.now(), "archival_error": ""}
		if piece_id:
			fields["archival_piece_id"] = piece_id
		if tx_hash:
			fields["archival_tx_hash"] = tx_hash
		updated = Bundle.objects.filter(content_id=content_id).exclude(archival_status=ArchivalStatus.CONFIRMED).update(**fields)
		if updated:
			logger.info("Archival confirmed for %s", content_id)
		return updated

	def fail_archival(self, content_id: str, error: str) -> int:
		updated = Bundle.objects.filter(content_id=content_id).exclude(archival_status=ArchivalStatus.CONFIRMED).update(
			archival_status=ArchivalStatus.FAILED, archival_error=(error or "archival failed")[:4000],
		)
		if updated:
			logger.warning("Archival failed for %s: %s", content_id, error)
		return updated

	# --- webhook -----------------------------------------------------------

	def _schedule_webhook(self, bundle: Bundle) -> None:
		if not self.webhook_enabled:
			Bundle.objects.filter(pk=bundle.pk).update(webhook_status=WebhookStatus.SKIPPED)
			return
		payload = {
			"event": "bundle.published",
			"nonce": bundle.nonce,
			"content_id": bundle.content_id,
			"anchor_tx_hash": bundle.anchor_tx_hash,
			"proposer": bundle.proposer,
			"intention_count": bundle.intention_count,
		}
		self._detach(self.deliver_webhook, bundle.pk, payload)

	def deliver_webhook(self, bundle_pk: int, payload: dict) -> str:
		rows = Bundle.objects.filter(pk=bundle_pk)
		try:
			self.notify(payload)
		except NodeError as e:
			rows.update(webhook_status=WebhookStatus.FAILED, webhook_error=e.message[:4000])
			logger.error("Webhook for bundle %s failed: %s", payload.get("nonce"), e.message)
			return WebhookStatus.FAILED
		rows.update(webhook_status=WebhookStatus.DELIVERED, webhook_error="")
		return WebhookStatus.DELIVERED

	def _detach(self, fn, *args) -> None:
		"""
		Run fn on the executor when there is one, inline otherwise.
		"""
		if self.executor is None:
			fn(*args)
			return
		self.executor.submit(self._in_worker, fn, *args)

	@staticmethod
	def _in_worker(fn, *args):
		try:
			return fn(*args)
		finally:
			close_old_connections()
