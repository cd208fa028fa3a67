"""Archival tier adapters.

An archival upload reports progress through callbacks:
- on_complete(piece_id): the provider has the data
- on_tx_submitted(tx_hash): the storage deal transaction was sent
- on_confirmed(): the deal is confirmed (may instead arrive later through the
  node's signed archival callback endpoint)
"""

import hashlib
import logging

import requests

from storage_stub.models import StubArchivalUpload
from core.exceptions import TransientInfraError

logger = logging.getLogger(__name__)


class StubArchivalAdapter:

	def __init__(self, max_bytes: int, auto_confirm: bool = True):
		self.max_bytes = max_bytes
		self.auto_confirm = auto_confirm

	def check_readiness(self, size: int) -> tuple[bool, str]:
		if size > self.max_bytes:
			return False, f"payload of {size} bytes exceeds archival limit of {self.max_bytes}"
		return True, ""

	def upload(self, data: bytes, content_id: str, *, on_complete, on_tx_submitted, on_confirmed) -> None:
		digest = hashlib.sha256(data).hexdigest()
		upload = StubArchivalUpload.objects.create(
			content_id=content_id,
			piece_id="baga" + digest[:56],
			tx_hash="0x" + hashlib.sha256(digest.encode()).hexdigest(),
			size=len(data),
		)
		on_complete(upload.piece_id)
		on_tx_submitted(upload.tx_hash)
		if self.auto_confirm:
			upload.confirmed = True
			upload.save(update_fields=["confirmed"])
			on_confirmed()


class HttpArchivalAdapter:
	"""
	Archival provider reached over HTTP with a bearer token. Confirmation is
	reported asynchronously through the callback endpoint unless the upload
	response already says so.
	"""

	def __init__(self, url: str, token: str, timeout: float = 120):
		self.url = url.rstrip("/")
		self.token = token
		self.timeout = timeout

	def _headers(self) -> dict:
		return {"Authorization": f"Bearer {self.token}"}

	def check_readiness(self, size: int) -> tuple[bool, str]:
		try:
			res = requests.get(f"{self.url}/readiness", params={"size": size}, headers=self._headers(), timeout=30)
			res.raise_for_status()
		except requests.RequestException as e:
			raise TransientInfraError(f"Archival readiness check failed: {e}")
		body = res.json()
		return bool(body.get("ready")), body.get("reason") or ""

	def upload(self, data: bytes, content_id: str, *, on_complete, on_tx_submitted, on_confirmed) -> None:
		try:
			res = requests.post(
				f"{self.url}/uploads",
				params={"content_id": content_id},
				data=data,
				headers={**self._headers(), "Content-Type": "application/octet-stream"},
				timeout=self.timeout,
			)
			res.raise_for_status()
		except requests.RequestException as e:
			raise TransientInfraError(f"Archival upload failed: {e}")
		body = res.json()
		if body.get("piece_id"):
			on_complete(body["piece_id"])
		if body.get("tx_hash"):
			on_tx_submitted(body["tx_hash"])
		if body.get("confirmed"):
			on_confirmed()
		logger.info("Archival upload for %s accepted (piece=%s)", content_id, body.get("piece_id"))
