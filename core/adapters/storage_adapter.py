"""Content-addressed storage adapters.

upload(data) returns the content id under which the bytes can be fetched.
StubStorageAdapter keeps blobs in the storage_stub app; IpfsStorageAdapter
posts them to a pinning service.
"""

import hashlib
import logging

import requests

from storage_stub.models import StubObject
from core.exceptions import PublishError

logger = logging.getLogger(__name__)


class StubStorageAdapter:

	def upload(self, data: bytes, name: str = "bundle.json.gz") -> str:
		content_id = "bafk" + hashlib.sha256(data).hexdigest()
		StubObject.objects.get_or_create(content_id=content_id, defaults={"data": data, "size": len(data)})
		return content_id


class IpfsStorageAdapter:
	"""
	Pinning-service client. The response carries the CID under `cid`,
	`IpfsHash` or `hash` depending on the provider.
	"""

	def __init__(self, endpoint: str, token: str, timeout: float = 60):
		self.endpoint = endpoint.rstrip("/")
		self.token = token
		self.timeout = timeout

	def upload(self, data: bytes, name: str = "bundle.json.gz") -> str:
		headers = {"Authorization": self.token if self.token.lower().startswith("bearer ") else f"Bearer {self.token}"}
		files = {"file": (name, data, "application/gzip")}
		try:
			res = requests.post(self.endpoint, headers=headers, files=files, timeout=self.timeout)
		except requests.RequestException as e:
			raise PublishError(f"Pinning request failed: {e}")
		if res.status_code not in (200, 201):
			raise PublishError(f"Pinning service failed: {res.status_code} {res.text[:512]}", status=res.status_code)
		try:
			body = res.json()
		except ValueError:
			raise PublishError(f"Pinning service returned non-JSON: {res.text[:512]}", status=res.status_code)
		if not isinstance(body, dict):
			raise PublishError("Pinning response is not an object", status=res.status_code)
		cid = body.get("cid") or body.get("IpfsHash") or body.get("hash")
		if not cid:
			raise PublishError("Missing CID in pinning response")
		logger.info("Pinned %s (%s bytes) as %s", name, len(data), cid)
		return cid
