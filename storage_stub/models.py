"""Deterministic in-process content-addressed store and archival tier.

- StubObject: uploaded blobs keyed by a content id derived from their bytes
- StubArchivalUpload: archival deals; piece id and tx hash assigned on upload,
  confirmation happens later through the node's archival callback
"""

from django.db import models


class StubObject(models.Model):
	"""
	Blob in the stub store. Uploading the same bytes twice yields the same row.
	"""
	id = models.BigAutoField(primary_key=True)
	content_id = models.CharField(max_length=200, unique=True)
	data = models.BinaryField()
	size = models.BigIntegerField()
	created_at = models.DateTimeField(auto_now_add=True)


class StubArchivalUpload(models.Model):
	"""
	Archival deal for one content id.
	"""
	id = models.BigAutoField(primary_key=True)
	content_id = models.CharField(max_length=200, db_index=True)
	piece_id = models.CharField(max_length=200)
	tx_hash = models.CharField(max_length=66)
	size = models.BigIntegerField()
	confirmed = models.BooleanField(default=False)
	created_at = models.DateTimeField(auto_now_add=True)
