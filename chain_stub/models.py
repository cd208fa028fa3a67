"""In-process chain tables that simulate confirmed on-chain state.

- StubDepositEvent: transfers into protocol custody, as a deposit scan would see them
- StubVault: vaults created through the VaultTracker (id allocation lives here)
- StubBundleAnchor: bundle content ids proposed to the BundleTracker
"""

from django.db import models


class StubDepositEvent(models.Model):
	"""
	A deposit log entry. (tx_hash, log_index) identifies it like a real event log.
	"""
	id = models.BigAutoField(primary_key=True)
	chain_id = models.BigIntegerField()
	block_number = models.BigIntegerField()
	tx_hash = models.CharField(max_length=66)
	log_index = models.IntegerField(default=0)
	depositor = models.CharField(max_length=42)
	token = models.CharField(max_length=42)
	amount = models.DecimalField(max_digits=78, decimal_places=18)

	class Meta:
		unique_together = (("tx_hash", "log_index"),)


class StubVault(models.Model):
	"""
	On-chain vault. The auto id doubles as the allocated vault id.
	"""
	id = models.BigAutoField(primary_key=True)
	controller = models.CharField(max_length=42)
	tx_hash = models.CharField(max_length=66)
	created_at = models.DateTimeField(auto_now_add=True)


class StubBundleAnchor(models.Model):
	"""
	Bundle content id as recorded by the BundleTracker contract.
	"""
	id = models.BigAutoField(primary_key=True)
	content_id = models.CharField(max_length=200)
	proposer = models.CharField(max_length=42)
	tx_hash = models.CharField(max_length=66, unique=True)
	block_number = models.BigIntegerField()
	created_at = models.DateTimeField(auto_now_add=True)
