"""Database models for the node.


Tables:
- Deposit: append-only record of on-chain deposits discovered by the node
- DepositAssignment: allocation of (part of) a deposit to a vault / bundle
- DepositHold: reservation placed by a processed intention until its bundle persists
- Vault: vault id + rules, mirror of on-chain vault creation
- VaultController: (vault, controller address) pairs
- VaultBalance: per-vault token balance, credited and debited as bundles persist
- Bundle: nonce-ordered batch of executions and its publish/archival state
- Proposer: last time each proposer address anchored a bundle
"""

from django.db import models
from django.db.models import Q, F

from .constants import AMOUNT_MAX_DIGITS, AMOUNT_DECIMALS


def amount_field(**kwargs):
	return models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMALS, **kwargs)


class Deposit(models.Model):
	"""
	On-chain transfer into protocol custody.

	transfer_uid is unique so repeated discovery scans never double-ingest.
	remaining / held are maintained only inside the ledger's locked transactions.
	"""
	id = models.BigAutoField(primary_key=True)
	tx_hash = models.CharField(max_length=66)
	transfer_uid = models.CharField(max_length=200, unique=True)
	chain_id = models.BigIntegerField()
	depositor = models.CharField(max_length=42) # lowercased
	token = models.CharField(max_length=42) # lowercased; zero address = native asset
	amount = amount_field()
	remaining = amount_field()
	held = amount_field(default=0)
	block_number = models.BigIntegerField(null=True, blank=True)
	log_index = models.IntegerField(null=True, blank=True)
	assigned_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		indexes = [
			models.Index(fields=["depositor", "token", "chain_id", "id"], name="deposit_match_idx"),
		]
		constraints = [
			models.CheckConstraint(condition=Q(remaining__gte=0) & Q(remaining__lte=F("amount")), name="deposit_remaining_in_range"),
			models.CheckConstraint(condition=Q(held__gte=0), name="deposit_held_non_negative"),
		]


class DepositAssignment(models.Model):
	"""
	Assignment event. Sum of a deposit's assignments never exceeds its amount.
	"""
	id = models.BigAutoField(primary_key=True)
	deposit = models.ForeignKey(Deposit, on_delete=models.PROTECT, related_name="assignments")
	amount = amount_field()
	target_reference = models.CharField(max_length=200)
	created_at = models.DateTimeField(auto_now_add=True)


class DepositHoldStatus(models.TextChoices):
	ACTIVE = "active", "Active"
	COMMITTED = "committed", "Committed"
	RELEASED = "released", "Released"


class DepositHold(models.Model):
	"""
	Reservation of a deposit by a matched but not yet bundled intention.
	"""
	id = models.BigAutoField(primary_key=True)
	deposit = models.ForeignKey(Deposit, on_delete=models.PROTECT, related_name="holds")
	amount = amount_field()
	reference = models.CharField(max_length=200)
	status = models.CharField(max_length=16, choices=DepositHoldStatus.choices, default=DepositHoldStatus.ACTIVE)
	created_at = models.DateTimeField(auto_now_add=True)
	resolved_at = models.DateTimeField(null=True, blank=True)


class SeedingStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	SCHEDULED = "scheduled", "Scheduled"
	FAILED = "failed", "Failed"
	SKIPPED = "skipped", "Skipped"


class Vault(models.Model):
	"""
	Mirror of an on-chain vault. Rows are created only from a VaultCreated event.
	"""
	vault_id = models.BigIntegerField(primary_key=True)
	rules = models.TextField(null=True, blank=True)
	last_nonce = models.BigIntegerField(null=True, blank=True) # highest Transfer nonce accepted from this vault
	seeding_status = models.CharField(max_length=16, choices=SeedingStatus.choices, default=SeedingStatus.PENDING)
	seeding_error = models.TextField(blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)


class VaultController(models.Model):
	"""
	Address authorized to sign intentions for a vault. Stored lowercased.
	"""
	id = models.BigAutoField(primary_key=True)
	vault = models.ForeignKey(Vault, on_delete=models.CASCADE, related_name="controller_rows")
	address = models.CharField(max_length=42, db_index=True)
	added_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		unique_together = (("vault", "address"),)


class ArchivalStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	UPLOADING = "uploading", "Uploading"
	CONFIRMED = "confirmed", "Confirmed"
	FAILED = "failed", "Failed"
	SKIPPED = "skipped", "Skipped"


class WebhookStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	DELIVERED = "delivered", "Delivered"
	FAILED = "failed", "Failed"
	SKIPPED = "skipped", "Skipped"


class Bundle(models.Model):
	"""
	Nonce-tagged batch of executions. payload holds the exact signed JSON bytes.
	"""
	id = models.BigAutoField(primary_key=True)
	nonce = models.BigIntegerField(unique=True)
	payload = models.BinaryField()
	proposer = models.CharField(max_length=42)
	signature = models.CharField(max_length=200)
	intention_count = models.IntegerField(default=0)
	content_id = models.CharField(max_length=200, null=True, blank=True, db_index=True)
	anchor_tx_hash = models.CharField(max_length=100, blank=True, default="")
	published_at = models.DateTimeField(null=True, blank=True)
	publish_error = models.TextField(blank=True, default="")
	publishing = models.BooleanField(default=False) # claimed by a publisher
	archival_status = models.CharField(max_length=16, choices=ArchivalStatus.choices, default=ArchivalStatus.PENDING, db_index=True)
	archival_tx_hash = models.CharField(max_length=100, blank=True, default="")
	archival_piece_id = models.CharField(max_length=200, blank=True, default="")
	archival_confirmed_at = models.DateTimeField(null=True, blank=True)
	archival_error = models.TextField(blank=True, default="")
	webhook_status = models.CharField(max_length=16, choices=WebhookStatus.choices, default=WebhookStatus.PENDING)
	webhook_error = models.TextField(blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		ordering = ["-nonce"]

	@property
	def is_published(self) -> bool:
		return bool(self.content_id) and bool(self.anchor_tx_hash)


class Proposer(models.Model):
	"""
	Proposer activity: refreshed after every successful on-chain anchor.
	"""
	id = models.BigAutoField(primary_key=True)
	address = models.CharField(max_length=42, unique=True)
	last_seen = models.DateTimeField()


class VaultBalance(models.Model):
	"""
	Token balance of a vault. `held` is reserved by cached Transfer intentions
	and is settled or released when their bundle persists or is dropped.
	vault_id is not a foreign key: the proposer's treasury vault has no registry row.
	"""
	id = models.BigAutoField(primary_key=True)
	vault_id = models.BigIntegerField()
	token = models.CharField(max_length=42) # lowercased
	balance = amount_field(default=0)
	held = amount_field(default=0)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		unique_together = (("vault_id", "token"),)
		constraints = [
			models.CheckConstraint(condition=Q(held__gte=0) & Q(held__lte=F("balance")), name="vault_balance_held_in_range"),
		]
