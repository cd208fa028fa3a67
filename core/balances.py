"""Vault token balances.

Balances move only when a bundle is persisted: every proof in a persisted
execution credits its `to` vault, and the reservations a Transfer placed on
its source vault are settled (debited). Seeding grants carry no reservation,
so the proposer's treasury vault is never debited for them.
"""

import logging
from decimal import Decimal

from django.db import transaction

from .constants import ZERO, format_amount, normalize_address, to_amount
from .exceptions import InsufficientFunds
from .models import VaultBalance

logger = logging.getLogger(__name__)


class BalanceBook:

	def balance_of(self, vault_id: int, token: str) -> Decimal:
		row = VaultBalance.objects.filter(vault_id=int(vault_id), token=normalize_address(token)).first()
		return row.balance if row else ZERO

	def available(self, vault_id: int, token: str) -> Decimal:
		row = VaultBalance.objects.filter(vault_id=int(vault_id), token=normalize_address(token)).first()
		return row.balance - row.held if row else ZERO

	def balances_of(self, vault_id: int) -> dict[str, str]:
		rows = VaultBalance.objects.filter(vault_id=int(vault_id)).order_by("token")
		return {r.token: format_amount(r.balance) for r in rows}

	@transaction.atomic
	def reserve(self, vault_id: int, amounts: dict[str, Decimal]) -> list[dict]:
		"""
		Hold `amounts` (token -> amount) of the vault's unheld balance.
		All-or-nothing: an insufficient token rolls back every earlier hold.
		"""
		reservations = []
		for token, amount in amounts.items():
			if amount <= ZERO:
				continue
			token = normalize_address(token)
			row = VaultBalance.objects.select_for_update().filter(vault_id=int(vault_id), token=token).first()
			available = row.balance - row.held if row else ZERO
			if amount > available:
				raise InsufficientFunds(
					f"Insufficient balance in vault {vault_id} for {token}: {format_amount(available)} available, {format_amount(amount)} required",
					vault_id=vault_id, token=token, available=format_amount(available), required=format_amount(amount),
				)
			row.held = row.held + amount
			row.save(update_fields=["held", "updated_at"])
			reservations.append({"vault_id": int(vault_id), "token": token, "amount": amount})
		return reservations

	@transaction.atomic
	def release(self, reservation: dict) -> None:
		row = VaultBalance.objects.select_for_update().filter(vault_id=reservation["vault_id"], token=reservation["token"]).first()
		if row is None:
			return
		row.held = max(row.held - reservation["amount"], ZERO)
		row.save(update_fields=["held", "updated_at"])

	def release_all(self) -> int:
		"""
		Drop every reservation. Run at startup, when no cached Transfer can own one.
		"""
		released = VaultBalance.objects.filter(held__gt=0).update(held=0)
		if released:
			logger.warning("Released reservations on %s vault balances", released)
		return released

	@transaction.atomic
	def apply(self, execution: dict, reservations: list[dict]) -> None:
		"""
		Settle the execution's reservations, then credit each proof's `to` vault.
		"""
		for reservation in reservations:
			self._settle(reservation)
		for proof in execution.get("proof", []):
			self.credit(proof["to"], proof["token"], proof["amount"])

	@transaction.atomic
	def credit(self, vault_id: int, token: str, amount) -> Decimal:
		value = to_amount(amount)
		row, _ = VaultBalance.objects.select_for_update().get_or_create(
			vault_id=int(vault_id), token=normalize_address(token), defaults={"balance": ZERO},
		)
		row.balance = row.balance + value
		row.save(update_fields=["balance", "updated_at"])
		logger.info("Credited %s %s to vault %s (balance %s)", format_amount(value), row.token, vault_id, format_amount(row.balance))
		return row.balance

	def _settle(self, reservation: dict) -> None:
		row = VaultBalance.objects.select_for_update().filter(vault_id=reservation["vault_id"], token=reservation["token"]).first()
		amount = reservation["amount"]
		if row is None or row.held < amount or row.balance < amount:
			raise InsufficientFunds(
				f"Reservation of {format_amount(amount)} {reservation['token']} on vault {reservation['vault_id']} is no longer held",
				**{k: str(v) for k, v in reservation.items()},
			)
		row.balance = row.balance - amount
		row.held = row.held - amount
		row.save(update_fields=["balance", "held", "updated_at"])
