"""Vault registry: local mirror of on-chain vaults and their controllers.

Vault rows are insert-only (the chain allocates vault ids); controllers and
rules are update-only on existing vaults. Addresses are stored lowercased.
"""

import logging

from django.db import transaction, IntegrityError

from .constants import is_address, normalize_address
from .exceptions import AlreadyExists, NotFound, StaleNonce, ValidationError
from .models import Vault, VaultController

logger = logging.getLogger(__name__)


class VaultRegistry:

	@transaction.atomic
	def create_vault(self, vault_id: int, initial_controller: str, rules: str | None = None) -> Vault:
		"""
		Mirror an on-chain vault creation. Fails with AlreadyExists if the id is taken.
		"""
		controller = self._address(initial_controller)
		try:
			with transaction.atomic():
				vault = Vault.objects.create(vault_id=int(vault_id), rules=rules)
		except IntegrityError:
			raise AlreadyExists(f"vault {vault_id} already exists", vault_id=vault_id)
		VaultController.objects.create(vault=vault, address=controller)
		logger.info("Inserted controllers for new vault %s: [%s]", vault_id, controller)
		return vault

	@transaction.atomic
	def add_controller(self, vault_id: int, address: str) -> list[str]:
		vault = self._lock(vault_id)
		VaultController.objects.get_or_create(vault=vault, address=self._address(address))
		return self._controllers(vault)

	@transaction.atomic
	def remove_controller(self, vault_id: int, address: str) -> list[str]:
		"""
		Removing a non-member is a no-op; the vault must exist.
		"""
		vault = self._lock(vault_id)
		VaultController.objects.filter(vault=vault, address=normalize_address(address)).delete()
		return self._controllers(vault)

	@transaction.atomic
	def set_rules(self, vault_id: int, rules: str | None) -> str | None:
		vault = self._lock(vault_id)
		vault.rules = rules
		vault.save(update_fields=["rules", "updated_at"])
		return vault.rules

	@transaction.atomic
	def accept_nonce(self, vault_id: int, nonce: int) -> int:
		"""
		Record `nonce` as the vault's latest. Nonces must strictly increase per vault.
		"""
		vault = self._lock(vault_id)
		if vault.last_nonce is not None and nonce <= vault.last_nonce:
			raise StaleNonce(
				f"nonce {nonce} already used for vault {vault_id} (last {vault.last_nonce})",
				vault_id=vault_id, nonce=nonce, last_nonce=vault.last_nonce,
			)
		vault.last_nonce = nonce
		vault.save(update_fields=["last_nonce", "updated_at"])
		return nonce

	def controllers_of(self, vault_id: int) -> list[str]:
		return list(
			VaultController.objects.filter(vault_id=int(vault_id)).order_by("id").values_list("address", flat=True)
		)

	def vaults_of(self, address: str) -> list[int]:
		return list(
			VaultController.objects.filter(address=normalize_address(address)).order_by("vault_id").values_list("vault_id", flat=True)
		)

	def rules_of(self, vault_id: int) -> str | None:
		vault = Vault.objects.filter(pk=int(vault_id)).first()
		if vault is None:
			raise NotFound(f"vault {vault_id} not found", vault_id=vault_id)
		return vault.rules

	def exists(self, vault_id: int) -> bool:
		return Vault.objects.filter(pk=int(vault_id)).exists()

	def _lock(self, vault_id: int) -> Vault:
		try:
			return Vault.objects.select_for_update().get(pk=int(vault_id))
		except Vault.DoesNotExist:
			raise NotFound(f"vault {vault_id} not found", vault_id=vault_id)

	def _controllers(self, vault: Vault) -> list[str]:
		return list(vault.controller_rows.order_by("id").values_list("address", flat=True))

	def _address(self, address: str) -> str:
		if not is_address(address):
			raise ValidationError("Invalid Ethereum address", "controller", address)
		return normalize_address(address)
