"""Initial token grants for newly created vaults.

The proposer signs a Transfer intention moving every SEED_CONFIG grant from
PROPOSER_VAULT_ID into the new vault and appends the execution to the cache,
so the grant ships in the next bundle like any other execution.
"""

import json
import logging

from .cache import CachedExecution
from .constants import normalize_address, to_amount
from .models import SeedingStatus, Vault
from .validators import TRANSFER

logger = logging.getLogger(__name__)


class VaultSeeder:

	def __init__(self, cache, chain, *, proposer_vault_id, grants: list[dict], chain_id: int):
		self.cache = cache
		self.chain = chain
		self.proposer_vault_id = int(proposer_vault_id) if proposer_vault_id not in (None, "") else None
		self.grants = [{"token": normalize_address(g["token"]), "amount": str(g["amount"])} for g in grants or []]
		self.chain_id = int(chain_id)
		for grant in self.grants:
			to_amount(grant["amount"])

	def build_intention(self, vault_id: int) -> dict:
		assets = [{"asset": g["token"], "amount": g["amount"], "chain_id": self.chain_id} for g in self.grants]
		return {
			"action": TRANSFER,
			"nonce": vault_id,
			"inputs": assets,
			"outputs": [{**a, "to": vault_id} for a in assets],
			"totalFee": [],
			"proposerTip": [],
			"protocolFee": [],
			"agentTip": [],
		}

	def __call__(self, vault_id: int) -> str:
		"""
		Append the seeding execution and record the outcome on the vault row.
		"""
		if self.proposer_vault_id is None or not self.grants:
			Vault.objects.filter(pk=vault_id).update(seeding_status=SeedingStatus.SKIPPED)
			logger.info("Seeding skipped for vault %s (no proposer vault or grants configured)", vault_id)
			return SeedingStatus.SKIPPED

		intention = self.build_intention(vault_id)
		signature = self.chain.sign_message(json.dumps(intention, separators=(",", ":")))
		execution = {
			"intention": intention,
			"from": self.proposer_vault_id,
			"proof": [
				{"token": g["token"], "from": self.proposer_vault_id, "to": vault_id, "amount": g["amount"]}
				for g in self.grants
			],
			"signature": signature,
		}
		self.cache.append(CachedExecution(execution=execution))
		Vault.objects.filter(pk=vault_id).update(seeding_status=SeedingStatus.SCHEDULED, seeding_error="")
		logger.info("Seeding intention scheduled for vault %s (%s grants)", vault_id, len(self.grants))
		return SeedingStatus.SCHEDULED
