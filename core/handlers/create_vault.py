"""CreateVault: create a vault on-chain and mirror it locally.

The vault id comes from the VaultCreated event in the transaction receipt.
Seeding the new vault with initial grants is best-effort: by the time it runs
the vault exists on-chain and in the registry, so a seeding failure is recorded
on the vault row and never fails the intention.
"""

from core.exceptions import TransientInfraError
from core.models import SeedingStatus, Vault
from core.validators import validate_create_vault_structure


def _vault_id_from_receipt(ctx, receipt) -> int:
	for event in ctx.chain.parse_event_logs(receipt):
		if event["name"] == "VaultCreated":
			return int(event["args"]["vaultId"])
	raise TransientInfraError("Could not find VaultCreated event in transaction logs")


def handle_create_vault(intention: dict, controller: str, signature: str, ctx) -> dict:
	validate_create_vault_structure(intention)
	ctx.logger.info("Processing CreateVault intention for %s", controller)

	receipt = ctx.chain.create_vault(controller)
	vault_id = _vault_id_from_receipt(ctx, receipt)
	ctx.logger.info("On-chain vault created with ID: %s", vault_id)

	ctx.registry.create_vault(vault_id, controller)

	if ctx.schedule_seeding is None:
		seeding = SeedingStatus.SKIPPED
		Vault.objects.filter(pk=vault_id).update(seeding_status=seeding)
	else:
		try:
			seeding = ctx.schedule_seeding(vault_id)
			ctx.logger.info("Seeding for vault %s: %s", vault_id, seeding)
		except Exception as e:
			seeding = SeedingStatus.FAILED
			ctx.logger.exception("Seeding scheduling failed for vault %s", vault_id)
			Vault.objects.filter(pk=vault_id).update(seeding_status=seeding, seeding_error=str(e)[:2000])

	return {"status": "created", "vault_id": vault_id, "controller": controller, "seeding_status": str(seeding)}
