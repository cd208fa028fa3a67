"""Transfer: move token balances between vaults.

The signer must control the source vault. The intention nonce must be above
the last one the source vault used, and the vault's unheld balance must cover
every token it sends. Both checks commit together: the nonce is recorded and
the amounts are reserved, and the reservation is settled when the bundle
carrying the execution persists.
"""

from django.db import transaction

from core.cache import CachedExecution
from core.constants import ZERO, ZERO_ADDRESS, is_native, normalize_address, to_amount
from core.exceptions import ValidationError
from core.validators import validate_transfer_structure, validate_vault_id_on_chain


def _token(asset: str) -> str:
	return ZERO_ADDRESS if is_native(asset) else normalize_address(asset)


def handle_transfer(intention: dict, controller: str, signature: str, ctx) -> dict:
	source = validate_transfer_structure(
		intention, lambda vault_id: validate_vault_id_on_chain(vault_id, ctx.chain.get_next_vault_id),
	)
	if controller not in ctx.registry.controllers_of(source):
		raise ValidationError("Signer does not control the source vault", "intention.from", source, controller=controller)

	totals = {}
	for inp in intention["inputs"]:
		token = _token(inp["asset"])
		totals[token] = totals.get(token, ZERO) + to_amount(inp["amount"])

	with transaction.atomic():
		ctx.registry.accept_nonce(source, intention["nonce"])
		reservations = ctx.balances.reserve(source, totals)

	proof = [
		{"token": _token(out["asset"]), "from": source, "to": out["to"], "amount": out["amount"]}
		for out in intention["outputs"]
	]
	execution = {"intention": intention, "from": source, "proof": proof, "signature": signature}
	size = ctx.cache.append(CachedExecution(execution=execution, reservations=reservations))
	ctx.logger.info("Transfer from vault %s cached with %s outputs (cache size %s)", source, len(proof), size)
	return {"status": "cached", "execution": execution}
