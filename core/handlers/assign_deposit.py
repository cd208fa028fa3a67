"""AssignDeposit: credit on-chain deposits to vaults.

For every (input, output) pair the handler scans the chain for the controller's
deposits, picks the oldest one whose unheld remaining covers the input amount
and places a hold on it. Holds become assignments when the bundle carrying the
execution is persisted. All-or-nothing: a failed pair releases every hold the
intention placed.
"""

import json
import uuid

from core.cache import CachedExecution
from core.constants import ZERO_ADDRESS, format_amount, is_native, normalize_address, to_amount
from core.exceptions import InsufficientFunds, InsufficientRemaining, NoMatchingDeposit
from core.validators import validate_assign_deposit_structure, validate_vault_id_on_chain

HOLD_ATTEMPTS = 3


def _block_hints(data) -> tuple[str | None, str | None]:
	"""
	Optional {"fromBlock": "0x..", "toBlock": "0x.."} carried in input.data.
	Malformed hints are ignored.
	"""
	if not data:
		return None, None
	try:
		parsed = json.loads(data) if isinstance(data, str) else data
	except ValueError:
		return None, None
	if not isinstance(parsed, dict):
		return None, None
	start, end = parsed.get("fromBlock"), parsed.get("toBlock")
	return (start if isinstance(start, str) else None), (end if isinstance(end, str) else None)


def _hold_matching_deposit(ctx, *, depositor: str, token: str, chain_id: int, amount, reference: str):
	"""
	Find-then-hold, retried when a concurrent intention holds the match first.
	"""
	for _ in range(HOLD_ATTEMPTS):
		match = ctx.ledger.find_with_sufficient_remaining(depositor, token, chain_id, amount)
		if match is None:
			break
		try:
			return ctx.ledger.hold(match.id, amount, reference)
		except InsufficientRemaining:
			ctx.logger.info("Deposit %s was held concurrently, retrying match", match.id)

	available = ctx.ledger.total_available(depositor, token, chain_id)
	if available < amount:
		raise InsufficientFunds(
			f"Insufficient deposits for asset {token}: {format_amount(available)} available, {format_amount(amount)} required",
			token=token, available=format_amount(available), required=format_amount(amount),
		)
	raise NoMatchingDeposit(
		f"No deposit with sufficient remaining found for asset {token} amount {format_amount(amount)}",
		token=token, amount=format_amount(amount),
	)


def handle_assign_deposit(intention: dict, controller: str, signature: str, ctx) -> dict:
	validate_assign_deposit_structure(
		intention, lambda vault_id: validate_vault_id_on_chain(vault_id, ctx.chain.get_next_vault_id),
	)

	reference = f"assign:{controller}:{intention['nonce']}:{uuid.uuid4().hex[:12]}"
	holds = []
	proof = []
	try:
		for inp, out in zip(intention["inputs"], intention["outputs"]):
			token = ZERO_ADDRESS if is_native(inp["asset"]) else normalize_address(inp["asset"])
			amount = to_amount(inp["amount"])
			from_block, to_block = _block_hints(inp.get("data"))
			ctx.chain.discover_deposits(token, inp["chain_id"], from_block, to_block)

			hold = _hold_matching_deposit(
				ctx, depositor=controller, token=token, chain_id=inp["chain_id"], amount=amount, reference=reference,
			)
			holds.append(hold)
			proof.append({
				"token": token,
				"to": out["to"],
				"amount": inp["amount"],
				"deposit_id": hold.deposit_id,
				"depositor": controller,
			})
	except Exception:
		for hold in holds:
			ctx.ledger.release_hold(hold.id)
		raise

	execution = {"intention": intention, "from": 0, "proof": proof, "signature": signature}
	size = ctx.cache.append(CachedExecution(execution=execution, hold_ids=[h.id for h in holds]))
	ctx.logger.info("AssignDeposit cached with proof count %s (cache size %s)", len(proof), size)
	return {"status": "cached", "execution": execution}
