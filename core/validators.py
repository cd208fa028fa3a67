"""Structural validation of inbound intentions.

Addresses come back lowercased; every failure raises core.exceptions.ValidationError
with the offending field so the API can report it.
"""

import re

from .constants import is_address, normalize_address, to_amount, ZERO
from .exceptions import ValidationError

_SIGNATURE_RE = re.compile(r"^0x[a-fA-F0-9]{130}$")

ASSIGN_DEPOSIT = "AssignDeposit"
CREATE_VAULT = "CreateVault"
TRANSFER = "Transfer"


def validate_address(address, field: str) -> str:
	if not address:
		raise ValidationError("Address is required", field, address)
	if not is_address(address):
		raise ValidationError("Invalid Ethereum address", field, address)
	return normalize_address(address)


def validate_signature(signature) -> str:
	"""
	Ethereum signatures are 65 bytes: 0x + 130 hex chars.
	"""
	if not signature:
		raise ValidationError("Signature is required", "signature", signature)
	if not isinstance(signature, str) or not _SIGNATURE_RE.match(signature):
		raise ValidationError("Invalid signature format or length", "signature", signature)
	return signature


def validate_amount(amount, field: str) -> str:
	try:
		to_amount(amount)
	except (TypeError, ValueError):
		raise ValidationError("Invalid amount format or precision", field, amount)
	return str(amount)


def validate_id(value, field: str) -> int:
	if isinstance(value, bool) or not isinstance(value, int):
		raise ValidationError("ID must be an integer", field, value)
	if value < 0:
		raise ValidationError("ID cannot be negative", field, value)
	return value


def _fee_list(intention: dict, name: str) -> list:
	value = intention.get(name, [])
	if value is None:
		return []
	if not isinstance(value, list):
		raise ValidationError(f"{name} must be an array", f"intention.{name}", value)
	return value


def validate_intention(intention) -> dict:
	"""
	Common shape: action, nonce, inputs/outputs arrays of token amounts.
	"""
	if not isinstance(intention, dict):
		raise ValidationError("Intention must be an object", "intention", intention)
	action = intention.get("action")
	if not isinstance(action, str) or not action:
		raise ValidationError("Intention action is required", "intention.action", action)
	validate_id(intention.get("nonce"), "intention.nonce")

	for side in ("inputs", "outputs"):
		items = intention.get(side)
		if not isinstance(items, list):
			raise ValidationError(f"{side} must be an array", f"intention.{side}", items)
		for i, item in enumerate(items):
			if not isinstance(item, dict):
				raise ValidationError("Token amount must be an object", f"intention.{side}[{i}]", item)
			validate_address(item.get("asset"), f"intention.{side}[{i}].asset")
			validate_amount(item.get("amount"), f"intention.{side}[{i}].amount")
			validate_id(item.get("chain_id"), f"intention.{side}[{i}].chain_id")
	return intention


def validate_assign_deposit_structure(intention: dict, validate_vault_id) -> None:
	"""
	1:1 inputs/outputs with matching asset, amount and chain; zero fees; every
	outputs[i].to must be a vault id that exists on-chain.
	"""
	validate_intention(intention)
	inputs, outputs = intention["inputs"], intention["outputs"]
	if not inputs:
		raise ValidationError("AssignDeposit requires at least one input", "intention.inputs", inputs)
	if len(inputs) != len(outputs):
		raise ValidationError(
			"AssignDeposit requires 1:1 mapping between inputs and outputs",
			"intention", {"inputs": len(inputs), "outputs": len(outputs)},
		)

	for fee in _fee_list(intention, "totalFee"):
		if not isinstance(fee, dict):
			raise ValidationError("Fee must be an object", "intention.totalFee", fee)
		if to_amount(validate_amount(fee.get("amount"), "intention.totalFee")) != ZERO:
			raise ValidationError("AssignDeposit totalFee must be zero", "intention.totalFee", intention.get("totalFee"))
	for name in ("proposerTip", "protocolFee", "agentTip"):
		if _fee_list(intention, name):
			raise ValidationError(f"AssignDeposit {name} must be empty", f"intention.{name}", intention.get(name))

	for i, (inp, out) in enumerate(zip(inputs, outputs)):
		if out.get("to_external") is not None:
			raise ValidationError("AssignDeposit does not support to_external", f"intention.outputs[{i}].to_external", out.get("to_external"))
		if out.get("to") is None:
			raise ValidationError("AssignDeposit requires outputs[].to (vault ID)", f"intention.outputs[{i}].to", out)
		if normalize_address(inp["asset"]) != normalize_address(out["asset"]):
			raise ValidationError("AssignDeposit input/output asset mismatch", f"intention.inputs[{i}].asset", {"input": inp["asset"], "output": out["asset"]})
		if to_amount(inp["amount"]) != to_amount(out["amount"]):
			raise ValidationError("AssignDeposit input/output amount mismatch", f"intention.inputs[{i}].amount", {"input": inp["amount"], "output": out["amount"]})
		if inp["chain_id"] != out["chain_id"]:
			raise ValidationError("AssignDeposit input/output chain_id mismatch", f"intention.inputs[{i}].chain_id", {"input": inp["chain_id"], "output": out["chain_id"]})
		validate_vault_id(validate_id(out["to"], f"intention.outputs[{i}].to"))


def validate_create_vault_structure(intention: dict) -> None:
	"""
	CreateVault moves no assets: inputs, outputs and every fee list must be empty.
	"""
	validate_intention(intention)
	for name in ("inputs", "outputs", "totalFee", "proposerTip", "protocolFee", "agentTip"):
		if _fee_list(intention, name):
			raise ValidationError(f"CreateVault {name} must be empty", f"intention.{name}", intention.get(name))


def validate_vault_id_on_chain(vault_id: int, get_next_vault_id) -> None:
	"""
	A vault exists on-chain iff its id lies in [0, nextVaultId - 1].
	"""
	validate_id(vault_id, "vaultId")
	next_id = get_next_vault_id()
	if vault_id >= next_id:
		raise ValidationError("Vault ID does not exist on-chain", "vaultId", vault_id, next_vault_id=next_id)


def validate_transfer_structure(intention: dict, validate_vault_id) -> int:
	"""
	Vault-to-vault move. `from` names the source vault; every output needs a
	`to` vault that exists on-chain. Inputs and outputs must balance per
	(asset, chain) and fees must be zero. Returns the source vault id.
	"""
	validate_intention(intention)
	source = validate_id(intention.get("from"), "intention.from")
	inputs, outputs = intention["inputs"], intention["outputs"]
	if not inputs:
		raise ValidationError("Transfer requires at least one input", "intention.inputs", inputs)
	if not outputs:
		raise ValidationError("Transfer requires at least one output", "intention.outputs", outputs)

	for fee in _fee_list(intention, "totalFee"):
		if not isinstance(fee, dict):
			raise ValidationError("Fee must be an object", "intention.totalFee", fee)
		if to_amount(validate_amount(fee.get("amount"), "intention.totalFee")) != ZERO:
			raise ValidationError("Transfer totalFee must be zero", "intention.totalFee", intention.get("totalFee"))
	for name in ("proposerTip", "protocolFee", "agentTip"):
		if _fee_list(intention, name):
			raise ValidationError(f"Transfer {name} must be empty", f"intention.{name}", intention.get(name))

	totals = {}
	for side, sign in (("inputs", 1), ("outputs", -1)):
		for i, item in enumerate(intention[side]):
			amount = to_amount(item["amount"])
			if amount == ZERO:
				raise ValidationError("Transfer amounts must be positive", f"intention.{side}[{i}].amount", item["amount"])
			key = (normalize_address(item["asset"]), item["chain_id"])
			totals[key] = totals.get(key, ZERO) + sign * amount

	for i, out in enumerate(outputs):
		if out.get("to_external") is not None:
			raise ValidationError("Transfer does not support to_external", f"intention.outputs[{i}].to_external", out.get("to_external"))
		if out.get("to") is None:
			raise ValidationError("Transfer requires outputs[].to (vault ID)", f"intention.outputs[{i}].to", out)
		validate_vault_id(validate_id(out["to"], f"intention.outputs[{i}].to"))

	for (asset, chain_id), diff in totals.items():
		if diff != ZERO:
			raise ValidationError(
				"Transfer inputs and outputs must balance per asset",
				"intention", {"asset": asset, "chain_id": chain_id},
			)
	return source
