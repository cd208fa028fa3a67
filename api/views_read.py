"""Read-only endpoints: bundles, vaults and deposits."""

from django.http import JsonResponse, HttpResponseBadRequest

from core.constants import format_amount, is_address, normalize_address
from core.models import Deposit, Vault
from core.runtime import get_runtime
from core.services import get_bundle_by_nonce, list_bundles
from .views_ops import node_view


def bundles(request):
	"""
	GET: Bundles, newest nonce first. ?limit=&offset=
	"""
	try:
		limit = int(request.GET.get("limit", 50))
		offset = int(request.GET.get("offset", 0))
	except ValueError:
		return HttpResponseBadRequest("limit and offset must be integers")
	return JsonResponse(list_bundles(limit, offset), safe=False)


@node_view
def bundle_detail(request, nonce: int):
	"""
	GET: One bundle including its signed payload
	"""
	return JsonResponse(get_bundle_by_nonce(nonce))


@node_view
def vault_detail(request, vault_id: int):
	"""
	GET: Controllers, rules, last accepted nonce, token balances and seeding outcome of a vault
	"""
	runtime = get_runtime()
	vault = Vault.objects.filter(pk=vault_id).first()
	if vault is None:
		return JsonResponse({"error": f"vault {vault_id} not found", "code": "not_found"}, status=404)
	return JsonResponse({
		"vault_id": vault.vault_id,
		"controllers": runtime.registry.controllers_of(vault_id),
		"rules": vault.rules,
		"last_nonce": vault.last_nonce,
		"balances": runtime.balances.balances_of(vault_id),
		"seeding_status": vault.seeding_status,
		"seeding_error": vault.seeding_error or None,
	})


@node_view
def controller_vaults(request, address: str):
	"""
	GET: Vault ids controlled by an address
	"""
	if not is_address(address):
		return HttpResponseBadRequest("Invalid Ethereum address")
	return JsonResponse({"address": normalize_address(address), "vaults": get_runtime().registry.vaults_of(address)})


@node_view
def deposits(request):
	"""
	GET: Deposits of ?depositor=&token=&chain_id= oldest first, with the unheld total
	"""
	depositor, token = request.GET.get("depositor", ""), request.GET.get("token", "")
	if not is_address(depositor) or not is_address(token):
		return HttpResponseBadRequest("depositor and token must be addresses")
	try:
		chain_id = int(request.GET.get("chain_id", ""))
	except ValueError:
		return HttpResponseBadRequest("chain_id must be an integer")

	ledger = get_runtime().ledger
	rows = Deposit.objects.filter(
		depositor=normalize_address(depositor), token=normalize_address(token), chain_id=chain_id,
	).order_by("id")[:200]
	return JsonResponse({
		"total_available": format_amount(ledger.total_available(depositor, token, chain_id)),
		"deposits": [
			{
				"id": d.id,
				"tx_hash": d.tx_hash,
				"amount": format_amount(d.amount),
				"remaining": format_amount(d.remaining),
				"held": format_amount(d.held),
				"assigned_at": d.assigned_at.isoformat() if d.assigned_at else None,
			}
			for d in rows
		],
	})
