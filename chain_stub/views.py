"""HTTP endpoints for the chain stub mirroring what a block explorer would expose.

The node's StubChainAdapter reads these tables through the ORM; the endpoints
exist so a developer can simulate deposits and inspect vaults and anchors.
"""

import json
from django.db.models import Max
from django.http import JsonResponse, HttpResponseBadRequest
from django.views.decorators.csrf import csrf_exempt

from core.constants import is_address, normalize_address, to_amount, format_amount
from .models import StubDepositEvent, StubVault, StubBundleAnchor


@csrf_exempt
def simulate_deposit(request):
	"""
	POST: Record a deposit log entry in a new block; returns its block and tx hash
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = json.loads(request.body or b"{}")
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	depositor = body.get("depositor")
	token = body.get("token")
	if not is_address(depositor) or not is_address(token):
		return HttpResponseBadRequest("depositor and token must be addresses")
	try:
		amount = to_amount(body.get("amount"))
	except (TypeError, ValueError):
		return HttpResponseBadRequest("amount must be a decimal string")

	block = (StubDepositEvent.objects.aggregate(m=Max("block_number"))["m"] or 0) + 1
	tx_hash = body.get("tx_hash") or "0x%064x" % block
	ev = StubDepositEvent.objects.create(
		chain_id=int(body.get("chain_id", 11155111)),
		block_number=block,
		tx_hash=tx_hash,
		log_index=int(body.get("log_index", 0)),
		depositor=normalize_address(depositor),
		token=normalize_address(token),
		amount=amount,
	)
	return JsonResponse({"tx_hash": ev.tx_hash, "block_number": ev.block_number, "log_index": ev.log_index}, status=201)


def deposits(request):
	"""
	GET: Deposit log entries, oldest first
	"""
	qs = StubDepositEvent.objects.order_by("block_number", "log_index")
	data = [
		{
			"chain_id": ev.chain_id,
			"block_number": ev.block_number,
			"tx_hash": ev.tx_hash,
			"log_index": ev.log_index,
			"depositor": ev.depositor,
			"token": ev.token,
			"amount": format_amount(ev.amount),
		}
		for ev in qs
	]
	return JsonResponse(data, safe=False)


def vaults(request):
	"""
	GET: Vaults created on the stub chain and the next id it will allocate
	"""
	qs = StubVault.objects.order_by("id")
	next_id = (qs.aggregate(m=Max("id"))["m"] or 0) + 1
	return JsonResponse({
		"next_vault_id": next_id,
		"vaults": [{"vault_id": v.id, "controller": v.controller, "tx_hash": v.tx_hash} for v in qs],
	})


def anchors(request):
	"""
	GET: Bundle content ids proposed to the tracker, newest first
	"""
	qs = StubBundleAnchor.objects.order_by("-block_number")
	data = [
		{"content_id": a.content_id, "proposer": a.proposer, "tx_hash": a.tx_hash, "block_number": a.block_number}
		for a in qs
	]
	return JsonResponse(data, safe=False)
