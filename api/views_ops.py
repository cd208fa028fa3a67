"""Operational endpoints that move the node forward (intentions, archival callbacks)."""

import functools, hmac, json, hashlib
from django.conf import settings
from django.http import JsonResponse, HttpResponseBadRequest, HttpResponseForbidden
from django.views.decorators.csrf import csrf_exempt

from core.exceptions import (
	NodeError, ValidationError, NotFound, ConflictError, NoMatchingDeposit, InsufficientFunds, InsufficientRemaining, TransientInfraError,
)
from core.runtime import get_runtime
from core.services import submit_intention


def error_response(e: NodeError) -> JsonResponse:
	"""
	Map the node's error taxonomy onto HTTP statuses.
	"""
	if isinstance(e, ValidationError):
		status = 400
	elif isinstance(e, NotFound):
		status = 404
	elif isinstance(e, ConflictError):
		status = 409
	elif isinstance(e, (NoMatchingDeposit, InsufficientFunds, InsufficientRemaining)):
		status = 422
	elif isinstance(e, TransientInfraError):
		status = 503
	else:
		status = 500
	body = {"error": e.message, "code": e.code}
	if isinstance(e, ValidationError) and e.field:
		body["field"] = e.field
	return JsonResponse(body, status=status)


def node_view(view):
	"""
	Render any NodeError the view raises, including a missing runtime (503).
	"""
	@functools.wraps(view)
	def wrapper(request, *args, **kwargs):
		try:
			return view(request, *args, **kwargs)
		except NodeError as e:
			return error_response(e)
	return wrapper


@node_view
def health(request):
	"""
	GET: Liveness plus the sequencer state and last database check
	"""
	runtime = get_runtime()
	monitor = runtime.health
	return JsonResponse({
		"ok": monitor is None or monitor.last_error is None,
		"sequencer": runtime.sequencer.state.value,
		"cached_intentions": len(runtime.cache),
		"db_error": monitor.last_error if monitor else None,
	})


@csrf_exempt
@node_view
def intention(request):
	"""
	POST: {"intention": {...}, "signature": "0x...", "from": "0x..."}
	Runs the action handler; 200 with its result or a JSON error.
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = json.loads(request.body or b"{}")
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	if not isinstance(body, dict):
		return HttpResponseBadRequest("Body must be an object")

	result = submit_intention(get_runtime().context, body.get("intention"), body.get("signature"), body.get("from"))
	return JsonResponse(result)


# --- Helpers -----------------------------------------------------------------

def _hmac_valid(raw_body: bytes, provided_sig: str, secret: str) -> bool:
	mac = hmac.new(key=secret.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha256)
	return hmac.compare_digest(mac.hexdigest(), provided_sig or "")


# --- Webhooks ----------------------------------------------------------------

@csrf_exempt
@node_view
def archival_callback(request):
	"""
	Archival provider reports the outcome of an upload. HMAC-SHA256 of the raw
	body in X-Signature.
	Body: {"content_id": "...", "status": "confirmed"|"failed", "piece_id": "...", "tx_hash": "...", "error": "..."}
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST required")

	secret = settings.ARCHIVAL_CALLBACK_SECRET
	raw = request.body or b""
	if not secret or not _hmac_valid(raw, request.headers.get("X-Signature", ""), secret):
		return HttpResponseForbidden("Bad signature")
	try:
		payload = json.loads(raw.decode("utf-8"))
		content_id = str(payload["content_id"])
	except (ValueError, KeyError, TypeError):
		return HttpResponseBadRequest("Invalid payload")

	pipeline = get_runtime().pipeline
	status = str(payload.get("status", "confirmed")).lower()
	if status == "confirmed":
		updated = pipeline.confirm_archival(content_id, piece_id=payload.get("piece_id"), tx_hash=payload.get("tx_hash"))
	elif status == "failed":
		updated = pipeline.fail_archival(content_id, payload.get("error") or "")
	else:
		return HttpResponseBadRequest("status must be confirmed or failed")
	return JsonResponse({"ok": True, "updated": updated})
