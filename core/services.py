"""Upward surface of the node.

submit_intention validates the envelope and dispatches to the action handler;
the bundle read paths serialize persisted bundles for the API.
"""

import json
import logging

from .exceptions import NotFound
from .handlers import HandlerContext, dispatch
from .models import Bundle
from .validators import validate_address, validate_intention, validate_signature

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def submit_intention(ctx: HandlerContext, intention: dict, signature: str, controller: str) -> dict:
	"""
	Validate the signed envelope and run the handler for intention["action"].
	Raises a NodeError subclass on rejection; nothing is cached in that case.
	"""
	signature = validate_signature(signature)
	controller = validate_address(controller, "from")
	validate_intention(intention)
	logger.info("Handling %s intention from %s (nonce %s)", intention["action"], controller, intention["nonce"])
	return dispatch(intention, controller, signature, ctx)


def serialize_bundle(bundle: Bundle, *, include_payload: bool = False) -> dict:
	data = {
		"nonce": bundle.nonce,
		"proposer": bundle.proposer,
		"signature": bundle.signature,
		"intention_count": bundle.intention_count,
		"content_id": bundle.content_id,
		"anchor_tx_hash": bundle.anchor_tx_hash or None,
		"published": bundle.is_published,
		"published_at": bundle.published_at.isoformat() if bundle.published_at else None,
		"publish_error": bundle.publish_error or None,
		"archival": {
			"status": bundle.archival_status,
			"tx_hash": bundle.archival_tx_hash or None,
			"piece_id": bundle.archival_piece_id or None,
			"confirmed_at": bundle.archival_confirmed_at.isoformat() if bundle.archival_confirmed_at else None,
			"error": bundle.archival_error or None,
		},
		"webhook_status": bundle.webhook_status,
		"created_at": bundle.created_at.isoformat(),
	}
	if include_payload:
		data["payload"] = json.loads(bytes(bundle.payload).decode("utf-8"))
	return data


def get_bundle_by_nonce(nonce: int) -> dict:
	bundle = Bundle.objects.filter(nonce=int(nonce)).first()
	if bundle is None:
		raise NotFound(f"bundle {nonce} not found", nonce=nonce)
	return serialize_bundle(bundle, include_payload=True)


def list_bundles(limit: int = 50, offset: int = 0) -> list[dict]:
	"""
	Newest first.
	"""
	limit = max(1, min(int(limit), MAX_PAGE_SIZE))
	offset = max(0, int(offset))
	return [serialize_bundle(b) for b in Bundle.objects.order_by("-nonce")[offset:offset + limit]]
