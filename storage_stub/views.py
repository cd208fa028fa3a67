"""HTTP endpoints for the storage stub.

The adapters use ORM access for determinism; these endpoints mirror what a
gateway and an archival provider would expose (fetch by content id, list deals).
"""

from django.http import HttpResponse, JsonResponse, Http404
from .models import StubObject, StubArchivalUpload


def get_object(request, content_id: str):
	"""
	GET: Raw bytes stored under a content id
	"""
	obj = StubObject.objects.filter(content_id=content_id).first()
	if obj is None:
		raise Http404("unknown content id")
	return HttpResponse(bytes(obj.data), content_type="application/octet-stream")


def archival_uploads(request):
	"""
	GET: Archival deals, newest first
	"""
	qs = StubArchivalUpload.objects.order_by("-id")[:100]
	data = [
		{
			"content_id": u.content_id,
			"piece_id": u.piece_id,
			"tx_hash": u.tx_hash,
			"size": u.size,
			"confirmed": u.confirmed,
			"created_at": u.created_at.isoformat(),
		}
		for u in qs
	]
	return JsonResponse(data, safe=False)
