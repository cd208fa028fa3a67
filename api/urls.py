"""Public API surface of the node.

- /intention: submit a signed intention
- /bundles, /bundles/<nonce>: bundle history
- /vaults/<id>, /controllers/<address>/vaults, /deposits: registry and ledger reads
- /webhooks/archival: signed archival confirmation callback
"""

from django.urls import path
from .views_ops import health, intention, archival_callback
from .views_read import bundles, bundle_detail, vault_detail, controller_vaults, deposits


urlpatterns = [
	path("health", health),
	path("intention", intention),
	path("bundles", bundles),
	path("bundles/<int:nonce>", bundle_detail),
	path("vaults/<int:vault_id>", vault_detail),
	path("controllers/<str:address>/vaults", controller_vaults),
	path("deposits", deposits),
	path("webhooks/archival", archival_callback, name="archival_callback"),
]
