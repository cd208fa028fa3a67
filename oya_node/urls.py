"""URL routing for the node API + local stubs (chain + storage).


The /api/ namespace exposes intention submission and bundle reads; /stub/* exposes
the deterministic stubs used by the adapters in development. In production, the
stubs are replaced by a JSON-RPC chain and real storage providers.
"""

from django.contrib import admin
from django.urls import path, include


urlpatterns = [
	path("admin/", admin.site.urls),
	path("api/", include("api.urls")),
	path("stub/chain/", include("chain_stub.urls")),
	path("stub/storage/", include("storage_stub.urls")),
]
