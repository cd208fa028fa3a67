from django.urls import path
from .views import simulate_deposit, deposits, vaults, anchors


urlpatterns = [
	path("deposit", simulate_deposit),
	path("deposits", deposits),
	path("vaults", vaults),
	path("anchors", anchors),
]
