"""Startup validation of node settings. Runs once, before anything is started."""

from django.conf import settings

from .constants import is_address, to_amount
from .exceptions import FatalConfigError


def _require(names: list[str]) -> None:
	missing = [n for n in names if not getattr(settings, n, "")]
	if missing:
		raise FatalConfigError(f"Missing required settings: {', '.join(missing)}", missing=missing)


def validate_node_settings() -> None:
	if not is_address(settings.PROPOSER_ADDRESS):
		raise FatalConfigError("PROPOSER_ADDRESS must be an Ethereum address")

	if settings.CHAIN_BACKEND == "web3":
		_require(["RPC_URL", "PROPOSER_KEY", "VAULT_TRACKER_ADDRESS", "BUNDLE_TRACKER_ADDRESS", "DEPOSIT_CONTRACT_ADDRESS"])
	elif settings.CHAIN_BACKEND != "stub":
		raise FatalConfigError(f"Unknown CHAIN_BACKEND {settings.CHAIN_BACKEND!r}")

	if settings.STORAGE_BACKEND == "ipfs":
		_require(["PINNER_ENDPOINT", "PINNER_TOKEN"])
	elif settings.STORAGE_BACKEND != "stub":
		raise FatalConfigError(f"Unknown STORAGE_BACKEND {settings.STORAGE_BACKEND!r}")

	if settings.ARCHIVAL_BACKEND == "http":
		_require(["ARCHIVAL_URL", "ARCHIVAL_TOKEN", "ARCHIVAL_CALLBACK_SECRET"])
	elif settings.ARCHIVAL_BACKEND not in ("stub", "disabled"):
		raise FatalConfigError(f"Unknown ARCHIVAL_BACKEND {settings.ARCHIVAL_BACKEND!r}")

	if settings.WEBHOOK_URL and not settings.WEBHOOK_SECRET:
		raise FatalConfigError("WEBHOOK_URL is set but WEBHOOK_SECRET is missing")

	if settings.PROPOSER_VAULT_ID not in ("", None):
		try:
			int(settings.PROPOSER_VAULT_ID)
		except ValueError:
			raise FatalConfigError("PROPOSER_VAULT_ID must be an integer")
	for grant in settings.SEED_CONFIG:
		if not is_address(grant.get("token")):
			raise FatalConfigError(f"SEED_CONFIG token {grant.get('token')!r} is not an address")
		try:
			to_amount(str(grant.get("amount")))
		except (TypeError, ValueError):
			raise FatalConfigError(f"SEED_CONFIG amount {grant.get('amount')!r} is not a decimal string")

	if settings.BUNDLE_INTERVAL_SECONDS <= 0:
		raise FatalConfigError("BUNDLE_INTERVAL_SECONDS must be positive")
