import logging
from dataclasses import dataclass, field
from typing import Callable

from core.balances import BalanceBook
from core.cache import IntentionCache
from core.ledger import DepositLedger
from core.vaults import VaultRegistry


@dataclass
class HandlerContext:
	"""
	Capabilities handed to every intention handler. `schedule_seeding(vault_id)`
	returns the resulting seeding status.
	"""
	ledger: DepositLedger
	registry: VaultRegistry
	chain: object
	cache: IntentionCache
	schedule_seeding: Callable[[int], str] | None = None
	balances: BalanceBook = field(default_factory=BalanceBook)
	logger: logging.Logger = field(default_factory=lambda: logging.getLogger("core.handlers"))
