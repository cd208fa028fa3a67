"""Intention handlers.

Each handler takes the intention, the controller address that signed it, the
signature and a HandlerContext, and either returns a result or raises a
NodeError. Handlers that produce an execution append it to the cache.
"""

from core.exceptions import ValidationError
from core.validators import ASSIGN_DEPOSIT, CREATE_VAULT, TRANSFER

from .assign_deposit import handle_assign_deposit
from .context import HandlerContext
from .create_vault import handle_create_vault
from .transfer import handle_transfer

HANDLERS = {
	ASSIGN_DEPOSIT: handle_assign_deposit,
	CREATE_VAULT: handle_create_vault,
	TRANSFER: handle_transfer,
}


def dispatch(intention: dict, controller: str, signature: str, ctx: HandlerContext) -> dict:
	handler = HANDLERS.get(intention.get("action"))
	if handler is None:
		raise ValidationError("Unsupported intention action", "intention.action", intention.get("action"))
	return handler(intention, controller, signature, ctx)
