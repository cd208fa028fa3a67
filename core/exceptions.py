"""Error taxonomy for the node.

Business rejections (ValidationError, NoMatchingDeposit, InsufficientFunds) are
surfaced to the caller and never retried. TransientInfraError marks failures a
retry policy may absorb. FatalConfigError is raised only at startup.
"""


class NodeError(Exception):
	"""Base class for node errors. `code` is the machine-readable reason."""
	code = "node_error"

	def __init__(self, message: str = "", **context):
		super().__init__(message or self.code)
		self.message = message or self.code
		self.context = context


class ValidationError(NodeError):
	"""Malformed intention or argument; rejected, never retried."""
	code = "validation_error"

	def __init__(self, message: str, field: str | None = None, value=None, **context):
		super().__init__(message, field=field, value=value, **context)
		self.field = field
		self.value = value


class NoMatchingDeposit(NodeError):
	code = "no_matching_deposit"


class InsufficientFunds(NodeError):
	code = "insufficient_funds"


class InsufficientRemaining(NodeError):
	"""An assignment or hold would exceed a deposit's remaining balance."""
	code = "insufficient_remaining"


class ConflictError(NodeError):
	code = "conflict"


class AlreadyExists(ConflictError):
	code = "already_exists"


class StaleNonce(ConflictError):
	"""Intention nonce not above the last one accepted for the vault."""
	code = "stale_nonce"


class NotFound(NodeError):
	code = "not_found"


class TransientInfraError(NodeError):
	"""Database, chain, storage or network hiccup."""
	code = "transient_infra_error"


class PublishError(TransientInfraError):
	code = "publish_error"


class WebhookError(TransientInfraError):
	code = "webhook_error"


class RuntimeNotReady(TransientInfraError):
	code = "not_ready"


class FatalConfigError(NodeError):
	code = "fatal_config_error"
