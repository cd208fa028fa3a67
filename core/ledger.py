"""Deposit ledger.

Append-only record of discovered on-chain deposits with per-deposit remaining
balance. All balance mutations happen inside `transaction.atomic()` with the
deposit row locked (`select_for_update`), so concurrent assignments on one
deposit serialize and can never jointly exceed its remaining balance.

Selection is oldest-first (insertion order) and only considers the unheld part
of a deposit (`remaining - held`), so a deposit matched by a pending intention
cannot be matched again before that intention's bundle is persisted.
"""

import functools
import logging
from decimal import Decimal

from django.db import transaction, IntegrityError, OperationalError
from django.db.models import F, Sum
from django.utils import timezone

from .constants import ZERO, to_amount, normalize_address
from .exceptions import InsufficientRemaining, NotFound, TransientInfraError, ValidationError
from .models import Deposit, DepositAssignment, DepositHold, DepositHoldStatus

logger = logging.getLogger(__name__)


def _serialized(fn):
	"""
	Run fn in its own transaction. Lock timeouts and deadlocks, including ones
	raised at commit, surface as TransientInfraError so callers can retry.
	"""
	@functools.wraps(fn)
	def wrapper(*args, **kwargs):
		try:
			with transaction.atomic():
				return fn(*args, **kwargs)
		except OperationalError as e:
			logger.warning("%s hit a database conflict: %s", fn.__name__, e)
			raise TransientInfraError(f"database busy during {fn.__name__}: {e}", operation=fn.__name__) from e
	return wrapper


class DepositLedger:
	"""
	Capability handed to intention handlers and the sequencer.
	"""

	def ingest(self, *, tx_hash: str, transfer_uid: str, chain_id: int, depositor: str, token: str, amount, block_number: int | None = None, log_index: int | None = None) -> Deposit:
		"""
		Insert-if-absent keyed by transfer_uid. A duplicate returns the existing row unchanged.
		"""
		existing = Deposit.objects.filter(transfer_uid=transfer_uid).first()
		if existing:
			return existing

		value = self._positive(amount)

		try:
			with transaction.atomic():
				deposit = Deposit.objects.create(
					tx_hash=tx_hash,
					transfer_uid=transfer_uid,
					chain_id=int(chain_id),
					depositor=normalize_address(depositor),
					token=normalize_address(token),
					amount=value,
					remaining=value,
					block_number=block_number,
					log_index=log_index,
				)
		except IntegrityError:
			# Lost a race with a concurrent scan ingesting the same transfer
			return Deposit.objects.get(transfer_uid=transfer_uid)

		logger.info("Ingested deposit %s (uid=%s, amount=%s)", deposit.id, transfer_uid, value)
		return deposit

	def remaining(self, deposit_id: int) -> Decimal:
		deposit = self._get(deposit_id)
		return self._remaining_of(deposit)

	def find_with_sufficient_remaining(self, depositor: str, token: str, chain_id: int, min_amount) -> Deposit | None:
		"""
		Oldest matching deposit whose unheld remaining covers min_amount.
		"""
		minimum = to_amount(min_amount)
		return (
			self._matching(depositor, token, chain_id)
			.annotate(available=F("remaining") - F("held"))
			.filter(available__gte=minimum, available__gt=0)
			.order_by("id")
			.first()
		)

	def find_next_with_any_remaining(self, depositor: str, token: str, chain_id: int) -> Deposit | None:
		return (
			self._matching(depositor, token, chain_id)
			.annotate(available=F("remaining") - F("held"))
			.filter(available__gt=0)
			.order_by("id")
			.first()
		)

	def total_available(self, depositor: str, token: str, chain_id: int) -> Decimal:
		"""
		Sum of unheld remaining across matching deposits; 0 when nothing matches.
		"""
		totals = self._matching(depositor, token, chain_id).aggregate(remaining=Sum("remaining"), held=Sum("held"))
		return (totals["remaining"] or ZERO) - (totals["held"] or ZERO)

	@_serialized
	def assign(self, deposit_id: int, amount, target_reference: str) -> DepositAssignment:
		"""
		Allocate `amount` of a deposit. Re-reads remaining under the row lock and
		fails with InsufficientRemaining without side effects when it does not fit.
		"""
		value = self._positive(amount)
		deposit = self._lock(deposit_id)
		return self._assign_locked(deposit, value, target_reference, unheld_only=True)

	@_serialized
	def hold(self, deposit_id: int, amount, reference: str) -> DepositHold:
		"""
		Reserve `amount` of a deposit's unheld remaining for a pending intention.
		"""
		value = self._positive(amount)
		deposit = self._lock(deposit_id)
		if value > deposit.remaining - deposit.held:
			raise InsufficientRemaining(
				f"deposit {deposit.id} cannot hold {value}",
				deposit_id=deposit.id, requested=str(value), available=str(deposit.remaining - deposit.held),
			)
		deposit.held = deposit.held + value
		deposit.save(update_fields=["held"])
		return DepositHold.objects.create(deposit=deposit, amount=value, reference=reference)

	@transaction.atomic
	def release_hold(self, hold_id: int) -> None:
		hold = DepositHold.objects.select_for_update().filter(pk=hold_id).first()
		if hold is None or hold.status != DepositHoldStatus.ACTIVE:
			return
		deposit = self._lock(hold.deposit_id)
		deposit.held = deposit.held - hold.amount
		deposit.save(update_fields=["held"])
		hold.status = DepositHoldStatus.RELEASED
		hold.resolved_at = timezone.now()
		hold.save(update_fields=["status", "resolved_at"])

	@transaction.atomic
	def commit_hold(self, hold_id: int, target_reference: str) -> DepositAssignment:
		"""
		Turn an active hold into an assignment. Joins the caller's transaction when
		nested (the sequencer commits holds together with the bundle row).
		"""
		hold = DepositHold.objects.select_for_update().filter(pk=hold_id).first()
		if hold is None:
			raise NotFound(f"hold {hold_id} not found")
		if hold.status != DepositHoldStatus.ACTIVE:
			raise InsufficientRemaining(f"hold {hold_id} is {hold.status}", hold_id=hold_id)
		deposit = self._lock(hold.deposit_id)
		deposit.held = deposit.held - hold.amount
		assignment = self._assign_locked(deposit, hold.amount, target_reference, unheld_only=False)
		hold.status = DepositHoldStatus.COMMITTED
		hold.resolved_at = timezone.now()
		hold.save(update_fields=["status", "resolved_at"])
		return assignment

	def release_active_holds(self) -> int:
		"""
		Release every active hold. Run at startup and shutdown, when no cached
		execution can still own one.
		"""
		released = 0
		for hold_id in list(DepositHold.objects.filter(status=DepositHoldStatus.ACTIVE).values_list("id", flat=True)):
			self.release_hold(hold_id)
			released += 1
		if released:
			logger.warning("Released %s orphaned deposit holds", released)
		return released

	# --- internals -----------------------------------------------------------

	def _assign_locked(self, deposit: Deposit, value: Decimal, target_reference: str, *, unheld_only: bool) -> DepositAssignment:
		remaining = self._remaining_of(deposit)
		# Direct assignments may not eat into amounts reserved by pending intentions
		spendable = remaining - deposit.held if unheld_only else remaining
		if value > spendable:
			raise InsufficientRemaining(
				f"deposit {deposit.id} has {spendable} remaining, {value} requested",
				deposit_id=deposit.id, requested=str(value), remaining=str(spendable),
			)

		assignment = DepositAssignment.objects.create(deposit=deposit, amount=value, target_reference=target_reference)

		deposit.remaining = remaining - value
		update_fields = ["remaining", "held"]
		if deposit.remaining == ZERO:
			deposit.assigned_at = timezone.now()
			update_fields.append("assigned_at")
		deposit.save(update_fields=update_fields)

		logger.info("Assigned %s of deposit %s to %s (remaining %s)", value, deposit.id, target_reference, deposit.remaining)
		return assignment

	def _remaining_of(self, deposit: Deposit) -> Decimal:
		assigned = deposit.assignments.aggregate(total=Sum("amount"))["total"] or ZERO
		remaining = deposit.amount - assigned
		return remaining if remaining > ZERO else ZERO

	def _matching(self, depositor: str, token: str, chain_id: int):
		return Deposit.objects.filter(
			depositor=normalize_address(depositor),
			token=normalize_address(token),
			chain_id=int(chain_id),
		)

	def _get(self, deposit_id: int) -> Deposit:
		try:
			return Deposit.objects.get(pk=deposit_id)
		except Deposit.DoesNotExist:
			raise NotFound(f"deposit {deposit_id} not found")

	def _lock(self, deposit_id: int) -> Deposit:
		try:
			return Deposit.objects.select_for_update().get(pk=deposit_id)
		except Deposit.DoesNotExist:
			raise NotFound(f"deposit {deposit_id} not found")

	def _positive(self, amount) -> Decimal:
		try:
			value = to_amount(amount)
		except (TypeError, ValueError) as e:
			raise ValidationError(str(e), "amount", amount)
		if value <= ZERO:
			raise ValidationError("Amount must be > 0", "amount", amount)
		return value
