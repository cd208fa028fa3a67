import random
import threading
import time
from decimal import Decimal

import pytest
from django.db import connection
from django.db.models import Sum

from core.constants import ZERO_ADDRESS
from core.exceptions import InsufficientRemaining, NotFound, TransientInfraError, ValidationError
from core.models import Deposit, DepositAssignment, DepositHold, DepositHoldStatus
from tests.factories import CHAIN_ID, CONTROLLER, OTHER, TOKEN


def assert_conserved(deposit_id):
    deposit = Deposit.objects.get(pk=deposit_id)
    assigned = deposit.assignments.aggregate(total=Sum("amount"))["total"] or Decimal("0")
    assert deposit.amount == deposit.remaining + assigned


@pytest.mark.django_db
class TestIngest:

    def test_same_transfer_uid_is_idempotent(self, ledger):
        """Re-ingesting a transfer returns the same row with the amount unchanged."""
        first = ledger.ingest(tx_hash="0x01", transfer_uid="u-1", chain_id=CHAIN_ID, depositor=CONTROLLER, token=TOKEN, amount="700")
        second = ledger.ingest(tx_hash="0x01", transfer_uid="u-1", chain_id=CHAIN_ID, depositor=CONTROLLER, token=TOKEN, amount="999")

        assert second.id == first.id
        assert second.amount == Decimal("700")
        assert Deposit.objects.count() == 1

    def test_addresses_are_lowercased(self, ledger):
        deposit = ledger.ingest(
            tx_hash="0x02", transfer_uid="u-2", chain_id=CHAIN_ID,
            depositor=CONTROLLER.upper().replace("0X", "0x"), token=TOKEN.upper().replace("0X", "0x"), amount="5",
        )
        assert deposit.depositor == CONTROLLER
        assert deposit.token == TOKEN
        assert deposit.remaining == Decimal("5")
        assert deposit.assigned_at is None

    @pytest.mark.parametrize("amount", ["0", "-1", "1.5e3", 1.5])
    def test_rejects_non_positive_or_inexact_amounts(self, ledger, amount):
        with pytest.raises(ValidationError):
            ledger.ingest(tx_hash="0x03", transfer_uid="u-3", chain_id=CHAIN_ID, depositor=CONTROLLER, token=TOKEN, amount=amount)
        assert Deposit.objects.count() == 0

    def test_duplicate_uid_returns_existing_row_before_validating(self, ledger, make_deposit):
        first = make_deposit("700", uid="u-dup")
        again = ledger.ingest(tx_hash="0x04", transfer_uid="u-dup", chain_id=CHAIN_ID, depositor=CONTROLLER, token=TOKEN, amount="0")

        assert again.id == first.id
        assert again.amount == Decimal("700")

    def test_fractional_amounts_stay_exact(self, ledger, make_deposit):
        deposit = make_deposit("0.1")
        ledger.assign(deposit.id, "0.05", "v:1")
        ledger.assign(deposit.id, "0.05", "v:2")
        assert ledger.remaining(deposit.id) == Decimal("0")


@pytest.mark.django_db
class TestAssign:

    def test_conservation_across_partial_assignments(self, ledger, make_deposit):
        deposit = make_deposit("1000")
        for amount in ("100", "250.5", "49.5"):
            ledger.assign(deposit.id, amount, "vault:1")
            assert_conserved(deposit.id)
        assert ledger.remaining(deposit.id) == Decimal("600")

    def test_over_allocation_fails_without_side_effects(self, ledger, make_deposit):
        deposit = make_deposit("100")
        ledger.assign(deposit.id, "60", "vault:1")

        with pytest.raises(InsufficientRemaining):
            ledger.assign(deposit.id, "41", "vault:2")

        deposit.refresh_from_db()
        assert deposit.remaining == Decimal("40")
        assert DepositAssignment.objects.filter(deposit=deposit).count() == 1
        assert_conserved(deposit.id)

    def test_assigned_at_set_exactly_when_remaining_hits_zero(self, ledger, make_deposit):
        deposit = make_deposit("10")
        ledger.assign(deposit.id, "9", "vault:1")
        deposit.refresh_from_db()
        assert deposit.assigned_at is None

        ledger.assign(deposit.id, "1", "vault:1")
        deposit.refresh_from_db()
        assert deposit.remaining == Decimal("0")
        assert deposit.assigned_at is not None

    def test_unknown_deposit(self, ledger):
        with pytest.raises(NotFound):
            ledger.assign(12345, "1", "vault:1")

    def test_starvation_scenario(self, ledger, make_deposit):
        d1 = make_deposit("700")
        ledger.assign(d1.id, "650", "vault:1")

        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "100") is None
        assert ledger.find_next_with_any_remaining(CONTROLLER, TOKEN, CHAIN_ID).id == d1.id

        with pytest.raises(InsufficientRemaining):
            ledger.assign(d1.id, "100", "vault:1")

        ledger.assign(d1.id, "50", "vault:1")
        assert ledger.remaining(d1.id) == Decimal("0")
        assert ledger.find_next_with_any_remaining(CONTROLLER, TOKEN, CHAIN_ID) is None


@pytest.mark.django_db
class TestSelection:

    def test_fifo_when_both_sufficient(self, ledger, make_deposit):
        d1 = make_deposit("500")
        make_deposit("500")
        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "100").id == d1.id

    def test_skips_older_deposit_that_is_too_small(self, ledger, make_deposit):
        make_deposit("50")
        d2 = make_deposit("500")
        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "100").id == d2.id

    def test_matching_is_scoped_to_depositor_token_and_chain(self, ledger, make_deposit):
        make_deposit("500", depositor=OTHER)
        make_deposit("500", token=ZERO_ADDRESS)
        make_deposit("500", chain_id=1)
        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "1") is None

    def test_total_available_sums_matching_remaining(self, ledger, make_deposit):
        d1 = make_deposit("100")
        make_deposit("250")
        make_deposit("999", depositor=OTHER)
        ledger.assign(d1.id, "30", "vault:1")

        assert ledger.total_available(CONTROLLER, TOKEN, CHAIN_ID) == Decimal("320")
        assert ledger.total_available(OTHER, TOKEN, 1) == Decimal("0")


@pytest.mark.django_db
class TestHolds:

    def test_held_deposit_is_not_matched_again(self, ledger, make_deposit):
        d1 = make_deposit("100")
        d2 = make_deposit("100")
        ledger.hold(d1.id, "100", "intent:a")

        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "100").id == d2.id
        assert ledger.total_available(CONTROLLER, TOKEN, CHAIN_ID) == Decimal("100")

    def test_hold_cannot_exceed_unheld_remaining(self, ledger, make_deposit):
        deposit = make_deposit("100")
        ledger.hold(deposit.id, "70", "intent:a")
        with pytest.raises(InsufficientRemaining):
            ledger.hold(deposit.id, "31", "intent:b")

    def test_direct_assign_cannot_consume_held_amount(self, ledger, make_deposit):
        deposit = make_deposit("100")
        ledger.hold(deposit.id, "70", "intent:a")
        with pytest.raises(InsufficientRemaining):
            ledger.assign(deposit.id, "31", "vault:1")
        ledger.assign(deposit.id, "30", "vault:1")

    def test_release_restores_availability(self, ledger, make_deposit):
        deposit = make_deposit("100")
        hold = ledger.hold(deposit.id, "100", "intent:a")
        ledger.release_hold(hold.id)
        ledger.release_hold(hold.id)

        deposit.refresh_from_db()
        assert deposit.held == Decimal("0")
        assert DepositHold.objects.get(pk=hold.id).status == DepositHoldStatus.RELEASED
        assert ledger.find_with_sufficient_remaining(CONTROLLER, TOKEN, CHAIN_ID, "100").id == deposit.id

    def test_commit_turns_hold_into_assignment(self, ledger, make_deposit):
        deposit = make_deposit("100")
        hold = ledger.hold(deposit.id, "100", "intent:a")
        assignment = ledger.commit_hold(hold.id, "bundle:0")

        deposit.refresh_from_db()
        assert assignment.target_reference == "bundle:0"
        assert deposit.remaining == Decimal("0")
        assert deposit.held == Decimal("0")
        assert deposit.assigned_at is not None
        assert_conserved(deposit.id)

        with pytest.raises(InsufficientRemaining):
            ledger.commit_hold(hold.id, "bundle:1")

    def test_release_active_holds(self, ledger, make_deposit):
        deposit = make_deposit("100")
        ledger.hold(deposit.id, "40", "intent:a")
        ledger.hold(deposit.id, "10", "intent:b")

        assert ledger.release_active_holds() == 2
        deposit.refresh_from_db()
        assert deposit.held == Decimal("0")


@pytest.mark.django_db(transaction=True)
class TestConcurrentReservations:
    """Two threads race for 60 of the same 100 deposit; exactly one may win."""

    ATTEMPTS = 200

    def race(self, call):
        barrier = threading.Barrier(2)
        outcomes = []

        def worker(reference):
            try:
                barrier.wait()
                for _ in range(self.ATTEMPTS):
                    try:
                        call(reference)
                        outcomes.append("ok")
                        return
                    except InsufficientRemaining:
                        outcomes.append("insufficient")
                        return
                    except TransientInfraError:
                        time.sleep(random.uniform(0.001, 0.02))
                outcomes.append("gave up")
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(f"racer:{n}",)) for n in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)
        return sorted(outcomes)

    @pytest.mark.parametrize("operation", ["hold", "assign"])
    def test_only_one_reservation_fits(self, ledger, make_deposit, operation):
        deposit = make_deposit("100")
        method = getattr(ledger, operation)

        outcomes = self.race(lambda reference: method(deposit.id, "60", reference))

        assert outcomes == ["insufficient", "ok"]
        deposit.refresh_from_db()
        assert_conserved(deposit.id)
        assert Decimal("0") <= deposit.held <= deposit.remaining
        committed = deposit.assignments.aggregate(total=Sum("amount"))["total"] or Decimal("0")
        held = DepositHold.objects.filter(deposit=deposit).aggregate(total=Sum("amount"))["total"] or Decimal("0")
        assert committed + held == Decimal("60")
