import json
from decimal import Decimal

import pytest

from chain_stub.models import StubVault
from core.constants import ZERO_ADDRESS
from core.exceptions import InsufficientFunds, NoMatchingDeposit, StaleNonce, TransientInfraError, ValidationError
from core.handlers.assign_deposit import _block_hints
from core.models import Deposit, DepositHold, DepositHoldStatus, SeedingStatus, Vault, VaultBalance
from core.runtime import NodeRuntime
from core.services import submit_intention
from tests.factories import (
    CHAIN_ID, CONTROLLER, OTHER, SIGNATURE, TOKEN, assign_intention, create_vault_intention, transfer_intention,
)

OTHER_TOKEN = "0x" + "77" * 20


@pytest.fixture
def vault_id(runtime):
    """A vault that exists on the stub chain."""
    receipt = runtime.chain.create_vault(CONTROLLER)
    return receipt["logs"][0]["args"]["vaultId"]


def submit(rt, intention, *, signature=SIGNATURE, controller=CONTROLLER):
    return submit_intention(rt.context, intention, signature, controller)


@pytest.mark.django_db
class TestAssignDeposit:

    def test_matches_deposit_and_caches_execution(self, runtime, vault_id, chain_deposit):
        chain_deposit("700")
        intention = assign_intention("100", to=vault_id)

        result = submit(runtime, intention)

        deposit = Deposit.objects.get()
        assert result["status"] == "cached"
        assert result["execution"] == {
            "intention": intention,
            "from": 0,
            "proof": [{"token": TOKEN, "to": vault_id, "amount": "100", "deposit_id": deposit.id, "depositor": CONTROLLER}],
            "signature": SIGNATURE,
        }
        entry = runtime.cache.snapshot()[0]
        assert entry.execution == result["execution"]
        hold = DepositHold.objects.get(pk=entry.hold_ids[0])
        assert hold.deposit_id == deposit.id
        assert hold.amount == Decimal("100")
        assert runtime.ledger.total_available(CONTROLLER, TOKEN, CHAIN_ID) == Decimal("600")

    def test_bundle_turns_hold_into_assignment(self, runtime, vault_id, chain_deposit):
        chain_deposit("100")
        submit(runtime, assign_intention("100", to=vault_id))

        runtime.sequencer.tick()

        deposit = Deposit.objects.get()
        assert deposit.remaining == Decimal("0")
        assert deposit.assigned_at is not None
        assert deposit.assignments.get().target_reference == "bundle:0"

    def test_same_deposit_cannot_be_matched_twice(self, runtime, vault_id, chain_deposit):
        chain_deposit("100")
        submit(runtime, assign_intention("100", to=vault_id, nonce=1))

        with pytest.raises(InsufficientFunds):
            submit(runtime, assign_intention("100", to=vault_id, nonce=2))
        assert len(runtime.cache) == 1

    def test_failed_pair_releases_earlier_holds(self, runtime, vault_id, chain_deposit):
        chain_deposit("100")
        intention = assign_intention(
            "100", to=vault_id, extra_inputs=[{"asset": OTHER_TOKEN, "amount": "50", "chain_id": CHAIN_ID}],
        )

        with pytest.raises(InsufficientFunds) as exc:
            submit(runtime, intention)

        assert exc.value.context["token"] == OTHER_TOKEN
        assert len(runtime.cache) == 0
        assert DepositHold.objects.get().status == DepositHoldStatus.RELEASED
        assert Deposit.objects.get().held == Decimal("0")

    def test_funds_split_across_deposits_do_not_match(self, runtime, vault_id, chain_deposit):
        chain_deposit("60")
        chain_deposit("60")

        with pytest.raises(NoMatchingDeposit):
            submit(runtime, assign_intention("100", to=vault_id))
        assert not DepositHold.objects.exists()

    def test_oldest_sufficient_deposit_wins(self, runtime, vault_id, chain_deposit):
        chain_deposit("50")
        chain_deposit("500")
        chain_deposit("500")

        result = submit(runtime, assign_intention("100", to=vault_id))

        second = Deposit.objects.order_by("id")[1]
        assert result["execution"]["proof"][0]["deposit_id"] == second.id

    def test_vault_must_exist_on_chain(self, runtime, vault_id, chain_deposit):
        chain_deposit("100")
        with pytest.raises(ValidationError) as exc:
            submit(runtime, assign_intention("100", to=vault_id + 1))
        assert exc.value.field == "vaultId"
        assert not Deposit.objects.exists()

    @pytest.mark.parametrize("change, field", [
        (lambda i: i["outputs"][0].update(amount="99"), "intention.inputs[0].amount"),
        (lambda i: i["outputs"][0].update(asset=OTHER_TOKEN), "intention.inputs[0].asset"),
        (lambda i: i["outputs"][0].update(chain_id=1), "intention.inputs[0].chain_id"),
        (lambda i: i["outputs"][0].update(to_external=CONTROLLER), "intention.outputs[0].to_external"),
        (lambda i: i["outputs"].pop(), "intention"),
        (lambda i: i.update(inputs=[], outputs=[]), "intention.inputs"),
        (lambda i: i["totalFee"][0].update(amount="1"), "intention.totalFee"),
        (lambda i: i.update(proposerTip=[{"asset": TOKEN, "amount": "1"}]), "intention.proposerTip"),
    ])
    def test_structural_rejections(self, runtime, vault_id, change, field):
        intention = assign_intention("100", to=vault_id)
        change(intention)

        with pytest.raises(ValidationError) as exc:
            submit(runtime, intention)
        assert exc.value.field == field

    def test_block_hints_bound_the_scan(self, runtime, vault_id, chain_deposit):
        chain_deposit("100")
        later = chain_deposit("100")
        intention = assign_intention("100", to=vault_id)
        intention["inputs"][0]["data"] = json.dumps({"fromBlock": hex(later.block_number), "toBlock": hex(later.block_number)})

        submit(runtime, intention)

        deposit = Deposit.objects.get()
        assert deposit.block_number == later.block_number
        assert deposit.tx_hash == later.tx_hash

    def test_native_asset(self, runtime, vault_id, chain_deposit):
        chain_deposit("5", token=ZERO_ADDRESS)
        result = submit(runtime, assign_intention("5", to=vault_id, token=ZERO_ADDRESS))
        assert result["execution"]["proof"][0]["token"] == ZERO_ADDRESS

    def test_rediscovery_does_not_duplicate_deposits(self, runtime, vault_id, chain_deposit):
        chain_deposit("300")
        submit(runtime, assign_intention("100", to=vault_id, nonce=1))
        submit(runtime, assign_intention("100", to=vault_id, nonce=2))

        assert Deposit.objects.count() == 1
        assert Deposit.objects.get().held == Decimal("200")


class TestBlockHints:

    @pytest.mark.parametrize("data, expected", [
        (None, (None, None)),
        ("", (None, None)),
        ("not json", (None, None)),
        ("[1, 2]", (None, None)),
        ('{"fromBlock": "0x10"}', ("0x10", None)),
        ('{"fromBlock": 16, "toBlock": "0x20"}', (None, "0x20")),
    ])
    def test_parsing(self, data, expected):
        assert _block_hints(data) == expected


@pytest.mark.django_db
class TestCreateVault:

    def test_creates_vault_and_schedules_seeding(self, runtime):
        result = submit(runtime, create_vault_intention())

        vault_id = result["vault_id"]
        assert result["status"] == "created"
        assert result["seeding_status"] == "scheduled"
        assert StubVault.objects.filter(pk=vault_id).exists()
        assert runtime.registry.controllers_of(vault_id) == [CONTROLLER]
        assert Vault.objects.get(pk=vault_id).seeding_status == SeedingStatus.SCHEDULED

        seeding = runtime.cache.snapshot()[0].execution
        assert seeding["from"] == 0
        assert seeding["intention"]["action"] == "Transfer"
        assert {o["to"] for o in seeding["intention"]["outputs"]} == {vault_id}
        assert len(seeding["proof"]) == len(seeding["intention"]["inputs"])

    def test_seeding_credits_the_new_vault_once_bundled(self, runtime):
        vault_id = submit(runtime, create_vault_intention())["vault_id"]
        grants = runtime.cache.snapshot()[0].execution["proof"]
        assert runtime.balances.balances_of(vault_id) == {}

        runtime.sequencer.tick()

        for grant in grants:
            assert runtime.balances.balance_of(vault_id, grant["token"]) == Decimal(grant["amount"])
        assert not VaultBalance.objects.filter(vault_id=0).exists()

    def test_seeding_failure_does_not_fail_the_intention(self, runtime):
        def broken(vault_id):
            raise RuntimeError("signer offline")
        runtime.context.schedule_seeding = broken

        result = submit(runtime, create_vault_intention())

        vault = Vault.objects.get(pk=result["vault_id"])
        assert result["seeding_status"] == "failed"
        assert vault.seeding_status == SeedingStatus.FAILED
        assert "signer offline" in vault.seeding_error
        assert len(runtime.cache) == 0

    def test_without_proposer_vault_seeding_is_skipped(self, runtime, settings):
        settings.PROPOSER_VAULT_ID = ""
        rt = NodeRuntime.from_settings(detached=False)

        result = submit(rt, create_vault_intention())

        assert result["seeding_status"] == "skipped"
        assert Vault.objects.get(pk=result["vault_id"]).seeding_status == SeedingStatus.SKIPPED

    def test_without_seeder(self, runtime):
        runtime.context.schedule_seeding = None
        result = submit(runtime, create_vault_intention())
        assert result["seeding_status"] == "skipped"

    def test_rejects_asset_movement(self, runtime):
        intention = create_vault_intention()
        intention["inputs"] = [{"asset": TOKEN, "amount": "1", "chain_id": CHAIN_ID}]

        with pytest.raises(ValidationError):
            submit(runtime, intention)
        assert not StubVault.objects.exists()

    def test_missing_vault_created_event(self, runtime, monkeypatch):
        monkeypatch.setattr(runtime.chain, "create_vault", lambda controller: {"status": 1, "logs": []})

        with pytest.raises(TransientInfraError):
            submit(runtime, create_vault_intention())
        assert not Vault.objects.exists()


@pytest.mark.django_db
class TestTransfer:

    @pytest.fixture
    def vaults(self, runtime):
        """A funded source vault controlled by CONTROLLER and an empty destination."""
        source, dest = (runtime.chain.create_vault(CONTROLLER)["logs"][0]["args"]["vaultId"] for _ in range(2))
        runtime.registry.create_vault(source, CONTROLLER)
        runtime.balances.credit(source, TOKEN, "100")
        return source, dest

    def test_moves_balance_when_bundled(self, runtime, vaults):
        source, dest = vaults
        intention = transfer_intention("40", source=source, to=dest)

        result = submit(runtime, intention)

        assert result["status"] == "cached"
        assert result["execution"] == {
            "intention": intention,
            "from": source,
            "proof": [{"token": TOKEN, "from": source, "to": dest, "amount": "40"}],
            "signature": SIGNATURE,
        }
        assert runtime.balances.balance_of(source, TOKEN) == Decimal("100")
        assert runtime.balances.available(source, TOKEN) == Decimal("60")

        runtime.sequencer.tick()

        assert runtime.balances.balance_of(source, TOKEN) == Decimal("60")
        assert runtime.balances.balance_of(dest, TOKEN) == Decimal("40")
        assert VaultBalance.objects.get(vault_id=source).held == 0

    def test_insufficient_balance(self, runtime, vaults):
        source, dest = vaults

        with pytest.raises(InsufficientFunds):
            submit(runtime, transfer_intention("150", source=source, to=dest))
        assert len(runtime.cache) == 0
        assert Vault.objects.get(pk=source).last_nonce is None

    def test_pending_transfer_counts_against_balance(self, runtime, vaults):
        source, dest = vaults
        submit(runtime, transfer_intention("60", source=source, to=dest, nonce=1))

        with pytest.raises(InsufficientFunds):
            submit(runtime, transfer_intention("60", source=source, to=dest, nonce=2))
        assert len(runtime.cache) == 1

    @pytest.mark.parametrize("replayed", [1, 0])
    def test_replayed_nonce_is_rejected(self, runtime, vaults, replayed):
        source, dest = vaults
        submit(runtime, transfer_intention("10", source=source, to=dest, nonce=1))

        with pytest.raises(StaleNonce):
            submit(runtime, transfer_intention("10", source=source, to=dest, nonce=replayed))
        assert Vault.objects.get(pk=source).last_nonce == 1
        assert runtime.balances.available(source, TOKEN) == Decimal("90")

    def test_replay_after_bundle_is_rejected(self, runtime, vaults):
        source, dest = vaults
        intention = transfer_intention("10", source=source, to=dest, nonce=5)
        submit(runtime, intention)
        runtime.sequencer.tick()

        with pytest.raises(StaleNonce):
            submit(runtime, intention)
        assert runtime.balances.balance_of(dest, TOKEN) == Decimal("10")

    def test_signer_must_control_source(self, runtime, vaults):
        source, dest = vaults
        with pytest.raises(ValidationError) as exc:
            submit(runtime, transfer_intention("10", source=source, to=dest), controller=OTHER)
        assert exc.value.field == "intention.from"

    def test_destination_must_exist_on_chain(self, runtime, vaults):
        source, _ = vaults
        with pytest.raises(ValidationError) as exc:
            submit(runtime, transfer_intention("10", source=source, to=999))
        assert exc.value.field == "vaultId"

    @pytest.mark.parametrize("change, field", [
        (lambda i: i.pop("from"), "intention.from"),
        (lambda i: i["outputs"][0].update(amount="39"), "intention"),
        (lambda i: i["outputs"][0].update(to_external="0x" + "99" * 20), "intention.outputs[0].to_external"),
        (lambda i: i["outputs"][0].pop("to"), "intention.outputs[0].to"),
        (lambda i: i.update(totalFee=[{"asset": TOKEN, "amount": "1"}]), "intention.totalFee"),
        (lambda i: i.update(agentTip=[{"asset": TOKEN, "amount": "1"}]), "intention.agentTip"),
        (lambda i: i.update(inputs=[], outputs=[]), "intention.inputs"),
    ])
    def test_structural_rejections(self, runtime, vaults, change, field):
        source, dest = vaults
        intention = transfer_intention("40", source=source, to=dest)
        change(intention)

        with pytest.raises(ValidationError) as exc:
            submit(runtime, intention)
        assert exc.value.field == field
        assert len(runtime.cache) == 0

    def test_zero_amount(self, runtime, vaults):
        source, dest = vaults
        with pytest.raises(ValidationError) as exc:
            submit(runtime, transfer_intention("0", source=source, to=dest))
        assert exc.value.field == "intention.inputs[0].amount"


@pytest.mark.django_db
class TestEnvelope:

    def test_unsupported_action(self, runtime):
        intention = create_vault_intention()
        intention["action"] = "Burn"
        with pytest.raises(ValidationError, match="Unsupported intention action"):
            submit(runtime, intention)

    @pytest.mark.parametrize("signature", ["", "0x12", "0x" + "g" * 130, "1" * 132])
    def test_bad_signature(self, runtime, signature):
        with pytest.raises(ValidationError) as exc:
            submit(runtime, create_vault_intention(), signature=signature)
        assert exc.value.field == "signature"

    def test_bad_controller(self, runtime):
        with pytest.raises(ValidationError) as exc:
            submit(runtime, create_vault_intention(), controller="0x1234")
        assert exc.value.field == "from"

    @pytest.mark.parametrize("nonce", [-1, "1", None, True])
    def test_bad_nonce(self, runtime, nonce):
        intention = create_vault_intention()
        intention["nonce"] = nonce
        with pytest.raises(ValidationError) as exc:
            submit(runtime, intention)
        assert exc.value.field == "intention.nonce"
