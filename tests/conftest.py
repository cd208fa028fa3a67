import itertools

import pytest

from chain_stub.models import StubDepositEvent
from core.ledger import DepositLedger
from core.runtime import NodeRuntime, install_runtime
from core.vaults import VaultRegistry
from tests.factories import CHAIN_ID, CONTROLLER, TOKEN

_uids = itertools.count(1)


@pytest.fixture
def ledger():
    return DepositLedger()


@pytest.fixture
def registry():
    return VaultRegistry()


@pytest.fixture
def make_deposit(ledger):
    """Ingest a deposit straight into the ledger."""
    def _make(amount, *, depositor=CONTROLLER, token=TOKEN, chain_id=CHAIN_ID, uid=None):
        n = next(_uids)
        return ledger.ingest(
            tx_hash="0x%064x" % n,
            transfer_uid=uid or f"{chain_id}:0x{n:064x}:0",
            chain_id=chain_id,
            depositor=depositor,
            token=token,
            amount=amount,
        )
    return _make


@pytest.fixture
def chain_deposit():
    """Record a deposit on the stub chain; the node ingests it on discovery."""
    blocks = itertools.count(1)

    def _make(amount, *, depositor=CONTROLLER, token=TOKEN, chain_id=CHAIN_ID):
        block = next(blocks)
        return StubDepositEvent.objects.create(
            chain_id=chain_id,
            block_number=block,
            tx_hash="0x%064x" % (1000 + block),
            log_index=0,
            depositor=depositor,
            token=token,
            amount=amount,
        )
    return _make


@pytest.fixture
def runtime(db, settings):
    """Node wired from settings with every backend stubbed and detached work inline."""
    settings.CHAIN_BACKEND = "stub"
    settings.STORAGE_BACKEND = "stub"
    settings.ARCHIVAL_BACKEND = "stub"
    settings.WEBHOOK_URL = ""
    settings.PROPOSER_VAULT_ID = "0"
    rt = NodeRuntime.from_settings(detached=False)
    install_runtime(rt)
    yield rt
    install_runtime(None)
