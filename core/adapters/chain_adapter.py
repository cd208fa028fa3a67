"""Chain adapters.

ChainAdapter talks JSON-RPC through web3: deposit discovery (event log scans),
VaultTracker.createVault, BundleTracker.proposeBundle and proposer message signing.
StubChainAdapter gives the same surface over the chain_stub tables so development
and tests run without a node.

Both ingest discovered deposits through the DepositLedger they were built with.
"""

import hashlib
import hmac
import logging

import requests
from django.db import transaction
from django.db.models import Max
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.logs import DISCARD

from chain_stub.models import StubDepositEvent, StubVault, StubBundleAnchor
from core.constants import ZERO_ADDRESS, is_native, normalize_address
from core.exceptions import TransientInfraError

logger = logging.getLogger(__name__)

VAULT_TRACKER_ABI = [
	{"type": "function", "name": "createVault", "stateMutability": "nonpayable",
	 "inputs": [{"name": "controller", "type": "address"}], "outputs": [{"name": "", "type": "uint256"}]},
	{"type": "function", "name": "nextVaultId", "stateMutability": "view",
	 "inputs": [], "outputs": [{"name": "", "type": "uint256"}]},
	{"type": "event", "name": "VaultCreated", "anonymous": False,
	 "inputs": [{"name": "vaultId", "type": "uint256", "indexed": True},
	            {"name": "controller", "type": "address", "indexed": True}]},
]

BUNDLE_TRACKER_ABI = [
	{"type": "function", "name": "proposeBundle", "stateMutability": "nonpayable",
	 "inputs": [{"name": "_bundleData", "type": "string"}], "outputs": []},
]

DEPOSIT_CONTRACT_ABI = [
	{"type": "event", "name": "NativeDeposit", "anonymous": False,
	 "inputs": [{"name": "depositor", "type": "address", "indexed": True},
	            {"name": "amount", "type": "uint256", "indexed": False}]},
]

ERC20_ABI = [
	{"type": "event", "name": "Transfer", "anonymous": False,
	 "inputs": [{"name": "from", "type": "address", "indexed": True},
	            {"name": "to", "type": "address", "indexed": True},
	            {"name": "value", "type": "uint256", "indexed": False}]},
]


def transfer_uid(chain_id: int, tx_hash: str, log_index: int) -> str:
	return f"{chain_id}:{tx_hash.lower()}:{log_index}"


def parse_block_hint(value) -> int | None:
	"""
	Block hints arrive as hex strings ("0x1a2b") or plain integers.
	"""
	if value is None:
		return None
	if isinstance(value, int):
		return value
	text = str(value).strip()
	return int(text, 16) if text.lower().startswith("0x") else int(text)


class ChainAdapter:
	"""
	JSON-RPC chain client. Every RPC failure surfaces as TransientInfraError.
	"""

	def __init__(self, ledger, *, rpc_url: str, chain_id: int, private_key: str, vault_tracker: str, bundle_tracker: str, deposit_contract: str, scan_blocks: int = 5000):
		self.ledger = ledger
		self.chain_id = int(chain_id)
		self.scan_blocks = int(scan_blocks)
		self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
		self.account = Account.from_key(private_key)
		self.deposit_contract = Web3.to_checksum_address(deposit_contract)
		self.vault_tracker = self.w3.eth.contract(address=Web3.to_checksum_address(vault_tracker), abi=VAULT_TRACKER_ABI)
		self.bundle_tracker = self.w3.eth.contract(address=Web3.to_checksum_address(bundle_tracker), abi=BUNDLE_TRACKER_ABI)
		self.deposits = self.w3.eth.contract(address=self.deposit_contract, abi=DEPOSIT_CONTRACT_ABI)

	@property
	def address(self) -> str:
		return self.account.address.lower()

	def block_number(self) -> int:
		try:
			return int(self.w3.eth.block_number)
		except (Web3Exception, requests.RequestException) as e:
			raise TransientInfraError(f"RPC block_number failed: {e}")

	def discover_deposits(self, asset: str, chain_id: int, from_block=None, to_block=None) -> int:
		"""
		Scan a bounded block window for deposits of `asset` and ingest them.
		Returns the number of log entries seen.
		"""
		if int(chain_id) != self.chain_id:
			logger.warning("Skipping deposit discovery for chain %s (node is on %s)", chain_id, self.chain_id)
			return 0
		try:
			head = int(self.w3.eth.block_number)
			end = parse_block_hint(to_block)
			end = head if end is None else min(end, head)
			start = parse_block_hint(from_block)
			start = max(end - self.scan_blocks, 0) if start is None else start
			if is_native(asset):
				events = self.deposits.events.NativeDeposit().get_logs(from_block=start, to_block=end)
				rows = [(ev, ev["args"]["depositor"], ZERO_ADDRESS, ev["args"]["amount"]) for ev in events]
			else:
				token = self.w3.eth.contract(address=Web3.to_checksum_address(asset), abi=ERC20_ABI)
				events = token.events.Transfer().get_logs(
					from_block=start, to_block=end, argument_filters={"to": self.deposit_contract},
				)
				rows = [(ev, ev["args"]["from"], asset, ev["args"]["value"]) for ev in events]
		except (Web3Exception, requests.RequestException) as e:
			raise TransientInfraError(f"Deposit discovery failed for {asset}: {e}")

		for ev, depositor, token, value in rows:
			tx_hash = "0x" + bytes(ev["transactionHash"]).hex()
			if value <= 0:
				continue
			self.ledger.ingest(
				tx_hash=tx_hash,
				transfer_uid=transfer_uid(self.chain_id, tx_hash, ev["logIndex"]),
				chain_id=self.chain_id,
				depositor=depositor,
				token=token,
				amount=str(value),
				block_number=ev["blockNumber"],
				log_index=ev["logIndex"],
			)
		logger.info("Deposit discovery for %s scanned blocks %s-%s: %s logs", asset, start, end, len(rows))
		return len(rows)

	def get_next_vault_id(self) -> int:
		try:
			return int(self.vault_tracker.functions.nextVaultId().call())
		except (Web3Exception, requests.RequestException) as e:
			raise TransientInfraError(f"nextVaultId call failed: {e}")

	def create_vault(self, controller: str):
		return self._transact(self.vault_tracker.functions.createVault(Web3.to_checksum_address(controller)))

	def parse_event_logs(self, receipt) -> list[dict]:
		events = self.vault_tracker.events.VaultCreated().process_receipt(receipt, errors=DISCARD)
		return [{"name": ev["event"], "args": dict(ev["args"])} for ev in events]

	def propose_bundle(self, content_id: str) -> str:
		receipt = self._transact(self.bundle_tracker.functions.proposeBundle(content_id))
		return "0x" + bytes(receipt["transactionHash"]).hex()

	def sign_message(self, message: str) -> str:
		signed = Account.sign_message(encode_defunct(text=message), private_key=self.account.key)
		return "0x" + bytes(signed.signature).hex()

	def _transact(self, fn):
		"""
		Build, sign, send and wait for a contract call. Reverted receipts raise.
		"""
		try:
			tx = fn.build_transaction({
				"from": self.account.address,
				"nonce": self.w3.eth.get_transaction_count(self.account.address),
				"chainId": self.chain_id,
			})
			signed = self.account.sign_transaction(tx)
			tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
			receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=180)
		except (Web3Exception, requests.RequestException) as e:
			raise TransientInfraError(f"Transaction failed: {e}")
		if receipt["status"] != 1:
			raise TransientInfraError(f"Transaction {tx_hash.hex()} reverted")
		return receipt


class StubChainAdapter:
	"""
	Same calls as ChainAdapter, backed by the chain_stub tables. Receipts are
	plain dicts and signatures are keyed HMACs shaped like 65-byte signatures.
	"""

	def __init__(self, ledger, *, chain_id: int, proposer_address: str, signing_key: str = "stub-proposer-key", scan_blocks: int = 5000):
		self.ledger = ledger
		self.chain_id = int(chain_id)
		self.address = proposer_address.lower()
		self.signing_key = signing_key
		self.scan_blocks = int(scan_blocks)

	def block_number(self) -> int:
		deposits = StubDepositEvent.objects.aggregate(m=Max("block_number"))["m"] or 0
		anchors = StubBundleAnchor.objects.aggregate(m=Max("block_number"))["m"] or 0
		return max(deposits, anchors)

	def discover_deposits(self, asset: str, chain_id: int, from_block=None, to_block=None) -> int:
		end = parse_block_hint(to_block)
		end = self.block_number() if end is None else end
		start = parse_block_hint(from_block)
		start = max(end - self.scan_blocks, 0) if start is None else start
		events = StubDepositEvent.objects.filter(
			chain_id=int(chain_id), token=normalize_address(asset), block_number__gte=start, block_number__lte=end,
		).order_by("block_number", "log_index")
		count = 0
		for ev in events:
			self.ledger.ingest(
				tx_hash=ev.tx_hash,
				transfer_uid=transfer_uid(ev.chain_id, ev.tx_hash, ev.log_index),
				chain_id=ev.chain_id,
				depositor=ev.depositor,
				token=ev.token,
				amount=ev.amount,
				block_number=ev.block_number,
				log_index=ev.log_index,
			)
			count += 1
		return count

	def get_next_vault_id(self) -> int:
		return (StubVault.objects.aggregate(m=Max("id"))["m"] or 0) + 1

	@transaction.atomic
	def create_vault(self, controller: str) -> dict:
		tx_hash = "0x" + hashlib.sha256(f"vault:{controller}:{StubVault.objects.count()}".encode()).hexdigest()
		vault = StubVault.objects.create(controller=controller.lower(), tx_hash=tx_hash)
		return {
			"transactionHash": tx_hash,
			"status": 1,
			"logs": [{"event": "VaultCreated", "args": {"vaultId": vault.id, "controller": vault.controller}}],
		}

	def parse_event_logs(self, receipt: dict) -> list[dict]:
		return [{"name": log["event"], "args": dict(log["args"])} for log in receipt.get("logs", []) if "event" in log]

	def propose_bundle(self, content_id: str) -> str:
		block = self.block_number() + 1
		tx_hash = "0x" + hashlib.sha256(f"bundle:{content_id}:{block}".encode()).hexdigest()
		StubBundleAnchor.objects.create(content_id=content_id, proposer=self.address, tx_hash=tx_hash, block_number=block)
		return tx_hash

	def sign_message(self, message: str) -> str:
		digest = hmac.new(self.signing_key.encode(), message.encode(), hashlib.sha512).hexdigest()
		return "0x" + digest + "1b"
