CHAIN_ID = 11155111
CONTROLLER = "0x" + "ab" * 20
OTHER = "0x" + "ef" * 20
TOKEN = "0x" + "cd" * 20
SIGNATURE = "0x" + "1" * 130


def assign_intention(amount="100", *, to=1, token=TOKEN, nonce=1, extra_inputs=()):
    inputs = [{"asset": token, "amount": amount, "chain_id": CHAIN_ID}, *extra_inputs]
    outputs = [{**i, "to": to} for i in inputs]
    return {
        "action": "AssignDeposit",
        "nonce": nonce,
        "inputs": [dict(i) for i in inputs],
        "outputs": outputs,
        "totalFee": [{"asset": token, "amount": "0"}],
        "proposerTip": [],
        "protocolFee": [],
        "agentTip": [],
    }


def create_vault_intention(nonce=1):
    return {
        "action": "CreateVault",
        "nonce": nonce,
        "inputs": [],
        "outputs": [],
        "totalFee": [],
        "proposerTip": [],
        "protocolFee": [],
        "agentTip": [],
    }


def transfer_intention(amount="40", *, source, to, token=TOKEN, nonce=1):
    assets = [{"asset": token, "amount": amount, "chain_id": CHAIN_ID}]
    return {
        "action": "Transfer",
        "nonce": nonce,
        "from": source,
        "inputs": assets,
        "outputs": [{**a, "to": to} for a in assets],
        "totalFee": [],
        "proposerTip": [],
        "protocolFee": [],
        "agentTip": [],
    }
