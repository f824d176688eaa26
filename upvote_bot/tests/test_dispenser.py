"""DispenserClient / NetProtocolClient / LogSubscription against a scripted JSON-RPC node."""

import pytest
from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.providers.async_base import AsyncBaseProvider

from upvote_bot.abis import UPVOTE_APP_ABI
from upvote_bot.action_log import ActionLog, read_records
from upvote_bot.dispenser import DispenserClient, NetProtocolClient
from upvote_bot.watcher import LogSubscription, TrackedEvent

from .conftest import DISPENSER, USER_1

KEY = "0x" + "11" * 32
APP = "0x0ada882dbbdc12388a1f9ca85d2d847088f747df"
TOKEN = "0x5555555555555555555555555555555555555555"
NET_PROTOCOL = "0x00000000B24D62781dB359b07880a105cD0b64e6"
TX_HASH = "0x" + "ab" * 32


def _selector(signature):
    return Web3.to_hex(Web3.keccak(text=signature))[:10]


def _words(*values):
    return "0x" + "".join(f"{v:064x}" for v in values)


def _block(value):
    return int(value, 16) if isinstance(value, str) else value


def _topic(address):
    return "0x" + "00" * 12 + address[2:].lower()


class ScriptedNode(AsyncBaseProvider):
    """Answers JSON-RPC methods from a table; callables get the params."""

    def __init__(self, answers):
        super().__init__()
        self.answers = answers
        self.calls = []

    async def make_request(self, method, params):
        self.calls.append((method, params))
        answer = self.answers[method]
        result = answer(params) if callable(answer) else answer
        return {"jsonrpc": "2.0", "id": len(self.calls), "result": result}

    def methods(self):
        return [method for method, _ in self.calls]

    def params_of(self, method):
        return next(params for m, params in self.calls if m == method)


def _dispenser_calls(params):
    data = params[0]["data"]
    if data.startswith(_selector("upvotesRequired()")):
        return _words(420)
    if data.startswith(_selector("getQueuedNFTs()")):
        return _words(0x20, 2, 7, 9)
    if data.startswith(_selector("userUpvotes(address)")):
        return _words(120)
    if data.startswith(_selector("addUpvotes(address,uint256)")):
        return "0x"
    raise AssertionError(f"unexpected eth_call {data[:10]}")


@pytest.fixture
def node():
    return ScriptedNode({
        "eth_chainId": "0x2105",
        "eth_gasPrice": "0x3b9aca00",
        "eth_call": _dispenser_calls,
        "eth_getTransactionCount": "0x7",
        "eth_estimateGas": "0x186a0",
        "eth_sendRawTransaction": TX_HASH,
    })


@pytest.fixture
def account():
    return Account.from_key(KEY)


@pytest.fixture
def client(node, account):
    return DispenserClient(AsyncWeb3(node), DISPENSER, account)


@pytest.mark.asyncio
async def test_reads_decode_contract_values(client):
    assert await client.upvotes_required() == 420
    assert await client.get_queued_nfts() == [7, 9]
    assert await client.user_upvotes(USER_1) == 120
    assert await client.gas_price() == 1_000_000_000


@pytest.mark.asyncio
async def test_send_signs_with_pending_nonce_and_returns_hash(client, node, account):
    await client.simulate_add_upvotes(USER_1, 420, 1_200_000_000)
    tx_hash = await client.send_add_upvotes(USER_1, 420, 1_200_000_000)

    assert tx_hash == TX_HASH

    methods = node.methods()
    assert methods.index("eth_call") < methods.index("eth_sendRawTransaction")

    address, block = node.params_of("eth_getTransactionCount")
    assert address.lower() == account.address.lower()
    assert block == "pending"

    simulated = node.params_of("eth_call")[0]
    assert simulated["from"].lower() == account.address.lower()
    assert simulated["data"].startswith(_selector("addUpvotes(address,uint256)"))

    raw = node.params_of("eth_sendRawTransaction")[0]
    assert Account.recover_transaction(raw) == account.address


@pytest.mark.asyncio
async def test_writes_need_a_signing_account(node):
    read_only = DispenserClient(AsyncWeb3(node), DISPENSER)

    with pytest.raises(ValueError):
        await read_only.send_add_upvotes(USER_1, 420, 1)
    assert "eth_sendRawTransaction" not in node.methods()


@pytest.mark.asyncio
async def test_tip_reads_message_count_for_the_app():
    node = ScriptedNode({"eth_chainId": "0x2105", "eth_call": _words(1234)})
    net = NetProtocolClient(AsyncWeb3(node), NET_PROTOCOL, APP)

    assert await net.get_current_tip() == 1234
    data = node.params_of("eth_call")[0]["data"]
    assert data.startswith(_selector("getTotalMessagesForAppCount(address)"))
    assert data.endswith(APP[2:].lower())


@pytest.mark.asyncio
async def test_tip_failure_returns_zero_and_is_logged(tmp_path):
    def unreachable(params):
        raise ConnectionError("node unreachable")

    action_log = ActionLog(tmp_path / "logs")
    node = ScriptedNode({"eth_chainId": "0x2105", "eth_call": unreachable})
    net = NetProtocolClient(AsyncWeb3(node), NET_PROTOCOL, APP, action_log=action_log)

    assert await net.get_current_tip() == 0

    record = read_records(action_log._log_file())[-1]
    assert record["type"] == "net_protocol_error"
    assert "node unreachable" in record["error"]
    assert record["upvoteAppAddress"] == Web3.to_checksum_address(APP)


@pytest.mark.asyncio
async def test_poll_decodes_upvoted_logs_into_tracked_events():
    upvoted = {
        "address": Web3.to_checksum_address(APP),
        "topics": [
            Web3.to_hex(Web3.keccak(text="Upvoted(address,address,uint256)")),
            _topic(USER_1),
            _topic(TOKEN),
        ],
        "data": _words(420),
        "blockNumber": "0x62",
        "blockHash": "0x" + "11" * 32,
        "transactionHash": "0x" + "cd" * 32,
        "transactionIndex": "0x0",
        "logIndex": "0x2",
        "removed": False,
    }
    node = ScriptedNode({"eth_chainId": "0x2105", "eth_blockNumber": "0x64", "eth_getLogs": [upvoted]})
    w3 = AsyncWeb3(node)
    event = w3.eth.contract(address=Web3.to_checksum_address(APP), abi=UPVOTE_APP_ABI).events.Upvoted()

    subscription = LogSubscription(w3, event, max_block_range=500)
    subscription.next_block = 95
    logs = await subscription.poll()

    query = node.params_of("eth_getLogs")[0]
    assert _block(query["fromBlock"]) == 95
    assert _block(query["toBlock"]) == 100
    assert subscription.next_block == 101

    tracked = TrackedEvent.from_log(logs[0])
    assert tracked.key == "0x" + "cd" * 32 + ":2"
    assert tracked.user.lower() == USER_1.lower()
    assert tracked.token.lower() == TOKEN
    assert tracked.num_upvotes == 420
    assert tracked.block_number == 98
