"""Shared fakes: a dispenser stand-in and a wired-up watcher/engine."""

from dataclasses import dataclass

import pytest
from hexbytes import HexBytes

from upvote_bot.action_log import ActionLog, DispenserLog, read_records
from upvote_bot.config_cache import RemoteConfigCache
from upvote_bot.dispatcher import ActionDispatcher
from upvote_bot.reconciler import ReconciliationEngine
from upvote_bot.state_store import ReconciliationState
from upvote_bot.watcher import EventWatcher

TRACKED = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
OTHER_TOKEN = "0x1111111111111111111111111111111111111111"
USER_1 = "0x2222222222222222222222222222222222222222"
USER_2 = "0x3333333333333333333333333333333333333333"
DISPENSER = "0x4444444444444444444444444444444444444444"
REQUIRED = 420


class FakeDispenser:
    """Records every call; flip `revert` / `fail_reads` to simulate trouble."""

    def __init__(self, queued=(1, 2, 3), upvotes_required=REQUIRED):
        self.address = DISPENSER
        self.queued = list(queued)
        self.required = upvotes_required
        self.revert = False
        self.fail_reads = False
        self.base_gas_price = 1_000_000_000
        self.reads = 0
        self.simulated = []
        self.sent = []

    async def upvotes_required(self):
        self.reads += 1
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return self.required

    async def get_queued_nfts(self):
        if self.fail_reads:
            raise ConnectionError("rpc down")
        return list(self.queued)

    async def user_upvotes(self, user):
        return 0

    async def gas_price(self):
        return self.base_gas_price

    async def simulate_add_upvotes(self, user, amount, gas_price):
        self.simulated.append((user, amount, gas_price))
        if self.revert:
            raise ValueError("execution reverted: Not authorized")

    async def send_add_upvotes(self, user, amount, gas_price):
        self.sent.append((user, amount, gas_price))
        return "0x" + f"{len(self.sent):064x}"


def make_log(tx="aa", log_index=0, user=USER_1, token=TRACKED, amount=REQUIRED, block=100):
    """Decoded Upvoted log shaped like web3's EventData."""
    return {
        "event": "Upvoted",
        "args": {"user": user, "token": token, "numUpvotes": amount},
        "transactionHash": HexBytes(bytes.fromhex(tx.rjust(64, "0"))),
        "logIndex": log_index,
        "blockNumber": block,
    }


@dataclass
class Harness:
    state: ReconciliationState
    dispenser: FakeDispenser
    action_log: ActionLog
    dispenser_log: DispenserLog
    cache: RemoteConfigCache
    dispatcher: ActionDispatcher
    engine: ReconciliationEngine
    watcher: EventWatcher

    def actions(self):
        return [r["type"] for r in read_records(self.action_log._log_file())]

    def dispenser_actions(self):
        return [r["action"] for r in read_records(self.dispenser_log.path)]


@pytest.fixture
def harness(tmp_path):
    state = ReconciliationState()
    dispenser = FakeDispenser()
    action_log = ActionLog(tmp_path / "logs")
    dispenser_log = DispenserLog(tmp_path / "logs" / "dispenser-actions.jsonl")
    cache = RemoteConfigCache(dispenser, action_log, dispenser_log, ttl_seconds=60)
    dispatcher = ActionDispatcher(dispenser, action_log)
    engine = ReconciliationEngine(state, cache, dispatcher, action_log, dispenser_log, required_upvotes=REQUIRED)
    watcher = EventWatcher(state, engine, action_log, tracked_token=TRACKED, required_upvotes=REQUIRED)
    return Harness(state, dispenser, action_log, dispenser_log, cache, dispatcher, engine, watcher)
