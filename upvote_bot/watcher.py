"""
Event Watcher
=============
Follows `Upvoted(user, token, numUpvotes)` logs from the Upvote App and hands
every qualifying one to the reconciliation engine.

Per log entry:
    1. key = "<txHash>:<logIndex>"; already processed -> skip silently
    2. token must match the tracked token (case-insensitive)
    3. numUpvotes must equal the configured REQUIRED_UPVOTES exactly
    4. mark processed BEFORE dispatch (at-most-once awards)
    5. reconcile (inventory check + addUpvotes)

Entries are handled one at a time under the state lock, so no two awards are
ever in flight together.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from web3 import Web3

logger = logging.getLogger("Watcher")


class SubscriptionError(RuntimeError):
    """The log subscription could not be established."""


def _hex(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value)).lower()
    return str(value).lower()


@dataclass(frozen=True)
class TrackedEvent:
    tx_hash: str
    log_index: int
    user: str
    token: str
    num_upvotes: int
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.tx_hash}:{self.log_index}"

    @classmethod
    def from_log(cls, log) -> "TrackedEvent":
        args = log["args"]
        block_number = log.get("blockNumber")
        block_timestamp = log.get("blockTimestamp")
        return cls(
            tx_hash=_hex(log["transactionHash"]),
            log_index=int(log["logIndex"]),
            user=str(args["user"]),
            token=str(args.get("token") or ""),
            num_upvotes=int(args["numUpvotes"]),
            block_number=int(block_number) if block_number is not None else None,
            block_timestamp=int(block_timestamp, 16) if isinstance(block_timestamp, str) else block_timestamp,
        )


class LogSubscription:
    """
    Polling subscription over eth_getLogs for one contract event.

    Fetch errors back off and retry the same block range; errors raised by
    the consumer propagate to the caller.
    """

    MAX_BACKOFF_SECONDS = 60.0

    def __init__(self, w3, event, poll_seconds=4.0, max_block_range=500,
                 resume_block: int = 0, catchup_blocks: int = 0, sleep=asyncio.sleep):
        self.w3 = w3
        self.event = event
        self.poll_seconds = poll_seconds
        self.max_block_range = max_block_range
        self.resume_block = resume_block
        self.catchup_blocks = catchup_blocks
        self.next_block: Optional[int] = None
        self.caught_up = True
        self._sleep = sleep
        self._stopped = False

    async def start(self) -> int:
        try:
            head = await self.w3.eth.block_number
        except Exception as e:
            raise SubscriptionError(f"Failed to read chain head: {e}") from e

        # Default is to follow new blocks only. With a catch-up window the
        # block of the last award is rescanned; processed keys dedupe it.
        if self.catchup_blocks > 0 and 0 < self.resume_block <= head:
            self.next_block = max(self.resume_block, head - self.catchup_blocks)
        else:
            self.next_block = head + 1
        logger.info(f"👀 Subscription ready (head {head}, next block {self.next_block})")
        return self.next_block

    def stop(self):
        self._stopped = True

    async def poll(self) -> list:
        head = await self.w3.eth.block_number
        if head < self.next_block:
            self.caught_up = True
            return []

        to_block = min(head, self.next_block + self.max_block_range - 1)
        logs = await self.event.get_logs(from_block=self.next_block, to_block=to_block)
        self.next_block = to_block + 1
        self.caught_up = to_block >= head
        return list(logs)

    async def run(self, on_logs: Callable[[list], Awaitable[None]]):
        if self.next_block is None:
            await self.start()

        failures = 0
        while not self._stopped:
            try:
                logs = await self.poll()
            except Exception as e:
                failures += 1
                delay = min(self.poll_seconds * (2 ** failures), self.MAX_BACKOFF_SECONDS)
                logger.warning(f"⚠️ RPC Error while fetching logs: {e} (retry in {delay:.0f}s)")
                await self._sleep(delay)
                continue

            failures = 0
            if logs:
                await on_logs(logs)
            if self.caught_up:
                await self._sleep(self.poll_seconds)


class EventWatcher:
    def __init__(self, state, engine, action_log, tracked_token: str, required_upvotes: int,
                 explorer_tx_url="https://basescan.org/tx/"):
        self.state = state
        self.engine = engine
        self.action_log = action_log
        self.tracked_token = tracked_token.lower()
        self.required_upvotes = int(required_upvotes)
        self.explorer_tx_url = explorer_tx_url

    async def handle_logs(self, logs):
        """Subscription callback: one batch, strictly in delivery order."""
        for log in logs:
            event = TrackedEvent.from_log(log)
            async with self.state.lock:
                await self.handle_event(event)

    async def handle_event(self, event: TrackedEvent) -> bool:
        """Returns True when the event was handed to the engine."""
        if event.key in self.state.processed:
            return False

        if event.token.lower() != self.tracked_token:
            logger.debug(f"Skip {event.key}: token {event.token} not tracked")
            return False
        if event.num_upvotes != self.required_upvotes:
            logger.debug(f"Skip {event.key}: {event.num_upvotes} upvotes != {self.required_upvotes}")
            return False

        # Mark first so a redelivery during dispatch cannot award twice.
        self.state.processed.add(event.key)

        self.action_log.info(
            "upvote_event_seen",
            user=event.user,
            token=event.token.lower(),
            numUpvotes=str(event.num_upvotes),
            txHash=event.tx_hash,
            blockNumber=str(event.block_number) if event.block_number is not None else None,
            basescanTx=f"{self.explorer_tx_url}{event.tx_hash}",
        )
        logger.info(f"🗳️ {event.user} upvoted {event.num_upvotes} times (tx {event.tx_hash[:16]}...)")

        await self.engine.reconcile(event)
        return True
