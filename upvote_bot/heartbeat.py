"""
Heartbeat
=========
The bot's periodic housekeeping.

Every tick: refresh the dispenser snapshot, read the Upvote App tip, persist
state. Every Nth tick: a liveness line. A change of the dispenser's own
threshold is logged but never changes the bot's REQUIRED_UPVOTES filter.
"""

import asyncio
import logging

logger = logging.getLogger("Heartbeat")


class HeartbeatLoop:
    def __init__(self, state, store, config_cache, net_protocol, action_log, dispenser_log,
                 interval_seconds=15.0, heartbeat_every=10, sleep=asyncio.sleep):
        self.state = state
        self.store = store
        self.config_cache = config_cache
        self.net_protocol = net_protocol
        self.action_log = action_log
        self.dispenser_log = dispenser_log
        self.interval_seconds = interval_seconds
        self.heartbeat_every = max(1, heartbeat_every)
        self.count = 0
        self.tip = 0
        self._sleep = sleep
        self._stopped = False

    def stop(self):
        self._stopped = True

    async def tick(self):
        try:
            async with self.state.lock:
                await self._tick()
        except Exception as e:
            logger.error(f"[TICK_ERROR] Failed to update bot state: {e}")
            self.action_log.error(
                "tick_error", e,
                heartbeatCount=str(self.count),
                lastProcessedBlock=str(self.state.last_processed_block),
            )

    async def _tick(self):
        previous = self.state.remote_config
        snapshot = await self.config_cache.get()
        self.tip = await self.net_protocol.get_current_tip()
        if not snapshot.stale:
            self.state.remote_config = snapshot

        self.store.save(self.state, tip=self.tip)

        self.count += 1
        if self.count % self.heartbeat_every == 0:
            logger.info(
                f"💓 [HEARTBEAT] Bot healthy - Required: {snapshot.upvotes_required}, "
                f"NFTs: {snapshot.queued_nft_count}, Tip: {self.tip}, "
                f"Block: {self.state.last_processed_block}, Processed: {len(self.state.processed)}"
            )

        if (previous is not None and not snapshot.stale
                and previous.upvotes_required != snapshot.upvotes_required):
            logger.info(f"🔧 [CONFIG] Upvotes required changed to: {snapshot.upvotes_required}")
            self.dispenser_log.record(
                "threshold_changed",
                oldValue=str(previous.upvotes_required),
                newValue=str(snapshot.upvotes_required),
            )
            self.action_log.info(
                "threshold_changed",
                oldValue=str(previous.upvotes_required),
                newValue=str(snapshot.upvotes_required),
            )

    async def run(self):
        while not self._stopped:
            await self._sleep(self.interval_seconds)
            if self._stopped:
                break
            await self.tick()

    def flush(self):
        """Final write on shutdown; keeps the last tip seen."""
        self.store.save(self.state, tip=self.tip)
