"""
Net Protocol Upvote Bot
=======================
Watches the Upvote App for users who upvote the tracked token exactly
REQUIRED_UPVOTES times in one transaction and calls the dispenser's
`addUpvotes` so the user receives the next queued NFT.

    [Upvote App] -> (Upvoted log) -> [Watcher] -> [Reconciler] -> addUpvotes -> [Dispenser]
                                                      ^
                              [Heartbeat] -> refresh cache, persist state

Usage:
    python -m upvote_bot --env .env
    upvote-bot --env .env

Exit codes: 0 on SIGINT/SIGTERM, 1 on bad config, failed subscription or an
unexpected fault (a supervisor such as pm2/systemd is expected to restart).
"""

import sys
import signal
import asyncio
import logging
import argparse
from pathlib import Path

from eth_account import Account
from web3 import AsyncWeb3

from .abis import UPVOTE_APP_ABI
from .action_log import ActionLog, DispenserLog
from .config import ConfigError, format_config_error, load_config
from .config_cache import RemoteConfigCache
from .dispatcher import ActionDispatcher
from .dispenser import DispenserClient, NetProtocolClient
from .heartbeat import HeartbeatLoop
from .reconciler import ReconciliationEngine
from .state_store import StateStore
from .watcher import EventWatcher, LogSubscription, SubscriptionError

logger = logging.getLogger("UpvoteBot")

LOG_FORMAT = "%(asctime)s [%(name)-12s] %(message)s"


class UpvoteBot:
    def __init__(self, config, w3=None):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        self.account = Account.from_key(config.private_key)

        # Logs & state
        self.action_log = ActionLog(config.log_dir, retention_days=config.log_retention_days)
        self.dispenser_log = DispenserLog(config.dispenser_log_file)
        self.store = StateStore(config.state_file, max_processed=config.state_max_processed)
        self.state = self.store.load()

        # Remote services
        self.dispenser = DispenserClient(self.w3, config.dispenser_address, self.account)
        self.net_protocol = NetProtocolClient(
            self.w3, config.net_protocol_address, config.upvote_app_address, action_log=self.action_log
        )
        self.config_cache = RemoteConfigCache(
            self.dispenser, self.action_log, self.dispenser_log, ttl_seconds=config.cache_ttl_seconds
        )

        # Core
        self.dispatcher = ActionDispatcher(self.dispenser, self.action_log)
        self.engine = ReconciliationEngine(
            self.state, self.config_cache, self.dispatcher, self.action_log, self.dispenser_log,
            required_upvotes=config.required_upvotes,
            explorer_tx_url=config.explorer_tx_url,
        )
        self.watcher = EventWatcher(
            self.state, self.engine, self.action_log,
            tracked_token=config.tracked_token_address,
            required_upvotes=config.required_upvotes,
            explorer_tx_url=config.explorer_tx_url,
        )
        upvote_app = self.w3.eth.contract(address=config.upvote_app_address, abi=UPVOTE_APP_ABI)
        self.subscription = LogSubscription(
            self.w3, upvote_app.events.Upvoted(),
            poll_seconds=config.log_poll_seconds,
            max_block_range=config.max_block_range,
            resume_block=self.state.last_processed_block,
            catchup_blocks=config.catchup_blocks,
        )
        self.heartbeat = HeartbeatLoop(
            self.state, self.store, self.config_cache, self.net_protocol,
            self.action_log, self.dispenser_log,
            interval_seconds=config.poll_seconds,
            heartbeat_every=config.heartbeat_every,
        )

        self._stop = None
        self._stop_reason = None
        self._fault = None

    # --- Lifecycle ---

    def request_shutdown(self, reason="shutdown"):
        logger.info(f"🛑 [SHUTDOWN] Received {reason}, shutting down gracefully...")
        self._stop_reason = reason
        if self._stop is not None:
            self._stop.set()

    def _on_loop_exception(self, loop, context):
        exc = context.get("exception") or RuntimeError(context.get("message", "unknown loop error"))
        logger.critical(f"🔥 [FATAL_ERROR] Unhandled async error: {exc}")
        self._fault = exc
        if self._stop is not None:
            self._stop.set()

    def _install_handlers(self):
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self._on_loop_exception)
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows: fall back to KeyboardInterrupt
                pass
        return installed

    def _fatal_fields(self):
        return {
            "processedEvents": str(len(self.state.processed)),
            "lastProcessedBlock": str(self.state.last_processed_block),
        }

    async def start(self):
        logger.info("🚀 [STARTUP] Starting Net Protocol Upvote Bot...")
        logger.info(f"   Config: {self.config.describe()}")
        try:
            await self.subscription.start()
        except SubscriptionError as e:
            logger.critical(f"❌ [WATCH_ERROR] Failed to set up event watcher: {e}")
            self.action_log.error(
                "watch_setup_error", e,
                upvoteAppAddress=self.config.upvote_app_address,
                trackedTokenAddress=self.config.tracked_token_address,
            )
            raise

        logger.info("✅ Started watching Upvoted events")
        logger.info(f"   Watching for {self.config.required_upvotes} upvotes on tracked token")
        logger.info(f"   Dispenser address: {self.config.dispenser_address}")
        logger.info(f"   Signing as: {self.account.address}")
        self.action_log.info(
            "startup_success",
            trackedToken=self.config.tracked_token_address,
            requiredUpvotes=str(self.config.required_upvotes),
            dispenserAddress=self.config.dispenser_address,
        )

    async def run(self) -> int:
        self._stop = asyncio.Event()
        installed = self._install_handlers()
        try:
            return await self._run()
        finally:
            loop = asyncio.get_running_loop()
            for sig in installed:
                loop.remove_signal_handler(sig)
            loop.set_exception_handler(None)

    async def _run(self) -> int:
        try:
            await self.start()
        except SubscriptionError as e:
            self.action_log.error("startup_error", e, upvoteAppAddress=self.config.upvote_app_address)
            return 1

        workers = {
            asyncio.create_task(self.subscription.run(self.watcher.handle_logs), name="watcher"),
            asyncio.create_task(self.heartbeat.run(), name="heartbeat"),
        }
        stopper = asyncio.create_task(self._stop.wait(), name="stop")
        done, _ = await asyncio.wait(workers | {stopper}, return_when=asyncio.FIRST_COMPLETED)

        for task in workers & done:
            if not task.cancelled() and task.exception() is not None:
                self._fault = task.exception()

        self.subscription.stop()
        self.heartbeat.stop()
        for task in workers | {stopper}:
            task.cancel()
        await asyncio.gather(*workers, stopper, return_exceptions=True)

        try:
            self.heartbeat.flush()
        except OSError as e:
            logger.error(f"Failed to persist state on exit: {e}")

        if self._fault is not None:
            logger.critical(f"🔥 [FATAL_ERROR] {self._fault}")
            self.action_log.error("fatal_error", self._fault, **self._fatal_fields())
            return 1

        self.action_log.info(
            "shutdown",
            reason=self._stop_reason or "stopped",
            processedEvents=str(len(self.state.processed)),
        )
        return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Net Protocol Upvote Bot")
    parser.add_argument("--env", "-e", default=".env", help="Path to .env file")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    env_path = Path(args.env).resolve()
    if not env_path.exists():
        logger.info(f"⚠️  Config file not found at: {env_path} (using process environment)")

    try:
        config = load_config(env_file=env_path)
    except ConfigError as e:
        print(format_config_error(e), file=sys.stderr)
        return 1

    logging.getLogger().setLevel((args.log_level or config.log_level).upper())

    bot = UpvoteBot(config)
    try:
        return asyncio.run(bot.run())
    except KeyboardInterrupt:
        bot.action_log.info("shutdown", reason="SIGINT", processedEvents=str(len(bot.state.processed)))
        return 0
    except Exception as e:
        logger.critical(f"🔥 [FATAL_ERROR] Uncaught exception: {e}")
        bot.action_log.error("fatal_error", e, **bot._fatal_fields())
        return 1


if __name__ == "__main__":
    sys.exit(main())
