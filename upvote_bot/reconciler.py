"""
Reconciliation Engine
=====================
Decides what happens to a qualifying upvote.

    inventory == 0  -> log depleted, no dispatch
    inventory  > 0  -> addUpvotes(user, REQUIRED_UPVOTES) and log the outcome

The dispenser accumulates votes and pops the NFT queue on its side; the bot's
job ends once the call is submitted. The event key is already marked
processed by the watcher, so a failed award is not retried.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("Reconciler")


@dataclass
class AwardAttempt:
    user: str
    amount: int
    source_tx: str
    dispenser_tx: Optional[str] = None
    failure_reason: Optional[str] = None
    inventory_before: int = 0

    @property
    def succeeded(self) -> bool:
        return self.dispenser_tx is not None


class ReconciliationEngine:
    def __init__(self, state, config_cache, dispatcher, action_log, dispenser_log,
                 required_upvotes: int, explorer_tx_url="https://basescan.org/tx/"):
        self.state = state
        self.config_cache = config_cache
        self.dispatcher = dispatcher
        self.action_log = action_log
        self.dispenser_log = dispenser_log
        self.required_upvotes = int(required_upvotes)
        self.explorer_tx_url = explorer_tx_url

    def _tx_url(self, tx_hash):
        return f"{self.explorer_tx_url}{tx_hash}"

    async def reconcile(self, event) -> Optional[AwardAttempt]:
        snapshot = await self.config_cache.get()
        inventory = snapshot.queued_nft_count

        if not inventory:
            logger.warning(
                f"🪫 [DISPENSER] Out of NFTs! User {event.user} upvoted {self.required_upvotes} "
                f"times but no inventory available."
            )
            block = str(event.block_number) if event.block_number is not None else None
            self.action_log.warning("dispenser_depleted", user=event.user, txHash=event.tx_hash, blockNumber=block)
            self.dispenser_log.record(
                "inventory_depleted",
                user=event.user,
                sourceTx=event.tx_hash,
                sourceBasescan=self._tx_url(event.tx_hash),
                note=f"User upvoted {self.required_upvotes} times but no NFTs available",
            )
            return None

        attempt = AwardAttempt(
            user=event.user,
            amount=self.required_upvotes,
            source_tx=event.tx_hash,
            inventory_before=inventory,
        )
        attempt.dispenser_tx = await self.dispatcher.award(event.user, self.required_upvotes)

        if attempt.succeeded:
            self._record_success(attempt)
        else:
            attempt.failure_reason = self.dispatcher.last_error or "Transaction failed"
            self._record_failure(attempt)

        if event.block_number is not None and event.block_number > self.state.last_processed_block:
            self.state.last_processed_block = event.block_number
        return attempt

    def _record_success(self, attempt: AwardAttempt):
        logger.info(f"🎉 [DISPENSER] NFT awarded to {attempt.user}! Transaction: {self._tx_url(attempt.dispenser_tx)}")
        links = {
            "sourceBasescan": self._tx_url(attempt.source_tx),
            "dispenserBasescan": self._tx_url(attempt.dispenser_tx),
        }
        self.action_log.info(
            "award_success",
            user=attempt.user,
            amount=str(attempt.amount),
            sourceTx=attempt.source_tx,
            dispenserTx=attempt.dispenser_tx,
            **links,
        )
        self.dispenser_log.record(
            "nft_awarded",
            user=attempt.user,
            amount=str(attempt.amount),
            sourceTx=attempt.source_tx,
            dispenserTx=attempt.dispenser_tx,
            inventoryBefore=str(attempt.inventory_before),
            **links,
        )

    def _record_failure(self, attempt: AwardAttempt):
        logger.warning(f"❌ [DISPENSER] Failed to award NFT to {attempt.user}. Check logs for details.")
        self.action_log.warning(
            "award_failed",
            user=attempt.user,
            amount=str(attempt.amount),
            sourceTx=attempt.source_tx,
        )
        self.dispenser_log.record(
            "award_failed",
            user=attempt.user,
            amount=str(attempt.amount),
            sourceTx=attempt.source_tx,
            sourceBasescan=self._tx_url(attempt.source_tx),
            error="Transaction failed",
        )
