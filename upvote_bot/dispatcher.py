"""
Action Dispatcher
=================
Grants upvotes to a user on the dispenser.

Never raises: every failure (fee lookup, simulated revert, broadcast) is
logged and reported to the caller as `None`.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("Dispatcher")

GAS_PRICE_BUMP_PERCENT = 120  # 20% over the network baseline


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    delay_seconds: float = 0.0


NO_RETRY = RetryPolicy()


class ActionDispatcher:
    def __init__(self, dispenser, action_log, retry_policy: RetryPolicy = NO_RETRY):
        self.dispenser = dispenser
        self.action_log = action_log
        self.retry_policy = retry_policy
        self.last_error: Optional[str] = None

    async def _submit(self, user, amount) -> str:
        gas_price = await self.dispenser.gas_price()
        adjusted = gas_price * GAS_PRICE_BUMP_PERCENT // 100
        await self.dispenser.simulate_add_upvotes(user, amount, adjusted)
        return await self.dispenser.send_add_upvotes(user, amount, adjusted)

    async def award(self, user: str, amount: int) -> Optional[str]:
        """Call addUpvotes(user, amount). Returns the tx hash, or None on failure."""
        self.last_error = None
        attempts = max(1, self.retry_policy.max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                tx_hash = await self._submit(user, amount)
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"❌ [DISPENSER_ERROR] Failed to call addUpvotes ({attempt}/{attempts}): {e}")
                self.action_log.error(
                    "dispenser_call_error", e,
                    user=user,
                    amount=str(amount),
                    attempt=attempt,
                    dispenserAddress=self.dispenser.address,
                )
                if attempt < attempts and self.retry_policy.delay_seconds > 0:
                    await asyncio.sleep(self.retry_policy.delay_seconds)
                continue

            self.action_log.info("dispenser_call", hash=tx_hash, user=user, amount=str(amount))
            logger.info(f"📤 [DISPENSER] Called addUpvotes for {user} with {amount} votes. Hash: {tx_hash}")
            return tx_hash

        return None
