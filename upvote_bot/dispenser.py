"""
Remote service clients.

DispenserClient wraps the MegapurrDispenser contract; the bot never models
the queue itself, it only reads it and submits `addUpvotes`.
NetProtocolClient reads the Upvote App's message count for the heartbeat.
"""

import logging
from typing import List

from web3 import AsyncWeb3, Web3

from .abis import DISPENSER_ABI, NET_PROTOCOL_ABI

logger = logging.getLogger("Dispenser")


class DispenserClient:
    def __init__(self, w3: AsyncWeb3, address: str, account=None):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.account = account
        self.contract = w3.eth.contract(address=self.address, abi=DISPENSER_ABI)

    # --- Reads ---

    async def upvotes_required(self) -> int:
        return int(await self.contract.functions.upvotesRequired().call())

    async def get_queued_nfts(self) -> List[int]:
        return [int(token_id) for token_id in await self.contract.functions.getQueuedNFTs().call()]

    async def user_upvotes(self, user: str) -> int:
        user = Web3.to_checksum_address(user)
        return int(await self.contract.functions.userUpvotes(user).call())

    async def gas_price(self) -> int:
        return int(await self.w3.eth.gas_price)

    # --- Writes ---

    def _require_account(self):
        if self.account is None:
            raise ValueError("DispenserClient has no signing account configured")
        return self.account

    async def simulate_add_upvotes(self, user: str, amount: int, gas_price: int):
        """eth_call from the bot's address; raises on revert."""
        account = self._require_account()
        fn = self.contract.functions.addUpvotes(Web3.to_checksum_address(user), amount)
        await fn.call({"from": account.address, "gasPrice": gas_price})

    async def send_add_upvotes(self, user: str, amount: int, gas_price: int) -> str:
        """Sign and broadcast addUpvotes. Returns the 0x tx hash once the node accepts it."""
        account = self._require_account()
        nonce = await self.w3.eth.get_transaction_count(account.address, "pending")
        fn = self.contract.functions.addUpvotes(Web3.to_checksum_address(user), amount)
        tx = await fn.build_transaction({
            "from": account.address,
            "gasPrice": gas_price,
            "nonce": nonce,
        })
        signed = account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)


class NetProtocolClient:
    def __init__(self, w3: AsyncWeb3, address: str, app_address: str, action_log=None):
        self.address = Web3.to_checksum_address(address)
        self.app_address = Web3.to_checksum_address(app_address)
        self.action_log = action_log
        self.contract = w3.eth.contract(address=self.address, abi=NET_PROTOCOL_ABI)

    async def get_current_tip(self) -> int:
        """Total messages sent via the Upvote App; 0 when the read fails."""
        try:
            return int(await self.contract.functions.getTotalMessagesForAppCount(self.app_address).call())
        except Exception as e:
            logger.error(f"[NET_PROTOCOL_ERROR] Failed to get message count: {e}")
            if self.action_log is not None:
                self.action_log.error(
                    "net_protocol_error", e,
                    netProtocolAddress=self.address,
                    upvoteAppAddress=self.app_address,
                )
            return 0
