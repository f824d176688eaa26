"""
Remote Config Cache
===================
Bounds how often the dispenser is read.

A snapshot is served for `ttl_seconds`; after that the threshold and the
queue are re-read in parallel. When the read fails the last snapshot (or a
conservative default with zero inventory) is returned marked `stale`.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

logger = logging.getLogger("ConfigCache")

DEFAULT_UPVOTES_REQUIRED = 200


@dataclass(frozen=True)
class RemoteConfigSnapshot:
    upvotes_required: int
    queued_nft_count: int
    queued_nfts: Tuple[int, ...]
    fetched_at: float
    stale: bool = False

    def as_log_fields(self):
        return {
            "upvotesRequired": str(self.upvotes_required),
            "queuedNFTCount": self.queued_nft_count,
            "queuedNFTs": [str(token_id) for token_id in self.queued_nfts],
        }


DEFAULT_SNAPSHOT = RemoteConfigSnapshot(
    upvotes_required=DEFAULT_UPVOTES_REQUIRED,
    queued_nft_count=0,
    queued_nfts=(),
    fetched_at=0.0,
    stale=True,
)


class RemoteConfigCache:
    def __init__(self, dispenser, action_log, dispenser_log, ttl_seconds=60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.dispenser = dispenser
        self.action_log = action_log
        self.dispenser_log = dispenser_log
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: Optional[RemoteConfigSnapshot] = None

    @property
    def snapshot(self) -> Optional[RemoteConfigSnapshot]:
        return self._snapshot

    def is_fresh(self) -> bool:
        return (
            self._snapshot is not None
            and self._clock() - self._snapshot.fetched_at < self.ttl_seconds
        )

    async def get(self, force=False) -> RemoteConfigSnapshot:
        if not force and self.is_fresh():
            return self._snapshot

        try:
            upvotes_required, queued = await asyncio.gather(
                self.dispenser.upvotes_required(),
                self.dispenser.get_queued_nfts(),
            )
        except Exception as e:
            logger.error(f"[CONFIG_ERROR] Failed to fetch dispenser config: {e}")
            self.action_log.error("config_fetch_error", e, dispenserAddress=self.dispenser.address)
            if self._snapshot is not None:
                logger.info("Using cached config data")
                return replace(self._snapshot, stale=True)
            return DEFAULT_SNAPSHOT

        snapshot = RemoteConfigSnapshot(
            upvotes_required=int(upvotes_required),
            queued_nft_count=len(queued),
            queued_nfts=tuple(int(token_id) for token_id in queued),
            fetched_at=self._clock(),
        )
        self._snapshot = snapshot

        fields = snapshot.as_log_fields()
        self.action_log.info("config_updated", **fields, lastUpdated=int(time.time() * 1000))
        self.dispenser_log.record("config_updated", **fields)
        return snapshot
