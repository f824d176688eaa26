"""
Persistent State Store
======================
Remembers which upvote logs have been acted upon and how
far the bot has got, so a restart does not award the same event twice.

File format (net_state.json):
    {
      "lastProcessed": "<tip>",
      "tip": "<tip>",
      "lastProcessedBlock": "<block>",
      "processed": ["0xtxhash:logIndex", ...]   # most recent N only
    }
"""

import os
import json
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

logger = logging.getLogger("StateStore")


class ProcessedEventSet:
    """Insertion-ordered set of idempotency keys."""

    def __init__(self, keys: Iterable[str] = ()):
        self._keys = dict.fromkeys(keys)

    def add(self, key: str):
        self._keys[key] = None

    def __contains__(self, key) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def recent(self, n: int) -> List[str]:
        keys = list(self._keys)
        return keys[max(0, len(keys) - n):]


@dataclass
class ReconciliationState:
    processed: ProcessedEventSet = field(default_factory=ProcessedEventSet)
    last_processed_block: int = 0
    remote_config: Optional[object] = None  # last RemoteConfigSnapshot seen by the heartbeat
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class StateStore:
    def __init__(self, path, max_processed=500):
        self.path = Path(path)
        self.max_processed = max_processed

    def load(self) -> ReconciliationState:
        if not self.path.exists():
            logger.info("No state file found, starting from 0")
            return ReconciliationState()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"⚠️ Could not read {self.path} ({e}), starting from 0")
            return ReconciliationState()

        state = ReconciliationState()
        processed = data.get("processed")
        if isinstance(processed, list):
            state.processed = ProcessedEventSet(str(k) for k in processed)
        try:
            state.last_processed_block = int(data.get("lastProcessedBlock") or 0)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed lastProcessedBlock: {data.get('lastProcessedBlock')!r}")

        logger.info(
            f"📂 Restored {len(state.processed)} processed logs (block {state.last_processed_block})"
        )
        return state

    def save(self, state: ReconciliationState, tip: int = 0):
        """Overwrite the state file. Keeps only the newest `max_processed` keys."""
        payload = {
            "lastProcessed": str(tip),
            "tip": str(tip),
            "lastProcessedBlock": str(state.last_processed_block),
            "processed": state.processed.recent(self.max_processed),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp, self.path)
