"""
Config Validator
================
Loads the bot's connection and identity parameters from the environment
(optionally seeded from a .env file) and fails fast with every missing or
malformed variable listed at once.

Required:
    BASE_MAINNET_RPC_URL   Base mainnet RPC endpoint
    PRIVATE_KEY            Signing key of the bot (0x prefix optional)
    DISPENSER_ADDRESS      Dispenser contract address
    TRACKED_TOKEN_ADDRESS  Token whose upvotes earn an NFT
    UPVOTE_APP_ADDRESS     Net Protocol Upvote App address
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

logger = logging.getLogger("Config")

DEFAULT_REQUIRED_UPVOTES = 420
DEFAULT_POLL_MS = 15000
NET_PROTOCOL_ADDRESS = "0x00000000B24D62781dB359b07880a105cD0b64e6"

REQUIRED_VARS = {
    "BASE_MAINNET_RPC_URL": "Your Base mainnet RPC endpoint",
    "PRIVATE_KEY": "Your private key (no 0x prefix)",
    "DISPENSER_ADDRESS": "Your dispenser contract address",
    "TRACKED_TOKEN_ADDRESS": "Token address to track",
    "UPVOTE_APP_ADDRESS": "Net Protocol Upvote App address",
}

ADDRESS_VARS = ("DISPENSER_ADDRESS", "TRACKED_TOKEN_ADDRESS", "UPVOTE_APP_ADDRESS", "NET_PROTOCOL_ADDRESS")


class ConfigError(ValueError):
    """Raised when required settings are missing or malformed."""

    def __init__(self, missing: Optional[List[str]] = None, invalid: Optional[List[str]] = None):
        self.missing = list(missing or [])
        self.invalid = list(invalid or [])
        parts = []
        if self.missing:
            parts.append("missing: " + ", ".join(self.missing))
        if self.invalid:
            parts.append("invalid: " + ", ".join(self.invalid))
        super().__init__("; ".join(parts) or "invalid configuration")


@dataclass(frozen=True)
class Config:
    rpc_url: str
    private_key: str
    dispenser_address: str
    tracked_token_address: str
    upvote_app_address: str
    required_upvotes: int = DEFAULT_REQUIRED_UPVOTES
    poll_ms: int = DEFAULT_POLL_MS
    net_protocol_address: str = NET_PROTOCOL_ADDRESS

    # Ambient settings
    log_dir: Path = Path("logs")
    state_file: Path = Path("net_state.json")
    cache_ttl_seconds: float = 60.0
    heartbeat_every: int = 10
    state_max_processed: int = 500
    log_retention_days: int = 7
    log_poll_seconds: float = 4.0
    max_block_range: int = 500
    catchup_blocks: int = 0
    explorer_tx_url: str = "https://basescan.org/tx/"
    log_level: str = "INFO"

    @property
    def poll_seconds(self) -> float:
        return self.poll_ms / 1000

    @property
    def dispenser_log_file(self) -> Path:
        return self.log_dir / "dispenser-actions.jsonl"

    def describe(self) -> Dict[str, object]:
        """Loggable summary. Never includes the key."""
        return {
            "rpcUrl": _mask_url(self.rpc_url),
            "dispenser": self.dispenser_address,
            "trackedToken": self.tracked_token_address,
            "upvoteApp": self.upvote_app_address,
            "requiredUpvotes": self.required_upvotes,
            "pollMs": self.poll_ms,
            "stateFile": str(self.state_file),
            "logDir": str(self.log_dir),
        }


def _mask_url(url: str) -> str:
    # Provider API keys sit in the path or the query string
    parts = urlsplit(url)
    if not parts.netloc:
        return "<hidden>"
    masked = f"{parts.scheme}://{parts.hostname}"
    if parts.path.strip("/") or parts.query:
        masked += "/***"
    return masked


def _normalize_key(raw: str) -> str:
    raw = raw.strip()
    return raw if raw.startswith("0x") else f"0x{raw}"


def load_config(env: Optional[Mapping[str, str]] = None, env_file: Optional[Path] = None) -> Config:
    """
    Build a validated Config.

    Args:
        env: Mapping to read from (defaults to os.environ after loading .env).
        env_file: Optional .env path loaded before reading os.environ.

    Raises:
        ConfigError listing every missing or invalid variable.
    """
    if env is None:
        if env_file is not None and Path(env_file).exists():
            load_dotenv(dotenv_path=env_file, override=False)
        else:
            load_dotenv()
        env = os.environ

    missing = [name for name in REQUIRED_VARS if not (env.get(name) or "").strip()]
    if missing:
        raise ConfigError(missing=missing)

    invalid = []

    addresses = {}
    for name in ADDRESS_VARS:
        value = env.get(name) or (NET_PROTOCOL_ADDRESS if name == "NET_PROTOCOL_ADDRESS" else "")
        try:
            addresses[name] = Web3.to_checksum_address(value.strip())
        except (ValueError, TypeError):
            invalid.append(f"{name}={value}")

    private_key = _normalize_key(env["PRIVATE_KEY"])
    try:
        Account.from_key(private_key)
    except (ValueError, TypeError):
        invalid.append("PRIVATE_KEY=<unreadable key>")

    def _number(name, default, cast=int):
        raw = env.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return cast(raw.strip())
        except ValueError:
            invalid.append(f"{name}={raw}")
            return default

    required_upvotes = _number("REQUIRED_UPVOTES", DEFAULT_REQUIRED_UPVOTES)
    poll_ms = _number("POLL_MS", DEFAULT_POLL_MS)
    cache_ttl = _number("CACHE_TTL_SECONDS", 60.0, float)
    heartbeat_every = _number("HEARTBEAT_EVERY", 10)
    max_processed = _number("STATE_MAX_PROCESSED", 500)
    retention = _number("LOG_RETENTION_DAYS", 7)
    log_poll = _number("LOG_POLL_SECONDS", 4.0, float)
    max_range = _number("MAX_BLOCK_RANGE", 500)
    catchup = _number("CATCHUP_BLOCKS", 0)

    if required_upvotes <= 0:
        invalid.append(f"REQUIRED_UPVOTES={required_upvotes}")
    if poll_ms <= 0:
        invalid.append(f"POLL_MS={poll_ms}")
    if heartbeat_every <= 0:
        invalid.append(f"HEARTBEAT_EVERY={heartbeat_every}")
    if max_range <= 0:
        invalid.append(f"MAX_BLOCK_RANGE={max_range}")
    if catchup < 0:
        invalid.append(f"CATCHUP_BLOCKS={catchup}")

    if invalid:
        raise ConfigError(invalid=invalid)

    config = Config(
        rpc_url=env["BASE_MAINNET_RPC_URL"].strip(),
        private_key=private_key,
        dispenser_address=addresses["DISPENSER_ADDRESS"],
        tracked_token_address=addresses["TRACKED_TOKEN_ADDRESS"],
        upvote_app_address=addresses["UPVOTE_APP_ADDRESS"],
        required_upvotes=required_upvotes,
        poll_ms=poll_ms,
        net_protocol_address=addresses["NET_PROTOCOL_ADDRESS"],
        log_dir=Path(env.get("LOG_DIR") or "logs"),
        state_file=Path(env.get("STATE_FILE") or "net_state.json"),
        cache_ttl_seconds=cache_ttl,
        heartbeat_every=heartbeat_every,
        state_max_processed=max_processed,
        log_retention_days=retention,
        log_poll_seconds=log_poll,
        max_block_range=max_range,
        catchup_blocks=catchup,
        explorer_tx_url=env.get("EXPLORER_TX_URL") or "https://basescan.org/tx/",
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )

    logger.info("✅ All required environment variables are set")
    logger.info(f"   Dispenser:  {config.dispenser_address}")
    logger.info(f"   Token:      {config.tracked_token_address}")
    logger.info(f"   Upvote App: {config.upvote_app_address}")
    return config


def format_config_error(err: ConfigError) -> str:
    """Operator-facing explanation, printed before exiting."""
    lines = []
    if err.missing:
        lines.append("[CONFIG ERROR] Missing required environment variables:")
        lines.extend(f"  - {name} is required" for name in err.missing)
        lines.append("")
        lines.append("Please create a .env file with the required variables:")
        lines.append("  cp .env.example .env")
        lines.append("")
        lines.append("Required variables:")
        lines.extend(f"  {name} - {desc}" for name, desc in REQUIRED_VARS.items())
    if err.invalid:
        lines.append("[CONFIG ERROR] Invalid values:")
        lines.extend(f"  - {item}" for item in err.invalid)
        lines.append("")
        lines.append("Please ensure all addresses are valid Ethereum addresses")
    return "\n".join(lines)
