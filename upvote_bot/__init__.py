"""
Net Protocol Upvote Bot
=======================
Awards queued NFTs to users who upvote a tracked token on Net Protocol.

Usage:
    from upvote_bot import UpvoteBot, load_config

    bot = UpvoteBot(load_config())
"""

from .bot import UpvoteBot, main
from .config import Config, ConfigError, load_config

__version__ = "0.1.0"
__all__ = ["UpvoteBot", "Config", "ConfigError", "load_config", "main"]
