"""Minimal ABIs for the contracts the bot talks to."""

import json

# Upvote App (authoritative event we care about)
UPVOTE_APP_ABI = json.loads('[{"anonymous":false,"inputs":[{"indexed":true,"internalType":"address","name":"user","type":"address"},{"indexed":true,"internalType":"address","name":"token","type":"address"},{"indexed":false,"internalType":"uint256","name":"numUpvotes","type":"uint256"}],"name":"Upvoted","type":"event"}]')

# MegapurrDispenser (only what we need)
DISPENSER_ABI = json.loads('[{"inputs":[{"internalType":"address","name":"user","type":"address"},{"internalType":"uint256","name":"numVotes","type":"uint256"}],"name":"addUpvotes","outputs":[],"stateMutability":"nonpayable","type":"function"},{"inputs":[],"name":"upvotesRequired","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"view","type":"function"},{"inputs":[],"name":"getQueuedNFTs","outputs":[{"internalType":"uint256[]","name":"","type":"uint256[]"}],"stateMutability":"view","type":"function"},{"inputs":[{"internalType":"address","name":"","type":"address"}],"name":"userUpvotes","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"view","type":"function"}]')

# Net Protocol (message count per app, reported as the "tip")
NET_PROTOCOL_ABI = json.loads('[{"inputs":[{"internalType":"address","name":"app","type":"address"}],"name":"getTotalMessagesForAppCount","outputs":[{"internalType":"uint256","name":"","type":"uint256"}],"stateMutability":"view","type":"function"}]')
