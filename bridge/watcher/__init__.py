"""
체인 감시

Poller 베이스 및 입금 감지 Chain Watcher.
"""

from bridge.watcher.base import BasePoller
from bridge.watcher.chain_watcher import ChainWatcher

__all__ = [
    "BasePoller",
    "ChainWatcher",
]
