"""
Connectivity monitoring.

Polls the remote store and reports reachability changes on the network
trigger.
"""

from typing import Optional

from booksync.api.remote import RemoteBookClient
from booksync.sync.triggers import SyncTriggers
from booksync.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectivityMonitor:
    """Emits a network change whenever remote reachability flips."""

    def __init__(self, remote: RemoteBookClient, triggers: SyncTriggers):
        self.remote = remote
        self.triggers = triggers
        self.is_online: Optional[bool] = None

    def poll(self) -> bool:
        """
        Probe the remote store once.

        Returns:
            Current reachability
        """
        online = self.remote.is_reachable()

        if online != self.is_online:
            logger.info("Network status changed", online=online)
            self.is_online = online
            self.triggers.network.emit(online)

        return online
