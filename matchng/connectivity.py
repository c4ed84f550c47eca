"""Online/offline detection with a short heartbeat request."""

from typing import Callable, List, Optional

import requests

from .logger import get_logger
from .sync import SyncNotifier, Topic

logger = get_logger()

DEFAULT_HEARTBEAT_URL = "https://www.google.com/favicon.ico"


class ConnectivityMonitor:
    """
    Tracks whether the network is reachable.

    Listeners registered with on_online() run on every offline -> online
    transition, whether observed by check() or reported via set_online().
    """

    def __init__(
        self,
        url: str = DEFAULT_HEARTBEAT_URL,
        timeout: float = 3.0,
        notifier: Optional[SyncNotifier] = None,
        initially_online: bool = False,
    ):
        self.url = url
        self.timeout = timeout
        self.notifier = notifier
        self.is_online = initially_online
        self._listeners: List[Callable[[], None]] = []

    def on_online(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def probe(self) -> bool:
        """Single heartbeat request; any error or timeout means offline."""
        try:
            resp = requests.head(self.url, timeout=self.timeout, allow_redirects=True)
            return resp.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.debug("Heartbeat failed", url=self.url, error=str(e))
            return False

    def check(self) -> bool:
        self.set_online(self.probe())
        return self.is_online

    def set_online(self, online: bool) -> None:
        was_online = self.is_online
        self.is_online = online
        if was_online == online:
            return

        logger.info("Connectivity changed", online=online)
        if self.notifier is not None:
            self.notifier.publish(Topic.CONNECTIVITY)
        if online:
            for callback in list(self._listeners):
                try:
                    callback()
                except Exception as e:
                    logger.error("Online listener failed", error=str(e), error_type=type(e).__name__)
