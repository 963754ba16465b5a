"""Network status adapters."""

import asyncio
import logging

import requests

from kioskcache.core.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)


class StaticNetworkStatus:
    """Network status that only changes when told to."""

    def __init__(self, online: bool = True) -> None:
        self.online = online

    def is_online(self) -> bool:
        return self.online


class HttpNetworkStatus:
    """Check a URL with a HEAD request and remember the answer briefly.

    Any response, including an HTTP error status, counts as online; only
    transport failures count as offline. Inside a running event loop an
    expired answer is returned as is while a check runs in a worker thread;
    until the first check finishes the network is assumed to be up.
    """

    def __init__(
        self,
        check_url: str,
        timeout: float = 5.0,
        cache_ms: int = 30_000,
        session: requests.Session | None = None,
        clock: ClockProtocol | None = None,
    ) -> None:
        self.check_url = check_url
        self.timeout = timeout
        self.cache_ms = cache_ms
        self.session = session or requests.Session()
        self.clock = clock or SystemClock()
        self._last_result: bool | None = None
        self._last_checked_ms = 0
        self._check_task: asyncio.Task[bool] | None = None

    def is_online(self) -> bool:
        if not self._is_expired():
            return bool(self._last_result)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return self._record(self._reach())

        if self._check_task is None or self._check_task.done():
            self._check_task = loop.create_task(self.refresh())
        return self._last_result if self._last_result is not None else True

    async def refresh(self) -> bool:
        """Check the network without blocking the event loop."""
        return self._record(await asyncio.to_thread(self._reach))

    def _is_expired(self) -> bool:
        return (
            self._last_result is None
            or self.clock.now_ms() - self._last_checked_ms >= self.cache_ms
        )

    def _record(self, online: bool) -> bool:
        self._last_result = online
        self._last_checked_ms = self.clock.now_ms()
        return online

    def _reach(self) -> bool:
        try:
            self.session.head(
                self.check_url, timeout=self.timeout, allow_redirects=True
            )
        except requests.exceptions.RequestException as e:
            logger.debug("Network check of %s failed: %s", self.check_url, e)
            return False
        return True
