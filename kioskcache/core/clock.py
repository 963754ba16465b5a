"""Clock abstraction used for every age computation."""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockProtocol(Protocol):
    """Source of the current time in epoch milliseconds."""

    def now_ms(self) -> int:
        """Return the current time as integer epoch milliseconds."""
        ...


class SystemClock:
    """Wall clock backed by :func:`time.time`."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)
