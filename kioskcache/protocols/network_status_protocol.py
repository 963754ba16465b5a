"""Protocol for connectivity checks."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class NetworkStatusProtocol(Protocol):
    """Reports whether the backend is reachable."""

    def is_online(self) -> bool:
        """Return True when background refreshes may reach the network."""
        ...
