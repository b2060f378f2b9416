"""Abstract push transport so connection logic can run without real sockets."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
POLICY_VIOLATION = 1008
SESSION_NOT_FOUND = 4004


class TransportError(Exception):
    """The transport failed to connect, send or receive."""


class TransportClosed(TransportError):
    """The remote end closed the transport (or refused it during the handshake)."""

    def __init__(self, code: int, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"transport closed ({code}): {reason or 'no reason'}")


class Transport(ABC):
    """
    One established duplex text connection.
    """

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """
        Send one text frame. Raises TransportError if the transport is gone.
        """
        ...

    @abstractmethod
    async def receive_text(self) -> str:
        """
        Wait for the next text frame. Raises TransportClosed when the remote closes.
        """
        ...

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """
        Close the transport. Never raises for an already-closed transport.
        """
        ...


# (url, headers) -> established transport. Raises TransportError/OSError on failure.
Connector = Callable[[str, Mapping[str, str]], Awaitable[Transport]]
