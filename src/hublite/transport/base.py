"""Transport interface.

This is the (small) contract that transport implementations should follow.
It lives outside :mod:`hublite.device` so the device logic remains
transport-agnostic: a connection carries sessions, a session carries
unidirectional links, and messages flow over links under credit-based flow
control.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..message import Message


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportTimeout(TransportError):
    """An operation did not complete in a timely fashion."""


class TransportConnectError(TransportError):
    """The transport could not establish or maintain a connection."""


ClosedCallback = Callable[[object, Optional[BaseException]], None]


class _Closable:
    """Bookkeeping shared by handles that announce their closure."""

    def __init__(self) -> None:
        self._closed_callbacks: List[ClosedCallback] = []

    def on_closed(self, callback: ClosedCallback) -> None:
        """Register *callback(handle, error)* for a closure not initiated
        locally. *error* is None when the remote end gave no reason."""
        self._closed_callbacks.append(callback)

    def _fire_closed(self, error: Optional[BaseException]) -> None:
        for callback in list(self._closed_callbacks):
            callback(self, error)


class Connection(_Closable, ABC):
    """A connection to the hub endpoint."""

    @abstractmethod
    def session(self) -> "Session":
        """Open a new session on this connection."""

    @abstractmethod
    def close(self, timeout: Optional[float] = None) -> None:
        """Close the connection, lingering up to *timeout* seconds. Closing
        a connection closes every session and link it carries."""

    @property
    def is_open(self) -> bool:
        """Whether the transport is currently connected."""
        return False


class Session(_Closable, ABC):
    """A session multiplexed over a :class:`Connection`."""

    @abstractmethod
    def sender(self, name: str, address: str) -> "SenderLink":
        """Attach an outbound link to *address*."""

    @abstractmethod
    def receiver(self, name: str, address: str) -> "ReceiverLink":
        """Attach an inbound link to *address*. No messages flow until
        credit is issued, either via :func:`ReceiverLink.start` or by a
        pending :func:`ReceiverLink.receive`."""

    @abstractmethod
    def close(self) -> None:
        """End the session."""


class SenderLink(ABC):
    """Outbound half of a link pair."""

    name: str
    address: str

    @abstractmethod
    def send(self, message: Message, timeout: Optional[float] = None) -> None:
        """Send a message, blocking until the transport has handled it."""

    @abstractmethod
    def close(self) -> None:
        """Detach the link."""


MessageCallback = Callable[["ReceiverLink", Message], None]


class ReceiverLink(ABC):
    """Inbound half of a link pair."""

    name: str
    address: str

    @property
    def reply_to(self) -> str:
        """The address a remote node should use to respond on this link."""
        return self.name

    @abstractmethod
    def receive(self, timeout: Optional[float] = None) -> Message:
        """Block for the next message. :class:`TransportTimeout` is raised
        if nothing arrives within *timeout* seconds."""

    @abstractmethod
    def start(self, credit: int, callback: MessageCallback) -> None:
        """Issue *credit* and invoke *callback(link, message)* for every
        arriving message. Callbacks for one link are invoked sequentially,
        in arrival order, and never on the transport's I/O thread."""

    @abstractmethod
    def accept(self, message: Message) -> None:
        """Settle *message* as accepted."""

    @abstractmethod
    def set_credit(self, credit: int) -> None:
        """Restore the outstanding credit to *credit* messages."""

    @abstractmethod
    def close(self) -> None:
        """Detach the link."""
