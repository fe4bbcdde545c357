""" Transport interface.

    This is the (small) contract that a stream transport should follow,
    together with the exceptions shared by every layer of the client. It
    lives outside :mod:`wlclient.protocol` so the message model stays
    independent of any socket handling.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..protocol.message import Message


class TransportError(Exception):
    """ Base class for all errors raised by this package.
    """


class ConfigurationError(TransportError):
    """ A required setting is missing from the environment. Raised before
        any connection attempt is made, and never retried.
    """


class TransportConnectionError(TransportError):
    """ The socket could not be opened, or failed while reading or writing.
        Also raised by every operation on a connection that was closed by
        a fatal error.
    """


class ProtocolError(TransportError):
    """ A message could not be encoded, or an incoming frame is malformed.
    """


class DispatchError(ProtocolError):
    """ An event handler failed while an incoming event was delivered.
    """


class StateError(TransportError):
    """ An operation was attempted on a closed connection.
    """


class TransportTimeout(TransportError):
    """ A bounded wait expired before the expected event arrived.
    """


class Transport(ABC):
    """ Minimal contract for a wire-level transport.
    """

    @abstractmethod
    def open(self) -> None:
        """ Establish the underlying connection/socket.
        """

    @abstractmethod
    def close(self) -> None:
        """ Tear down the underlying connection/socket.
        """

    @abstractmethod
    def send(self, message: Message) -> int:
        """ Write one complete :class:`wlclient.protocol.message.Message`.
        """

    @abstractmethod
    def recv(self) -> Message:
        """ Read the next complete :class:`wlclient.protocol.message.Message`.
        """

    @abstractmethod
    def fileno(self) -> int:
        """ Return the descriptor a poller can wait on for readability.
        """

    @property
    def is_open(self) -> bool:
        """ Whether the transport is currently connected.
        """
        return False


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
