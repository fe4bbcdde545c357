""" Python implementation of the client side of the Wayland wire protocol.
    This covers the connection to the display server, the binary message
    format, the registry of object ids, and delivery of incoming events to
    the objects they are addressed to.
"""

# Utility components.

from . import weakref
from . import config

# Submodules used by multiple other components.

from . import protocol
from . import transport

from .transport.base import (
    TransportError,
    ConfigurationError,
    TransportConnectionError,
    ProtocolError,
    DispatchError,
    StateError,
    TransportTimeout,
)

# Primary public-facing interfaces.

from .proxy import Proxy, BaseProxy, EventSignature, EventSlot
from .registry import ObjectRegistry
from .interfaces import Display, Registry, Callback
from .connection import Connection
connect = Connection.connect


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
