""" Transport layer implementations. The framing and socket modules are
    imported explicitly by their users; only the shared error types are
    exposed here, so that :mod:`wlclient.protocol` can raise them without
    pulling in any socket handling.
"""

from .base import (
    TransportError,
    ConfigurationError,
    TransportConnectionError,
    ProtocolError,
    DispatchError,
    StateError,
    TransportTimeout,
)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
