""" The core interfaces every connection needs to bootstrap itself: the
    display, the global registry, and the callback used for round trips.
    Everything else is built on top of these, by binding globals through
    :class:`Registry`.
"""

import time

from .protocol.fields import NEW_ID, OBJECT, STRING, UINT
from .proxy import BaseProxy, EventSignature
from .transport.base import TransportTimeout


class Display(BaseProxy):
    """ The singleton root object of a connection, always id 1.
    """

    interface = 'wl_display'
    version = 1

    events = (
        EventSignature('error', ('object_id', OBJECT), ('code', UINT), ('message', STRING)),
        EventSignature('delete_id', ('id', UINT)),
    )

    # wl_display.error codes.

    INVALID_OBJECT = 0
    INVALID_METHOD = 1
    NO_MEMORY = 2
    IMPLEMENTATION = 3


    def sync(self):
        """ Ask the server to acknowledge every request sent so far. The
            returned :class:`Callback` receives a single ``done`` event once
            it has.
        """

        callback = Callback(self.connection)

        try:
            self.request(0, callback, signature=(NEW_ID,))
        except Exception:
            callback.release()
            raise

        return callback


    def get_registry(self):
        """ Create a :class:`Registry`, which will receive a ``global`` event
            for every global object the server offers.
        """

        registry = Registry(self.connection)

        try:
            self.request(1, registry, signature=(NEW_ID,))
        except Exception:
            registry.release()
            raise

        return registry


    def roundtrip(self, timeout=None):
        """ Issue a :func:`sync` and wait for its ``done`` event, pumping the
            dispatch engine if the connection is not free-running. Events
            that arrive in the meantime are delivered as usual.
        """

        connection = self.connection
        callback = self.sync()
        slot = callback.slots['done']

        if timeout is None:
            deadline = None
        else:
            deadline = time.time() + timeout

        while True:
            if deadline is None:
                remaining = None
            else:
                remaining = deadline - time.time()
                if remaining <= 0:
                    raise TransportTimeout('no reply to sync within %s seconds' % (timeout))

            if connection.free_running == True:
                return slot.get(remaining)

            connection.request_dispatch(remaining)

            if slot.empty() == False:
                return slot.get(0)


    def handle_error(self, event):

        self.connection.logger.warning('protocol error on %r, code %d: %s', event.object_id, event.code, event.message)


    def handle_delete_id(self, event):

        # The server is done with this id. It is never handed out again, but
        # the proxy can stop receiving events.

        connection = self.connection
        proxy = connection.resolve(event.id)

        if proxy is not None:
            connection.unregister(proxy)


# end of class Display



class Registry(BaseProxy):
    """ Announces the global objects offered by the server. The announced
        globals are tracked in :attr:`globals`, keyed by their numeric name.
    """

    interface = 'wl_registry'
    version = 1

    events = (
        EventSignature('global', ('name', UINT), ('interface', STRING), ('version', UINT)),
        EventSignature('global_remove', ('name', UINT)),
    )

    def __init__(self, connection=None):

        self.globals = dict()
        BaseProxy.__init__(self, connection)


    def bind(self, name, proxy, version=None):
        """ Bind the global *name* to *proxy*. The new id carries no type on
            the wire for this request, so the interface name and version are
            sent along with it.
        """

        if version is None:
            version = proxy.version

        if proxy.id is None:
            self.connection.register(proxy)

        self.request(0, name, proxy.interface, version, proxy, signature=(UINT, STRING, UINT, NEW_ID))
        return proxy


    def find(self, interface):
        """ Return the (name, version) pairs of globals offering *interface*.
        """

        found = list()

        for name, announced in sorted(self.globals.items()):
            if announced[0] == interface:
                found.append((name, announced[1]))

        return found


    def handle_global(self, event):
        self.globals[event.name] = (event.interface, event.version)


    def handle_global_remove(self, event):
        self.globals.pop(event.name, None)


# end of class Registry



class Callback(BaseProxy):
    """ Single-use object that receives one ``done`` event.
    """

    interface = 'wl_callback'
    version = 1

    events = (
        EventSignature('done', ('callback_data', UINT)),
    )

    def handle_done(self, event):

        # The server destroys the callback right after sending done.
        self.release()


# end of class Callback


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
