""" The client side of one display server connection.
"""

import logging

from . import config
from . import dispatch
from . import interfaces
from .protocol.message import Message
from .registry import ObjectRegistry
from .transport import unix
from .transport.base import ProtocolError, StateError, TransportConnectionError


class Connection:
    """ A :class:`Connection` owns the socket, the object registry, and the
        dispatch engine for one display server. The display object is
        registered as soon as the connection exists, and is always id 1.

        All outgoing traffic goes through :func:`send_request`, which is
        safe to call from any number of threads. Incoming events are read
        by the dispatch thread: either continuously, if *free_running* is
        set, or one frame per call to :func:`request_dispatch`.

        Diagnostics go to *logger*, which defaults to the ``wlclient``
        logger from the :mod:`logging` module.

        Used as a context manager, the connection is closed on leaving the
        block, unless it was already closed explicitly.

        :ivar display: The :class:`wlclient.interfaces.Display` root object.
        :ivar registry: The :class:`wlclient.registry.ObjectRegistry`.
        :ivar error: The fatal error that broke this connection, if any.
    """

    def __init__(self, transport, logger=None, free_running=False):

        if logger is None:
            logger = logging.getLogger('wlclient')

        self.logger = logger
        self.transport = transport
        self.free_running = free_running
        self.registry = ObjectRegistry()
        self.closed = False
        self.error = None

        transport.open()

        self.display = interfaces.Display(self)
        self.engine = dispatch.DispatchEngine(self, free_running)


    def __repr__(self):
        return '<Connection %r>' % (self.transport,)


    def __enter__(self):
        return self


    def __exit__(self, exc_type, exc_value, traceback):

        if self.closed == False:
            self.close()


    @classmethod
    def connect(cls, name=None, environ=None, logger=None, free_running=False):
        """ Connect to the display server socket named *name*, located as
            described in :func:`wlclient.config.socket_path`.
        """

        path = config.socket_path(name, environ)
        transport = unix.UnixTransport(path)

        if logger is not None:
            logger.debug('connecting to %s', path)

        return cls(transport, logger, free_running)


    @classmethod
    def from_socket(cls, sock, logger=None, free_running=False):
        """ Wrap an already connected stream socket.
        """

        transport = unix.UnixTransport(sock=sock)
        return cls(transport, logger, free_running)


    @property
    def is_open(self):
        return self.closed == False and self.error is None


    def register(self, proxy):
        """ Assign the next object id to *proxy* and bind it to this
            connection. Returns the new id.
        """

        return self.registry.register(proxy, self)


    def unregister(self, proxy):
        self.registry.unregister(proxy)


    def resolve(self, id):
        return self.registry.resolve(id)


    def send_request(self, proxy, opcode, *args, signature=None):
        """ Send request *opcode* on *proxy* with the given arguments. If a
            *signature* is given it lists the argument kinds in order;
            otherwise each kind is inferred from the Python type of the
            argument. The message is assembled privately and written as a
            single frame; if any argument fails to encode, nothing is sent.
        """

        self._check()

        if proxy.id is None:
            raise StateError(repr(proxy) + ' is not registered')

        message = Message(proxy.id, opcode)

        if signature is None:
            for argument in args:
                message.write(argument)
        else:
            if len(signature) != len(args):
                raise ProtocolError('request %d on %s takes %d arguments, %d given' % (opcode, proxy.interface, len(signature), len(args)))

            for kind, argument in zip(signature, args):
                message.write(argument, kind)

        self.logger.debug('request: object %d opcode %d, %d bytes', message.id, opcode, message.size)

        try:
            self.transport.send(message)
        except StateError:
            self._check()
            raise
        except TransportConnectionError as e:
            self._fail(e)
            raise


    def request_dispatch(self, timeout=None):
        """ Pump one incoming message through the dispatch engine, waiting
            up to *timeout* seconds for one to arrive. Returns True if a
            message was handled, False if none arrived in time.
        """

        self._check()

        try:
            return self.engine.request(timeout)
        except StateError:
            self._check()
            raise


    def roundtrip(self, timeout=None):
        """ Block until the server has processed every request sent so far.
        """

        return self.display.roundtrip(timeout)


    def close(self):
        """ Stop the dispatch engine and release the socket. Every later
            operation on this connection raises :class:`StateError`.
        """

        if self.closed == True:
            raise StateError('connection is already closed')

        self.closed = True

        # Shut the socket down before stopping the engine, in case the
        # dispatch thread is blocked in the middle of reading a frame.

        self.transport.shutdown()
        self.engine.stop()
        self.transport.close()


    def _check(self):

        if self.closed == True:
            raise StateError('connection is closed')

        error = self.error

        if error is not None:
            raise TransportConnectionError('connection failed: ' + str(error)) from error


    def _fail(self, error):

        if self.error is None:
            self.error = error


# end of class Connection


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
