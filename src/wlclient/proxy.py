""" The capability every protocol object implements, so that the connection
    and the dispatch engine can treat all of them uniformly.

    A concrete proxy class declares its events as a static table: one
    :class:`EventSignature` per opcode, in opcode order, each listing the
    ordered (field, kind) pairs of the event's arguments. The dispatch
    engine decodes incoming events by walking that table; nothing inspects
    the shape of live objects.
"""

import collections
import threading

from abc import ABC, abstractmethod

from . import weakref
from .protocol import fields
from .transport.base import ProtocolError, StateError, TransportTimeout


class EventSignature:
    """ Declaration of one event: its *name* and the ordered *arguments* as
        (field name, kind) pairs. Decoded events are instances of
        :attr:`type`, a namedtuple with one attribute per argument.
    """

    def __init__(self, name, *arguments):

        for field, kind in arguments:
            if kind in fields.kinds:
                pass
            else:
                raise ValueError('unknown argument kind for %s.%s: %r' % (name, field, kind))

        self.name = name
        self.arguments = tuple(arguments)

        typename = ''.join(part.capitalize() for part in name.split('_')) + 'Event'
        self.type = collections.namedtuple(typename, [field for field, kind in arguments])


    def __repr__(self):
        return 'EventSignature(%r, %r)' % (self.name, self.arguments)


    @property
    def kinds(self):
        return tuple(kind for field, kind in self.arguments)


    def build(self, values):
        return self.type(*values)


# end of class EventSignature



class EventSlot:
    """ Hand-off point for one kind of event on one object. Every published
        event goes to exactly one consumer: either the registered callbacks,
        if there are any, or the next caller of :func:`get`. Slots are
        independent of each other; publishing never waits for a consumer.

        Events nobody collects are held in a queue of at most :attr:`depth`
        entries; once it is full, the oldest event is discarded to make
        room for the newest. Events that are only ever consumed by a
        ``handle_<name>`` method, such as ``delete_id`` on the display,
        therefore cannot pile up on a long-lived connection.

        :ivar depth: Maximum number of uncollected events held.
    """

    depth = 32

    def __init__(self, name, depth=None):

        if depth is not None:
            self.depth = depth

        self.name = name
        self.queue = collections.deque(maxlen=self.depth)
        self.callbacks = list()
        self.lock = threading.Lock()
        self.ready = threading.Condition(threading.Lock())


    def __len__(self):
        self.ready.acquire()
        try:
            return len(self.queue)
        finally:
            self.ready.release()


    def register(self, method, weak=True):
        """ Register *method* to be invoked with each new event. The method
            is weakly referenced unless *weak* is False; a callback whose
            owner is gone is silently dropped.
        """

        if callable(method):
            pass
        else:
            raise TypeError('the registered method must be callable')

        reference = weakref.ref(method, weak)

        self.lock.acquire()
        self.callbacks.append(reference)
        self.lock.release()


    def publish(self, event):
        """ Deliver *event*. Exceptions raised by a callback propagate to the
            caller, which is normally the dispatch engine.
        """

        self.lock.acquire()
        references = list(self.callbacks)
        self.lock.release()

        delivered = False
        invalid = list()

        for reference in references:
            callback = reference()

            if callback is None:
                invalid.append(reference)
                continue

            callback(event)
            delivered = True

        if invalid:
            self.lock.acquire()
            for reference in invalid:
                try:
                    self.callbacks.remove(reference)
                except ValueError:
                    pass
            self.lock.release()

        if delivered == False:
            self.ready.acquire()
            self.queue.append(event)
            self.ready.notify()
            self.ready.release()


    def get(self, timeout=None):
        """ Return the next event, waiting up to *timeout* seconds for one
            to arrive; wait forever if *timeout* is None.
        """

        if timeout is not None and timeout < 0:
            timeout = 0

        self.ready.acquire()
        try:
            if self.ready.wait_for(self.queue.__len__, timeout):
                return self.queue.popleft()
        finally:
            self.ready.release()

        raise TransportTimeout('no %s event within %s seconds' % (self.name, timeout))


    def empty(self):
        return len(self) == 0


# end of class EventSlot



class Proxy(ABC):
    """ Contract for a local handle to one remote object. An implementation
        must expose a writable :attr:`id` and :attr:`connection`, both
        assigned by the connection's registry, and the two methods below.
    """

    interface = None
    version = 1

    @abstractmethod
    def event_signature(self, opcode):
        """ Return the :class:`EventSignature` for *opcode*, or raise
            :class:`ProtocolError` if this interface has no such event.
        """

    @abstractmethod
    def dispatch_event(self, opcode, event):
        """ Deliver one decoded *event* for *opcode*.
        """


class BaseProxy(Proxy):
    """ Common implementation of :class:`Proxy`. Subclasses declare
        :attr:`interface` and the :attr:`events` table, and implement their
        requests on top of :func:`request`. An optional ``handle_<event>``
        method is invoked with each event before it is published to the
        slot of the same name.

        Passing a *connection* registers the new proxy immediately. The
        proxy only holds a weak reference to the connection: the connection
        owns the registry entry, not the other way around.

        :ivar slots: Per-event :class:`EventSlot` instances, keyed by name.
    """

    events = ()

    def __init__(self, connection=None):

        self.id = None
        self._connection = None
        self.slots = dict()

        for signature in self.events:
            self.slots[signature.name] = EventSlot(signature.name)

        if connection is not None:
            connection.register(self)


    def __repr__(self):
        return '<%s %s@%s>' % (self.__class__.__name__, self.interface, self.id)


    @property
    def connection(self):

        reference = self._connection

        if reference is None:
            raise StateError(repr(self) + ' is not registered with a connection')

        connection = reference()

        if connection is None:
            raise StateError(repr(self) + ' outlived its connection')

        return connection


    @connection.setter
    def connection(self, connection):
        self._connection = weakref.ref(connection)


    def event_signature(self, opcode):

        try:
            return self.events[opcode]
        except IndexError:
            raise ProtocolError('%s has no event with opcode %d' % (self.interface, opcode))


    def dispatch_event(self, opcode, event):

        signature = self.event_signature(opcode)

        handler = getattr(self, 'handle_' + signature.name, None)
        if handler is not None:
            handler(event)

        self.slots[signature.name].publish(event)


    def request(self, opcode, *args, signature=None):
        """ Send request *opcode* on this object. See
            :func:`wlclient.connection.Connection.send_request`.
        """

        return self.connection.send_request(self, opcode, *args, signature=signature)


    def wait(self, name, timeout=None):
        """ Return the next *name* event from this object's slot.
        """

        return self.slots[name].get(timeout)


    def release(self):
        """ Remove this proxy from its connection's registry. Any further
            events addressed to its id are dropped. Safe to call more than
            once, and after the connection is gone.
        """

        reference = self._connection

        if reference is None:
            return

        connection = reference()

        if connection is not None:
            connection.unregister(self)


# end of class BaseProxy


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
