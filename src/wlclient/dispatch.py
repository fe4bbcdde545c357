""" The dispatch engine: a background thread that reads event frames from
    the connection's socket, one at a time, and delivers each to the proxy
    it is addressed to.

    The thread runs in one of two modes. Free-running, it delivers frames as
    soon as they arrive. Otherwise it waits for a dispatch request from a
    caller, and pumps exactly one frame per request; this lets the caller
    interleave protocol traffic with its own work without dedicating a
    thread to a blocking read loop.

    Requests are handed to the thread through a queue, and the thread is
    woken by a message on an inproc ZeroMQ socket pair; the poller that
    watches the signal socket also watches the stream socket's descriptor
    in free-running mode. Each request carries a :class:`PendingDispatch`
    that the thread completes when the cycle is over.
"""

import queue
import threading
import time

import zmq

from . import weakref
from .transport import framing
from .transport.base import (
    DispatchError,
    ProtocolError,
    StateError,
    TransportConnectionError,
    TransportError,
)

zmq_context = zmq.Context()

IDLE = 'idle'
READING = 'reading'
DELIVERING = 'delivering'
CLOSED = 'closed'


class PendingDispatch:
    """ Caller-side handle for one requested dispatch cycle.
    """

    def __init__(self, timeout=None):

        self.timeout = timeout
        self.result = None
        self.error = None
        self.done = threading.Event()


    def wait(self, timeout=None):
        """ Wait for the cycle to finish. Returns True if it did, in which
            case :attr:`result` or :attr:`error` is set.
        """

        return self.done.wait(timeout)


    def _complete(self, result):
        self.result = result
        self.done.set()


    def _fail(self, error):
        self.error = error
        self.done.set()


# end of class PendingDispatch



class DispatchEngine:
    """ Read and deliver incoming events for one connection. The state of
        the engine is one of :data:`IDLE`, :data:`READING`,
        :data:`DELIVERING`, or :data:`CLOSED`; the last is terminal.

        Any fatal error (a socket fault, a malformed frame, an event the
        target's interface does not declare, or a failing handler) records
        the error on the connection and stops the engine: continuing past
        any of them would mean misreading the rest of the stream, or
        running against a peer whose schema does not match ours.

        :ivar interval: Seconds between checks for shutdown while waiting.
    """

    interval = 0.1

    def __init__(self, connection, free_running=False):

        self.connection = weakref.ref(connection)
        self.transport = connection.transport
        self.registry = connection.registry
        self.logger = connection.logger
        self.free_running = free_running

        self.state = IDLE
        self.shutdown = False
        self.error = None

        self.pending = queue.SimpleQueue()

        internal = 'inproc://wlclient.dispatch:signal:%d' % (id(self))
        self.signal_rx = zmq_context.socket(zmq.PAIR)
        self.signal_rx.setsockopt(zmq.LINGER, 0)
        self.signal_rx.bind(internal)
        self.signal_tx = zmq_context.socket(zmq.PAIR)
        self.signal_tx.setsockopt(zmq.LINGER, 0)
        self.signal_tx.connect(internal)
        self.signal_lock = threading.Lock()

        self.thread = threading.Thread(target=self.run, name='wlclient-dispatch')
        self.thread.daemon = True
        self.thread.start()


    def request(self, timeout=None):
        """ Ask the dispatch thread to pump one frame, waiting up to
            *timeout* seconds for one to arrive. Returns True if a frame was
            read and handled, False if none arrived in time. Fatal errors
            from the cycle are raised here, in the caller's thread.
        """

        if threading.current_thread() is self.thread:
            raise StateError('a dispatch cannot be requested from the dispatch thread')

        if self.state == CLOSED or self.shutdown == True:
            raise StateError('dispatch engine is stopped')

        pending = PendingDispatch(timeout)
        self.pending.put(pending)
        self._signal()

        while pending.wait(1) == False:
            if self.thread.is_alive() == False and pending.done.is_set() == False:
                raise StateError('dispatch engine is stopped')

        if pending.error is not None:
            raise pending.error

        return pending.result


    def stop(self, timeout=None):
        """ Signal the thread to exit, and wait for it unless called from
            the thread itself (for example, by an event handler).
        """

        self.shutdown = True

        try:
            self._signal()
        except StateError:
            # The thread already exited on its own.
            pass

        if threading.current_thread() is not self.thread:
            self.thread.join(timeout)

        self.signal_lock.acquire()
        signal_tx = self.signal_tx
        self.signal_tx = None
        self.signal_lock.release()

        if signal_tx is not None:
            signal_tx.close()


    def run(self):

        poller = zmq.Poller()
        poller.register(self.signal_rx, zmq.POLLIN)

        fd = None
        if self.free_running == True:
            fd = self.transport.fileno()
            poller.register(fd, zmq.POLLIN)

        try:
            while self.shutdown == False and self.state != CLOSED:
                for active, flag in poller.poll(1000):
                    if self.shutdown == True:
                        break

                    if active is self.signal_rx:
                        self._handle_request()
                    elif active == fd:
                        self._handle_readable()
        finally:
            self.state = CLOSED
            self._drain()
            self.signal_rx.close()


    def pump(self, timeout=None):
        """ Run one Reading/Delivering cycle. Returns False if nothing was
            ready within *timeout* seconds, True once a frame has been read
            and delivered (or dropped, if its target no longer exists).
        """

        if self.state == CLOSED:
            raise StateError('dispatch engine is stopped')

        self.state = READING

        try:
            if self._wait_readable(timeout) == False:
                self.state = IDLE
                return False

            try:
                message = self.transport.recv()
            except (BlockingIOError, InterruptedError):
                # Nothing consumed; try again on the next cycle.
                self.state = IDLE
                return False

            self.state = DELIVERING
            self.deliver(message)

        except TransportError as e:
            if self.shutdown == True:
                self.state = CLOSED
                raise StateError('connection closed during dispatch') from e

            self._fatal(e)
            raise

        self.state = IDLE
        return True


    def deliver(self, message):
        """ Decode the arguments of *message* according to the target's
            event table, and hand the resulting event to the target. Events
            for unknown objects are dropped: the client may have released
            an object while the peer was still sending events for it.
        """

        self.logger.debug('event: object %d opcode %d, %d bytes', message.id, message.opcode, message.size)

        proxy = self.registry.resolve(message.id)

        if proxy is None:
            # Descriptors sent with this event must not be handed to the
            # next event that declares an fd argument.

            closed = framing.discard(message.fds, message.received)
            self.logger.warning('dropping event %d for unknown object %d (%d descriptors closed)', message.opcode, message.id, closed)
            return False

        signature = proxy.event_signature(message.opcode)
        resolve = self.registry.resolve

        values = list()
        for kind in signature.kinds:
            values.append(message.get(kind, resolve))

        if message.remaining != 0:
            raise ProtocolError('%d unread bytes after %s.%s event' % (message.remaining, proxy.interface, signature.name))

        event = signature.build(values)

        try:
            proxy.dispatch_event(message.opcode, event)
        except Exception as e:
            raise DispatchError('%s.%s handler failed: %s' % (proxy.interface, signature.name, e)) from e

        return True


    def _fatal(self, error):

        self.state = CLOSED
        self.error = error
        self.logger.error('dispatch failed, connection is unusable: %s', error)

        connection = self.connection()
        if connection is not None:
            connection._fail(error)


    def _drain(self):
        """ Fail any dispatch requests that will never be serviced.
        """

        while True:
            try:
                pending = self.pending.get(block=False)
            except queue.Empty:
                break

            pending._fail(StateError('dispatch engine is stopped'))


    def _handle_request(self):

        # Clear one signal and service one request. A signal without a
        # request is a wakeup from stop().

        self.signal_rx.recv(flags=zmq.NOBLOCK)

        try:
            pending = self.pending.get(block=False)
        except queue.Empty:
            return

        if self.shutdown == True:
            pending._fail(StateError('dispatch engine is stopped'))
            return

        try:
            result = self.pump(pending.timeout)
        except TransportError as e:
            pending._fail(e)
        else:
            pending._complete(result)


    def _handle_readable(self):

        try:
            self.pump(0)
        except StateError:
            pass
        except TransportError:
            # Already recorded and logged by _fatal().
            pass


    def _signal(self):

        self.signal_lock.acquire()
        try:
            if self.signal_tx is None:
                raise StateError('dispatch engine is stopped')
            self.signal_tx.send(b'', flags=zmq.NOBLOCK)
        except zmq.Again:
            # No peer: the dispatch thread closed its end on the way out.
            raise StateError('dispatch engine is stopped')
        finally:
            self.signal_lock.release()


    def _wait_readable(self, timeout):

        try:
            fd = self.transport.fileno()
        except StateError:
            if self.shutdown == True:
                raise
            raise TransportConnectionError('socket is closed')

        poller = zmq.Poller()
        poller.register(fd, zmq.POLLIN)

        if timeout is None:
            deadline = None
        else:
            deadline = time.time() + timeout

        while True:
            if self.shutdown == True:
                raise StateError('connection is closed')

            if deadline is None:
                wait = self.interval
            else:
                wait = min(self.interval, max(0, deadline - time.time()))

            try:
                ready = poller.poll(wait * 1000)
            except zmq.ZMQError as e:
                raise TransportConnectionError('poll failed: ' + str(e)) from e

            if ready:
                return True

            if deadline is not None and time.time() >= deadline:
                return False


# end of class DispatchEngine


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
