""" Stream socket transport for a local display server.
"""

from __future__ import annotations

import collections
import socket
import threading

from typing import Optional

from . import framing
from ..protocol.message import Message
from .base import Transport, TransportConnectionError, StateError


class UnixTransport(Transport):
    """ Move whole messages over a connected AF_UNIX stream socket. The
        socket is either opened from a filesystem *path*, or an already
        connected *sock* is adopted (one end of a socketpair, or a socket
        handed over by a parent process).

        Sends from multiple threads are serialized by a lock held around
        the single write of each frame. Reads are expected to come from a
        single thread, the dispatch thread of the owning connection.

        :ivar incoming_fds: Descriptors received and not yet consumed.
    """

    def __init__(self, path: Optional[str] = None, sock: Optional[socket.socket] = None):

        if path is None and sock is None:
            raise ValueError('either a path or a connected socket is required')

        self.path = path
        self.socket = sock
        self.send_lock = threading.Lock()
        self.incoming_fds = collections.deque()


    def __repr__(self) -> str:
        return 'UnixTransport(%r)' % (self.path,)


    @property
    def is_open(self) -> bool:
        return self.socket is not None


    def open(self) -> None:

        if self.socket is not None:
            return

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM, 0)

        try:
            sock.connect(self.path)
        except OSError as e:
            sock.close()
            raise TransportConnectionError('cannot connect to %s: %s' % (self.path, e)) from e

        self.socket = sock


    def shutdown(self) -> None:
        """ Shut down both directions of the socket without releasing the
            descriptor. A thread blocked in a read wakes up with end of
            stream, while a poller watching the descriptor stays valid.
        """

        sock = self.socket

        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected by the peer; nothing left to shut down.
            pass


    def close(self) -> None:

        sock = self.socket

        if sock is None:
            return

        self.socket = None
        sock.close()


    def fileno(self) -> int:

        sock = self.socket

        if sock is None:
            raise StateError('transport is closed')

        return sock.fileno()


    def send(self, message: Message) -> int:

        sock = self.socket

        if sock is None:
            raise StateError('transport is closed')

        # The lock keeps concurrent callers from interleaving their frames;
        # each frame is a single sendmsg() call.

        self.send_lock.acquire()
        try:
            return framing.send_message(sock, message)
        finally:
            self.send_lock.release()


    def recv(self) -> Message:

        sock = self.socket

        if sock is None:
            raise StateError('transport is closed')

        return framing.read_message(sock, self.incoming_fds)


# end of class UnixTransport


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
