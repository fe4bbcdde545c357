""" Reading and writing whole messages on a stream socket.

    Outgoing
        header (8 bytes) + payload, one sendmsg() call, descriptors as
        SCM_RIGHTS ancillary data

    Incoming
        header (8 bytes), then size - 8 bytes of payload; any descriptors
        arriving with either read are appended to the connection's queue,
        and also recorded on the message they arrived with
"""

from __future__ import annotations

import array
import os
import socket
import struct

from typing import Deque, Iterable, List, Tuple

from ..protocol import fields
from ..protocol.message import Message
from .base import ProtocolError, TransportConnectionError

_header = struct.Struct('<II')


def pack_header(id: int, opcode: int, size: int) -> bytes:

    return _header.pack(id, (size << 16) | (opcode & 0xffff))


def unpack_header(header: bytes) -> Tuple[int, int, int]:
    """ Return the (id, opcode, size) tuple described by an 8 byte header.
    """

    id, word = _header.unpack(header)
    opcode = word & 0xffff
    size = word >> 16

    return id, opcode, size


def send_message(sock: socket.socket, message: Message) -> int:
    """ Write one complete *message* to *sock*. The header, payload, and
        descriptors go out in a single sendmsg() call; a short write leaves
        a partial frame on the stream, which cannot be recovered from.
    """

    data = message.encode()

    if message.fds:
        fds = array.array('i', message.fds)
        ancillary = [(socket.SOL_SOCKET, socket.SCM_RIGHTS, fds)]
    else:
        ancillary = []

    try:
        sent = sock.sendmsg([data], ancillary)
    except OSError as e:
        raise TransportConnectionError('write failed: ' + str(e)) from e

    if sent != len(data):
        raise TransportConnectionError('short write: %d of %d bytes sent' % (sent, len(data)))

    return sent


def read_message(sock: socket.socket, fds: Deque[int]) -> Message:
    """ Read one complete message from *sock*. Received descriptors are
        appended to the *fds* queue, which becomes the descriptor queue of
        the returned :class:`Message`. The descriptors that arrived with
        this particular frame are listed in its :attr:`received` attribute,
        so that they can be discarded if the message is never decoded.
    """

    received = list()

    try:
        header = _read_exactly(sock, fields.HEADER_SIZE, received, transient=True)

        if len(header) == 0:
            raise TransportConnectionError('connection closed by peer')

        if len(header) != fields.HEADER_SIZE:
            raise TransportConnectionError('short read: %d of %d header bytes' % (len(header), fields.HEADER_SIZE))

        id, opcode, size = unpack_header(header)

        if size < fields.HEADER_SIZE:
            raise ProtocolError('message for object %d declares size %d, smaller than its header' % (id, size))

        expected = size - fields.HEADER_SIZE
        payload = _read_exactly(sock, expected, received)

        if len(payload) != expected:
            raise TransportConnectionError('short read: %d of %d payload bytes' % (len(payload), expected))
    finally:
        fds.extend(received)

    message = Message(id, opcode, payload, fds)
    message.received = received
    return message


def discard(fds: Deque[int], received: Iterable[int]) -> int:
    """ Remove the *received* descriptors from the *fds* queue and close
        them. Descriptors already taken off the queue belong to whoever took
        them, and are left alone. Returns the number of descriptors closed.
    """

    closed = 0

    for fd in received:
        try:
            fds.remove(fd)
        except ValueError:
            continue

        try:
            os.close(fd)
        except OSError:
            pass

        closed += 1

    return closed


def _read_exactly(sock: socket.socket, count: int, fds: List[int], transient: bool = False) -> bytes:
    """ Read up to *count* bytes, stopping early only at end of stream.
        With *transient* set, an interrupted or would-block error on the
        first read propagates unwrapped: no bytes have been consumed at
        that point, and the caller may treat it as "nothing ready yet".
    """

    chunks = list()
    received = 0
    space = socket.CMSG_SPACE(fields.MAX_FDS * array.array('i').itemsize)

    while received < count:
        try:
            data, ancdata, flags, address = sock.recvmsg(count - received, space)
        except (BlockingIOError, InterruptedError):
            if transient and received == 0:
                raise
            continue
        except OSError as e:
            raise TransportConnectionError('read failed: ' + str(e)) from e

        _collect(ancdata, flags, fds)

        if not data:
            break

        chunks.append(data)
        received += len(data)

    return b''.join(chunks)


def _collect(ancdata, flags: int, fds: List[int]) -> None:

    for level, kind, data in ancdata:
        if level == socket.SOL_SOCKET and kind == socket.SCM_RIGHTS:
            received = array.array('i')
            received.frombytes(data[:len(data) - (len(data) % received.itemsize)])
            fds.extend(received)

    if flags & socket.MSG_CTRUNC:
        raise ProtocolError('ancillary data truncated, file descriptors were lost')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
