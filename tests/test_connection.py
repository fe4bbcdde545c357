import array
import collections
import logging
import os
import socket
import struct
import threading
import time
import pytest

import wlclient
from wlclient.protocol import wire
from wlclient.protocol.fields import FD, UINT
from wlclient.protocol.message import Message
from wlclient.transport import framing


class Pinger(wlclient.BaseProxy):
    interface = 'wl_pinger'
    version = 3

    events = (
        wlclient.EventSignature('ping', ('value', UINT)),
    )


class Keyboard(wlclient.BaseProxy):
    interface = 'wl_keyboard'

    events = (
        wlclient.EventSignature('keymap', ('format', UINT), ('fd', FD), ('size', UINT)),
    )


def uint(value):
    return struct.pack('<I', value)


def test_sync(session, frame, read_frame):

    connection, server = session

    callback = connection.display.sync()
    assert callback.id == 2

    assert read_frame(server) == (1, 0, uint(2))

    server.sendall(frame(2, 0, uint(42)) + frame(1, 1, uint(2)))

    assert connection.request_dispatch(timeout=1) == True
    assert callback.wait('done', 1).callback_data == 42

    # The done event releases the callback; delete_id finds nothing left.
    assert connection.resolve(2) is None

    assert connection.request_dispatch(timeout=1) == True
    assert connection.is_open

    connection.close()
    assert connection.is_open == False

    with pytest.raises(wlclient.StateError):
        connection.display.sync()

    with pytest.raises(wlclient.StateError):
        connection.request_dispatch(0)

    with pytest.raises(wlclient.StateError):
        connection.close()


def test_nothing_pending(session):

    connection, server = session

    started = time.time()
    assert connection.request_dispatch(timeout=0.1) == False
    assert time.time() - started < 2

    assert connection.is_open


def _answer_sync(server, frame, read_frame, data):

    id, opcode, payload = read_frame(server)
    assert (id, opcode) == (1, 0)

    new_id = struct.unpack('<I', payload)[0]
    server.sendall(frame(new_id, 0, uint(data)) + frame(1, 1, uint(new_id)))


def test_roundtrip(session, frame, read_frame):

    connection, server = session

    peer = threading.Thread(target=_answer_sync, args=(server, frame, read_frame, 7))
    peer.start()

    done = connection.roundtrip(timeout=5)
    peer.join()

    assert done.callback_data == 7


def test_roundtrip_free_running(free_session, frame, read_frame):

    connection, server = free_session

    peer = threading.Thread(target=_answer_sync, args=(server, frame, read_frame, 9))
    peer.start()

    done = connection.roundtrip(timeout=5)
    peer.join()

    assert done.callback_data == 9


def test_roundtrip_timeout(session, read_frame):

    connection, server = session

    with pytest.raises(wlclient.TransportTimeout):
        connection.roundtrip(timeout=0.2)

    read_frame(server)


def test_delivery_order(free_session, frame):
    """ Events are delivered one at a time, in arrival order, even when one
        target's handler is slow.
    """

    connection, server = free_session

    first = Pinger(connection)
    second = Pinger(connection)

    received = list()
    finished = threading.Event()

    def slow(event):
        time.sleep(0.1)
        received.append(('first', event.value))
        if len(received) == 3:
            finished.set()

    def fast(event):
        received.append(('second', event.value))
        if len(received) == 3:
            finished.set()

    first.slots['ping'].register(slow, weak=False)
    second.slots['ping'].register(fast, weak=False)

    server.sendall(frame(first.id, 0, uint(1)) + frame(second.id, 0, uint(2)) + frame(first.id, 0, uint(3)))

    assert finished.wait(5) == True
    assert received == [('first', 1), ('second', 2), ('first', 3)]


def test_queued_events(session, frame):

    connection, server = session
    pinger = Pinger(connection)

    server.sendall(frame(pinger.id, 0, uint(5)) + frame(pinger.id, 0, uint(6)))

    assert connection.request_dispatch(1) == True
    assert connection.request_dispatch(1) == True

    assert pinger.wait('ping', 0).value == 5
    assert pinger.wait('ping', 0).value == 6

    with pytest.raises(wlclient.TransportTimeout):
        pinger.wait('ping', 0.05)


def test_unknown_target(session, frame, caplog):

    connection, server = session
    pinger = Pinger(connection)

    server.sendall(frame(77, 0, uint(1)) + frame(pinger.id, 0, uint(2)))

    with caplog.at_level(logging.WARNING, logger='wlclient'):
        assert connection.request_dispatch(1) == True

    assert any('unknown object 77' in record.getMessage() for record in caplog.records)

    assert connection.request_dispatch(1) == True
    assert pinger.wait('ping', 0).value == 2
    assert connection.is_open


def test_released_target(session, frame):

    connection, server = session
    pinger = Pinger(connection)
    pinger.release()

    server.sendall(frame(pinger.id, 0, uint(1)))

    assert connection.request_dispatch(1) == True
    assert pinger.slots['ping'].empty()
    assert connection.is_open


def test_unknown_opcode(session, frame):

    connection, server = session
    server.sendall(frame(1, 9))

    with pytest.raises(wlclient.ProtocolError):
        connection.request_dispatch(1)

    assert connection.is_open == False
    assert isinstance(connection.error, wlclient.ProtocolError)

    with pytest.raises(wlclient.TransportConnectionError) as caught:
        connection.display.sync()

    assert caught.value.__cause__ is connection.error

    with pytest.raises(wlclient.TransportConnectionError):
        connection.request_dispatch(1)

    connection.close()

    with pytest.raises(wlclient.StateError):
        connection.close()


def test_short_declared_size(session):

    connection, server = session
    server.sendall(struct.pack('<II', 1, (4 << 16) | 0))

    with pytest.raises(wlclient.ProtocolError):
        connection.request_dispatch(1)

    assert connection.error is not None


def test_trailing_bytes(session, frame):

    connection, server = session
    pinger = Pinger(connection)

    server.sendall(frame(pinger.id, 0, uint(1) + uint(2)))

    with pytest.raises(wlclient.ProtocolError):
        connection.request_dispatch(1)


def test_handler_failure(session, frame):

    connection, server = session
    pinger = Pinger(connection)

    def broken(event):
        raise ValueError('bad value %d' % (event.value))

    pinger.slots['ping'].register(broken, weak=False)
    server.sendall(frame(pinger.id, 0, uint(3)))

    with pytest.raises(wlclient.DispatchError) as caught:
        connection.request_dispatch(1)

    assert isinstance(caught.value.__cause__, ValueError)
    assert isinstance(connection.error, wlclient.DispatchError)


def test_peer_hangup(session):

    connection, server = session
    server.close()

    with pytest.raises(wlclient.TransportConnectionError):
        connection.request_dispatch(1)

    with pytest.raises(wlclient.TransportConnectionError):
        connection.display.sync()


def test_free_running_failure(free_session, frame):

    connection, server = free_session
    server.sendall(frame(1, 9))

    deadline = time.time() + 5
    while connection.error is None and time.time() < deadline:
        time.sleep(0.01)

    assert isinstance(connection.error, wlclient.ProtocolError)

    with pytest.raises(wlclient.TransportConnectionError):
        connection.display.sync()


def test_error_event(session, frame):

    connection, server = session
    pinger = Pinger(connection)

    message = b'invalid arguments'
    payload = uint(pinger.id) + uint(wlclient.Display.INVALID_METHOD) + wire.pack_string('invalid arguments')
    server.sendall(frame(1, 0, payload))

    stale = uint(99) + uint(wlclient.Display.IMPLEMENTATION) + wire.pack_string('gone')
    server.sendall(frame(1, 0, stale))

    assert connection.request_dispatch(1) == True
    assert connection.request_dispatch(1) == True

    event = connection.display.wait('error', 0)
    assert event.object_id is pinger
    assert event.code == wlclient.Display.INVALID_METHOD
    assert event.message == message.decode()

    event = connection.display.wait('error', 0)
    assert event.object_id is None
    assert event.message == 'gone'


def test_encode_failure_sends_nothing(session):

    connection, server = session

    with pytest.raises(wlclient.ProtocolError):
        connection.display.request(0, 1, object())

    with pytest.raises(wlclient.ProtocolError):
        connection.display.request(0, 1, 2, signature=(UINT,))

    server.setblocking(False)

    with pytest.raises(BlockingIOError):
        server.recv(64)

    assert connection.is_open


def test_request_encoded_once(session, read_frame, monkeypatch):

    connection, server = session
    encoded = list()
    encode = Message.encode

    def counting(message):
        encoded.append(message.id)
        return encode(message)

    monkeypatch.setattr(Message, 'encode', counting)

    connection.display.sync()
    assert encoded == [1]

    assert read_frame(server) == (1, 0, uint(2))


def test_unregistered_proxy(session):

    connection, server = session

    with pytest.raises(wlclient.StateError):
        connection.send_request(Pinger(), 0)


def test_concurrent_senders(session, read_frame):

    connection, server = session

    count = 8
    frames = 50

    def send_many(number):
        pinger = Pinger(connection)
        for sequence in range(frames):
            pinger.request(0, number, sequence, 'pinger-%d-%d' % (number, sequence))

    threads = [threading.Thread(target=send_many, args=(number,)) for number in range(count)]

    for thread in threads:
        thread.start()

    seen = dict()

    for received in range(count * frames):
        id, opcode, payload = read_frame(server)

        number, sequence = struct.unpack('<II', payload[:8])
        text, offset = wire.unpack_string(payload, 8)

        assert offset == len(payload)
        assert text == 'pinger-%d-%d' % (number, sequence)

        # Frames from one thread arrive in the order they were sent.
        assert seen.get(number, -1) == sequence - 1
        seen[number] = sequence

    for thread in threads:
        thread.join()

    assert seen == dict((number, frames - 1) for number in range(count))


def test_fd_argument(session):

    connection, server = session
    pinger = Pinger(connection)

    read_end, write_end = os.pipe()
    received = collections.deque()

    try:
        pinger.request(1, write_end, 5, signature=(FD, UINT))

        message = framing.read_message(server, received)
        assert message.id == pinger.id
        assert message.opcode == 1
        assert message.get_uint() == 5
        assert len(received) == 1

        fd = message.get_fd()
        os.write(fd, b'x')
        os.close(fd)

        assert os.read(read_end, 1) == b'x'
    finally:
        os.close(read_end)
        os.close(write_end)


def _send_with_fd(server, data, fd):

    rights = array.array('i', [fd])
    server.sendmsg([data], [(socket.SOL_SOCKET, socket.SCM_RIGHTS, rights)])


def test_dropped_event_descriptors(session, frame, caplog):
    """ Descriptors that arrive with an event for an unknown object are
        closed along with it, and never handed to a later event.
    """

    connection, server = session
    keyboard = Keyboard(connection)

    first_read, first_write = os.pipe()
    second_read, second_write = os.pipe()

    try:
        os.write(first_write, b'one')
        os.write(second_write, b'two')

        _send_with_fd(server, frame(77, 0, uint(1) + uint(3)), first_read)
        _send_with_fd(server, frame(keyboard.id, 0, uint(1) + uint(3)), second_read)

        with caplog.at_level(logging.WARNING, logger='wlclient'):
            assert connection.request_dispatch(1) == True

        assert any('1 descriptors closed' in record.getMessage() for record in caplog.records)

        assert connection.request_dispatch(1) == True

        event = keyboard.wait('keymap', 0)
        assert event.format == 1
        assert event.size == 3

        try:
            assert os.read(event.fd, 3) == b'two'
        finally:
            os.close(event.fd)

        assert len(connection.transport.incoming_fds) == 0
        assert connection.is_open
    finally:
        for fd in (first_read, first_write, second_read, second_write):
            os.close(fd)


def test_slot_depth():

    slot = wlclient.EventSlot('ping', depth=2)

    for value in (1, 2, 3):
        slot.publish(value)

    assert len(slot) == 2
    assert slot.get(0) == 2
    assert slot.get(0) == 3
    assert slot.empty()

    timer = threading.Timer(0.1, slot.publish, args=(4,))
    timer.start()

    assert slot.get(5) == 4
    timer.join()


def test_unclaimed_events_are_bounded(session, frame):

    connection, server = session
    slot = connection.display.slots['delete_id']

    count = slot.depth + 18
    server.sendall(b''.join(frame(1, 1, uint(1000 + number)) for number in range(count)))

    for number in range(count):
        assert connection.request_dispatch(1) == True

    assert len(slot) == slot.depth

    # The oldest events made room for the newest.
    assert connection.display.wait('delete_id', 0).id == 1000 + count - slot.depth


def test_context_manager():

    client, server = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    server.settimeout(5)

    try:
        with wlclient.Connection.from_socket(client) as connection:
            assert connection.is_open
            engine = connection.engine

        assert connection.closed == True
        assert engine.thread.is_alive() == False
        assert server.recv(1) == b''

        # Closing explicitly inside the block is also fine.

        other, peer = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)

        with wlclient.Connection.from_socket(other) as connection:
            connection.close()

        peer.close()
    finally:
        server.close()


def test_registry_globals(session, frame, read_frame):

    connection, server = session

    registry = connection.display.get_registry()
    assert registry.id == 2
    assert read_frame(server) == (1, 1, uint(2))

    announce = uint(1) + wire.pack_string('wl_pinger') + uint(4)
    server.sendall(frame(2, 0, announce))

    announce = uint(2) + wire.pack_string('wl_shm') + uint(1)
    server.sendall(frame(2, 0, announce))

    server.sendall(frame(2, 1, uint(2)))

    for number in range(3):
        assert connection.request_dispatch(1) == True

    assert registry.globals == {1: ('wl_pinger', 4)}
    assert registry.find('wl_pinger') == [(1, 4)]
    assert registry.find('wl_shm') == []

    pinger = registry.bind(1, Pinger())
    assert pinger.id == 3
    assert pinger.connection is connection

    expected = uint(1) + wire.pack_string('wl_pinger') + uint(3) + uint(3)
    assert read_frame(server) == (2, 0, expected)


def test_delete_id(session, frame):

    connection, server = session
    pinger = Pinger(connection)

    server.sendall(frame(1, 1, uint(pinger.id)))
    assert connection.request_dispatch(1) == True

    assert connection.resolve(pinger.id) is None


def test_dispatch_from_dispatch_thread(free_session, frame):

    connection, server = free_session
    pinger = Pinger(connection)

    errors = list()
    finished = threading.Event()

    def reentrant(event):
        try:
            connection.request_dispatch(0)
        except wlclient.StateError as e:
            errors.append(e)
        finished.set()

    pinger.slots['ping'].register(reentrant, weak=False)
    server.sendall(frame(pinger.id, 0, uint(1)))

    assert finished.wait(5) == True
    assert len(errors) == 1
    assert connection.is_open


def test_logger_collaborator(frame, caplog):

    client, server = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    logger = logging.getLogger('wlclient.tests.collaborator')

    connection = wlclient.Connection.from_socket(client, logger=logger)
    assert connection.logger is logger

    try:
        server.sendall(frame(55, 0))

        with caplog.at_level(logging.DEBUG, logger='wlclient.tests.collaborator'):
            assert connection.request_dispatch(1) == True

        names = set(record.name for record in caplog.records)
        assert names == set(['wlclient.tests.collaborator'])
    finally:
        connection.close()
        server.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
