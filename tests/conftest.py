import socket
import struct
import pytest

import wlclient


def _recv_exactly(sock, count):

    chunks = list()
    received = 0

    while received < count:
        data = sock.recv(count - received)
        if not data:
            break
        chunks.append(data)
        received += len(data)

    return b''.join(chunks)


@pytest.fixture
def frame():
    """ Return a function that builds one raw event frame, as the display
        server would send it.
    """

    def build(id, opcode, payload=b''):
        size = 8 + len(payload)
        return struct.pack('<II', id, (size << 16) | opcode) + payload

    return build


@pytest.fixture
def read_frame():
    """ Return a function that reads one raw request frame from the server
        end of the socket pair, as an (id, opcode, payload) tuple.
    """

    def read(sock):
        header = _recv_exactly(sock, 8)
        assert len(header) == 8

        id, word = struct.unpack('<II', header)
        size = word >> 16
        opcode = word & 0xffff

        payload = _recv_exactly(sock, size - 8)
        assert len(payload) == size - 8

        return id, opcode, payload

    return read


def _pair(free_running):

    client, server = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    server.settimeout(5)

    connection = wlclient.Connection.from_socket(client, free_running=free_running)
    return connection, server


@pytest.fixture
def session():
    """ A connection in request-dispatch mode, and the server end of its
        socket.
    """

    connection, server = _pair(free_running=False)

    yield connection, server

    if connection.closed == False:
        connection.close()
    server.close()


@pytest.fixture
def free_session():
    """ A connection in free-running mode, and the server end of its socket.
    """

    connection, server = _pair(free_running=True)

    yield connection, server

    if connection.closed == False:
        connection.close()
    server.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
