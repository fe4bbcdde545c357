""" A class representation of one wire message, either an outgoing request
    being assembled or an incoming event being taken apart.
"""

import collections

from . import fields
from . import wire
from ..transport.base import ProtocolError


class Message:
    """ The :class:`Message` is a thin encapsulation of one frame on the wire:
        the *id* of the target object, the *opcode* selecting the request or
        event, the argument *payload*, and any file descriptors travelling
        alongside it as ancillary data.

        An outgoing message starts empty and accumulates arguments via
        :func:`write` and friends; the header is only computed by
        :func:`encode`, once every argument is present. An incoming message
        is consumed exactly once, in wire order, via :func:`get` and
        friends; there is no way to rewind the cursor.

        For incoming messages *fds* is the queue of descriptors received on
        the connection, shared by every message read from it: descriptors
        are not tied to a specific frame on the wire, only to the order in
        which descriptor arguments appear.

        :ivar offset: Cursor position within the payload of an incoming message.
        :ivar fds: Descriptors to send, or the queue of received descriptors.
        :ivar received: Descriptors that arrived with this frame.
    """

    def __init__(self, id, opcode, payload=b'', fds=None):

        self.id = id
        self.opcode = opcode
        self.offset = 0

        if fds is None:
            fds = collections.deque()

        self.fds = fds
        self.received = list()
        self.payload = payload
        self._parts = list()


    def __repr__(self):
        return 'Message(id=%d, opcode=%d, size=%d)' % (self.id, self.opcode, self.size)


    @property
    def size(self):
        """ Total size of this message on the wire, including the header.
        """

        if self._parts:
            return fields.HEADER_SIZE + sum(len(part) for part in self._parts)
        return fields.HEADER_SIZE + len(self.payload)


    @property
    def remaining(self):
        """ Number of payload bytes not yet consumed by the decode cursor.
        """

        return len(self.payload) - self.offset


    def encode(self):
        """ Return the header and payload of an outgoing message as a single
            bytes object, ready to be written to the socket.
        """

        if self._parts:
            self.payload = b''.join(self._parts)
            self._parts = list()

        size = fields.HEADER_SIZE + len(self.payload)

        if size > fields.MAX_MESSAGE_SIZE:
            raise ProtocolError('message size %d exceeds the maximum of %d' % (size, fields.MAX_MESSAGE_SIZE))

        header = wire.pack_uint(self.id) + wire.pack_uint((size << 16) | (self.opcode & 0xffff))
        return header + self.payload


    ## Outgoing arguments.

    def write(self, value, kind=None):
        """ Append one argument. If *kind* is not specified it is inferred
            from the Python type of *value*; see :func:`infer`.
        """

        if kind is None:
            kind = infer(value)

        if kind == fields.INT:
            part = wire.pack_int(value)
        elif kind == fields.UINT:
            part = wire.pack_uint(value)
        elif kind == fields.FIXED:
            part = wire.pack_fixed(value)
        elif kind == fields.STRING:
            part = wire.pack_string(value)
        elif kind == fields.ARRAY:
            part = wire.pack_array(value)
        elif kind == fields.OBJECT or kind == fields.NEW_ID:
            part = wire.pack_uint(object_id(value))
        elif kind == fields.FD:
            self.write_fd(value)
            return
        else:
            raise ProtocolError('unknown argument kind: ' + repr(kind))

        self._parts.append(part)


    def write_fd(self, value):
        """ File descriptors are not part of the payload; they are collected
            here and sent as SCM_RIGHTS ancillary data with the message.
        """

        try:
            fd = value.fileno()
        except AttributeError:
            fd = value

        if isinstance(fd, int) and fd >= 0:
            pass
        else:
            raise ProtocolError('cannot encode fd argument: ' + repr(value))

        self.fds.append(fd)


    ## Incoming arguments.

    def get(self, kind, resolve=None):
        """ Decode the next argument, which must be of the given *kind*.
            Object references are looked up with the *resolve* callable,
            which returns None for an id with no live object.
        """

        if kind == fields.INT:
            return self.get_int()
        if kind == fields.UINT or kind == fields.NEW_ID:
            return self.get_uint()
        if kind == fields.FIXED:
            return self.get_fixed()
        if kind == fields.STRING:
            return self.get_string()
        if kind == fields.ARRAY:
            return self.get_array()
        if kind == fields.OBJECT:
            return self.get_object(resolve)
        if kind == fields.FD:
            return self.get_fd()

        raise ProtocolError('unknown argument kind: ' + repr(kind))


    def get_int(self):
        value, self.offset = wire.unpack_int(self.payload, self.offset)
        return value


    def get_uint(self):
        value, self.offset = wire.unpack_uint(self.payload, self.offset)
        return value


    def get_fixed(self):
        value, self.offset = wire.unpack_fixed(self.payload, self.offset)
        return value


    def get_string(self):
        value, self.offset = wire.unpack_string(self.payload, self.offset)
        return value


    def get_array(self):
        value, self.offset = wire.unpack_array(self.payload, self.offset)
        return value


    def get_object(self, resolve=None):
        """ Return the object referenced by the next argument. The peer may
            legitimately refer to an object this client already destroyed,
            so an unknown id resolves to None rather than failing.
        """

        object_id = self.get_uint()

        if object_id == 0 or resolve is None:
            return None

        return resolve(object_id)


    def get_fd(self):
        """ Pop the next received descriptor. Descriptor order is fixed by
            the protocol, so running out of them means the event declaration
            and the peer disagree; the stream cannot be trusted afterwards.
        """

        try:
            return self.fds.popleft()
        except IndexError:
            raise ProtocolError('no file descriptor available for fd argument (opcode %d on object %d)' % (self.opcode, self.id))


# end of class Message



def infer(value):
    """ Pick the argument kind for *value* when a request does not declare
        one: proxies and None are object references, negative integers are
        signed, other integers unsigned, floats are fixed point, strings are
        strings, byte strings and sequences are arrays, and anything with a
        fileno() method is a file descriptor.
    """

    if value is None:
        return fields.OBJECT

    try:
        value.interface
        value.id
    except AttributeError:
        pass
    else:
        return fields.OBJECT

    if isinstance(value, bool):
        return fields.UINT

    if isinstance(value, int):
        if value < 0:
            return fields.INT
        return fields.UINT

    if isinstance(value, float):
        return fields.FIXED

    if isinstance(value, str):
        return fields.STRING

    if isinstance(value, (bytes, bytearray, memoryview, list, tuple)):
        return fields.ARRAY

    if callable(getattr(value, 'fileno', None)):
        return fields.FD

    raise ProtocolError('cannot infer argument kind for ' + repr(value))


def object_id(value):
    """ Return the wire id for an object argument; None is the null object.
    """

    if value is None:
        return 0

    try:
        value = value.id
    except AttributeError:
        pass

    if isinstance(value, int) and value >= 0:
        return value

    raise ProtocolError('cannot encode object argument: ' + repr(value))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
