""" Encoding and decoding of individual message arguments. Every argument
    occupies a 4-byte aligned region of the message payload; all values are
    little-endian.

    The pack functions return the encoded bytes for one argument. The
    unpack functions take the payload and an offset, and return a tuple of
    the decoded value and the offset of the next argument.
"""

import struct

from ..transport.base import ProtocolError

_int = struct.Struct('<i')
_uint = struct.Struct('<I')
_int64 = struct.Struct('<q')
_double = struct.Struct('<d')


def padded(length):
    """ Round *length* up to the next multiple of four.
    """

    return (length + 3) & ~3


def to_fixed(value):
    """ Convert a number to its 24.8 fixed point representation.
    """

    return int(round(value * 256))


def from_fixed(fixed):
    """ Convert a 24.8 fixed point integer to a float. The fixed value is
        added to the mantissa of a double whose exponent puts the lowest
        mantissa bit at 2**-8; subtracting the bias afterwards yields the
        exact value without any floating point multiplication.
    """

    bits = ((1023 + 44) << 52) + (1 << 51) + fixed
    value = _double.unpack(_int64.pack(bits))[0]
    return value - (3 << 43)


def _check(payload, offset, size):

    if offset + size > len(payload):
        raise ProtocolError("payload underflow: need %d bytes at offset %d, %d available" % (size, offset, len(payload) - offset))


def pack_int(value):

    try:
        return _int.pack(value)
    except struct.error as e:
        raise ProtocolError('cannot encode int argument: ' + repr(value)) from e


def pack_uint(value):

    try:
        return _uint.pack(value)
    except struct.error as e:
        raise ProtocolError('cannot encode uint argument: ' + repr(value)) from e


def pack_fixed(value):

    try:
        fixed = to_fixed(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise ProtocolError('cannot encode fixed argument: ' + repr(value)) from e

    try:
        return _int.pack(fixed)
    except struct.error as e:
        raise ProtocolError('fixed argument out of range: ' + repr(value)) from e


def pack_string(value):
    """ Strings are sent as a length (including the terminating NUL), the
        UTF-8 bytes, the NUL, and zero padding up to the next 4-byte
        boundary. A None value is a null string, sent as length zero.
    """

    if value is None:
        return _uint.pack(0)

    try:
        encoded = value.encode('utf-8')
    except (AttributeError, UnicodeError) as e:
        raise ProtocolError('cannot encode string argument: ' + repr(value)) from e

    length = len(encoded) + 1
    padding = padded(length) - len(encoded)

    return _uint.pack(length) + encoded + b'\x00' * padding


def pack_array(values):
    """ Arrays are sent as a byte length followed by the raw contents. A
        sequence of integers is packed as unsigned 32-bit elements; bytes
        are sent as-is, and must already be a multiple of four long.
    """

    if isinstance(values, (bytes, bytearray, memoryview)):
        raw = bytes(values)
    else:
        try:
            raw = struct.pack('<%dI' % (len(values)), *values)
        except (struct.error, TypeError) as e:
            raise ProtocolError('cannot encode array argument: ' + repr(values)) from e

    if len(raw) % 4 != 0:
        raise ProtocolError('array length %d is not a multiple of four' % (len(raw)))

    return _uint.pack(len(raw)) + raw


def unpack_int(payload, offset):

    _check(payload, offset, 4)
    value = _int.unpack_from(payload, offset)[0]
    return value, offset + 4


def unpack_uint(payload, offset):

    _check(payload, offset, 4)
    value = _uint.unpack_from(payload, offset)[0]
    return value, offset + 4


def unpack_fixed(payload, offset):

    fixed, offset = unpack_int(payload, offset)
    return from_fixed(fixed), offset


def unpack_string(payload, offset):

    length, offset = unpack_uint(payload, offset)

    if length == 0:
        return None, offset

    region = padded(length)
    _check(payload, offset, region)

    raw = bytes(payload[offset:offset + length])

    if raw[-1:] != b'\x00':
        raise ProtocolError('string argument is not NUL terminated')

    try:
        value = raw[:-1].decode('utf-8')
    except UnicodeDecodeError as e:
        raise ProtocolError('string argument is not valid UTF-8') from e

    return value, offset + region


def unpack_array(payload, offset):

    length, offset = unpack_uint(payload, offset)

    if length % 4 != 0:
        raise ProtocolError('array length %d is not a multiple of four' % (length))

    _check(payload, offset, length)
    values = struct.unpack_from('<%dI' % (length // 4), payload, offset)

    return list(values), offset + length


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
