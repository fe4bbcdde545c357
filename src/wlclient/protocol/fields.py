""" Argument kinds and wire constants.

    Keep these in one place to avoid stringly-typed argument handling. The
    kind names match the type names used in the protocol XML schema.
"""

INT = 'int'
UINT = 'uint'
FIXED = 'fixed'
STRING = 'string'
OBJECT = 'object'
NEW_ID = 'new_id'
ARRAY = 'array'
FD = 'fd'

kinds = frozenset((INT, UINT, FIXED, STRING, OBJECT, NEW_ID, ARRAY, FD))

# Every message starts with an 8 byte header: the target object id, then
# one 32-bit word with the total size in the upper 16 bits and the opcode
# in the lower 16 bits.

HEADER_SIZE = 8
MAX_MESSAGE_SIZE = 0xffff

# Upper bound on descriptors accepted in a single recvmsg() call.

MAX_FDS = 28

# The display object is always the first object on a connection. Client
# allocated ids stay below the range reserved for the server.

DISPLAY_ID = 1
MAX_CLIENT_ID = 0xfeffffff

DEFAULT_DISPLAY = 'wayland-0'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
