""" The message model and argument codec of the wire protocol. Nothing in
    this package touches a socket; framing and transfer of complete
    messages is the job of :mod:`wlclient.transport`.
"""

from . import fields
from . import wire
from . import message


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
