""" Locate the display server socket, and other settings derived from the
    runtime environment.
"""

import os
import tempfile

from .protocol import fields
from .transport.base import ConfigurationError

runtime_variable = 'XDG_RUNTIME_DIR'
display_variable = 'WAYLAND_DISPLAY'


def runtime_directory(environ=None):
    """ Return the per-user runtime directory where the display server
        places its listening socket. The directory is required; its absence
        is a configuration error, raised before any connection attempt.
    """

    if environ is None:
        environ = os.environ

    try:
        directory = environ[runtime_variable]
    except KeyError:
        directory = None

    if directory:
        pass
    else:
        raise ConfigurationError(runtime_variable + ' is not set in the environment')

    return directory


def display_name(name=None, environ=None):
    """ Return the endpoint name to connect to. An explicit *name* wins over
        the ``WAYLAND_DISPLAY`` environment variable, which in turn wins
        over the default of ``wayland-0``.
    """

    if name:
        return name

    if environ is None:
        environ = os.environ

    name = environ.get(display_variable)

    if name:
        return name

    return fields.DEFAULT_DISPLAY


def socket_path(name=None, environ=None):
    """ Return the filesystem path of the display server socket. An
        absolute endpoint name is used as-is; anything else is relative to
        the runtime directory.
    """

    name = display_name(name, environ)

    if os.path.isabs(name):
        return name

    directory = runtime_directory(environ)
    return os.path.join(directory, name)


def create_anonymous_file(size, environ=None):
    """ Create a file of *size* bytes suitable for sharing with the display
        server, typically as the backing store of a shared memory pool. The
        file lives in the runtime directory and has no name on disk; the
        returned file object is the only handle to it.
    """

    size = int(size)

    if size < 0:
        raise ValueError('size must be non-negative, not %d' % (size))

    directory = runtime_directory(environ)

    handle = tempfile.TemporaryFile(prefix='wlclient-shared-', dir=directory)

    try:
        os.ftruncate(handle.fileno(), size)
    except OSError:
        handle.close()
        raise

    return handle


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
