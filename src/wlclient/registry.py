""" The live mapping from object id to proxy for one connection.
"""

import threading

from .protocol import fields
from .transport.base import ProtocolError


class ObjectRegistry:
    """ Allocate object ids and track the proxy bound to each one. Ids are
        handed out in strictly increasing order starting at 1 and are never
        reused while the registry exists, even after the object they named
        is gone: a late event for a stale id then finds nothing, instead of
        landing on an unrelated new object.

        A single lock covers both the id counter and the mapping.

        :ivar current_id: The most recently allocated id; 0 before the first.
    """

    def __init__(self):

        self.lock = threading.Lock()
        self.current_id = 0
        self.objects = dict()


    def __contains__(self, id):
        return self.resolve(id) is not None


    def __len__(self):
        self.lock.acquire()
        try:
            return len(self.objects)
        finally:
            self.lock.release()


    def register(self, proxy, connection=None):
        """ Assign the next id to *proxy*, bind it to *connection*, and add
            it to the mapping. The new id is returned, and is also available
            as the proxy's id from here on.
        """

        self.lock.acquire()
        try:
            if self.current_id >= fields.MAX_CLIENT_ID:
                raise ProtocolError('client object id space exhausted')

            self.current_id += 1
            id = self.current_id

            proxy.id = id
            if connection is not None:
                proxy.connection = connection
            self.objects[id] = proxy
        finally:
            self.lock.release()

        return id


    def unregister(self, proxy):
        """ Remove *proxy* from the mapping. Unregistering a proxy that is
            not present is a no-op, so that teardown may safely run twice.
        """

        id = proxy.id

        self.lock.acquire()
        try:
            if self.objects.get(id) is proxy:
                del self.objects[id]
        finally:
            self.lock.release()


    def resolve(self, id):
        """ Return the proxy registered under *id*, or None if there is no
            such live object.
        """

        self.lock.acquire()
        try:
            return self.objects.get(id)
        finally:
            self.lock.release()


# end of class ObjectRegistry


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
