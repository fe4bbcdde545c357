import weakref


def ref(thing, weak=True):
    """ Return a callable that yields *thing*, or None once it is gone.
        Proxies refer to their connection this way, and event slots to
        their registered callbacks, so that neither keeps the other alive.

        Bound methods get a :class:`weakref.WeakMethod`: a plain weak
        reference to one would die immediately, since the method object is
        created anew on every attribute access. With *weak* set to False
        the returned callable holds a strong reference instead, for
        callbacks that have no other owner, such as a lambda.
    """

    if weak == False:
        return lambda: thing

    if hasattr(thing, '__self__') and hasattr(thing, '__func__'):
        return weakref.WeakMethod(thing)

    return weakref.ref(thing)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
