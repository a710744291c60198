""" Fan-out of inbound messages to interested observers. An observer is
    any object with an ``on_next(message)`` method and, optionally, an
    ``on_error(error)`` method; a plain callable is accepted as an observer
    that only wants messages.
"""

import logging
import threading


class Observer:
    """ Convenience base class for observers; both notification methods
        default to doing nothing.
    """

    def on_next(self, message):
        pass

    def on_error(self, error):
        pass


# end of class Observer



class _CallbackObserver(Observer):

    def __init__(self, callback):
        self.callback = callback

    def on_next(self, message):
        self.callback(message)

    def __eq__(self, other):
        if isinstance(other, _CallbackObserver):
            return self.callback == other.callback
        return self.callback == other

    def __hash__(self):
        return hash(self.callback)


# end of class _CallbackObserver



class Subscription:
    """ Handle returned by :func:`Broadcaster.subscribe`. Disposing of the
        handle removes the observer; repeated disposal is a no-op. It may
        also be used as a context manager.
    """

    def __init__(self, broadcaster, observer):
        self.broadcaster = broadcaster
        self.observer = observer
        self.disposed = False


    def dispose(self):
        if self.disposed:
            return

        self.disposed = True
        self.broadcaster.unsubscribe(self.observer)

    close = dispose


    def __enter__(self):
        return self


    def __exit__(self, *exception):
        self.dispose()


# end of class Subscription



class Broadcaster:
    """ Maintain the set of observers and deliver notifications to them.
        Observers are notified in the order they subscribed. Every
        notification iterates over a snapshot of the observers taken under
        a lock; an observer subscribing or unsubscribing in the middle of a
        notification, including from inside its own callback, affects the
        next notification and never the one in progress.

        An exception raised by an observer is logged and does not prevent
        delivery to the remaining observers. Delivery of an error is
        terminal: once :func:`notify_error` has been called, subsequent
        calls to :func:`notify_next` are dropped.
    """

    def __init__(self, log=None):

        if log is None:
            log = logging.getLogger(__name__)

        self.log = log
        self.observers = list()
        self.lock = threading.Lock()
        self.terminated = False


    def __len__(self):
        return len(self.observers)


    def subscribe(self, observer):
        """ Register an *observer* for all future notifications, and return
            a :class:`Subscription` whose disposal unregisters it.
            Subscribing the same observer twice has no additional effect.
        """

        try:
            observer.on_next
        except AttributeError:
            if callable(observer):
                observer = _CallbackObserver(observer)
            else:
                raise TypeError('observer must have an on_next() method or be callable')

        with self.lock:
            if observer not in self.observers:
                # Copy on write; a snapshot held by an in-progress
                # notification is never modified.
                observers = list(self.observers)
                observers.append(observer)
                self.observers = observers

        return Subscription(self, observer)


    def unsubscribe(self, observer):
        """ Remove an *observer*. Removing an observer that is not
            registered is not an error.
        """

        with self.lock:
            if observer in self.observers:
                observers = list(self.observers)
                observers.remove(observer)
                self.observers = observers


    def snapshot(self):
        with self.lock:
            return self.observers


    def notify_next(self, message):
        """ Deliver *message* to every current observer.
        """

        if self.terminated:
            return

        for observer in self.snapshot():
            try:
                observer.on_next(message)
            except Exception:
                self.log.exception('Observer %r failed to handle a message', observer)


    def notify_error(self, error):
        """ Deliver *error* to every current observer, exactly once per
            broadcaster. Observers without an ``on_error`` method are
            skipped.
        """

        with self.lock:
            if self.terminated:
                return
            self.terminated = True
            observers = self.observers

        for observer in observers:
            try:
                on_error = observer.on_error
            except AttributeError:
                continue

            try:
                on_error(error)
            except Exception:
                self.log.exception('Observer %r failed to handle an error', observer)


# end of class Broadcaster


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
