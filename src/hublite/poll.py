""" Background invocation of a method on a fixed period. This drives
    token renewal for a :class:`hublite.device.Device`, and is available for
    any other periodic work, such as a device announcing that it is alive.
"""

import logging
import threading
import time
import weakref


def reference(method):
    """ Return a weak reference to the supplied callable, regardless of
        whether it is a simple function or a bound method.
    """

    try:
        method.__func__
        method.__self__
    except AttributeError:
        return weakref.ref(method)
    else:
        return weakref.WeakMethod(method)



class Poller:
    """ Call the provided *method* every *period* seconds on a dedicated
        background thread. The first call happens one full period after
        :func:`start`, unless *immediate* is True.

        Only a weak reference to *method* is held; if the object owning the
        method goes away the poller stops. Calls never overlap: a call that
        runs longer than the period delays the next one, and the cadence
        resumes from the end of the slow call rather than trying to catch
        up. An exception raised by *method* is logged, and polling
        continues.
    """

    def __init__(self, method, period, immediate=False, name=None, log=None):

        period = float(period)
        if period <= 0:
            raise ValueError('polling period must be positive, not ' + repr(period))

        if log is None:
            log = logging.getLogger(__name__)

        self.interval = period
        self.immediate = immediate
        self.log = log
        self.reference = reference(method)
        self.shutdown = False
        self.calls = 0

        self.alarm = threading.Event()
        self.thread = threading.Thread(target=self.run, name=name)
        self.thread.daemon = True


    def start(self):
        self.thread.start()
        return self


    def run(self):

        next = time.time()
        if self.immediate == False:
            next += self.interval

        while True:
            delay = next - time.time()
            if delay > 0:
                self.alarm.wait(delay)

            if self.shutdown == True:
                break

            method = self.reference()

            if method is None:
                # The original object is gone. No further calls are possible.
                break

            try:
                method()
            except Exception:
                self.log.exception('Periodic call to %r failed', method)

            self.calls += 1
            del method

            now = time.time()
            next += self.interval
            if next < now:
                next = now + self.interval


    def stop(self, wait=False):
        """ Discontinue polling. A call already in progress is allowed to
            finish; if *wait* is True, block until it has.
        """

        self.shutdown = True
        self.alarm.set()

        if wait and self.thread.is_alive() and threading.current_thread() is not self.thread:
            self.thread.join()


    @property
    def active(self):
        return self.thread.is_alive() and self.shutdown == False


# end of class Poller



def start(method, period, **kwargs):
    """ Create and start a :class:`Poller` for *method*.
    """

    poller = Poller(method, period, **kwargs)
    return poller.start()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
