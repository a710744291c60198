""" Entry point for reaching a hub. A :class:`Hub` knows where the hub is
    and how to open transport connections to it; each device gets its own
    connection, authenticated as that device.
"""

import logging

from . import transport as default_transport
from .device import Device, Identity

amqps_port = 5671


class Hub:
    """ Connect devices to the hub at *host*:*port*.

        TLS is used when *tls* is True, or, if *tls* is left as None, when
        the port is the standard AMQPS port. The server certificate is
        validated unless *insecure* is True; disabling validation is logged
        as a warning every time a connection is opened. If *trace* is True
        the transport logs every operation it performs, at debug level, to
        *log*.

        Device tokens are renewed every *period* seconds. Any additional
        *device_options* are handed to every :class:`hublite.Device`
        created here.

        The *transport* is any object with a ``connect(host, port, **kwargs)``
        function returning a :class:`hublite.transport.base.Connection`;
        it defaults to the backend selected by ``HUBLITE_TRANSPORT``.
    """

    def __init__(self, host, port=amqps_port, period=120, trace=False, insecure=False, tls=None, transport=None, log=None, **device_options):

        if log is None:
            log = logging.getLogger(__name__)

        if tls is None:
            tls = int(port) == amqps_port

        if transport is None:
            transport = default_transport

        self.host = host
        self.port = int(port)
        self.period = period
        self.trace = trace
        self.insecure = insecure
        self.tls = tls
        self.transport = transport
        self.log = log
        self.device_options = device_options

        self.resource_root = host + '/devices/'


    def connect(self):
        """ Open and return a new transport connection to the hub.
            :class:`hublite.transport.TransportConnectError` is raised if the
            hub cannot be reached; there is no retry.
        """

        if self.insecure:
            self.log.warning('Server certificate validation is disabled for %s', self.host)

        self.log.debug('Connecting to %s:%d', self.host, self.port)

        return self.transport.connect(self.host, self.port, tls=self.tls, insecure=self.insecure, trace=self.trace, log=self.log)


    def connect_device(self, device_id, key):
        """ Open a new connection and authenticate it as *device_id* using
            the base64-encoded shared *key*. Returns an open
            :class:`hublite.Device`.

            The two failure modes are kept apart:
            :class:`hublite.transport.TransportConnectError` if the hub is
            unreachable, :class:`hublite.AuthenticationFailedError` if the
            hub rejected the device's credentials.
        """

        identity = Identity.create(self.resource_root, device_id, key)
        connection = self.connect()

        options = dict(self.device_options)
        options.setdefault('period', self.period)
        options.setdefault('log', self.log)

        try:
            return Device.connect(connection, identity, **options)
        except (TypeError, ValueError):
            # Invalid device options; the device never took ownership.
            connection.close(0)
            raise


# end of class Hub



def connect(host, port=amqps_port, **kwargs):
    """ Shortcut returning a new transport connection to the hub at
        *host*:*port*; the keyword arguments are those of :class:`Hub`.
    """

    return Hub(host, port, **kwargs).connect()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
