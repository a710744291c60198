""" The per-device session. A :class:`Device` authenticates a transport
    connection with a signed token, opens the outbound and inbound links for
    one device, keeps the token fresh in the background, and relays inbound
    messages to its observers.
"""

import base64
import logging
import threading
import typing

from . import cbs
from . import poll
from . import sas
from .broadcast import Broadcaster
from .errors import AuthenticationFailedError, NotConnectedError, SessionClosedError
from .message import Message, Properties
from .transport import TransportError

# States of a Device.

CREATED = 'created'
AUTHENTICATING = 'authenticating'
OPEN = 'open'
CLOSED = 'closed'
FAILED = 'failed'

events_address = '/devices/%s/messages/events'
commands_address = '/devices/%s/messages/deviceBound'
sender_name = 'sender-link'
receiver_name = 'receiver-link'

credit = 5
linger = 6
default_period = 120
default_margin = 30
default_renewal_failures = 3


class Identity(typing.NamedTuple):
    """ Who a :class:`Device` is: the *device_id*, the base64-encoded shared
        secret *key*, and the *resource_uri* a token grants access to.
    """

    device_id: str
    key: str
    resource_uri: str


    @classmethod
    def create(cls, resource_root, device_id, key):
        """ Build an identity for *device_id* under the hub's
            *resource_root*, the ``{host}/devices/`` prefix.
        """

        return cls(device_id, key, resource_root + device_id)


# end of class Identity



class _DeviceLog(logging.LoggerAdapter):

    def process(self, msg, kwargs):
        return '[%s] %s' % (self.extra['device'], msg), kwargs



class Device:
    """ A :class:`Device` owns one transport *connection* on behalf of the
        device described by *identity*. The typical way to get one is
        :func:`hublite.Hub.connect_device`, or :func:`connect` when the
        caller already holds a connection.

        The token is renewed every *period* seconds; each token is valid for
        *period* plus *margin* seconds, so a token never lapses before its
        replacement is in place. A renewal the hub rejects is logged, and the
        device carries on with its current token; after
        *max_renewal_failures* consecutive failures the device gives up,
        moves to the failed state, and notifies its observers. Set
        *max_renewal_failures* to None to tolerate failures indefinitely.

        The *timeout*, in seconds, bounds every wait on the transport.
    """

    def __init__(self, connection, identity, period=default_period, margin=default_margin, timeout=cbs.default_timeout, max_renewal_failures=default_renewal_failures, log=None):

        period = float(period)
        margin = float(margin)

        if period <= 0:
            raise ValueError('renewal period must be positive')
        if margin <= 0:
            raise ValueError('token lifetime must exceed the renewal period')

        # Fail early on a malformed key rather than on the first signature.
        sas.decode_key(identity.key)

        if log is None:
            log = logging.getLogger(__name__)

        self.connection = connection
        self.identity = identity
        self.period = period
        self.lifetime = period + margin
        self.timeout = timeout
        self.max_renewal_failures = max_renewal_failures
        self.log = _DeviceLog(log, dict(device=identity.device_id))

        self.state = CREATED
        self.renewal_failures = 0
        self.disposed = False

        self.session = None
        self.sender = None
        self.receiver = None
        self.poller = None

        self.broadcaster = Broadcaster(self.log)
        self._state_lock = threading.Lock()
        self._auth_lock = threading.Lock()

        connection.on_closed(self._connection_closed)


    @classmethod
    def connect(cls, connection, identity, **kwargs):
        """ Create a :class:`Device` and :func:`open` it. The connection is
            closed if the device cannot be opened.
        """

        device = cls(connection, identity, **kwargs)
        device.open()
        return device


    @property
    def id(self):
        return self.identity.device_id


    @property
    def is_open(self):
        return self.state == OPEN


    def open(self):
        """ Authenticate the connection and open the device links.
            :class:`AuthenticationFailedError` is raised if the hub rejects
            the token; transport failures propagate unchanged. In either
            case the device ends up in the failed state and the connection
            is closed.
        """

        with self._state_lock:
            if self.state != CREATED:
                raise RuntimeError('device is already ' + self.state)
            self.state = AUTHENTICATING

        try:
            accepted = self.authenticate()

            if not accepted:
                raise AuthenticationFailedError('hub rejected the token for ' + self.id)

            self._open_links()

        except Exception:
            self.state = FAILED
            self.log.error('Unable to open device session')
            self.dispose()
            raise

        self.log.info('Device session open')


    def _open_links(self):

        session = self.connection.session()
        session.on_closed(self._session_closed)

        sender = session.sender(sender_name, events_address % (self.id))
        receiver = session.receiver(receiver_name, commands_address % (self.id))

        self.session = session
        self.sender = sender
        self.receiver = receiver

        with self._state_lock:
            if self.state != AUTHENTICATING:
                raise NotConnectedError('device closed while opening: ' + self.state)
            self.state = OPEN

        receiver.start(credit, self._on_message)

        name = 'renew ' + self.id
        self.poller = poll.start(self.renew, self.period, name=name, log=self.log)


    def authenticate(self):
        """ Sign a new token and put it to the hub. Returns True if the hub
            accepted it, False if it was rejected, and None if another
            authentication attempt was already in flight, in which case no
            attempt is made.
        """

        if self._auth_lock.acquire(blocking=False):
            pass
        else:
            self.log.warning('Authentication already in progress')
            return None

        try:
            uri = self.identity.resource_uri
            token = sas.sign(self.identity.key, uri, self.lifetime)
            return cbs.put_token(self.connection, token, uri, self.timeout, self.log)
        finally:
            self._auth_lock.release()


    def renew(self):
        """ Invoked by the background poller to refresh the token.
        """

        if self.state != OPEN:
            return

        try:
            accepted = self.authenticate()
        except TransportError as e:
            self.log.error('Token renewal failed: %s', e)
            accepted = False

        if accepted is None:
            return

        if accepted == True:
            self.renewal_failures = 0
            self.log.debug('Token renewed')
            return

        self.renewal_failures += 1
        self.log.error('Token renewal unsuccessful (%d consecutive)', self.renewal_failures)

        limit = self.max_renewal_failures

        if limit is not None and self.renewal_failures >= limit:
            error = AuthenticationFailedError('token renewal failed %d times in a row' % (self.renewal_failures))
            self._fail(error)


    def _fail(self, error):

        with self._state_lock:
            if self.state != OPEN:
                return
            self.state = FAILED

        self.log.error('Device session failed: %s', error)
        self.broadcaster.notify_error(error)
        self.dispose()


    def send_message(self, message_type, data, body, timeout=None):
        """ Send an event with *message_type* as its subject, the contents
            of the *data* dictionary as application properties, and *body*
            as the UTF-8 encoded payload. Blocks until the transport has
            handled the message. :class:`NotConnectedError` is raised if
            the device session is not open.
        """

        sender = self.sender

        if self.state != OPEN or sender is None:
            raise NotConnectedError('device session is ' + self.state)

        application_properties = dict()
        if data is not None:
            for key, value in data.items():
                application_properties[key] = value

        properties = Properties(subject=message_type)
        message = Message(body.encode('utf-8'), properties, application_properties)

        if timeout is None:
            timeout = self.timeout

        sender.send(message, timeout=timeout)


    def subscribe(self, observer):
        """ Register an *observer* for inbound messages; see
            :class:`hublite.broadcast.Broadcaster`. Returns a subscription
            whose disposal unregisters the observer.
        """

        return self.broadcaster.subscribe(observer)


    def _on_message(self, receiver, message):

        if self.state != OPEN:
            return

        if self.log.isEnabledFor(logging.DEBUG):
            digest = base64.b64encode(message.body).decode('ascii')
            self.log.debug('Message received %s', digest)

        self.broadcaster.notify_next(message)

        try:
            receiver.accept(message)
            receiver.set_credit(credit)
        except TransportError as e:
            self.log.warning('Unable to settle inbound message: %s', e)


    def _session_closed(self, session, error):

        with self._state_lock:
            if self.state != OPEN:
                return
            self.state = CLOSED

        self._release()

        if error is None:
            description = 'session closed'
        else:
            description = str(error)

        self.log.warning('Session closed: %s', description)
        self.broadcaster.notify_error(SessionClosedError(description))


    def _connection_closed(self, connection, error):

        self.log.warning('Connection closed with error %s', error)

        with self._state_lock:
            if self.state == OPEN or self.state == AUTHENTICATING:
                self.state = CLOSED

        self._release()


    def _release(self):
        """ Stop renewal, then close and forget the links; they are unusable
            once the session is gone. A link that cannot be closed cleanly
            is logged and forgotten regardless.
        """

        poller = self.poller
        if poller is not None:
            poller.stop()

        links = (self.receiver, self.sender)

        self.poller = None
        self.sender = None
        self.receiver = None
        self.session = None

        for link in links:
            if link is None:
                continue

            try:
                link.close()
            except TransportError as e:
                self.log.warning('Unable to close %s: %s', link.name, e)


    def dispose(self):
        """ Stop token renewal and close the transport connection, lingering
            up to six seconds for the close to complete. Closing the
            connection closes the session and links along with it. Calling
            this more than once has no additional effect.
        """

        with self._state_lock:
            if self.disposed:
                return
            self.disposed = True

            if self.state != FAILED:
                self.state = CLOSED

        self._release()
        self.connection.close(linger)
        self.log.info('Device session closed')

    close = dispose


    def __enter__(self):
        return self


    def __exit__(self, *exception):
        self.dispose()


# end of class Device



def connect(connection, identity, **kwargs):
    """ Shortcut for :func:`Device.connect`.
    """

    return Device.connect(connection, identity, **kwargs)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
