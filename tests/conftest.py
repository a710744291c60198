""" A scripted, in-process stand-in for the hub and its transport. Nothing
    here touches the network; every operation completes synchronously, and
    inbound messages are dispatched on the caller's thread.
"""

import collections
import itertools
import logging
import threading

import pytest

from hublite.message import Message, Properties
from hublite.transport import base

device_key = 'c2VjcmV0LWtleS1mb3ItdGVzdGluZw=='


def status(code, description=''):
    """ Build a CBS response message with the given status.
    """

    properties = Properties(correlation_id='response')
    application_properties = {'status-code': code, 'status-description': description}
    return Message(b'', properties, application_properties)



class FakeHub:
    """ The hub side of the transport. CBS requests are answered from
        *cbs_responses* in order; an integer is shorthand for a status
        response, None means no response at all. Once the scripted responses
        run out every request is accepted.
    """

    def __init__(self):
        self.cbs_responses = list()
        self.cbs_requests = list()
        self.sent = list()
        self.connections = list()
        self.connect_kwargs = list()
        self.loopback = False
        self.refuse = None
        self.lock = threading.Lock()


    def connect(self, host, port, **kwargs):
        if self.refuse is not None:
            raise self.refuse

        connection = FakeConnection(self, host, port)
        self.connections.append(connection)
        self.connect_kwargs.append(kwargs)
        return connection


    def respond(self, request):
        with self.lock:
            self.cbs_requests.append(request)

            if self.cbs_responses:
                response = self.cbs_responses.pop(0)
            else:
                response = 200

        if isinstance(response, int):
            response = status(response)

        return response


    def route(self, connection, address, message):
        self.sent.append((address, message))

        if self.loopback and address.endswith('/messages/events'):
            inbound = address[:-len('events')] + 'deviceBound'
            for receiver in connection.receivers(inbound):
                receiver.deliver(message)


    @property
    def connection(self):
        return self.connections[-1]


# end of class FakeHub



class FakeConnection(base.Connection):

    def __init__(self, hub, host, port):
        base.Connection.__init__(self)
        self.hub = hub
        self.host = host
        self.port = port
        self.sessions = list()
        self.closed = False
        self.close_calls = 0
        self.linger = None


    @property
    def is_open(self):
        return not self.closed


    def session(self):
        if self.closed:
            raise base.TransportError('connection is closed')

        session = FakeSession(self)
        self.sessions.append(session)
        return session


    def close(self, timeout=None):
        self.close_calls += 1
        self.linger = timeout
        self.closed = True
        for session in self.sessions:
            session.closed = True


    def drop(self, error=None):
        """ Simulate the remote end closing the connection.
        """

        self.closed = True
        self._fire_closed(error)


    def receivers(self, address):
        found = list()
        for session in self.sessions:
            for receiver in session.receivers:
                if receiver.address == address and not receiver.closed:
                    found.append(receiver)
        return found


# end of class FakeConnection



class FakeSession(base.Session):

    def __init__(self, connection):
        base.Session.__init__(self)
        self.connection = connection
        self.senders = list()
        self.receivers = list()
        self.closed = False


    def sender(self, name, address):
        link = FakeSender(self, name, address)
        self.senders.append(link)
        return link


    def receiver(self, name, address):
        link = FakeReceiver(self, name, address)
        self.receivers.append(link)
        return link


    def close(self):
        self.closed = True


    def drop(self, error=None):
        """ Simulate the remote end closing the session.
        """

        self.closed = True
        self._fire_closed(error)


# end of class FakeSession



class FakeSender(base.SenderLink):

    def __init__(self, session, name, address):
        self.session = session
        self.name = name
        self.address = address
        self.closed = False
        self.failure = None


    def send(self, message, timeout=None):
        if self.closed or self.session.closed:
            raise base.TransportError('sender link is closed')

        if self.failure is not None:
            raise self.failure

        hub = self.session.connection.hub

        if self.address == '$cbs':
            response = hub.respond(message)
            if response is None:
                return
            for receiver in self.session.receivers:
                if receiver.reply_to == message.properties.reply_to:
                    receiver.deliver(response)
            return

        hub.route(self.session.connection, self.address, message)


    def close(self):
        self.closed = True


# end of class FakeSender



class FakeReceiver(base.ReceiverLink):
    """ Credit accounting follows the link rules: every delivery consumes a
        unit of credit, deliveries beyond the credit wait, and
        :func:`set_credit` restores the credit and releases waiting
        messages.
    """

    tags = itertools.count(1)

    def __init__(self, session, name, address):
        self.session = session
        self.name = name
        self.address = address
        self.closed = False
        self.credit = 0
        self.lowest_credit = 0
        self.callback = None
        self.pending = collections.deque()
        self.inbox = collections.deque()
        self.accepted = list()
        self.credit_history = list()
        self.dispatching = False


    @property
    def reply_to(self):
        return self.name + '@' + str(id(self))


    def deliver(self, message):
        tag = next(self.tags)
        self.pending.append(Message(message.body, message.properties, message.application_properties, tag))
        self._drain()


    def _drain(self):
        if self.dispatching:
            return

        self.dispatching = True
        try:
            while self.pending:
                message = self.pending.popleft()

                if self.callback is None:
                    self.inbox.append(message)
                    continue

                if self.credit <= 0:
                    self.pending.appendleft(message)
                    break

                self.credit -= 1
                self.lowest_credit = min(self.lowest_credit, self.credit)
                self.callback(self, message)
        finally:
            self.dispatching = False


    def receive(self, timeout=None):
        try:
            return self.inbox.popleft()
        except IndexError:
            raise base.TransportTimeout('no message')


    def start(self, credit, callback):
        self.credit = credit
        self.lowest_credit = credit
        self.credit_history.append(credit)
        self.callback = callback
        self._drain()


    def accept(self, message):
        if message.delivery_tag is None:
            raise base.TransportError('message was not received on a link')
        self.accepted.append(message)


    def set_credit(self, credit):
        self.credit = credit
        self.credit_history.append(credit)
        self._drain()


    def close(self):
        self.closed = True


# end of class FakeReceiver



@pytest.fixture
def hub():
    return FakeHub()


@pytest.fixture
def log():
    return logging.getLogger('hublite.tests')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
