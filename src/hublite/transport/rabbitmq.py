"""RabbitMQ (AMQP 0-9-1) transport, built on pika.

pika does not speak link-oriented AMQP 1.0, so this backend cannot attach
to a hub endpoint directly. It is meant for deployments where a RabbitMQ
broker fronts the hub and relays the device addresses and the ``$cbs``
node as queues; a direct hub connection needs an AMQP 1.0 backend behind
the same contract.

The link-oriented contract of :mod:`hublite.transport.base` is mapped onto
the broker's primitives:

- a connection is a :class:`pika.BlockingConnection` driven by a dedicated
  I/O thread; calls from any other thread are marshalled onto it with
  ``add_callback_threadsafe`` and awaited with a bounded timeout;
- a session is a channel; closing a connection or losing a channel closes
  the links attached to it;
- a sender link publishes on the default exchange, using the link address
  as the routing key;
- a receiver link consumes the queue named by its address. Management nodes
  (addresses starting with ``$``) are request endpoints, not mailboxes, so a
  receiver attached to one consumes a private, server-named reply queue;
- link credit is the channel prefetch window, acceptance is ``basic_ack``;
- the message subject travels as the AMQP ``type`` property, application
  properties travel as headers.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
import queue
import ssl
import threading
from typing import Callable, List, Optional, Tuple

import pika
import pika.exceptions

from ..message import Message, Properties
from . import base


_HEARTBEAT = int(os.environ.get("HUBLITE_AMQP_HEARTBEAT", "600"))
_POLL_INTERVAL = 0.25


def _connection_params(
    host: str,
    port: int,
    tls: bool,
    insecure: bool,
    credentials: Optional[Tuple[str, str]],
    virtual_host: Optional[str],
) -> pika.ConnectionParameters:

    kwargs = dict(
        host=host,
        port=port,
        heartbeat=_HEARTBEAT,
        blocked_connection_timeout=300,
    )

    if credentials is not None:
        kwargs["credentials"] = pika.PlainCredentials(*credentials)
    if virtual_host is not None:
        kwargs["virtual_host"] = virtual_host

    if tls:
        context = ssl.create_default_context()
        if insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        kwargs["ssl_options"] = pika.SSLOptions(context, server_hostname=host)

    return pika.ConnectionParameters(**kwargs)


def encode(message: Message) -> Tuple[pika.BasicProperties, bytes]:
    """Return the (properties, body) pair to publish for *message*."""

    headers = None
    if message.application_properties is not None:
        headers = dict(message.application_properties)

    properties = message.properties
    if properties is None:
        properties = Properties()

    basic = pika.BasicProperties(
        message_id=properties.message_id,
        reply_to=properties.reply_to,
        correlation_id=properties.correlation_id,
        type=properties.subject,
        headers=headers,
    )
    return basic, message.body


def decode(
    basic: Optional[pika.BasicProperties],
    body: bytes,
    delivery_tag: Optional[int] = None,
) -> Message:
    """Build a :class:`Message` from a delivery."""

    if basic is None:
        return Message(body, delivery_tag=delivery_tag)

    properties = Properties(
        message_id=basic.message_id,
        reply_to=basic.reply_to,
        subject=basic.type,
        correlation_id=basic.correlation_id,
    )
    return Message(body, properties, basic.headers, delivery_tag)


class Connection(base.Connection):
    """A broker connection serviced by a background I/O thread."""

    connect_timeout = 30
    timeout = 60

    def __init__(
        self,
        host: str,
        port: int,
        tls: bool = False,
        insecure: bool = False,
        trace: bool = False,
        credentials: Optional[Tuple[str, str]] = None,
        virtual_host: Optional[str] = None,
        log: Optional[logging.Logger] = None,
    ):
        base.Connection.__init__(self)

        self.host = host
        self.port = int(port)
        self.trace = trace
        self.log = log or logging.getLogger(__name__)
        self.shutdown = False

        self._params = _connection_params(
            host, self.port, tls, insecure, credentials, virtual_host
        )
        self._connection: Optional[pika.BlockingConnection] = None
        self._error: Optional[Exception] = None
        self._sessions: List[Session] = []
        self._sessions_lock = threading.Lock()
        self._ready = threading.Event()

        self._thread = threading.Thread(
            target=self._run, name=f"amqp {host}:{self.port}", daemon=True
        )
        self._thread.start()

        if not self._ready.wait(self.connect_timeout):
            self.shutdown = True
            raise base.TransportConnectError(
                f"no connection to {host}:{self.port} "
                f"in {self.connect_timeout:.0f} sec"
            )

        if self._error is not None:
            raise base.TransportConnectError(
                f"cannot connect to {host}:{self.port}: {self._error!r}"
            ) from self._error

        self._trace("connected")

    @property
    def is_open(self) -> bool:
        return (
            not self.shutdown
            and self._connection is not None
            and self._connection.is_open
        )

    def session(self) -> "Session":
        def open_session() -> Session:
            session = Session(self, self._connection.channel())
            with self._sessions_lock:
                self._sessions.append(session)
            return session

        session = self._call(open_session)
        self._trace("session %d opened", session.channel.channel_number)
        return session

    def close(self, timeout: Optional[float] = None) -> None:
        if self.shutdown:
            return

        self.shutdown = True
        self._trace("closing")

        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

        # Still needed when called on the I/O thread, or if the join timed out.
        self._release_sessions()

    def _run(self) -> None:
        try:
            self._connection = pika.BlockingConnection(self._params)
        except pika.exceptions.AMQPError as e:
            self._error = e
            self._ready.set()
            return

        self._ready.set()
        error = None

        try:
            while not self.shutdown:
                self._connection.process_data_events(time_limit=_POLL_INTERVAL)
                self._check_sessions()
        except pika.exceptions.AMQPError as e:
            error = e
        finally:
            self._release_sessions()
            if self._connection.is_open:
                self._connection.close()

        self._trace("closed")

        if error is not None and not self.shutdown:
            self.shutdown = True
            self._fire_closed(error)

    def _check_sessions(self) -> None:
        """Announce channels the broker has closed underneath us."""

        with self._sessions_lock:
            gone = [s for s in self._sessions if s.channel.is_closed]
            for session in gone:
                self._sessions.remove(session)

        for session in gone:
            if not session.closed:
                session._release()
                session._fire_closed(
                    base.TransportError("session closed by the remote end")
                )

    def _release_sessions(self) -> None:
        """Close every session and link locally, without the broker."""

        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []

        for session in sessions:
            session._release()

    def _call(self, function: Callable, timeout: Optional[float] = None):
        """Run *function* on the I/O thread and return its result."""

        if threading.current_thread() is self._thread:
            return function()

        if timeout is None:
            timeout = self.timeout

        future: concurrent.futures.Future = concurrent.futures.Future()

        def invoke() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = function()
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        if self.shutdown or self._connection is None:
            raise base.TransportError(f"connection to {self.host} is closed")

        try:
            self._connection.add_callback_threadsafe(invoke)
        except pika.exceptions.AMQPError as e:
            raise base.TransportError(f"connection to {self.host} is closed") from e

        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise base.TransportTimeout(
                f"{self.host}: no completion in {timeout:.2f} sec"
            )
        except pika.exceptions.AMQPError as e:
            raise base.TransportError(str(e) or repr(e)) from e

    def _trace(self, format: str, *args) -> None:
        if self.trace:
            self.log.debug("[amqp %s:%d] " + format, self.host, self.port, *args)


class Session(base.Session):
    """A channel on a :class:`Connection`, and the links attached to it."""

    def __init__(self, connection: Connection, channel):
        base.Session.__init__(self)
        self.connection = connection
        self.channel = channel
        self.closed = False
        self.links: list = []

    def sender(self, name: str, address: str) -> "SenderLink":
        link = SenderLink(self, name, address)
        self.links.append(link)
        self.connection._trace("sender %s attached to %s", name, address)
        return link

    def receiver(self, name: str, address: str) -> "ReceiverLink":
        link = ReceiverLink(self, name, address)
        self.links.append(link)
        self.connection._trace("receiver %s attached to %s", name, link.queue)
        return link

    def close(self) -> None:
        if self.closed:
            return

        self._release()

        if not self.connection.is_open:
            # Closing the connection closed the channel along with it.
            return

        def close_channel() -> None:
            with self.connection._sessions_lock:
                if self in self.connection._sessions:
                    self.connection._sessions.remove(self)
            if self.channel.is_open:
                self.channel.close()

        self.connection._call(close_channel)

    def _release(self) -> None:
        """Mark the session closed and close its links, broker untouched."""

        self.closed = True
        links, self.links = self.links, []
        for link in links:
            link.close()


class SenderLink(base.SenderLink):

    def __init__(self, session: Session, name: str, address: str):
        self.session = session
        self.name = name
        self.address = address
        self.closed = False

    def send(self, message: Message, timeout: Optional[float] = None) -> None:
        if self.closed or self.session.closed:
            raise base.TransportError(f"sender link {self.name} is closed")

        properties, body = encode(message)

        def publish() -> None:
            self.session.channel.basic_publish(
                exchange="",
                routing_key=self.address,
                body=body,
                properties=properties,
            )

        self.session.connection._trace(
            "send %s -> %s (%d bytes)", self.name, self.address, len(body)
        )
        self.session.connection._call(publish, timeout)

    def close(self) -> None:
        # Publishing on the default exchange holds no broker-side state.
        self.closed = True


class ReceiverLink(base.ReceiverLink):

    def __init__(self, session: Session, name: str, address: str):
        self.session = session
        self.name = name
        self.address = address
        self.closed = False
        self.credit = 0
        self.consumer: Optional[str] = None
        self.inbox: queue.Queue = queue.Queue()
        self.callback: Optional[base.MessageCallback] = None
        self.dispatcher: Optional[threading.Thread] = None

        if address.startswith("$"):
            def declare() -> str:
                result = session.channel.queue_declare(
                    queue="", exclusive=True, auto_delete=True
                )
                return result.method.queue

            self.queue = session.connection._call(declare)
        else:
            self.queue = address

    @property
    def reply_to(self) -> str:
        return self.queue

    @property
    def log(self) -> logging.Logger:
        return self.session.connection.log

    def receive(self, timeout: Optional[float] = None) -> Message:
        if self.closed:
            raise base.TransportError(f"receiver link {self.name} is closed")

        if self.consumer is None:
            self.session.connection._call(lambda: self._consume(1))

        if timeout is None:
            timeout = self.session.connection.timeout

        try:
            message = self.inbox.get(timeout=timeout)
        except queue.Empty:
            raise base.TransportTimeout(
                f"{self.name}: no message in {timeout:.2f} sec"
            )

        if message is None:
            self.inbox.put(None)
            raise base.TransportError(f"receiver link {self.name} is closed")
        return message

    def start(self, credit: int, callback: base.MessageCallback) -> None:
        if self.consumer is not None:
            raise base.TransportError(f"receiver link {self.name} already started")

        self.callback = callback
        self.dispatcher = threading.Thread(
            target=self._dispatch, name=f"dispatch {self.address}", daemon=True
        )
        self.dispatcher.start()

        self.session.connection._call(lambda: self._consume(credit))

    def accept(self, message: Message) -> None:
        tag = message.delivery_tag
        if tag is None:
            raise base.TransportError("message was not received on a link")

        self.session.connection._trace("accept %s #%d", self.name, tag)
        self.session.connection._call(
            lambda: self.session.channel.basic_ack(delivery_tag=tag)
        )

    def set_credit(self, credit: int) -> None:
        # Acknowledging a delivery reopens its slot in the prefetch window;
        # only a change of size needs a round trip to the broker.
        if credit == self.credit:
            return

        self.session.connection._call(lambda: self._qos(credit))

    def close(self) -> None:
        if self.closed:
            return

        self.closed = True
        self.inbox.put(None)

        consumer = self.consumer
        if consumer is None or self.session.closed or not self.session.connection.is_open:
            return

        def cancel() -> None:
            if self.session.channel.is_open:
                self.session.channel.basic_cancel(consumer)

        self.session.connection._call(cancel)

    # --- I/O thread ---

    def _qos(self, credit: int) -> None:
        # Channel-wide prefetch applies to the running consumer immediately;
        # each receiver link is the only consumer on its channel.
        self.session.channel.basic_qos(prefetch_count=credit, global_qos=True)
        self.credit = credit

    def _consume(self, credit: int) -> None:
        self._qos(credit)
        self.consumer = self.session.channel.basic_consume(
            queue=self.queue,
            on_message_callback=self._on_message,
            auto_ack=False,
        )

    def _on_message(self, _channel, method, properties, body: bytes) -> None:
        self.session.connection._trace(
            "receive %s #%d (%d bytes)", self.name, method.delivery_tag, len(body)
        )
        self.inbox.put(decode(properties, body, method.delivery_tag))

    # --- dispatch thread ---

    def _dispatch(self) -> None:
        while True:
            message = self.inbox.get()
            if message is None:
                break

            try:
                self.callback(self, message)
            except Exception:
                self.log.exception("%s: message callback failed", self.name)


def connect(host: str, port: int, **kwargs) -> Connection:
    """Open a :class:`Connection` to the broker at *host*:*port*."""
    return Connection(host, port, **kwargs)
