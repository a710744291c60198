""" Claims-based security (CBS). A client authenticates a connection by
    putting a signed token to the reserved ``$cbs`` node, and receives a
    status-coded acknowledgement in return. The exchange is carried on a
    dedicated, short-lived session; the device links are opened on a
    separate session once the token has been accepted.
"""

import logging
import uuid

from . import message

node = '$cbs'
sender_name = 'cbs-sender'
receiver_name = 'cbs-reply-to'
token_type = 'azure-devices.net:sastoken'
accepted = (200, 202)

default_timeout = 60


def request(token, audience, reply_to):
    """ Construct the put-token request message for the string form of a
        *token*, granting access to *audience*. The response will be routed
        to *reply_to*.
    """

    properties = message.Properties(message_id=str(uuid.uuid4()), reply_to=reply_to)

    application_properties = dict()
    application_properties['operation'] = 'put-token'
    application_properties['type'] = token_type
    application_properties['name'] = audience

    return message.Message(str(token), properties, application_properties)



def validate(response, log=None):
    """ Return True if the *response* to a put-token request indicates the
        token was accepted. A missing properties section, missing
        application properties, or a status code other than 200 or 202 are
        all treated as a rejection; the status description, if any, is
        logged.
    """

    if log is None:
        log = logging.getLogger(__name__)

    if response is None:
        log.error('Authentication failure: no response')
        return False

    if response.properties is None or response.application_properties is None:
        log.error('Authentication failure: response is missing properties')
        return False

    status = response.application_properties.get('status-code')
    description = response.application_properties.get('status-description')

    try:
        status = int(status)
    except (TypeError, ValueError):
        log.error('Authentication failure: invalid status code %r', status)
        return False

    if status in accepted:
        return True

    log.error('Authentication failure %d: %s', status, description)
    return False



def put_token(connection, token, audience, timeout=default_timeout, log=None):
    """ Put the *token* to the CBS node over the transport *connection*,
        authorizing access to *audience*. Returns True if the hub accepted
        the token, False otherwise. The wait for the response is bounded by
        *timeout* seconds; :class:`hublite.transport.TransportTimeout` is
        raised if it expires.

        The session and links opened here are always closed before
        returning, whatever the outcome.
    """

    if log is None:
        log = logging.getLogger(__name__)

    log.debug('Sending authentication token')

    session = connection.session()

    try:
        sender = session.sender(sender_name, node)

        try:
            receiver = session.receiver(receiver_name, node)

            try:
                put = request(token, audience, receiver.reply_to)
                sender.send(put, timeout=timeout)

                response = receiver.receive(timeout=timeout)
                receiver.accept(response)

                result = validate(response, log)
            finally:
                receiver.close()
        finally:
            sender.close()
    finally:
        session.close()

    log.debug('Authentication complete')
    return result


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
