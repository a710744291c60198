""" Exceptions raised by the device layer. Transport-level failures are
    defined alongside the transport contract, in
    :mod:`hublite.transport.base`.
"""


class HubError(Exception):
    """ Base class for all device-layer errors.
    """


class InvalidKeyError(HubError, ValueError):
    """ The shared secret is not valid base64.
    """


class AuthenticationFailedError(HubError):
    """ The hub rejected a put-token request, or the response was missing
        or malformed. The *description* is the hub's status description, if
        one was provided.
    """

    def __init__(self, message, description=None):
        HubError.__init__(self, message)
        self.description = description


class NotConnectedError(HubError):
    """ An operation requiring an open device session was attempted before
        the session opened, or after it closed.
    """


class SessionClosedError(HubError):
    """ The session carrying the device links was closed by the remote end.
        Delivered to observers as a terminal notification.
    """


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
