""" A class representation of a hub message. The same structure is used
    for outbound events, inbound commands, and the CBS request/response
    exchange; the transport is responsible for mapping it to and from the
    wire.
"""

import types


class Properties:
    """ The immutable message properties section. Every field is optional;
        a transport fills in whatever the wire representation carried.
    """

    __slots__ = ('message_id', 'reply_to', 'subject', 'correlation_id')

    def __init__(self, message_id=None, reply_to=None, subject=None, correlation_id=None):

        object.__setattr__(self, 'message_id', message_id)
        object.__setattr__(self, 'reply_to', reply_to)
        object.__setattr__(self, 'subject', subject)
        object.__setattr__(self, 'correlation_id', correlation_id)


    def __setattr__(self, name, value):
        raise AttributeError('message properties are read-only')


    def __eq__(self, other):
        if isinstance(other, Properties):
            pass
        else:
            return NotImplemented

        return tuple(self) == tuple(other)


    def __iter__(self):
        return iter((self.message_id, self.reply_to, self.subject, self.correlation_id))


    def __repr__(self):
        fields = list()
        for name in self.__slots__:
            value = getattr(self, name)
            if value is not None:
                fields.append('%s=%r' % (name, value))

        return 'Properties(' + ', '.join(fields) + ')'


# end of class Properties



class Message:
    """ The :class:`Message` provides a very thin encapsulation of what it
        means to be a message in a hub context: an optional *properties*
        section (a :class:`Properties` instance), optional
        *application_properties* (a string-keyed mapping of scalar values),
        and a *body*, which is always bytes; a str body is encoded as UTF-8.

        A message is immutable once constructed. The application properties
        are copied on the way in and exposed as a read-only mapping, so an
        observer handed an inbound message cannot alter what other observers
        see.

        :ivar delivery_tag: Opaque, transport-private settlement handle. It is
            set by the receiving link and consumed by :func:`accept`; it is
            never put on the wire.
    """

    __slots__ = ('properties', 'application_properties', 'body', 'delivery_tag')

    def __init__(self, body=b'', properties=None, application_properties=None, delivery_tag=None):

        if body is None:
            body = b''
        else:
            try:
                body = body.encode('utf-8')
            except AttributeError:
                body = bytes(body)

        if application_properties is not None:
            copied = dict()
            for key, value in application_properties.items():
                copied[str(key)] = value
            application_properties = types.MappingProxyType(copied)

        object.__setattr__(self, 'body', body)
        object.__setattr__(self, 'properties', properties)
        object.__setattr__(self, 'application_properties', application_properties)
        object.__setattr__(self, 'delivery_tag', delivery_tag)


    def __setattr__(self, name, value):
        raise AttributeError('messages are read-only')


    def __repr__(self):
        return 'Message(%r, properties=%r, application_properties=%r)' % (self.body, self.properties, None if self.application_properties is None else dict(self.application_properties))


    @property
    def subject(self):
        """ Shortcut for the subject property, None if absent.
        """

        if self.properties is None:
            return None

        return self.properties.subject


    @property
    def text(self):
        """ The body decoded as UTF-8 text.
        """

        return self.body.decode('utf-8')


# end of class Message


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
