""" Shared access signature (SAS) tokens. A token is an HMAC-SHA256
    signature over a resource URI and an expiry time, keyed by the device's
    shared secret; the hub recomputes the signature to authenticate the
    bearer until the expiry passes.
"""

import base64
import binascii
import hashlib
import hmac
import time
import typing
import urllib.parse

from .errors import InvalidKeyError

prefix = 'SharedAccessSignature'


class Token(typing.NamedTuple):
    """ A signed token. *signature* and *audience* are stored exactly as
        they appear on the wire, that is, percent-encoded; *expiry* is an
        integer UNIX timestamp.
    """

    signature: str
    expiry: int
    audience: str

    def __str__(self):
        return '%s sig=%s&se=%d&sr=%s' % (prefix, self.signature, self.expiry, self.audience)


    @classmethod
    def parse(cls, text):
        """ Interpret the string form of a token, as generated by
            :func:`sign`. A ValueError is raised if the string is not a
            shared access signature.
        """

        try:
            scheme, fields = text.split(' ', 1)
        except ValueError:
            raise ValueError('not a shared access signature: ' + repr(text))

        if scheme != prefix:
            raise ValueError('not a shared access signature: ' + repr(text))

        parsed = dict()
        for field in fields.split('&'):
            name, _, value = field.partition('=')
            parsed[name] = value

        try:
            return cls(parsed['sig'], int(parsed['se']), parsed['sr'])
        except KeyError as missing:
            raise ValueError('shared access signature is missing ' + str(missing))


# end of class Token



def decode_key(key):
    """ Return the raw bytes of a base64-encoded shared secret. Decoding is
        strict; anything other than valid base64 raises
        :class:`InvalidKeyError`.
    """

    try:
        decoded = base64.b64decode(key, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise InvalidKeyError('device key is not valid base64: ' + str(e))

    if len(decoded) == 0:
        raise InvalidKeyError('device key is empty')

    return decoded



def token(key, uri, ttl, now=None):
    """ Generate a :class:`Token` granting access to *uri* for *ttl*
        seconds, signed with the base64-encoded *key*. The *ttl* may also
        be a :class:`datetime.timedelta`. The current time is used unless
        *now* is specified, as a UNIX timestamp.
    """

    secret = decode_key(key)

    try:
        ttl = ttl.total_seconds()
    except AttributeError:
        pass

    if now is None:
        now = time.time()

    expiry = int(now + ttl)
    encoded_uri = urllib.parse.quote_plus(uri)

    to_sign = encoded_uri + '\n' + str(expiry)
    digest = hmac.new(secret, to_sign.encode('utf-8'), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode('ascii')
    signature = urllib.parse.quote_plus(signature)

    return Token(signature, expiry, encoded_uri)



def sign(key, uri, ttl, now=None):
    """ Return the string form of a token from :func:`token`:
        ``SharedAccessSignature sig=<signature>&se=<expiry>&sr=<uri>``.
    """

    return str(token(key, uri, ttl, now))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
