""" Python client for a cloud telemetry and command hub. A device
    authenticates with a signed token derived from its shared secret,
    publishes events, and receives commands as a continuous stream.
"""

# Utility components.

from . import errors
from . import message
from . import poll
from . import sas

# Submodules used by multiple other components.

from . import transport
from . import broadcast
from . import cbs

# Primary public-facing interfaces.

from .device import Device, Identity
from .hub import Hub, connect
from . import config

from .broadcast import Observer, Subscription
from .errors import (
    HubError,
    InvalidKeyError,
    AuthenticationFailedError,
    NotConnectedError,
    SessionClosedError,
)
from .transport import TransportError, TransportTimeout, TransportConnectError

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
