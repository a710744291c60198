"""Transport layer implementations."""

import os

from .base import (
    TransportError,
    TransportTimeout,
    TransportConnectError,
)

_BACKEND = os.environ.get("HUBLITE_TRANSPORT", "rabbitmq")

if _BACKEND == "rabbitmq":
    from . import rabbitmq as backend
else:
    raise ImportError(f"unknown HUBLITE_TRANSPORT backend: {_BACKEND!r}")


def connect(host, port, **kwargs):
    """Open a :class:`base.Connection` to *host*:*port* using the selected
    backend. Keyword arguments are handed to the backend unchanged."""
    return backend.connect(host, port, **kwargs)
