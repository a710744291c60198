""" Configuration for connecting a device to a hub. Settings are read from
    a JSON file in the hublite configuration directory, if present, and
    may be overridden with environment variables:

    ======================  ==========  =======
    Environment variable    Setting     Default
    ======================  ==========  =======
    ``HUBLITE_HOST``        host        (none)
    ``HUBLITE_PORT``        port        5671
    ``HUBLITE_DEVICE_ID``   device_id   (none)
    ``HUBLITE_DEVICE_KEY``  device_key  (none)
    ``HUBLITE_PERIOD``      period      120
    ``HUBLITE_TRACE``       trace       false
    ``HUBLITE_INSECURE``    insecure    false
    ======================  ==========  =======
"""

import json
import os

from .hub import Hub

filename = 'hub.json'

defaults = dict(
    host = None,
    port = 5671,
    device_id = None,
    device_key = None,
    period = 120,
    trace = False,
    insecure = False,
)

environment = dict(
    host = 'HUBLITE_HOST',
    port = 'HUBLITE_PORT',
    device_id = 'HUBLITE_DEVICE_ID',
    device_key = 'HUBLITE_DEVICE_KEY',
    period = 'HUBLITE_PERIOD',
    trace = 'HUBLITE_TRACE',
    insecure = 'HUBLITE_INSECURE',
)

truths = set(('1', 'true', 't', 'yes', 'y', 'on', 'enable'))


class Settings:
    """ A read-only collection of settings. An instance acts like a
        dictionary, and each setting is also available as an attribute.
    """

    def __init__(self, values):
        self._values = dict(values)


    def __contains__(self, key):
        return key in self._values


    def __getitem__(self, key):
        try:
            return self._values[key]
        except KeyError:
            raise KeyError('no such setting: ' + str(key))


    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)

        try:
            return self._values[name]
        except KeyError:
            raise AttributeError('no such setting: ' + name)


    def __iter__(self):
        return iter(self._values)


    def __len__(self):
        return len(self._values)


    def __repr__(self):
        shown = dict(self._values)
        if shown.get('device_key') is not None:
            shown['device_key'] = '***'
        return 'Settings(' + repr(shown) + ')'


    def get(self, key, default=None):
        return self._values.get(key, default)


    def require(self, *keys):
        """ Raise a ValueError naming every one of *keys* that is unset.
        """

        missing = list()
        for key in keys:
            if self._values.get(key) is None:
                missing.append(key)

        if missing:
            raise ValueError('missing required settings: ' + ', '.join(missing))


    def hub(self, **kwargs):
        """ Return a :class:`hublite.Hub` for the configured host.
            Keyword arguments are handed to the :class:`hublite.Hub`
            unchanged, and take precedence over the settings.
        """

        self.require('host')

        options = dict(port=self.port, period=self.period, trace=self.trace, insecure=self.insecure)
        options.update(kwargs)

        return Hub(self.host, **options)


# end of class Settings



def directory(default=None):
    """ Return the directory location where configuration files are found.
        This defaults to ``$HOME/.hublite``, but can be overridden by
        calling this method with a valid path, or by setting the
        ``HUBLITE_HOME`` environment variable.
    """

    if default is not None:
        default = str(default)
        default = os.path.expandvars(default)

        if os.path.isabs(default):
            pass
        else:
            raise ValueError('the default directory must be an absolute path')

        os.environ['HUBLITE_HOME'] = default
        return default

    try:
        return os.environ['HUBLITE_HOME']
    except KeyError:
        pass

    try:
        home = os.environ['HOME']
    except KeyError:
        raise RuntimeError('HUBLITE_HOME and HOME environment variables not set, cannot determine hublite configuration directory')

    return os.path.join(home, '.hublite')



def convert(key, value):
    """ Interpret a raw configuration *value* for the setting *key*.
        Strings from the environment and values from JSON are both accepted.
    """

    if value is None:
        return None

    if key == 'port':
        return int(value)

    if key == 'period':
        value = float(value)
        if value <= 0:
            raise ValueError('period must be positive, not ' + repr(value))
        return value

    if key == 'trace' or key == 'insecure':
        if isinstance(value, str):
            return value.strip().lower() in truths
        return bool(value)

    return str(value)



def load(path=None, environ=None):
    """ Return a :class:`Settings` instance. The JSON file at *path* is read
        if specified; otherwise ``hub.json`` in :func:`directory` is read if
        it exists. Environment variables, from *environ* if specified,
        override anything in the file. Unknown keys in the file raise a
        KeyError.
    """

    if environ is None:
        environ = os.environ

    if path is None:
        path = os.path.join(directory(), filename)
        if os.path.exists(path):
            pass
        else:
            path = None

    values = dict(defaults)

    if path is not None:
        with open(path, 'r') as contents:
            loaded = json.load(contents)

        for key, value in loaded.items():
            if key in defaults:
                pass
            else:
                raise KeyError('unknown setting in %s: %s' % (path, key))

            values[key] = value

    for key, variable in environment.items():
        try:
            values[key] = environ[variable]
        except KeyError:
            pass

    for key in values:
        values[key] = convert(key, values[key])

    return Settings(values)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
