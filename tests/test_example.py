""" Run the example program against the scripted hub.
"""

import importlib.util
import os
import threading
import time

import hublite

from conftest import device_key

here = os.path.dirname(os.path.abspath(__file__))
example = os.path.join(here, '..', 'examples', 'alive.py')


def load_example():
    located = importlib.util.spec_from_file_location('alive', example)
    module = importlib.util.module_from_spec(located)
    located.loader.exec_module(module)
    return module


def test_alive_stops_when_connection_drops(hub, monkeypatch):

    values = dict(hublite.config.defaults)
    values.update(host='myhub', device_id='dev1', device_key=device_key)
    monkeypatch.setattr(hublite.config, 'load', lambda: hublite.config.Settings(values))
    monkeypatch.setattr(hublite.transport, 'connect', hub.connect)

    alive = load_example()
    result = list()
    runner = threading.Thread(target=lambda: result.append(alive.main()), daemon=True)
    runner.start()

    for attempt in range(100):
        if hub.sent:
            break
        time.sleep(0.02)

    address, message = hub.sent[0]
    assert address == '/devices/dev1/messages/events'
    assert message.subject == 'alive'

    hub.connection.drop(RuntimeError('hub went away'))
    runner.join(2)

    assert runner.is_alive() == False
    assert result == [0]
    assert hub.connection.close_calls == 1


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
