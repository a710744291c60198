import json
import os

import pytest

import hublite


def write(tmp_path, contents):
    path = tmp_path / 'hub.json'
    path.write_text(json.dumps(contents))
    return str(path)


def test_defaults(tmp_path):

    settings = hublite.config.load(write(tmp_path, {}), environ={})

    assert settings.port == 5671
    assert settings.period == 120
    assert settings.trace == False
    assert settings.insecure == False
    assert settings.host is None
    assert settings['device_id'] is None


def test_file(tmp_path):

    path = write(tmp_path, dict(host='myhub', port=5672, device_id='dev1', device_key='a2V5', trace=True))
    settings = hublite.config.load(path, environ={})

    assert settings.host == 'myhub'
    assert settings.port == 5672
    assert settings.device_id == 'dev1'
    assert settings.trace == True
    assert 'host' in settings


def test_environment_overrides(tmp_path):

    path = write(tmp_path, dict(host='myhub', port=5672))
    environ = dict(HUBLITE_HOST='otherhub', HUBLITE_PORT='5673', HUBLITE_PERIOD='30', HUBLITE_INSECURE='yes')
    settings = hublite.config.load(path, environ=environ)

    assert settings.host == 'otherhub'
    assert settings.port == 5673
    assert settings.period == 30
    assert settings.insecure == True


def test_default_location(tmp_path, monkeypatch):

    monkeypatch.setenv('HUBLITE_HOME', str(tmp_path))
    assert hublite.config.directory() == str(tmp_path)

    write(tmp_path, dict(host='fromhome'))
    settings = hublite.config.load(environ={})
    assert settings.host == 'fromhome'


def test_missing_file_is_fine(tmp_path, monkeypatch):

    monkeypatch.setenv('HUBLITE_HOME', str(tmp_path / 'nowhere'))
    settings = hublite.config.load(environ=dict(HUBLITE_HOST='envhub'))
    assert settings.host == 'envhub'


def test_directory_override(tmp_path, monkeypatch):

    monkeypatch.delenv('HUBLITE_HOME', raising=False)
    assert hublite.config.directory(str(tmp_path)) == str(tmp_path)
    assert os.environ['HUBLITE_HOME'] == str(tmp_path)

    with pytest.raises(ValueError):
        hublite.config.directory('relative/path')


def test_unknown_setting(tmp_path):

    path = write(tmp_path, dict(hostname='typo'))

    with pytest.raises(KeyError):
        hublite.config.load(path, environ={})


def test_bad_values(tmp_path):

    path = write(tmp_path, {})

    with pytest.raises(ValueError):
        hublite.config.load(path, environ=dict(HUBLITE_PORT='amqps'))

    with pytest.raises(ValueError):
        hublite.config.load(path, environ=dict(HUBLITE_PERIOD='0'))


def test_key_hidden(tmp_path):

    path = write(tmp_path, dict(device_key='c2VjcmV0'))
    settings = hublite.config.load(path, environ={})

    assert 'c2VjcmV0' not in repr(settings)
    assert settings.device_key == 'c2VjcmV0'


def test_hub(tmp_path, hub):

    path = write(tmp_path, dict(host='myhub', port=5671, period=60, insecure=True))
    settings = hublite.config.load(path, environ={})

    connector = settings.hub(transport=hub)
    assert connector.host == 'myhub'
    assert connector.period == 60
    assert connector.insecure == True

    with pytest.raises(ValueError):
        hublite.config.load(write(tmp_path, {}), environ={}).hub()


def test_require(tmp_path):

    settings = hublite.config.load(write(tmp_path, dict(host='myhub')), environ={})

    settings.require('host')

    with pytest.raises(ValueError) as raised:
        settings.require('host', 'device_id', 'device_key')

    assert 'device_id' in str(raised.value)
    assert 'device_key' in str(raised.value)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
