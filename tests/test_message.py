import pytest

import hublite
from hublite.message import Message, Properties


def test_body():

    assert Message('I am alive!').body == b'I am alive!'
    assert Message(b'\x00\x01').body == b'\x00\x01'
    assert Message(None).body == b''
    assert Message('café').text == 'café'


def test_application_properties_are_copied():

    data = {'device': 'dev1'}
    message = Message('body', Properties(subject='alive'), data)
    data['device'] = 'changed'

    assert message.application_properties['device'] == 'dev1'
    assert message.subject == 'alive'


def test_read_only():

    message = Message('body', Properties(subject='alive'), {'device': 'dev1'})

    with pytest.raises(TypeError):
        message.application_properties['device'] = 'changed'

    with pytest.raises(AttributeError):
        message.body = b'changed'

    with pytest.raises(AttributeError):
        message.properties.subject = 'changed'


def test_absent_sections():

    message = Message('body')
    assert message.properties is None
    assert message.application_properties is None
    assert message.subject is None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
