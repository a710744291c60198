""" Connect one device, announce that it is alive once a minute, and log
    the body of every command the hub sends it. The hub and the device
    credentials come from the hublite configuration; see
    :mod:`hublite.config`.
"""

import logging
import sys
import threading

import hublite


class Commands(hublite.Observer):

    def __init__(self, log):
        self.log = log

    def on_next(self, message):
        self.log.info('Message received %s', message.text)

    def on_error(self, error):
        self.log.error('Error occurred: %s', error)
        finished.set()


finished = threading.Event()


def main():

    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    log = logging.getLogger('alive')

    settings = hublite.config.load()
    settings.require('host', 'device_id', 'device_key')

    hub = settings.hub(log=log)
    device = hub.connect_device(settings.device_id, settings.device_key)

    # A dropped connection is not reported to observers.
    device.connection.on_closed(lambda connection, error: finished.set())

    def alive():
        data = dict(device=device.id)
        device.send_message('alive', data, 'I am alive!')

    with device:
        device.subscribe(Commands(log))
        poller = hublite.poll.start(alive, 60, immediate=True, name='alive', log=log)

        log.info('Sending alive events every minute and listening for commands...')

        try:
            finished.wait()
        except KeyboardInterrupt:
            pass

        poller.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
