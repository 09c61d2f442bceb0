# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time
import unittest
from tempfile import TemporaryDirectory

from mailhook.dispatcher import Dispatcher
from mailhook.fake_notifier import FakeNotifier
from mailhook.message import Message
from mailhook.recipient_directory import Receiver, RecipientDirectory
from mailhook.storage import Storage

def notify_raises(endpoint, text):
    raise RuntimeError('webhook client bug')

class DispatcherTest(unittest.TestCase):
    def setUp(self):
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s [%(thread)d] %(filename)s:%(lineno)d '
            '%(message)s')
        self.dir = TemporaryDirectory()
        self.mail_dir = os.path.join(self.dir.name, 'mails')
        self.storage = Storage(self.mail_dir)
        self.storage.create_dir()
        self.directory = RecipientDirectory([
            Receiver('ops@x.com', 'http://hook'),
            Receiver('dev@x.com', 'http://dev-hook')])
        self.notifier = FakeNotifier()
        self.dispatcher = Dispatcher(
            self.storage, self.directory, self.notifier,
            interval=3600, record_delay=0)

    def tearDown(self):
        self.dispatcher.shutdown()
        self.dir.cleanup()

    def write(self, recipient='<ops@x.com>', subject='Disk full'):
        return self.storage.write(Message(
            sender='<alice@example.com>', recipient=recipient,
            subject=subject, body='Subject: %s\r\n\r\n' % subject))

    def test_delivered(self):
        self.write()
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(self.storage.list_pending(), [])
        self.assertEqual(self.notifier.calls, [('http://hook', 'Disk full')])

    def test_delivery_failure_retained(self):
        record_id = self.write()
        self.notifier.add_expectation(False)
        self.assertEqual(self.dispatcher.run_once(), 0)
        self.assertEqual(self.storage.list_pending(), [record_id])

        # retried on the next cycle
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(self.storage.list_pending(), [])
        self.assertEqual(self.notifier.calls, [('http://hook', 'Disk full'),
                                               ('http://hook', 'Disk full')])

    def test_unresolved_retained(self):
        record_id = self.write(recipient='<nobody@x.com>')
        self.assertEqual(self.dispatcher.run_once(), 0)
        self.assertEqual(self.dispatcher.run_once(), 0)
        self.assertEqual(self.storage.list_pending(), [record_id])
        self.assertEqual(self.notifier.calls, [])

    def test_short_subject_retained(self):
        short = self.write(subject='abc')
        empty = self.write(subject='')
        self.write(subject='abcd')
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(sorted(self.storage.list_pending()),
                         sorted([short, empty]))
        self.assertEqual(self.notifier.calls, [('http://hook', 'abcd')])

    def test_min_subject_length(self):
        self.dispatcher.min_subject_length = 1
        self.write(subject='x')
        self.assertEqual(self.dispatcher.run_once(), 1)

    def test_corrupt_record_skipped(self):
        with open(os.path.join(self.mail_dir, '0.mail.json'), 'w') as f:
            f.write('not json')
        self.write(recipient='Dev <dev@x.com>', subject='deploy done')
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(self.storage.list_pending(), ['0'])
        self.assertEqual(self.notifier.calls,
                         [('http://dev-hook', 'deploy done')])

    def test_exception_does_not_abort_cycle(self):
        first = self.write(subject='first')
        self.write(subject='second')
        self.notifier.add_expectation(notify_raises)
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(self.storage.list_pending(), [first])
        self.assertEqual([c[1] for c in self.notifier.calls],
                         ['first', 'second'])

    def test_record_deleted_concurrently(self):
        record_id = self.write()
        def delete_first(endpoint, text):
            self.storage.delete(record_id)
            return True
        self.notifier.add_expectation(delete_first)
        # still counts as delivered
        self.assertEqual(self.dispatcher.run_once(), 1)
        self.assertEqual(self.storage.list_pending(), [])

    def test_record_delay(self):
        self.dispatcher.record_delay = 0.2
        for i in range(0, 3):
            self.write(subject='subject %d' % i)
        start = time.monotonic()
        self.assertEqual(self.dispatcher.run_once(), 3)
        self.assertGreaterEqual(time.monotonic() - start, 0.4)

    def test_loop(self):
        self.dispatcher.interval = 0.1
        # the first cycles fail to list the missing dir
        os.rmdir(self.mail_dir)
        self.dispatcher.start()
        time.sleep(0.3)
        self.write()
        for i in range(0, 50):
            if not self.storage.list_pending():
                break
            time.sleep(0.1)
        else:
            self.fail('record not delivered')
        self.assertEqual(self.notifier.calls, [('http://hook', 'Disk full')])

        start = time.monotonic()
        self.dispatcher.shutdown()
        self.assertLess(time.monotonic() - start, 5)
        self.assertIsNone(self.dispatcher.thread)

    def test_shutdown_interrupts_wait(self):
        self.dispatcher.start()
        start = time.monotonic()
        self.dispatcher.shutdown()
        # interval is 3600
        self.assertLess(time.monotonic() - start, 5)


if __name__ == '__main__':
    unittest.main()
