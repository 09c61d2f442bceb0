# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import unittest
from tempfile import TemporaryDirectory

from parameterized import parameterized

from mailhook.config import Config, ConfigError
from mailhook.recipient_directory import Receiver

class ConfigTest(unittest.TestCase):
    def setUp(self):
        logging.basicConfig(level=logging.DEBUG)
        self.dir = TemporaryDirectory()

    def tearDown(self):
        self.dir.cleanup()

    def write(self, yaml_str : str) -> str:
        path = os.path.join(self.dir.name, 'config.yml')
        with open(path, 'w') as f:
            f.write(yaml_str)
        return path

    def test_receiver_list(self):
        config = Config.load(self.write(
            '- mail: test1@mail.com\n'
            '  url_hook: http://test.com/hook1\n'
            '- mail: test2@mail.com\n'
            '  url_hook: http://test.com/hook2\n'))
        self.assertEqual(config.receivers(), [
            Receiver('test1@mail.com', 'http://test.com/hook1'),
            Receiver('test2@mail.com', 'http://test.com/hook2')])
        self.assertEqual(config.directory.resolve('<test2@mail.com>'),
                         'http://test.com/hook2')
        # defaults
        self.assertEqual(config.listen_addr, ('localhost', 2525))
        self.assertEqual(config.hostname, 'localhost')
        self.assertEqual(config.mail_dir, './mails')
        self.assertFalse(config.notify)
        self.assertEqual(config.dispatch_interval, 5)
        self.assertEqual(config.record_delay, 2)
        self.assertEqual(config.min_subject_length, 4)
        self.assertIsNone(config.logging_yaml)

    def test_mapping(self):
        config = Config.load(self.write(
            'smtp_listener:\n'
            '  addr: [127.0.0.1, 10025]\n'
            '  hostname: mx.example.com\n'
            'storage:\n'
            '  mail_dir: /var/spool/mailhook\n'
            'dispatch:\n'
            '  enabled: true\n'
            '  interval: 0.5\n'
            '  record_delay: 0\n'
            '  min_subject_length: 1\n'
            'notifier:\n'
            '  username: alerts\n'
            '  icon_emoji: ":bell:"\n'
            '  timeout: 3\n'
            'executor:\n'
            '  max_inflight: 2\n'
            'receivers:\n'
            '- mail: ops@x.com\n'
            '  url_hook: http://hook\n'
            'logging:\n'
            '  version: 1\n'))
        self.assertEqual(config.listen_addr, ('127.0.0.1', 10025))
        self.assertEqual(config.hostname, 'mx.example.com')
        self.assertEqual(config.mail_dir, '/var/spool/mailhook')
        self.assertTrue(config.notify)
        self.assertEqual(config.dispatch_interval, 0.5)
        self.assertEqual(config.record_delay, 0)
        self.assertEqual(config.min_subject_length, 1)
        self.assertEqual(config.notifier_username, 'alerts')
        self.assertEqual(config.notifier_icon_emoji, ':bell:')
        self.assertEqual(config.notifier_timeout, 3)
        self.assertEqual(config.max_inflight, 2)
        self.assertEqual(config.logging_yaml, {'version': 1})
        self.assertEqual(config.directory.resolve('<ops@x.com>'),
                         'http://hook')

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            Config.load(os.path.join(self.dir.name, 'nope.yml'))

    def test_syntax_error(self):
        with self.assertRaises(ConfigError):
            Config.load(self.write('- mail: [unterminated\n'))

    @parameterized.expand([
        ('empty', None),
        ('scalar', 'hello'),
        ('no_receivers', {'storage': {'mail_dir': '/tmp'}}),
        ('empty_receivers', {'receivers': []}),
        ('bad_receiver', [{'mail': 'a@b.com'}]),
        ('bad_addr', {'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
                      'smtp_listener': {'addr': 'localhost:2525'}}),
        ('bad_section', {'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
                         'dispatch': [1]}),
        ('bad_interval', {'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
                          'dispatch': {'interval': 'soon'}}),
        ('negative_delay', {
            'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
            'dispatch': {'record_delay': -1}}),
        ('zero_inflight', {
            'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
            'executor': {'max_inflight': 0}}),
        ('quoted_enabled', {
            'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
            'dispatch': {'enabled': 'false'}}),
        ('numeric_enabled', {
            'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
            'dispatch': {'enabled': 1}}),
        ('bad_logging', {'receivers': [{'mail': 'a@b.com', 'url_hook': 'h'}],
                         'logging': 'debug'}),
    ])
    def test_invalid(self, name, root_yaml):
        with self.assertRaises(ConfigError):
            Config.from_yaml(root_yaml)

    def test_kwargs(self):
        config = Config(mail_dir='/tmp/x', notify=True)
        self.assertEqual(config.mail_dir, '/tmp/x')
        self.assertTrue(config.notify)
        self.assertEqual(len(config.directory), 0)
        with self.assertRaises(TypeError):
            Config(no_such_field=1)


if __name__ == '__main__':
    unittest.main()
