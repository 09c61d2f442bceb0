# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import List, Optional
import argparse
import logging
import logging.config
from threading import Condition, Lock

from mailhook.config import Config, DEFAULT_CONFIG_PATH
from mailhook.dispatcher import Dispatcher
from mailhook.executor import Executor
from mailhook.notifier import (
    Notifier,
    NotifierClientProvider,
    WebhookNotifier )
from mailhook.smtp_service import (
    SessionController,
    SmtpSession,
    service as smtp_service )
from mailhook.storage import Storage


class MailGateway:
    config : Optional[Config] = None
    storage : Optional[Storage] = None
    executor : Optional[Executor] = None
    notifier : Optional[Notifier] = None
    client_provider : Optional[NotifierClientProvider] = None
    smtp_service : Optional[SessionController] = None
    dispatcher : Optional[Dispatcher] = None

    lock : Lock
    cv : Condition
    _shutdown = False

    def __init__(self, config : Optional[Config] = None,
                 notifier : Optional[Notifier] = None):
        self.config = config
        self.notifier = notifier
        self.lock = Lock()
        self.cv = Condition(self.lock)

    def smtp_session_factory(self) -> SmtpSession:
        assert self.config is not None
        assert self.storage is not None
        assert self.executor is not None
        return SmtpSession(self.storage, self.executor,
                           hostname=self.config.hostname)

    def start(self):
        config = self.config
        assert config is not None

        logging.info('MailGateway receivers:')
        for receiver in config.receivers():
            logging.info('  %s', receiver)

        self.storage = Storage(config.mail_dir)
        # fatal if the mail dir can't be created
        self.storage.create_dir()

        self.executor = Executor(config.max_inflight)

        if config.notify:
            if self.notifier is None:
                self.client_provider = NotifierClientProvider()
                self.notifier = WebhookNotifier(
                    self.client_provider,
                    username=config.notifier_username,
                    icon_emoji=config.notifier_icon_emoji,
                    timeout=config.notifier_timeout)
            self.dispatcher = Dispatcher(
                self.storage, config.directory, self.notifier,
                interval=config.dispatch_interval,
                record_delay=config.record_delay,
                min_subject_length=config.min_subject_length)
            self.dispatcher.start()
        else:
            logging.info('MailGateway notification disabled')

        host, port = config.listen_addr
        self.smtp_service = smtp_service(
            self.smtp_session_factory, hostname=host, port=port)

    def shutdown(self) -> bool:
        logging.info('MailGateway.shutdown()')
        with self.lock:
            if self._shutdown:
                return True
            self._shutdown = True
            self.cv.notify_all()

        if self.smtp_service is not None:
            self.smtp_service.stop()
            self.smtp_service = None
        if self.dispatcher is not None:
            self.dispatcher.shutdown()
            self.dispatcher = None
        success = True
        if self.executor is not None:
            success = self.executor.shutdown(timeout=10)
        if self.client_provider is not None:
            self.client_provider.close()
            self.client_provider = None
        logging.info('MailGateway.shutdown() done')
        return success

    def wait(self, timeout : Optional[float] = None) -> bool:
        with self.lock:
            return self.cv.wait_for(lambda: self._shutdown, timeout)

    def main(self, argv : List[str]):
        parser = argparse.ArgumentParser(prog=argv[0] if argv else None)
        parser.add_argument('-d', '--debug', action='store_true',
                            help='enable debug logging')
        parser.add_argument('-n', '--notify', action='store_true',
                            help='enable webhook notification')
        parser.add_argument('config', nargs='?', default=DEFAULT_CONFIG_PATH)
        args = parser.parse_args(argv[1:])

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        if self.config is None:
            self.config = Config.load(args.config)
        if args.notify:
            self.config.notify = True
        if self.config.logging_yaml:
            logging.config.dictConfig(self.config.logging_yaml)

        try:
            self.start()
            self.wait()
        except KeyboardInterrupt:
            logging.info('MailGateway interrupted')
        finally:
            self.shutdown()
        logging.debug('MailGateway.main() done')
