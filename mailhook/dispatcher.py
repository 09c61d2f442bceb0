# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Optional
import logging
from threading import Condition, Lock, Thread

from mailhook.notifier import Notifier
from mailhook.recipient_directory import RecipientDirectory
from mailhook.storage import Storage

# Periodically scans Storage for undelivered records and notifies the
# receiver's webhook with the subject. A record is deleted only after
# the notifier reports success; unresolvable recipients, short subjects
# and failed deliveries stay in storage and are retried every cycle.
class Dispatcher:
    storage : Storage
    directory : RecipientDirectory
    notifier : Notifier
    interval : float
    record_delay : float
    min_subject_length : int

    lock : Lock
    cv : Condition
    _shutdown : bool = False
    thread : Optional[Thread] = None

    def __init__(self, storage : Storage,
                 directory : RecipientDirectory,
                 notifier : Notifier,
                 interval : float = 5,
                 record_delay : float = 2,
                 min_subject_length : int = 4):
        self.storage = storage
        self.directory = directory
        self.notifier = notifier
        self.interval = interval
        self.record_delay = record_delay
        self.min_subject_length = min_subject_length
        self.lock = Lock()
        self.cv = Condition(self.lock)

    def start(self):
        assert self.thread is None
        self.thread = Thread(target=self._loop, daemon=True,
                             name='dispatcher')
        self.thread.start()

    def shutdown(self, timeout : Optional[float] = None):
        logging.info('Dispatcher.shutdown()')
        with self.lock:
            self._shutdown = True
            self.cv.notify_all()
        if self.thread is not None:
            self.thread.join(timeout)
            self.thread = None

    # -> True if shutdown
    def _wait(self, timeout : float) -> bool:
        with self.lock:
            return self.cv.wait_for(lambda: self._shutdown, timeout)

    def _loop(self):
        logging.info('Dispatcher started interval=%s record_delay=%s',
                     self.interval, self.record_delay)
        while not self._wait(self.interval):
            try:
                self.run_once()
            except Exception:
                logging.exception('Dispatcher cycle failed')
        logging.info('Dispatcher done')

    # one scan of storage
    # -> number of records delivered (and deleted)
    def run_once(self) -> int:
        pending = self.storage.list_pending()
        logging.debug('Dispatcher.run_once %d pending', len(pending))
        delivered = 0
        for i,record_id in enumerate(pending):
            if i > 0 and self.record_delay and self._wait(self.record_delay):
                break
            try:
                if self.dispatch(record_id):
                    delivered += 1
            except Exception:
                logging.exception('Dispatcher.dispatch %s', record_id)
        return delivered

    # -> True if the record was delivered and deleted
    def dispatch(self, record_id : str) -> bool:
        message = self.storage.read(record_id)
        if message is None:
            return False

        endpoint = self.directory.resolve(message.recipient)
        logging.info('Dispatcher %s rcpt %s subject %s endpoint %s',
                     record_id, message.recipient, message.subject, endpoint)
        if not endpoint:
            logging.info('Dispatcher %s no receiver configured for %s',
                         record_id, message.recipient)
            return False
        if len(message.subject) < self.min_subject_length:
            logging.info('Dispatcher %s subject too short: %r',
                         record_id, message.subject)
            return False

        if not self.notifier.notify(endpoint, message.subject):
            logging.warning('Dispatcher %s delivery to %s failed, will retry',
                            record_id, endpoint)
            return False

        if not self.storage.delete(record_id):
            logging.warning('Dispatcher %s delivered but already deleted',
                            record_id)
        return True
