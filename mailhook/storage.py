# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Callable, List, Optional, Tuple
import json
import logging
import os
import time

from mailhook.message import Message

BODY_SUFFIX = '.txt'
RECORD_SUFFIX = '.mail.json'
TEMP_PREFIX = '.'
TEMP_SUFFIX = '.tmp'

ID_FORMAT = '%Y%m%d%H%M%S'

# 20240301123456 < 20240301123456-1 < 20240301123456-2 < 20240301123456-10
def id_sort_key(record_id : str) -> Tuple[str, int, str]:
    base, _, suffix = record_id.partition('-')
    return (base, len(suffix), suffix)

# Storage directory holding, per accepted message, <id>.txt (raw body,
# write-once, never read back) and <id>.mail.json (the serialized
# Message, present until delivered). There is no lock between writers
# (smtp sessions) and the reader (Dispatcher): records are written to a
# hidden temp file and renamed into place so list_pending() never
# returns a partially written record, and ids are claimed by exclusive
# creation of <id>.txt so concurrent sessions never share one.
class Storage:
    mail_dir : str
    clock : Callable[[], float]

    def __init__(self, mail_dir : str,
                 clock : Callable[[], float] = time.time):
        self.mail_dir = mail_dir
        self.clock = clock

    def _path(self, record_id : str, suffix : str) -> str:
        return os.path.join(self.mail_dir, record_id + suffix)

    def create_dir(self):
        os.makedirs(self.mail_dir, mode=0o700, exist_ok=True)

    # Ids are the local time at second granularity. A second message
    # in the same second gets a -N suffix which sorts after the bare
    # id.
    def _claim_id(self, raw_body : bytes) -> str:
        base = time.strftime(ID_FORMAT, time.localtime(self.clock()))
        record_id = base
        i = 0
        while True:
            try:
                with open(self._path(record_id, BODY_SUFFIX), 'xb') as f:
                    f.write(raw_body)
                return record_id
            except FileExistsError:
                i += 1
                record_id = '%s-%d' % (base, i)
                logging.debug('Storage._claim_id %s exists, trying %s',
                              base, record_id)

    # raw_body: the DATA bytes as received for <id>.txt, defaults to
    # message.body
    # -> id
    # raises OSError if the storage dir isn't writable
    def write(self, message : Message,
              raw_body : Optional[bytes] = None) -> str:
        self.create_dir()
        if raw_body is None:
            raw_body = message.body.encode('utf-8')
        record_id = self._claim_id(raw_body)

        temp_path = os.path.join(
            self.mail_dir, TEMP_PREFIX + record_id + RECORD_SUFFIX + TEMP_SUFFIX)
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(message.to_json(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self._path(record_id, RECORD_SUFFIX))
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logging.info('Storage.write %s %s', record_id, message)
        return record_id

    # -> ids of records awaiting delivery, oldest first
    def list_pending(self) -> List[str]:
        out = []
        for name in os.listdir(self.mail_dir):
            if name.startswith(TEMP_PREFIX) or not name.endswith(RECORD_SUFFIX):
                continue
            out.append(name[:-len(RECORD_SUFFIX)])
        return sorted(out, key=id_sort_key)

    # -> None if the record is missing or corrupt
    def read(self, record_id : str) -> Optional[Message]:
        path = self._path(record_id, RECORD_SUFFIX)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                json_record = json.load(f)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueError
            logging.warning('Storage.read %s failed: %s', record_id, e)
            return None
        message = Message.from_json(json_record)
        if message is None:
            logging.warning('Storage.read %s invalid record %s',
                            record_id, json_record)
        return message

    # -> False if the record did not exist
    def delete(self, record_id : str) -> bool:
        try:
            os.unlink(self._path(record_id, RECORD_SUFFIX))
        except FileNotFoundError:
            logging.info('Storage.delete %s does not exist', record_id)
            return False
        logging.debug('Storage.delete %s', record_id)
        return True
