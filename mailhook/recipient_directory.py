# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Any, List
import logging
import re


# permissive: local-part chars, @, domain labels, 2+ letter tld
_ADDRESS_RE = re.compile(r'[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}')

def extract_address(rcpt : str) -> str:
    m = _ADDRESS_RE.search(rcpt)
    if m is None:
        return rcpt
    return m.group(0)

class Receiver:
    mail : str
    url_hook : str

    def __init__(self, mail : str, url_hook : str):
        self.mail = mail
        self.url_hook = url_hook

    def __repr__(self):
        return '%s -> %s' % (self.mail, self.url_hook)

    def __eq__(self, r):
        if not isinstance(r, Receiver):
            return False
        return self.mail == r.mail and self.url_hook == r.url_hook

    @staticmethod
    def from_yaml(yaml : Any) -> 'Receiver':
        if not isinstance(yaml, dict):
            raise ValueError('receiver must be a mapping: %s' % yaml)
        mail = yaml.get('mail', None)
        url_hook = yaml.get('url_hook', None)
        if not isinstance(mail, str) or not mail:
            raise ValueError('receiver missing mail: %s' % yaml)
        if not isinstance(url_hook, str) or not url_hook:
            raise ValueError('receiver missing url_hook: %s' % yaml)
        return Receiver(mail, url_hook)


# Read-only after construction, shared by all sessions and the
# dispatcher without locking.
class RecipientDirectory:
    receivers : List[Receiver]

    def __init__(self, receivers : List[Receiver]):
        self.receivers = list(receivers)

    @staticmethod
    def from_yaml(yaml : Any) -> 'RecipientDirectory':
        if not isinstance(yaml, list):
            raise ValueError('receivers must be a list')
        return RecipientDirectory([Receiver.from_yaml(r) for r in yaml])

    def __len__(self):
        return len(self.receivers)

    # -> url_hook for rcpt or '' if none configured
    def resolve(self, rcpt : str) -> str:
        addr = extract_address(rcpt)
        for receiver in self.receivers:
            if receiver.mail == addr:
                return receiver.url_hook
        logging.debug('RecipientDirectory.resolve no receiver for %s (%s)',
                      rcpt, addr)
        return ''
