# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Any, Dict, Optional
import logging

SUBJECT_TAG = 'Subject:'

# Returns the remainder of the first line starting with 'Subject:',
# without surrounding whitespace, or '' if there is no such line.
# Lines end at LF only (with an optional CR), other characters
# str.splitlines() treats as breaks are part of the line.
# Header folding and encoded words are not decoded.
def extract_subject(body : str) -> str:
    for line in body.split('\n'):
        line = line.rstrip('\r')
        if line.startswith(SUBJECT_TAG):
            return line[len(SUBJECT_TAG):].strip()
    return ''

class Message:
    sender : str
    recipient : str  # raw RCPT TO argument, may include <> or display text
    subject : str
    body : str

    def __init__(self, sender : str = '',
                 recipient : str = '',
                 subject : str = '',
                 body : str = ''):
        self.sender = sender
        self.recipient = recipient
        self.subject = subject
        self.body = body

    def __repr__(self):
        return 'from=%s to=%s subject=%s body=%d chars' % (
            self.sender, self.recipient, self.subject, len(self.body))

    def __eq__(self, m):
        if not isinstance(m, Message):
            return False
        return (self.sender == m.sender and
                self.recipient == m.recipient and
                self.subject == m.subject and
                self.body == m.body)

    def to_json(self) -> Dict[str, str]:
        return {'sender': self.sender,
                'recipient': self.recipient,
                'subject': self.subject,
                'body': self.body}

    @staticmethod
    def from_json(json : Any) -> Optional['Message']:
        if not isinstance(json, dict):
            return None
        fields = {}
        for f in ['sender', 'recipient', 'subject', 'body']:
            v = json.get(f, None)
            if not isinstance(v, str):
                logging.debug('Message.from_json bad field %s %s', f, v)
                return None
            fields[f] = v
        return Message(**fields)
