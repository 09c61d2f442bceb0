# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Optional


def ok_smtp_code(code):
    return code >= 200 and code <= 399

class Response:
    code : int
    message : str

    def __init__(self, code=250, mess : Optional[str] = None):
        self.code = code
        if mess is None:
            mess = 'OK' if self.ok() else 'error'
        self.message = mess

    def __str__(self):
        return '%d %s' % (self.code, self.message)

    def __repr__(self):
        return str(self)

    def __eq__(self, r):
        if not isinstance(r, Response):
            return False
        return self.code == r.code and self.message == r.message

    def ok(self):
        return ok_smtp_code(self.code)

    def to_smtp_resp(self) -> bytes:
        assert self.code >= 200 and self.code <= 599
        return (str(self) + '\r\n').encode('utf-8')

    @staticmethod
    def greeting(hostname : str) -> 'Response':
        return Response(220, '%s Service ready' % hostname)

    @staticmethod
    def hello(hostname : str) -> 'Response':
        return Response(250, hostname)

    @staticmethod
    def start_input() -> 'Response':
        return Response(354, 'Start mail input; end with <CRLF>.<CRLF>')

    @staticmethod
    def closing(hostname : str) -> 'Response':
        return Response(
            221, '%s Service closing transmission channel' % hostname)

    @staticmethod
    def not_implemented() -> 'Response':
        return Response(502, 'Command not implemented')

    @staticmethod
    def busy() -> 'Response':
        return Response(451, 'server busy, try again later')
