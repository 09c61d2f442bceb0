# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Callable, Dict, List, Optional
import asyncio
import logging
from functools import partial
from threading import Lock

from aiosmtpd.controller import Controller

from mailhook.executor import Executor
from mailhook.message import Message, extract_subject
from mailhook.response import Response
from mailhook.storage import Storage

_next_cx = 0
_next_cx_mu = Lock()
def next_cx():
    global _next_cx, _next_cx_mu
    with _next_cx_mu:
        rv = _next_cx
        _next_cx += 1
    return rv

# a line consisting only of '.' ends DATA
DATA_TERMINATORS = [b'.\r\n', b'.\n']

# verb -> prefix before the first colon for commands with a
# colon-separated argument
_COLON_COMMANDS = { 'MAIL': 'MAIL FROM', 'RCPT': 'RCPT TO' }
_SIMPLE_COMMANDS = [ 'HELO', 'EHLO', 'DATA', 'RSET', 'NOOP', 'QUIT' ]

# Like StreamReader.readline() but a line longer than the reader's
# limit is returned whole instead of raising ValueError.
# -> b'' at eof
async def read_long_line(reader : asyncio.StreamReader) -> bytes:
    chunks : List[bytes] = []
    while True:
        try:
            chunks.append(await reader.readuntil(b'\n'))
            break
        except asyncio.IncompleteReadError as e:
            chunks.append(e.partial)
            break
        except asyncio.LimitOverrunError as e:
            chunks.append(await reader.readexactly(e.consumed))
    return b''.join(chunks)

class Command:
    verb : str  # upper case
    arg : str

    def __init__(self, verb : str, arg : str = ''):
        self.verb = verb
        self.arg = arg

    def __repr__(self):
        return '%s %s' % (self.verb, self.arg)

    def __eq__(self, c):
        if not isinstance(c, Command):
            return False
        return self.verb == c.verb and self.arg == c.arg

# -> None if line isn't a command we implement
def parse_command(line : str) -> Optional[Command]:
    line = line.rstrip('\r\n')
    fields = line.split(None, 1)
    if not fields:
        return None
    verb = fields[0].upper()
    if verb in _SIMPLE_COMMANDS:
        return Command(verb, fields[1].strip() if len(fields) > 1 else '')

    # MAIL FROM:<addr> RCPT TO:<addr>
    # the verb token may include the colon and argument with no space
    # i.e. MAIL FROM:<a> splits as ['MAIL', 'FROM:<a>']
    verb = verb.split(':', 1)[0]
    if verb not in _COLON_COMMANDS:
        return None
    colon = line.find(':')
    if colon == -1:
        return None
    prefix = ' '.join(line[:colon].split()).upper()
    if prefix != _COLON_COMMANDS[verb]:
        return None
    return Command(verb, line[colon+1:].strip())


# One per connection. Commands are accepted in any order; MAIL and
# RCPT overwrite the previous value, only one recipient is kept.
class SmtpSession:
    storage : Storage
    executor : Executor
    hostname : str
    submit_timeout : float
    cx_id : str  # connection id, log token

    sender : str = ''
    recipient : str = ''

    def __init__(self, storage : Storage,
                 executor : Executor,
                 hostname : str = 'localhost',
                 submit_timeout : float = 30):
        self.storage = storage
        self.executor = executor
        self.hostname = hostname
        self.submit_timeout = submit_timeout
        self.cx_id = 'cx%d' % next_cx()
        self.handlers : Dict[str, Callable[[str], Response]] = {
            'HELO': self.handle_HELO,
            'EHLO': self.handle_HELO,
            'MAIL': self.handle_MAIL,
            'RCPT': self.handle_RCPT,
            'RSET': self.handle_RSET,
            'NOOP': self.handle_NOOP,
            'QUIT': self.handle_QUIT,
        }

    def _reset(self):
        self.sender = ''
        self.recipient = ''

    def handle_HELO(self, arg : str) -> Response:
        logging.info('SmtpSession %s HELO %s', self.cx_id, arg)
        return Response.hello(self.hostname)

    def handle_MAIL(self, arg : str) -> Response:
        logging.info('SmtpSession %s MAIL %s', self.cx_id, arg)
        self.sender = arg
        return Response()

    def handle_RCPT(self, arg : str) -> Response:
        logging.info('SmtpSession %s RCPT %s', self.cx_id, arg)
        self.recipient = arg
        return Response()

    def handle_RSET(self, arg : str) -> Response:
        logging.info('SmtpSession %s RSET', self.cx_id)
        self._reset()
        return Response()

    def handle_NOOP(self, arg : str) -> Response:
        return Response()

    def handle_QUIT(self, arg : str) -> Response:
        logging.info('SmtpSession %s QUIT', self.cx_id)
        return Response.closing(self.hostname)

    async def _reply(self, writer : asyncio.StreamWriter, resp : Response):
        logging.debug('SmtpSession %s reply %s', self.cx_id, resp)
        writer.write(resp.to_smtp_resp())
        await writer.drain()

    # -> False if the connection should be closed
    async def _data(self, reader : asyncio.StreamReader,
                    writer : asyncio.StreamWriter) -> bool:
        await self._reply(writer, Response.start_input())
        lines : List[bytes] = []
        while True:
            line = await read_long_line(reader)
            if not line:
                logging.info('SmtpSession %s eof during DATA after %d lines',
                             self.cx_id, len(lines))
                return False
            if line in DATA_TERMINATORS:
                break
            lines.append(line)

        raw_body = b''.join(lines)
        body = raw_body.decode('utf-8', errors='replace')
        message = Message(sender = self.sender,
                          recipient = self.recipient,
                          subject = extract_subject(body),
                          body = body)

        # Executor.submit() blocks for a free slot, wait for it in the
        # loop's default executor so other sessions keep running.
        fut = await asyncio.get_running_loop().run_in_executor(
            None, partial(self.executor.submit,
                          partial(self.storage.write, message, raw_body),
                          self.submit_timeout))
        if fut is None:
            logging.error('SmtpSession %s executor busy for %ss',
                          self.cx_id, self.submit_timeout)
            self._reset()
            await self._reply(writer, Response.busy())
            return True
        try:
            record_id = await asyncio.wrap_future(fut)
        except OSError as e:
            logging.error('SmtpSession %s storage write failed: %s',
                          self.cx_id, e)
            return False

        logging.info('SmtpSession %s accepted %s %s',
                     self.cx_id, record_id, message)
        self._reset()
        await self._reply(writer, Response())
        return True

    async def _run(self, reader : asyncio.StreamReader,
                   writer : asyncio.StreamWriter):
        await self._reply(writer, Response.greeting(self.hostname))
        while True:
            line = await reader.readline()
            if not line:
                logging.info('SmtpSession %s client closed', self.cx_id)
                return
            logging.debug('SmtpSession %s received %r', self.cx_id, line)

            cmd = parse_command(line.decode('utf-8', errors='replace'))
            if cmd is None:
                await self._reply(writer, Response.not_implemented())
                continue

            if cmd.verb == 'DATA':
                if not await self._data(reader, writer):
                    return
                continue

            await self._reply(writer, self.handlers[cmd.verb](cmd.arg))
            if cmd.verb == 'QUIT':
                return

    # asyncio client_connected_cb
    async def run(self, reader : asyncio.StreamReader,
                  writer : asyncio.StreamWriter):
        logging.info('SmtpSession %s new connection %s', self.cx_id,
                     writer.get_extra_info('peername'))
        try:
            await self._run(reader, writer)
        except ConnectionError as e:
            logging.info('SmtpSession %s connection error %s', self.cx_id, e)
        except Exception:
            # includes ValueError from readline() on an over-long command
            logging.exception('SmtpSession %s', self.cx_id)
        finally:
            writer.close()
        logging.debug('SmtpSession %s done', self.cx_id)


SmtpSessionFactory = Callable[[], SmtpSession]

# aiosmtpd's Controller runs the event loop in its own thread and
# handles startup/shutdown. factory() returns a plain asyncio stream
# protocol driving SmtpSession rather than aiosmtpd.smtp.SMTP: commands
# are accepted in any order and the replies are not aiosmtpd's.
class SessionController(Controller):
    session_factory : SmtpSessionFactory
    line_limit : int  # command lines only, see read_long_line()

    def __init__(self, host : str, port : int,
                 session_factory : SmtpSessionFactory,
                 line_limit : int = 2**16):
        self.session_factory = session_factory
        self.line_limit = line_limit
        super().__init__(handler=None, hostname=host, port=port)

    # cf asyncio.start_server()
    def factory(self):
        session = self.session_factory()
        reader = asyncio.StreamReader(limit=self.line_limit, loop=self.loop)
        return asyncio.StreamReaderProtocol(
            reader, session.run, loop=self.loop)

def service(session_factory : SmtpSessionFactory,
            hostname='localhost', port=2525) -> SessionController:
    controller = SessionController(hostname, port, session_factory)
    controller.start()
    logging.info('smtp service listening on %s:%d', hostname, port)
    return controller
