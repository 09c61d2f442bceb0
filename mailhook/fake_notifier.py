# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Callable, List, Tuple, Union
from threading import Lock
import logging

from mailhook.notifier import Notifier

# result to return from the next notify(), or a callable
# (endpoint, text) -> bool which may also raise
Expectation = Union[bool, Callable[[str, str], bool]]

class FakeNotifier(Notifier):
    calls : List[Tuple[str, str]]
    expectation : List[Expectation]
    default : bool

    def __init__(self, default : bool = True):
        self.calls = []
        self.expectation = []
        self.default = default
        self.lock = Lock()

    def add_expectation(self, exp : Expectation):
        with self.lock:
            self.expectation.append(exp)

    def notify(self, endpoint : str, text : str) -> bool:
        logging.debug('FakeNotifier.notify %s %s', endpoint, text)
        with self.lock:
            self.calls.append((endpoint, text))
            exp = self.expectation.pop(0) if self.expectation else None
        if exp is None:
            return self.default
        if callable(exp):
            return exp(endpoint, text)
        return exp
