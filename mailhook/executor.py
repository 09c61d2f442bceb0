# Copyright The Koukan Authors
# SPDX-License-Identifier: Apache-2.0
from typing import Callable, Optional, Set
import logging
from functools import partial

from threading import (
    BoundedSemaphore,
    Condition,
    Lock,
    Thread,
    current_thread )
from concurrent.futures import Future

# Runs blocking work (storage writes) off the smtp event loop, one
# thread per call, bounded by inflight_limit.
class Executor:
    inflight_sem : BoundedSemaphore
    inflight : Set[Thread]
    lock : Lock
    cv : Condition
    _shutdown : bool = False

    def __init__(self, inflight_limit : int):
        self.inflight = set()
        self.inflight_sem = BoundedSemaphore(inflight_limit)
        self.lock = Lock()
        self.cv = Condition(self.lock)

    # timeout=0: don't block if inflight_limit is reached
    # returns None if the executor is shut down or full
    def submit(self, fn : Callable, timeout : Optional[float] = None
               ) -> Optional[Future]:
        with self.lock:
            if self._shutdown:
                return None
        if not self.inflight_sem.acquire(
                blocking=(timeout is None or timeout > 0),
                timeout=(None if not timeout else timeout)):
            return None

        fut : Future = Future()
        t = Thread(target = partial(self._run, fut, fn), daemon=True)
        with self.lock:
            self.inflight.add(t)
        t.start()
        return fut

    def _run(self, fut : Future, fn):
        this_thread = current_thread()
        try:
            fut.set_result(fn())
        except Exception as e:
            logging.exception('Executor._run() exception')
            fut.set_exception(e)
        finally:
            with self.lock:
                self.inflight_sem.release()
                self.inflight.discard(this_thread)
                self.cv.notify_all()

    # -> True if all inflight work finished within timeout
    def shutdown(self, timeout : Optional[float] = None) -> bool:
        with self.lock:
            # stop new work coming in
            self._shutdown = True
            logging.debug('Executor.shutdown waiting on %d threads',
                          len(self.inflight))
            return self.cv.wait_for(lambda: len(self.inflight) == 0,
                                    timeout=timeout)
