#!/usr/bin/env python
# -*- coding: utf-8 -*-
# Copyright(c) 2021 The MITRE Corporation. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# You may obtain a copy of the License at:
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import signal
import logging
import threading
from contextlib import contextmanager
from rectac.helpers.errors import CancellationError

__version__ = "1.0.0"

log = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag owned by the caller.

    Processing code only polls the token at its checkpoints. Once
    cancelled a token stays cancelled; create a new one per invocation.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: str = ''

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = 'operation cancelled'):
        if not self._event.is_set():
            self.reason = reason
            log.debug('Cancellation requested: %s' % reason)
        self._event.set()

    def check(self):
        """
        Raise CancellationError if the token has been cancelled.
        """
        if self._event.is_set():
            raise CancellationError(self.reason or 'operation cancelled')

    def cancel_after(self, seconds: float) -> threading.Timer:
        """
        Arm a daemon timer that cancels the token after the given delay.

        :param float seconds: Delay before cancelling.
        :return: the started timer, so the caller may stop it early
        :rtype: threading.Timer
        """
        timer = threading.Timer(
            seconds, self.cancel,
            kwargs={'reason': 'timed out after %s seconds' % seconds})
        timer.daemon = True
        timer.start()
        return timer


@contextmanager
def cancel_on_interrupt(token: CancellationToken):
    """
    Route SIGINT to the token for the duration of the block, so an
    interrupted run stops at its next checkpoint instead of mid-write.
    """

    def handler(signum, frame):
        token.cancel('interrupted')

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not on the main thread; leave the default handler alone.
        log.debug('Unable to install SIGINT handler outside main thread.')
        yield token
        return

    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
