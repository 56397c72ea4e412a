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

import os
import signal

import pytest

from rectac.helpers.cancellation import CancellationToken, \
    cancel_on_interrupt
from rectac.helpers.errors import CancellationError, TacError


def test_token_starts_clear():
    token = CancellationToken()
    assert not token.cancelled
    token.check()


def test_cancel_is_terminal():
    token = CancellationToken()
    token.cancel('stop')
    token.cancel('again')
    assert token.cancelled
    assert token.reason == 'stop'
    with pytest.raises(CancellationError) as exc:
        token.check()
    assert isinstance(exc.value, TacError)
    assert 'stop' in str(exc.value)


def test_cancel_after():
    token = CancellationToken()
    timer = token.cancel_after(0.01)
    timer.join(5)
    assert token.cancelled
    assert 'timed out' in token.reason


def test_cancel_on_interrupt_restores_handler():
    token = CancellationToken()
    previous = signal.getsignal(signal.SIGINT)

    with cancel_on_interrupt(token):
        os.kill(os.getpid(), signal.SIGINT)
        # the handler runs between bytecodes; give it a chance
        signal.getsignal(signal.SIGINT)

    assert token.cancelled
    assert token.reason == 'interrupted'
    assert signal.getsignal(signal.SIGINT) is previous
