#!/usr/bin/env python
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
import sys
import stat
import logging
import argparse
import progressbar
from contextlib import contextmanager
from rectac.helpers.errors import ReadError, SourceOpenError

__version__ = "1.0.0"

log = logging.getLogger(__name__)

CHUNK_SIZE = 32 * 1024
MEBIBYTE = 1024 * 1024
STDIN_NAME = '-'


def read_all(stream, token, chunk_size=CHUNK_SIZE, callback=None):
    """
    Accumulate the whole of a binary stream into memory.

    The token is polled before the loop starts, before every chunk is
    requested and again each time another full mebibyte has arrived.

    :param stream: Readable binary file object.
    :param CancellationToken token: Cancellation signal to poll.
    :param int,optional chunk_size: Bytes requested per read.
    :param callable,optional callback: Called with the running total
    after every chunk.
    :return: everything the stream produced, without a final copy
    :rtype: bytearray
    """

    token.check()

    buff = bytearray()
    mebibytes = 0

    while True:
        token.check()

        try:
            chunk = stream.read(chunk_size)
        except OSError as e:
            raise ReadError(str(e)) from e

        if not chunk:
            break

        buff.extend(chunk)
        if callback is not None:
            callback(len(buff))

        if len(buff) // MEBIBYTE > mebibytes:
            mebibytes = len(buff) // MEBIBYTE
            token.check()

    log.debug('Read %d bytes in total.' % len(buff))
    return buff


def stream_size(stream):
    """
    Size in bytes of a regular file backing the stream, or None when the
    size cannot be known ahead of time (pipes, terminals, memory buffers).
    """
    try:
        st = os.fstat(stream.fileno())
    except (AttributeError, OSError, ValueError):
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return st.st_size


@contextmanager
def open_source(name, stdin=None):
    """
    Open a named input for binary reading and close it on every exit
    path. The name '-' refers to standard input, which is left open.

    :param str name: File name or '-'.
    :param stdin: Binary stream to use for '-'. Defaults to
    sys.stdin.buffer.
    """

    if name == STDIN_NAME:
        yield stdin if stdin is not None else sys.stdin.buffer
        return

    try:
        f = open(name, 'rb')
    except OSError as e:
        raise SourceOpenError(name, e.strerror or str(e)) from e

    with f:
        yield f


class ProgressReporter:
    """
    Render read progress for a single source on stderr.
    """

    def __init__(self, total_size=None, fd=None):

        self.total_size = total_size
        max_value = total_size if total_size else progressbar.UnknownLength
        self.bar = progressbar.ProgressBar(
            max_value=max_value,
            fd=fd if fd is not None else sys.stderr)

    def update(self, count):
        # Files may grow while being read
        if self.total_size:
            count = min(count, self.total_size)
        self.bar.update(count)

    def finish(self):
        self.bar.finish()


def generic_args(info='StreamHelper Default Parser Description'):

    parser = argparse.ArgumentParser(
        description=info)
    parser.add_argument('-v', '--verbose',
                        action='store_true',
                        default=False,
                        help='Output additional information when processing '
                             '(mostly for debugging purposes).')
    parser.add_argument('infile',
                        metavar='FILE',
                        nargs='*',
                        help='Data stream(s) to process. Reads stdin when '
                             'none are given (or denoted by a \'-\').')

    return parser
