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

import os
import re
import sys
import logging
from typing import List, Optional
from dataclasses import dataclass
from tabulate import tabulate
from rectac.helpers import StreamHelper
from rectac.helpers.cancellation import CancellationToken, \
    cancel_on_interrupt
from rectac.helpers.errors import TacError, CancellationError, \
    InvalidPatternError, SourceOpenError, WriteError, PER_SOURCE_ERRORS

__version__ = "1.0.0"

log = logging.getLogger(__name__)

DEFAULT_SEPARATOR = '\n'
CHECK_INTERVAL = 1000


@dataclass(frozen=True)
class SeparatorSpec:
    """
    How records are delimited and where the delimiter goes on output.
    """

    separator: str = DEFAULT_SEPARATOR
    before: bool = False
    regex: bool = False

    @classmethod
    def create(cls, separator=None, before=False, regex=False):
        """
        Build a spec with defaults resolved; an unset or empty separator
        becomes a newline.
        """
        if not separator:
            separator = DEFAULT_SEPARATOR
        return cls(separator=separator, before=bool(before),
                   regex=bool(regex))

    @property
    def encoded(self) -> bytes:
        # argv is decoded with surrogateescape, so this round-trips
        return os.fsencode(self.separator)


class RecordList:
    """
    Records in document order together with the separator text found
    between each neighbouring pair.
    """

    def __init__(self, records: List[bytes], gaps=None, separator=b''):

        self.records: List[bytes] = records
        self.gaps: Optional[List[bytes]] = gaps
        self.separator: bytes = separator

    def __len__(self):
        return len(self.records)

    def __getitem__(self, index):
        return self.records[index]

    def gap(self, index) -> bytes:
        """
        Separator text between record `index` and record `index + 1`.
        """
        if self.gaps is None:
            return self.separator
        return self.gaps[index]


def split_characters(buff: bytes) -> List[bytes]:
    """
    Break a buffer into UTF-8 characters. Bytes that do not decode are
    kept as single-byte units.
    """
    text = buff.decode('utf-8', 'surrogateescape')
    return [encode_text(c) for c in text]


def encode_text(text: str) -> bytes:
    return text.encode('utf-8', 'surrogateescape')


class RecordSplitter:
    """
    Partition raw input into records, either on a literal separator or
    on every non-overlapping match of a regular expression.
    """

    def __init__(self, spec: SeparatorSpec, token: CancellationToken):

        self.spec: SeparatorSpec = spec
        self.token: CancellationToken = token

    def compile(self):
        """
        Compile the separator as a text pattern, so classes and
        quantifiers apply to whole characters rather than UTF-8 bytes.

        :return: compiled pattern
        :rtype: re.Pattern
        """
        try:
            return re.compile(self.spec.separator)
        except re.error as e:
            raise InvalidPatternError(self.spec.separator, str(e)) from e

    def split(self, buff: bytes) -> RecordList:
        """
        Split the supplied buffer. An empty buffer gives an empty list.

        :param bytes buff: The complete input.
        :return: records in document order
        :rtype: RecordList
        """

        # Fail on a bad pattern before anything else happens
        pattern = self.compile() if self.spec.regex else None

        if len(buff) == 0:
            return RecordList([])

        self.token.check()

        if pattern is None:
            sep = self.spec.encoded
            if len(sep) == 0:
                records = RecordList(split_characters(buff))
            else:
                records = RecordList(buff.split(sep), separator=sep)
        else:
            records = self.split_pattern(pattern, buff)

        self.token.check()
        log.debug('Split input into %d record(s).' % len(records))

        return records

    def split_pattern(self, pattern, buff: bytes) -> RecordList:

        # Undecodable bytes survive the round trip as lone surrogates
        text = buff.decode('utf-8', 'surrogateescape')
        records = []
        gaps = []
        start = 0

        for count, m in enumerate(pattern.finditer(text)):
            if count % CHECK_INTERVAL == 0:
                self.token.check()
            records.append(encode_text(text[start:m.start()]))
            gaps.append(encode_text(m.group(0)))
            start = m.end()

        records.append(encode_text(text[start:]))

        return RecordList(records, gaps=gaps)


class ReverseWriter:
    """
    Emit records last to first with separators placed before or after
    each record.

    Empty records never have a separator attached to them, and the
    record that ends up outermost on either side gets none either.
    """

    def __init__(self,
                 spec: SeparatorSpec,
                 token: CancellationToken,
                 check_interval: int = CHECK_INTERVAL):

        self.spec: SeparatorSpec = spec
        self.token: CancellationToken = token
        self.check_interval: int = check_interval
        self.written: int = 0

    def emit(self, sink, data: bytes):
        try:
            sink.write(data)
        except OSError as e:
            raise WriteError(str(e)) from e
        self.written += len(data)

    def write(self, records: RecordList, sink) -> int:
        """
        Write the reversed records to the sink.

        :param RecordList records: Records in document order.
        :param sink: Writable binary file object.
        :return: number of bytes written
        :rtype: int
        """

        self.written = 0
        self.token.check()

        last = len(records) - 1
        for n, i in enumerate(range(last, -1, -1)):

            if n % self.check_interval == 0:
                self.token.check()

            record = records[i]
            if self.spec.before:
                if i < last and len(record) != 0:
                    self.emit(sink, records.gap(i))
                self.emit(sink, record)
            else:
                self.emit(sink, record)
                if i > 0 and len(record) != 0:
                    self.emit(sink, records.gap(i - 1))

        self.token.check()

        try:
            sink.flush()
        except OSError as e:
            raise WriteError(str(e)) from e

        return self.written


@dataclass
class SourceResult:
    """Outcome of reversing a single source."""

    source: str
    records: int = 0
    size: int = 0
    error: Optional[TacError] = None

    @property
    def status(self):
        if self.error is None:
            return 'ok'
        if isinstance(self.error, CancellationError):
            return 'cancelled'
        return 'failed: %s' % self.error


class Tac:
    """
    Reverse the records of one or more input sources into a shared
    output sink.
    """

    def __init__(self,
                 spec: SeparatorSpec,
                 sink,
                 token: CancellationToken = None,
                 stdin=None,
                 progress: bool = False):
        """
        Initialize Tac.

        :param SeparatorSpec spec: Separator configuration.
        :param sink: Writable binary stream shared by all sources.
        :param CancellationToken,optional token: Cancellation signal.
        A fresh, never cancelled token is used if omitted.
        :param stdin: Binary stream read for '-' or when no files are
        named. Defaults to sys.stdin.buffer.
        :param bool,optional progress: Show a progress bar while reading.
        """

        self.spec: SeparatorSpec = spec
        self.sink = sink
        self.token: CancellationToken = token or CancellationToken()
        self.stdin = stdin
        self.progress: bool = progress
        self.results: List[SourceResult] = []

        self.splitter = RecordSplitter(spec, self.token)
        self.writer = ReverseWriter(spec, self.token)

    def reverse(self, stream, name=StreamHelper.STDIN_NAME) -> SourceResult:
        """
        Read, split and write a single stream. Any failure propagates
        after being recorded against the source.
        """

        result = SourceResult(source=name)
        self.results.append(result)

        reporter = None
        if self.progress:
            reporter = StreamHelper.ProgressReporter(
                StreamHelper.stream_size(stream))

        try:
            try:
                buff = StreamHelper.read_all(
                    stream, self.token,
                    callback=reporter.update if reporter else None)
            finally:
                if reporter:
                    reporter.finish()
            result.size = len(buff)

            if len(buff) == 0:
                log.debug('%s: empty input, nothing to do.' % name)
                return result

            self.token.check()

            records = self.splitter.split(buff)
            result.records = len(records)
            self.writer.write(records, self.sink)

        except TacError as e:
            result.error = e
            raise

        return result

    def reverse_stdin(self) -> SourceResult:
        stdin = self.stdin if self.stdin is not None else sys.stdin.buffer
        return self.reverse(stdin)

    def run(self, names) -> List[SourceResult]:
        """
        Process each named source in turn. Failures local to a source are
        logged and processing carries on; write errors and cancellation
        end the run.

        :param list names: File names, '-' for standard input.
        :return: one result per source attempted
        :rtype: list
        """

        for name in names:

            self.token.check()
            log.info('Processing %s...' % name)

            try:
                with StreamHelper.open_source(name, self.stdin) as f:
                    self.reverse(f, name)
            except SourceOpenError as e:
                # Never reached reverse(), so nothing was recorded yet
                self.results.append(SourceResult(source=name, error=e))
                log.error('%s: %s' % (name, e.reason))
            except PER_SOURCE_ERRORS as e:
                log.error('%s: %s' % (name, e))

        return self.results

    @property
    def diagnostics(self):
        return [r for r in self.results if r.error is not None]


def print_stats(results, out=None):
    rows = [(r.source, r.records, r.size, r.status) for r in results]
    print(tabulate(rows,
                   headers=['Source', 'Records', 'Bytes', 'Status'],
                   tablefmt='grid'),
          file=out if out is not None else sys.stderr)


def initialize_parser():

    description = 'Write each FILE to standard output, last record ' \
                  'first. With no FILE, or when FILE is \'-\', read ' \
                  'standard input.'

    parser = StreamHelper.generic_args(description)

    parser.add_argument('-s', '--separator',
                        default=None,
                        help='Use the supplied string as the record '
                             'separator instead of newline.')
    parser.add_argument('-b', '--before',
                        action='store_true',
                        default=False,
                        help='Attach the separator before instead of after '
                             'each record.')
    parser.add_argument('-r', '--regex',
                        action='store_true',
                        default=False,
                        help='Interpret the separator as a regular '
                             'expression.')
    parser.add_argument('-t', '--timeout',
                        type=float,
                        default=0,
                        help='Give up after this many seconds. Defaults to '
                             'no limit.')
    parser.add_argument('-p', '--progress',
                        action='store_true',
                        default=False,
                        help='Display a progress bar while reading input.')
    parser.add_argument('--stats',
                        action='store_true',
                        default=False,
                        help='Print a table summarizing each source to '
                             'stderr when finished.')

    return parser


def main(argv=None):
    p = initialize_parser()
    args = p.parse_args(argv)

    root = logging.getLogger()
    logging.basicConfig()
    if args.verbose:
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(logging.WARNING)

    spec = SeparatorSpec.create(
        separator=args.separator,
        before=args.before,
        regex=args.regex,
    )

    token = CancellationToken()
    timer = None
    if args.timeout > 0:
        timer = token.cancel_after(args.timeout)

    tac = Tac(spec, sys.stdout.buffer, token, progress=args.progress)
    status = 0

    with cancel_on_interrupt(token):
        try:
            if args.infile:
                tac.run(args.infile)
            else:
                tac.reverse_stdin()
        except CancellationError as e:
            log.warning('Stopped: %s' % e)
            status = 130
        except TacError as e:
            log.error('%s' % e)
            status = 1
        finally:
            if timer is not None:
                timer.cancel()

    if status == 0 and tac.diagnostics:
        status = 1

    if args.stats:
        print_stats(tac.results)

    return status


if __name__ == '__main__':
    sys.exit(main())
