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

import io

import pytest

from rectac.helpers import StreamHelper
from rectac.helpers.cancellation import CancellationToken
from rectac.helpers.errors import CancellationError, ReadError, \
    SourceOpenError


class CountingStream(io.BytesIO):
    def __init__(self, data):
        super().__init__(data)
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        return super().read(size)


class FailingStream(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError(5, 'Input/output error')


def test_read_all_in_chunks():
    stream = CountingStream(b'x' * 100)
    buff = StreamHelper.read_all(stream, CancellationToken(), chunk_size=30)
    assert buff == b'x' * 100
    # handed back as accumulated, not copied into bytes
    assert isinstance(buff, bytearray)
    # four data chunks plus the empty end-of-stream read
    assert stream.reads == 5


def test_read_all_reports_progress():
    seen = []
    StreamHelper.read_all(io.BytesIO(b'abcdefg'), CancellationToken(),
                          chunk_size=3, callback=seen.append)
    assert seen == [3, 6, 7]


def test_read_all_empty():
    assert StreamHelper.read_all(io.BytesIO(b''), CancellationToken()) == b''


def test_read_error_keeps_cause():
    with pytest.raises(ReadError) as exc:
        StreamHelper.read_all(FailingStream(), CancellationToken())
    assert isinstance(exc.value.__cause__, OSError)


def test_cancelled_token_stops_before_reading():
    token = CancellationToken()
    token.cancel()
    stream = CountingStream(b'data')
    with pytest.raises(CancellationError):
        StreamHelper.read_all(stream, token)
    assert stream.reads == 0


def test_mebibyte_checkpoint():
    token = CancellationToken()

    def cancel_at_first_mebibyte(total):
        if total >= StreamHelper.MEBIBYTE:
            token.cancel()

    stream = CountingStream(b'\0' * (2 * StreamHelper.MEBIBYTE))
    with pytest.raises(CancellationError):
        StreamHelper.read_all(stream, token,
                              chunk_size=StreamHelper.MEBIBYTE,
                              callback=cancel_at_first_mebibyte)
    assert stream.reads == 1


def test_open_source(tmp_path):
    path = tmp_path / 'input.txt'
    path.write_bytes(b'hello')

    with StreamHelper.open_source(str(path)) as f:
        assert f.read() == b'hello'
    assert f.closed


def test_open_source_stdin():
    stdin = io.BytesIO(b'piped')
    with StreamHelper.open_source('-', stdin) as f:
        assert f is stdin
    assert not stdin.closed


def test_open_source_missing(tmp_path):
    with pytest.raises(SourceOpenError) as exc:
        with StreamHelper.open_source(str(tmp_path / 'nope')):
            pass
    assert exc.value.source == str(tmp_path / 'nope')


def test_open_source_directory(tmp_path):
    with pytest.raises(SourceOpenError):
        with StreamHelper.open_source(str(tmp_path)):
            pass


def test_stream_size(tmp_path):
    path = tmp_path / 'sized.bin'
    path.write_bytes(b'12345')
    with open(path, 'rb') as f:
        assert StreamHelper.stream_size(f) == 5
    assert StreamHelper.stream_size(io.BytesIO(b'abc')) is None


def test_progress_reporter_clamps_to_size():
    out = io.StringIO()
    reporter = StreamHelper.ProgressReporter(10, fd=out)
    reporter.update(5)
    reporter.update(50)
    reporter.finish()
    assert reporter.bar.value == 10


def test_generic_args_defaults():
    args = StreamHelper.generic_args().parse_args([])
    assert args.infile == []
    assert not args.verbose
