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

__version__ = "1.0.0"


class TacError(Exception):
    """
    Base class for every failure raised while reversing records.
    """


class SourceOpenError(TacError):
    """
    A named input source could not be opened.
    """

    def __init__(self, source, reason):
        self.source = source
        self.reason = reason
        super().__init__('cannot open %s: %s' % (source, reason))


class ReadError(TacError):
    """
    The input stream failed while being accumulated.
    """


class InvalidPatternError(TacError):
    """
    The separator does not compile as a regular expression.
    """

    def __init__(self, pattern, reason):
        self.pattern = pattern
        self.reason = reason
        super().__init__('invalid regular expression %r: %s' %
                         (pattern, reason))


class WriteError(TacError):
    """
    The output sink rejected a write. The sink is considered unusable
    afterwards, so this aborts the whole run.
    """


class CancellationError(TacError):
    """
    Cancellation was observed at a checkpoint. Callers should treat this
    as "stopped", not as a failure of the data being processed.
    """

    def __init__(self, message='operation cancelled'):
        super().__init__(message)


# Errors confined to a single source in multi-source mode.
PER_SOURCE_ERRORS = (SourceOpenError, ReadError, InvalidPatternError)
