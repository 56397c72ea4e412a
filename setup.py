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

# flake8: noqa

from setuptools import setup

# --- SCRIPTS ----------------------------------------------------------------

# Entry points to create convenient scripts automatically

entry_points = {
    'console_scripts': [
        # utilities
        'rectac=rectac.utilities.tac:main',
    ],
}

# --- PACKAGES ---------------------------------------------------------------

packages = [
        'rectac',
        'rectac.utilities',
        'rectac.helpers',
        ]

install_requires = [
        'tabulate',
        'progressbar2',
]


def main():

    setup(
        name='rectac',
        version='1.0',
        packages=packages,
        include_package_data=True,
        python_requires='>=3.11',
        extras_require={
            'test': ['pytest'],
            },
        install_requires=install_requires,
        license='Copyright 2021 The MITRE Corporation. All rights reserved.',
        description='Reverse the records of text streams, last record first.',
        entry_points=entry_points,
    )


if __name__ == "__main__":
    main()
