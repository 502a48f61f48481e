# ADCP Telemetry - NMEA decoder and profile builder for ADCP instruments
# Copyright (C) 2024 ADCP Telemetry Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

from setuptools import setup, find_packages

setup(
    name='adcp-telemetry',
    version='1.0.0',
    description='NMEA decoder and current profile builder for ADCP instruments',
    author='ADCP Telemetry Contributors',
    license='AGPL-3.0',
    packages=find_packages(exclude=['test', 'test.*']),
    py_modules=['config', 'adcp_telemetry'],
    install_requires=[
        'numpy',
        'pynmea2',
        'scipy',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'adcp-telemetry=adcp_telemetry:main',
        ],
    },
    python_requires='>=3.8',
)
