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

"""Input format parsers: $PNOR* NMEA sentences."""

from .nmea_handler import (
    calculate_checksum,
    build_sentence,
    validate_sentence,
    parse_date_time,
    decode_config,
    decode_environmental,
    decode_wave,
    decode_current_cell,
    decode_line,
    read_sentence_file,
    analyze_sentence_quality,
)

__all__ = [
    # Framing
    'calculate_checksum',
    'build_sentence',
    'validate_sentence',
    # Field decoders
    'parse_date_time',
    'decode_config',
    'decode_environmental',
    'decode_wave',
    'decode_current_cell',
    'decode_line',
    # Capture files
    'read_sentence_file',
    'analyze_sentence_quality',
]
