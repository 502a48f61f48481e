#!/usr/bin/env python3
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

"""
Localization strings for ADCP Telemetry.
English dictionary for operator-facing messages.
"""

# Error messages
ERRORS = {
    'file_not_found': "File not found: {file_path}",
    'empty_capture': "No sentences could be decoded from {file_path}",
    'unknown_parameter': "Unknown parameter: {parameter}",
}

# Warnings - conditions that need operator attention
WARNINGS = {
    'hm0': "Significant wave height Hm0 {value:.2f} m exceeds limit {limit:.2f} m",
    'hmax': "Maximum wave height Hmax {value:.2f} m exceeds limit {limit:.2f} m",
    'tm02': "Mean period Tm02 {value:.1f} s exceeds limit {limit:.1f} s",
    'poor_cells': "{ratio:.0%} of cells in the latest profile failed quality checks ({invalid} of {total})",
    'no_valid_cells': "Latest profile has no valid cells, mean speed and direction are unavailable",
}

# Cautions - less critical remarks
CAUTIONS = {
    'high_tilt': "Instrument tilt {tilt:.1f}° exceeds {threshold:.1f}°",
    'low_battery': "Battery voltage {voltage:.1f} V is below {threshold:.1f} V",
    'instrument_error': "Instrument reports error status {status}",
    'poor_cells': "{ratio:.0%} of cells in the latest profile failed quality checks ({invalid} of {total})",
    'incomplete_profile': "Latest profile is incomplete: {received} of {expected} cells received",
    'missing_config': "No $PNORI configuration received, cell depths are estimated",
}
