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
Configuration file for ADCP Telemetry.
Contains all constants and settings for sentence decoding and profile assembly.

Note: transport settings (serial port, baud rate, instrument commands) belong
to the host application. This module contains only decoding parameters.
"""

# ============================================================
# Sentence Framing
# ============================================================
SENTENCE_START = '$'     # Leading sentinel, excluded from the checksum
CHECKSUM_DELIMITER = '*'
FIELD_DELIMITER = ','
CENTURY_BASE = 2000      # YY in MMDDYY is years since 2000

# ============================================================
# Current Cell Decoding
# ============================================================
DEFAULT_BEAM_COUNT = 4        # Used when no $PNORI has been received
FALLBACK_CELL_SIZE = 1.0      # depth = cell_number * size without $PNORI (m)
VALID_MIN_CORRELATION = 50    # Cell is valid when mean correlation > this (%)

# Quality grading thresholds (tier is reached when value >= threshold)
QUALITY_CORRELATION_EXCELLENT = 80   # %
QUALITY_CORRELATION_GOOD = 70        # %
QUALITY_CORRELATION_FAIR = 50        # %
QUALITY_AMPLITUDE_EXCELLENT = 100    # counts
QUALITY_AMPLITUDE_GOOD = 80          # counts
QUALITY_AMPLITUDE_FAIR = 50          # counts

# ============================================================
# Profile Assembly
# ============================================================
PROFILE_STALE_SECONDS = 30.0   # Flush an open profile this far behind the newest instant
MAX_OPEN_PROFILES = 8          # Oldest open profile is flushed beyond this
BUILT_KEYS_MEMORY = 256        # Recently built instants remembered for late-cell detection

# ============================================================
# Dataset History (FIFO, oldest evicted first)
# ============================================================
WAVE_HISTORY_CAPACITY = 100
ENVIRONMENTAL_HISTORY_CAPACITY = 500
PROFILE_HISTORY_CAPACITY = 100

# Query time ranges (seconds)
TIME_RANGES = {
    '1h': 60 * 60,
    '6h': 6 * 60 * 60,
    '24h': 24 * 60 * 60,
    '7d': 7 * 24 * 60 * 60,
    '30d': 30 * 24 * 60 * 60,
}
DEFAULT_TIME_RANGE = '1h'

# Compass averaging window (number of profiles)
AVERAGING_WINDOW = 5

# ============================================================
# Savitzky-Golay Filter Parameters (series smoothing)
# ============================================================
SAVGOL_WINDOW_LENGTH = 11  # Window length (must be odd)
SAVGOL_WINDOW_DIVISOR = 3  # Dynamic window: min(WINDOW_LENGTH, len/DIVISOR)
SAVGOL_POLYORDER = 1       # Polynomial order for Savitzky-Golay filter

# ============================================================
# Warning Thresholds
# ============================================================

# Wave alert limits (exceeding any of them raises a warning)
DEFAULT_ALERT_LIMITS = {
    'hm0': 3.0,    # m
    'hmax': 5.0,   # m
    'tm02': 12.0,  # s
}

HIGH_TILT_DEG = 20.0               # Tilt caution (deg)
LOW_BATTERY_VOLTAGE = 10.5         # Battery caution (V)
POOR_CELL_RATIO_WARNING = 0.5      # Latest profile: share of invalid cells (warning)
POOR_CELL_RATIO_CAUTION = 0.2      # Latest profile: share of invalid cells (caution)
