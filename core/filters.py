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
Series smoothing and gap filling for query results.
"""

import numpy as np
from scipy.interpolate import interp1d
from scipy.signal import savgol_filter

# Import config for default values
try:
    from .. import config
except ImportError:
    import config


def calculate_savgol_window_size(data_length, window_length=None, divisor=None):
    """
    Pick a Savitzky-Golay window for a series of `data_length` samples.

    The window shrinks with short series and is kept odd.

    Args:
        data_length: number of finite samples
        window_length: base window length (default: config.SAVGOL_WINDOW_LENGTH)
        divisor: divisor for dynamic sizing (default: config.SAVGOL_WINDOW_DIVISOR)

    Returns:
        int: window size (always odd, >= 3 unless data is shorter)
    """
    if window_length is None:
        window_length = getattr(config, 'SAVGOL_WINDOW_LENGTH', 11)
    if divisor is None:
        divisor = getattr(config, 'SAVGOL_WINDOW_DIVISOR', 3)

    window_size = min(window_length, data_length // divisor, data_length)
    # Ensure window is odd (required by Savitzky-Golay)
    if window_size % 2 == 0:
        window_size = max(3, window_size - 1)
    return window_size


def apply_savgol_filter(data, window_size, polyorder=None):
    """
    Smooth one series, or hand it back untouched when the window cannot fit.

    Args:
        data: series values
        window_size: filter window size
        polyorder: polynomial order (default: config.SAVGOL_POLYORDER)

    Returns:
        np.ndarray
    """
    if polyorder is None:
        polyorder = getattr(config, 'SAVGOL_POLYORDER', 1)
    data = np.asarray(data, dtype=float)
    if window_size > 2 and window_size % 2 == 1 and window_size <= len(data) and polyorder < window_size:
        return savgol_filter(data, window_size, polyorder)
    return data


def smooth_series(values):
    """Savitzky-Golay smoothing with a window sized to the series; NaN gaps are left as-is."""
    values = np.asarray(values, dtype=float)
    finite = np.isfinite(values)
    if finite.sum() < 3:
        return values

    result = values.copy()
    window_size = calculate_savgol_window_size(int(finite.sum()))
    result[finite] = apply_savgol_filter(values[finite], window_size)
    return result


def fill_depth_gaps(depths, values):
    """
    Linearly interpolate NaN gaps of one profile along depth.

    Only interior gaps are filled; values outside the measured depth span
    stay NaN (no extrapolation).

    Args:
        depths: 1-D array of depths, ascending
        values: 1-D array of values aligned with depths

    Returns:
        np.ndarray: values with interior gaps filled
    """
    depths = np.asarray(depths, dtype=float)
    values = np.asarray(values, dtype=float)
    finite = np.isfinite(values)
    if finite.sum() < 2:
        return values

    interpolator = interp1d(
        depths[finite], values[finite],
        kind='linear', bounds_error=False, fill_value=np.nan
    )
    filled = values.copy()
    filled[~finite] = interpolator(depths[~finite])
    return filled


def smooth_bearings(degrees):
    """
    Smooth compass angles through their sine and cosine so that a series
    crossing north is not pulled through 180.

    Returns:
        np.ndarray: angles in [0, 360)
    """
    radians = np.radians(np.asarray(degrees, dtype=float))
    east = smooth_series(np.sin(radians))
    north = smooth_series(np.cos(radians))
    return np.degrees(np.arctan2(east, north)) % 360.0
