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
Derived quantities: tilt, orientation, cell depth, vector-averaged
direction and data quality grading.
All functions are pure.
"""
import math
from dataclasses import dataclass

import numpy as np

try:
    from .. import config
except ImportError:
    import config

from .structures import (
    FULL_CIRCLE_DEG,
    ORIENTATION_MASK,
    ORIENTATION_SHIFT,
    QualityGrade,
)


@dataclass(frozen=True)
class QualityThresholds:
    """Tier boundaries for correlation (%) and amplitude (counts)."""
    correlation_excellent: float = 80
    correlation_good: float = 70
    correlation_fair: float = 50
    amplitude_excellent: float = 100
    amplitude_good: float = 80
    amplitude_fair: float = 50

    @classmethod
    def from_config(cls):
        return cls(
            correlation_excellent=getattr(config, 'QUALITY_CORRELATION_EXCELLENT', 80),
            correlation_good=getattr(config, 'QUALITY_CORRELATION_GOOD', 70),
            correlation_fair=getattr(config, 'QUALITY_CORRELATION_FAIR', 50),
            amplitude_excellent=getattr(config, 'QUALITY_AMPLITUDE_EXCELLENT', 100),
            amplitude_good=getattr(config, 'QUALITY_AMPLITUDE_GOOD', 80),
            amplitude_fair=getattr(config, 'QUALITY_AMPLITUDE_FAIR', 50),
        )


def calculate_tilt(pitch, roll):
    """Total tilt in degrees: sqrt(pitch² + roll²). Never negative."""
    return float(np.hypot(pitch, roll))


def extract_orientation(status_code):
    """
    Orientation code from bits 27-25 of the hex status word.

    Returns:
        int in 0..7 (callers map it to OrientationCode)

    Raises:
        ValueError: status code is not hexadecimal
    """
    status = int(status_code, 16)
    return (status >> ORIENTATION_SHIFT) & ORIENTATION_MASK


def calculate_cell_depth(cell_number, instrument_config=None):
    """
    Distance from the transducer to the centre of a cell.

    Without an instrument configuration the cell number times
    FALLBACK_CELL_SIZE is returned (approximate depth).

    Args:
        cell_number: 1-based cell number
        instrument_config: InstrumentConfig or None

    Returns:
        float: distance in metres
    """
    if instrument_config is None:
        return cell_number * getattr(config, 'FALLBACK_CELL_SIZE', 1.0)
    return instrument_config.blanking_distance + (cell_number - 1) * instrument_config.cell_size


def finite_mean(values):
    """Mean over finite values; NaN when there are none."""
    arr = np.asarray(values, dtype=float)
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return math.nan
    return float(np.mean(arr))


def circular_mean(east_components, north_components):
    """
    Direction of the mean current vector.

    East and north components are averaged separately and the direction is
    atan2(mean_east, mean_north) in degrees, normalized into [0, 360).
    Pairs with a non-finite component are skipped.

    Returns:
        tuple: (direction_deg, flagged) where flagged is True when no finite
        pair was available and the direction was substituted with 0.0
    """
    east = np.asarray(east_components, dtype=float)
    north = np.asarray(north_components, dtype=float)
    finite = np.isfinite(east) & np.isfinite(north)
    if not np.any(finite):
        return 0.0, True

    mean_east = np.mean(east[finite])
    mean_north = np.mean(north[finite])
    direction = float(np.degrees(np.arctan2(mean_east, mean_north)))
    if direction < 0:
        direction += FULL_CIRCLE_DEG
    # -0.0 and rounding just below 360 both land on 360 after the shift
    if direction >= FULL_CIRCLE_DEG:
        direction -= FULL_CIRCLE_DEG
    return direction, False


def _tier(value, excellent, good, fair):
    if not math.isfinite(value):
        return QualityGrade.POOR
    if value >= excellent:
        return QualityGrade.EXCELLENT
    if value >= good:
        return QualityGrade.GOOD
    if value >= fair:
        return QualityGrade.FAIR
    return QualityGrade.POOR


def grade_quality(mean_amplitude, mean_correlation, thresholds=None):
    """
    Grade a reading from its mean echo amplitude and mean correlation.

    Each value is placed in a tier independently; the worse tier wins, so a
    reading is excellent only when both reach the excellent threshold.
    """
    if thresholds is None:
        thresholds = QualityThresholds.from_config()

    correlation_tier = _tier(
        mean_correlation,
        thresholds.correlation_excellent,
        thresholds.correlation_good,
        thresholds.correlation_fair,
    )
    amplitude_tier = _tier(
        mean_amplitude,
        thresholds.amplitude_excellent,
        thresholds.amplitude_good,
        thresholds.amplitude_fair,
    )
    return min(correlation_tier, amplitude_tier)


def is_valid_reading(mean_correlation, speed):
    """Validity: mean correlation above VALID_MIN_CORRELATION and a finite speed."""
    min_correlation = getattr(config, 'VALID_MIN_CORRELATION', 50)
    return bool(mean_correlation > min_correlation and math.isfinite(speed))
