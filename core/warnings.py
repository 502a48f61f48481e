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
Warning and notification generation module.
Single point for operator alerts derived from the dataset.
"""

import logging

# Import config for threshold values
try:
    from .. import config
    from ..locales.strings import WARNINGS, CAUTIONS
except ImportError:
    import config
    from locales.strings import WARNINGS, CAUTIONS

from .structures import (
    KIND_CONFIG,
    KIND_ENVIRONMENTAL,
    KIND_PROFILE,
    KIND_WAVE,
)

logger = logging.getLogger(__name__)


def compute_warnings(dataset, alert_limits=None, instrument_config=None):
    """
    Unified function for computing all warnings.

    Args:
        dataset: DatasetStore to inspect (latest records only)
        alert_limits: dict with 'hm0', 'hmax', 'tm02' limits; missing keys
            fall back to config.DEFAULT_ALERT_LIMITS
        instrument_config: InstrumentConfig in effect (default: latest in dataset)

    Returns:
        tuple: (warnings: dict, cautions: dict)
    """
    warnings = {}
    cautions = {}

    limits = dict(getattr(config, 'DEFAULT_ALERT_LIMITS', {'hm0': 3.0, 'hmax': 5.0, 'tm02': 12.0}))
    if alert_limits:
        limits.update(alert_limits)

    if instrument_config is None:
        instrument_config = dataset.latest(KIND_CONFIG)

    # 1. Wave alert limits
    _check_wave_limits(dataset.latest(KIND_WAVE), limits, warnings)

    # 2. Instrument attitude and power
    _check_environmental(dataset.latest(KIND_ENVIRONMENTAL), cautions)

    # 3. Latest profile quality
    latest_profile = dataset.latest(KIND_PROFILE)
    _check_profile_quality(latest_profile, warnings, cautions)

    # 4. Profile completeness
    _check_profile_completeness(latest_profile, instrument_config, cautions)

    # 5. Degraded mode
    _check_instrument_config(latest_profile, instrument_config, cautions)

    return warnings, cautions


def _check_wave_limits(wave, limits, warnings):
    """Check wave statistics against alert limits."""
    if wave is None:
        return

    for parameter in ('hm0', 'hmax', 'tm02'):
        limit = limits.get(parameter)
        value = getattr(wave, parameter)
        if limit is not None and value > limit:
            warnings[parameter] = WARNINGS[parameter].format(value=value, limit=limit)


def _check_environmental(environmental, cautions):
    """Check tilt, battery voltage and the instrument error status."""
    if environmental is None:
        return

    tilt_threshold = getattr(config, 'HIGH_TILT_DEG', 20.0)
    if environmental.tilt > tilt_threshold:
        cautions["high_tilt"] = CAUTIONS['high_tilt'].format(
            tilt=environmental.tilt, threshold=tilt_threshold
        )

    battery_threshold = getattr(config, 'LOW_BATTERY_VOLTAGE', 10.5)
    if environmental.battery_voltage < battery_threshold:
        cautions["low_battery"] = CAUTIONS['low_battery'].format(
            voltage=environmental.battery_voltage, threshold=battery_threshold
        )

    if int(environmental.error_status, 16) != 0:
        cautions["instrument_error"] = CAUTIONS['instrument_error'].format(
            status=environmental.error_status
        )


def _check_profile_quality(profile, warnings, cautions):
    """Check the share of invalid cells in the latest profile."""
    if profile is None or not profile.cells:
        return

    if profile.aggregates_flagged:
        warnings["no_valid_cells"] = WARNINGS['no_valid_cells']

    total = len(profile.cells)
    invalid = total - profile.valid_cell_count
    ratio = invalid / total

    if ratio > getattr(config, 'POOR_CELL_RATIO_WARNING', 0.5):
        warnings["poor_cells"] = WARNINGS['poor_cells'].format(ratio=ratio, invalid=invalid, total=total)
    elif ratio > getattr(config, 'POOR_CELL_RATIO_CAUTION', 0.2):
        if "poor_cells" not in warnings:
            cautions["poor_cells"] = CAUTIONS['poor_cells'].format(ratio=ratio, invalid=invalid, total=total)


def _check_profile_completeness(profile, instrument_config, cautions):
    """Check whether the latest profile was flushed before all cells arrived."""
    if profile is None or profile.is_complete or instrument_config is None:
        return

    cautions["incomplete_profile"] = CAUTIONS['incomplete_profile'].format(
        received=len(profile.cells), expected=instrument_config.cell_count
    )


def _check_instrument_config(profile, instrument_config, cautions):
    """Cells decoded without $PNORI have estimated depths."""
    if instrument_config is not None:
        return

    if profile is not None and any(cell.depth_is_estimated for cell in profile.cells):
        cautions["missing_config"] = CAUTIONS['missing_config']
