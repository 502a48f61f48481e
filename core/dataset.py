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
Dataset store: latest record of each kind plus bounded histories.

Histories are deques with a fixed ``maxlen`` so the oldest record is evicted
first. Queries copy what they need under the lock and never mutate state,
so a rendering thread can call them while the decode thread records.
"""
import logging
import math
import threading
from collections import deque
from datetime import timedelta

import numpy as np

try:
    from .. import config
except ImportError:
    import config

from .derived import circular_mean, finite_mean
from .filters import fill_depth_gaps, smooth_bearings, smooth_series
from .structures import (
    CELL_PARAMETERS,
    ENVIRONMENTAL_PARAMETERS,
    KIND_CONFIG,
    KIND_CURRENT,
    KIND_ENVIRONMENTAL,
    KIND_PROFILE,
    KIND_WAVE,
    PROFILE_PARAMETERS,
    WAVE_PARAMETERS,
)

logger = logging.getLogger(__name__)

# Profile-level series name -> CurrentProfile attribute
_PROFILE_ATTRIBUTES = {
    'speed': 'mean_speed',
    'direction': 'mean_direction',
    'valid_cell_count': 'valid_cell_count',
}


def resolve_window(since):
    """
    Convert a query window into a timedelta.

    Args:
        since: timedelta, number of seconds, a TIME_RANGES key ('1h', '6h',
            '24h', '7d', '30d') or None for DEFAULT_TIME_RANGE

    Returns:
        timedelta
    """
    ranges = getattr(config, 'TIME_RANGES', {'1h': 3600})
    default_key = getattr(config, 'DEFAULT_TIME_RANGE', '1h')

    if since is None:
        since = default_key
    if isinstance(since, timedelta):
        return since
    if isinstance(since, (int, float)):
        return timedelta(seconds=since)
    if since not in ranges:
        logger.warning(f"Unknown time range {since!r}, using {default_key}")
        since = default_key
    return timedelta(seconds=ranges[since])


def _cell_value(cell, parameter):
    if parameter in ('amplitude', 'correlation'):
        return finite_mean(getattr(cell, parameter))
    value = getattr(cell, parameter)
    return math.nan if value is None else float(value)


class DatasetStore:
    """Latest pointers and FIFO histories for wave, environmental and profile records."""

    def __init__(self, wave_capacity=None, environmental_capacity=None,
                 profile_capacity=None, lock=None):
        if wave_capacity is None:
            wave_capacity = getattr(config, 'WAVE_HISTORY_CAPACITY', 100)
        if environmental_capacity is None:
            environmental_capacity = getattr(config, 'ENVIRONMENTAL_HISTORY_CAPACITY', 500)
        if profile_capacity is None:
            profile_capacity = getattr(config, 'PROFILE_HISTORY_CAPACITY', 100)

        self._lock = lock if lock is not None else threading.RLock()
        self._histories = {
            KIND_WAVE: deque(maxlen=wave_capacity),
            KIND_ENVIRONMENTAL: deque(maxlen=environmental_capacity),
            KIND_PROFILE: deque(maxlen=profile_capacity),
        }
        self._latest = {
            KIND_WAVE: None,
            KIND_ENVIRONMENTAL: None,
            KIND_PROFILE: None,
            KIND_CONFIG: None,
        }
        self.last_update_time = None

    def record(self, kind, value):
        """
        Store a record: append to the history of its kind (evicting the
        oldest when full) and make it the latest of its kind.
        """
        if kind not in self._latest:
            raise ValueError(f"Unknown record kind: {kind}")
        with self._lock:
            history = self._histories.get(kind)
            if history is not None:
                history.append(value)
            self._latest[kind] = value
            self.last_update_time = value.received_at

    def latest(self, kind):
        if kind not in self._latest:
            raise ValueError(f"Unknown record kind: {kind}")
        with self._lock:
            return self._latest[kind]

    def history(self, kind):
        """Snapshot of a history, oldest first."""
        if kind not in self._histories:
            raise ValueError(f"No history is kept for kind: {kind}")
        with self._lock:
            return list(self._histories[kind])

    def capacity(self, kind):
        return self._histories[kind].maxlen

    def counts(self):
        with self._lock:
            return {kind: len(history) for kind, history in self._histories.items()}

    def clear(self):
        with self._lock:
            for history in self._histories.values():
                history.clear()
            for kind in self._latest:
                self._latest[kind] = None
            self.last_update_time = None

    def reference_time(self):
        """Newest instrument instant held by the store, or None when empty."""
        with self._lock:
            dates = [record.date for kind, record in self._latest.items()
                     if record is not None and kind != KIND_CONFIG]
        return max(dates) if dates else None

    def _cutoff(self, since, now):
        if now is None:
            now = self.reference_time()
        if now is None:
            return None
        return now - resolve_window(since)

    def time_series(self, kind, parameter, since=None, now=None, smooth=False):
        """
        Extract (timestamp, value) pairs for one parameter, in arrival order.

        Args:
            kind: 'wave', 'environmental' or 'current' ('profile' is an alias
                of 'current'); under 'current' sensor parameters come from the
                environmental history and speed/direction from profile means
            parameter: attribute name, see core.structures parameter tables
            since: query window (see resolve_window)
            now: end of the window (default: newest instant in the store)
            smooth: apply Savitzky-Golay smoothing to the values

        Returns:
            list of (datetime, float)
        """
        if kind == KIND_WAVE:
            if parameter not in WAVE_PARAMETERS:
                raise ValueError(f"Unknown wave parameter: {parameter}")
            source, attribute = KIND_WAVE, parameter
            metadata = WAVE_PARAMETERS[parameter]
        elif kind in (KIND_ENVIRONMENTAL, KIND_CURRENT, KIND_PROFILE) and parameter in ENVIRONMENTAL_PARAMETERS:
            source, attribute = KIND_ENVIRONMENTAL, parameter
            metadata = ENVIRONMENTAL_PARAMETERS[parameter]
        elif kind in (KIND_CURRENT, KIND_PROFILE) and parameter in PROFILE_PARAMETERS:
            source, attribute = KIND_PROFILE, _PROFILE_ATTRIBUTES[parameter]
            metadata = PROFILE_PARAMETERS[parameter]
        else:
            raise ValueError(f"Unknown parameter {parameter!r} for kind {kind!r}")

        cutoff = self._cutoff(since, now)
        if cutoff is None:
            return []

        records = [r for r in self.history(source) if r.date >= cutoff]
        times = [r.date for r in records]
        values = [float(getattr(r, attribute)) for r in records]
        if smooth and values:
            smoother = smooth_bearings if metadata.is_bearing else smooth_series
            values = [float(v) for v in smoother(values)]
        return list(zip(times, values))

    def hovmoller_grid(self, parameter, since=None, now=None):
        """
        Flatten valid cells of profiles in the window into (timestamp, depth, value).

        Cells whose value is missing (NaN, or no fourth beam velocity) are skipped.
        """
        if parameter not in CELL_PARAMETERS:
            raise ValueError(f"Unknown cell parameter: {parameter}")

        cutoff = self._cutoff(since, now)
        if cutoff is None:
            return []

        points = []
        for profile in self.history(KIND_PROFILE):
            if profile.date < cutoff:
                continue
            for cell in profile.valid_cells:
                value = _cell_value(cell, parameter)
                if math.isfinite(value):
                    points.append((profile.date, cell.depth, value))
        return points

    def hovmoller_matrix(self, parameter, since=None, now=None, depth_range=None, interpolate=False):
        """
        Regular time x depth matrix of a cell parameter.

        Args:
            parameter: cell parameter name
            since, now: query window
            depth_range: (min_depth, max_depth) inclusive, or None for all
            interpolate: fill interior depth gaps of each profile linearly

        Returns:
            tuple: (times, depths, values) where times is a list of datetime,
            depths a sorted 1-D array and values an array of shape
            (len(times), len(depths)) with NaN where there is no valid cell
        """
        points = self.hovmoller_grid(parameter, since=since, now=now)
        if depth_range is not None:
            low, high = depth_range
            points = [p for p in points if low <= p[1] <= high]

        times = sorted(set(p[0] for p in points))
        depths = np.array(sorted(set(p[1] for p in points)), dtype=float)
        values = np.full((len(times), len(depths)), np.nan)
        if not points:
            return times, depths, values

        time_index = {t: i for i, t in enumerate(times)}
        depth_index = {d: i for i, d in enumerate(depths.tolist())}
        for timestamp, depth, value in points:
            values[time_index[timestamp], depth_index[depth]] = value

        if interpolate:
            for row in range(len(times)):
                values[row] = fill_depth_gaps(depths, values[row])
        return times, depths, values

    def averaged_current(self, window=None):
        """
        Vector-averaged current over the last ``window`` profiles.

        Profiles whose aggregates were flagged are skipped.

        Returns:
            tuple: (mean_speed, mean_direction); (0.0, 0.0) without data
        """
        if window is None:
            window = getattr(config, 'AVERAGING_WINDOW', 5)
        if window <= 0:
            return 0.0, 0.0
        profiles = [p for p in self.history(KIND_PROFILE) if not p.aggregates_flagged][-window:]
        if not profiles:
            return 0.0, 0.0

        speeds = np.array([p.mean_speed for p in profiles])
        radians = np.radians([p.mean_direction for p in profiles])
        direction, _ = circular_mean(speeds * np.sin(radians), speeds * np.cos(radians))
        return float(np.mean(speeds)), direction
