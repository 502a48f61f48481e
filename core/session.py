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
Instrument session: routes decoded records into the cell buffer and the
dataset store.

One session per instrument. A single re-entrant lock serializes decoding,
ingestion and queries, so the decode thread and a presentation thread can
share a session. Nothing runs in the background: profiles are completed
when cells arrive (or on ``flush``).
"""
import logging
import threading
from typing import List, NamedTuple, Optional

try:
    from ..parsers.nmea_handler import decode_line
except ImportError:
    from parsers.nmea_handler import decode_line

from .dataset import DatasetStore
from .derived import QualityThresholds
from .errors import DecodeError, MissingInstrumentConfig, ProfileAlreadyBuilt
from .profile_builder import CellBuffer
from .structures import (
    KIND_CONFIG,
    KIND_PROFILE,
    CurrentCellData,
    CurrentProfile,
    EnvironmentalData,
    InstrumentConfig,
    WaveData,
)

logger = logging.getLogger(__name__)


class IngestResult(NamedTuple):
    """Outcome of one raw line.

    ``error`` is set when the line was rejected. ``notice`` carries a
    MissingInstrumentConfig when a cell was accepted with estimated depth.
    """
    message: Optional[object]
    profiles: List[CurrentProfile]
    error: Optional[DecodeError] = None
    notice: Optional[MissingInstrumentConfig] = None


def _empty_statistics():
    return {
        'lines': 0,
        'decoded': {},
        'errors': {},
        'profiles_built': 0,
        'incomplete_profiles': 0,
        'duplicate_cells': 0,
        'estimated_depth_cells': 0,
    }


class AdcpSession:
    """Decoding state of one instrument: configuration, open profiles, dataset."""

    def __init__(self, thresholds=None, cell_buffer=None, dataset=None):
        self._lock = threading.RLock()
        self.thresholds = thresholds or QualityThresholds.from_config()
        self.cell_buffer = cell_buffer if cell_buffer is not None else CellBuffer()
        self.dataset = dataset if dataset is not None else DatasetStore(lock=self._lock)
        self.instrument_config = None
        self.statistics = _empty_statistics()

    @property
    def lock(self):
        return self._lock

    def decode_line(self, line):
        """Decode one sentence with the configuration in effect. Raises DecodeError."""
        with self._lock:
            return decode_line(line, self.instrument_config, self.thresholds)

    def ingest(self, record):
        """
        Route a decoded record.

        Config, environmental and wave records go straight to the dataset.
        Current cells are buffered and the completion policy is applied.

        Returns:
            list of CurrentProfile built as a consequence (often empty)

        Raises:
            ProfileAlreadyBuilt: late cell for an instant already emitted
        """
        with self._lock:
            if isinstance(record, InstrumentConfig):
                if self.instrument_config is not None and record != self.instrument_config:
                    logger.info(f"Instrument configuration changed: {record.cell_count} cells "
                                f"of {record.cell_size} m, {record.beam_count} beams")
                self.instrument_config = record
                self.dataset.record(KIND_CONFIG, record)
                return []

            if isinstance(record, (EnvironmentalData, WaveData)):
                self.dataset.record(record.kind, record)
                return []

            if isinstance(record, CurrentCellData):
                self.cell_buffer.buffer_cell(record)
                profiles = self.cell_buffer.tick(
                    environmental=self.dataset.latest(EnvironmentalData.kind),
                    instrument_config=self.instrument_config,
                )
                for profile in profiles:
                    self._record_profile(profile)
                return profiles

            raise TypeError(f"Cannot ingest {type(record).__name__}")

    def process_line(self, line):
        """
        Decode and ingest one raw line. Errors are returned, never raised.

        Returns:
            IngestResult
        """
        with self._lock:
            self.statistics['lines'] += 1
            record = None
            try:
                record = self.decode_line(line)
                profiles = self.ingest(record)
            except DecodeError as e:
                self._count_error(e)
                if isinstance(e, ProfileAlreadyBuilt):
                    logger.warning(f"Protocol anomaly: {e}")
                else:
                    logger.debug(f"Rejected line: {e}")
                return IngestResult(record, [], e.with_line(line))

            decoded = self.statistics['decoded']
            decoded[record.kind] = decoded.get(record.kind, 0) + 1

            notice = None
            if isinstance(record, CurrentCellData) and record.depth_is_estimated:
                self.statistics['estimated_depth_cells'] += 1
                notice = MissingInstrumentConfig(
                    "no instrument configuration, cell depth estimated",
                    line=line, expected='$PNORI', actual=None,
                )
            return IngestResult(record, profiles, None, notice)

    def flush(self):
        """Build every open profile (end of a capture)."""
        with self._lock:
            profiles = self.cell_buffer.flush(
                environmental=self.dataset.latest(EnvironmentalData.kind),
                instrument_config=self.instrument_config,
            )
            for profile in profiles:
                self._record_profile(profile)
            return profiles

    def query_series(self, kind, parameter, since=None, now=None, smooth=False):
        with self._lock:
            return self.dataset.time_series(kind, parameter, since=since, now=now, smooth=smooth)

    def query_grid(self, parameter, since=None, now=None):
        with self._lock:
            return self.dataset.hovmoller_grid(parameter, since=since, now=now)

    def query_matrix(self, parameter, since=None, now=None, depth_range=None, interpolate=False):
        with self._lock:
            return self.dataset.hovmoller_matrix(parameter, since=since, now=now,
                                                 depth_range=depth_range, interpolate=interpolate)

    def query_latest(self, kind):
        with self._lock:
            return self.dataset.latest(kind)

    def query_averaged_current(self, window=None):
        with self._lock:
            return self.dataset.averaged_current(window)

    def reset(self):
        """Discard configuration, open profiles, dataset and counters."""
        with self._lock:
            self.cell_buffer = CellBuffer(
                stale_seconds=self.cell_buffer.stale_seconds,
                max_open=self.cell_buffer.max_open,
                built_memory=self.cell_buffer.built_memory,
            )
            self.dataset = DatasetStore(
                wave_capacity=self.dataset.capacity(WaveData.kind),
                environmental_capacity=self.dataset.capacity(EnvironmentalData.kind),
                profile_capacity=self.dataset.capacity(KIND_PROFILE),
                lock=self._lock,
            )
            self.instrument_config = None
            self.statistics = _empty_statistics()
            logger.info("Session reset")

    def _record_profile(self, profile):
        self.dataset.record(KIND_PROFILE, profile)
        self.statistics['profiles_built'] += 1
        self.statistics['duplicate_cells'] += profile.duplicate_cells
        if not profile.is_complete:
            self.statistics['incomplete_profiles'] += 1

    def _count_error(self, error):
        errors = self.statistics['errors']
        name = type(error).__name__
        errors[name] = errors.get(name, 0) + 1
