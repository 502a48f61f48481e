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
Cell buffer and profile builder.

$PNORC sentences arrive one cell at a time. Cells sharing a sampling instant
are collected in an open profile slot; slots are numbered by a monotonically
increasing sequence and looked up by instant.

Completion policy:
    1. a slot is complete when it holds InstrumentConfig.cell_count distinct
       cells;
    2. otherwise it is flushed when its instant falls more than
       PROFILE_STALE_SECONDS behind the newest instant seen;
    3. when more than MAX_OPEN_PROFILES slots are open the oldest is flushed.
The policy is evaluated by ``tick`` which the caller drives (the session
ticks after every buffered cell). There is no background timer.

Each instant is built at most once. Building it again, or buffering a late
cell for it, raises ProfileAlreadyBuilt.
"""
import logging
import math
from collections import deque
from operator import attrgetter

try:
    from .. import config
except ImportError:
    import config

from .derived import circular_mean, finite_mean
from .errors import ProfileAlreadyBuilt
from .structures import CurrentProfile

logger = logging.getLogger(__name__)


class ProfileSlot:
    """Open profile: cells of one instant keyed by cell number."""

    def __init__(self, sequence, date):
        self.sequence = sequence
        self.date = date
        self.cells = {}
        self.duplicates = 0

    def __len__(self):
        return len(self.cells)


def build_profile(slot, environmental=None, instrument_config=None, is_complete=False):
    """
    Assemble a CurrentProfile from an open slot.

    Aggregates use valid cells only. With no valid cell (or no finite
    velocity components) the aggregates are 0.0 and ``aggregates_flagged``
    is set; NaN never leaves this function.

    Args:
        slot: ProfileSlot
        environmental: EnvironmentalData snapshot in effect, or None
        instrument_config: InstrumentConfig in effect, or None
        is_complete: True when the slot reached the configured cell count

    Returns:
        CurrentProfile
    """
    cells = tuple(sorted(slot.cells.values(), key=attrgetter('cell_number')))
    valid = [cell for cell in cells if cell.is_valid]

    mean_speed = finite_mean([cell.speed for cell in valid])
    speed_flagged = not math.isfinite(mean_speed)
    if speed_flagged:
        mean_speed = 0.0

    mean_direction, direction_flagged = circular_mean(
        [cell.east_velocity for cell in valid],
        [cell.north_velocity for cell in valid],
    )

    return CurrentProfile(
        date=slot.date,
        sequence=slot.sequence,
        instrument_config=instrument_config,
        environmental=environmental,
        cells=cells,
        mean_speed=mean_speed,
        mean_direction=mean_direction,
        valid_cell_count=len(valid),
        aggregates_flagged=speed_flagged or direction_flagged,
        is_complete=is_complete,
        duplicate_cells=slot.duplicates,
    )


class CellBuffer:
    """Arena of open profile slots with an explicit completion policy."""

    def __init__(self, stale_seconds=None, max_open=None, built_memory=None):
        if stale_seconds is None:
            stale_seconds = getattr(config, 'PROFILE_STALE_SECONDS', 30.0)
        if max_open is None:
            max_open = getattr(config, 'MAX_OPEN_PROFILES', 8)
        if built_memory is None:
            built_memory = getattr(config, 'BUILT_KEYS_MEMORY', 256)

        self.stale_seconds = stale_seconds
        self.max_open = max(1, max_open)
        self.built_memory = max(1, built_memory)
        self._slots = {}
        self._index = {}
        self._next_sequence = 0
        self._built = deque(maxlen=self.built_memory)
        self._built_keys = set()
        self._newest = None

    def __len__(self):
        return len(self._slots)

    @property
    def newest_instant(self):
        return self._newest

    def open_keys(self):
        """Instants of open slots, oldest sequence first."""
        return [slot.date for slot in self._slots.values()]

    def cell_count(self, key):
        sequence = self._index.get(key)
        return 0 if sequence is None else len(self._slots[sequence])

    def was_built(self, key):
        return key in self._built_keys

    def buffer_cell(self, cell):
        """
        Add a cell to the slot of its instant, opening the slot if needed.

        A repeated cell number replaces the earlier reading and is counted as
        a duplicate.

        Returns:
            ProfileSlot the cell was stored in

        Raises:
            ProfileAlreadyBuilt: the instant was already emitted as a profile
        """
        key = cell.date
        if key in self._built_keys:
            raise ProfileAlreadyBuilt("late cell for an already built profile",
                                      expected='open profile', actual=key.isoformat())

        sequence = self._index.get(key)
        if sequence is None:
            sequence = self._next_sequence
            self._next_sequence += 1
            self._slots[sequence] = ProfileSlot(sequence, key)
            self._index[key] = sequence

        slot = self._slots[sequence]
        if cell.cell_number in slot.cells:
            slot.duplicates += 1
            logger.warning(f"Duplicate cell {cell.cell_number} for {key.isoformat()}, keeping last")
        slot.cells[cell.cell_number] = cell

        if self._newest is None or key > self._newest:
            self._newest = key
        return slot

    def build(self, key, environmental=None, instrument_config=None):
        """
        Build and remove the slot for ``key``.

        Returns:
            CurrentProfile, or None when nothing was buffered for ``key``

        Raises:
            ProfileAlreadyBuilt: ``key`` was built before
        """
        if key in self._built_keys:
            raise ProfileAlreadyBuilt("profile already built",
                                      expected='open profile', actual=key.isoformat())

        sequence = self._index.pop(key, None)
        if sequence is None:
            return None
        slot = self._slots.pop(sequence)

        profile = build_profile(
            slot,
            environmental=environmental,
            instrument_config=instrument_config,
            is_complete=self.is_complete_slot(slot, instrument_config),
        )
        self._remember(key)
        return profile

    def is_complete_slot(self, slot, instrument_config):
        if instrument_config is None:
            return False
        # cell numbers outside 1..cell_count never complete a profile
        received = sum(1 for number in slot.cells if number <= instrument_config.cell_count)
        return received >= instrument_config.cell_count

    def tick(self, environmental=None, instrument_config=None, reference=None):
        """
        Apply the completion policy and build every slot that is due.

        Args:
            environmental: snapshot attached to built profiles
            instrument_config: configuration in effect
            reference: instant staleness is measured against
                (default: newest instant seen)

        Returns:
            list of CurrentProfile, oldest sequence first
        """
        if reference is None:
            reference = self._newest

        due = []
        for slot in self._slots.values():
            if self.is_complete_slot(slot, instrument_config):
                due.append(slot.date)
            elif reference is not None and (reference - slot.date).total_seconds() > self.stale_seconds:
                logger.debug(f"Flushing stale profile {slot.date.isoformat()} with {len(slot)} cells")
                due.append(slot.date)

        overflow = len(self._slots) - len(due) - self.max_open
        if overflow > 0:
            for slot in self._slots.values():
                if overflow <= 0:
                    break
                if slot.date not in due:
                    logger.debug(f"Flushing profile {slot.date.isoformat()}: too many open profiles")
                    due.append(slot.date)
                    overflow -= 1

        due.sort(key=lambda k: self._index[k])
        return [self.build(key, environmental, instrument_config) for key in due]

    def flush(self, environmental=None, instrument_config=None):
        """Build every open slot (end of stream)."""
        keys = self.open_keys()
        return [self.build(key, environmental, instrument_config) for key in keys]

    def clear(self):
        self._slots.clear()
        self._index.clear()
        self._built.clear()
        self._built_keys.clear()
        self._newest = None

    def _remember(self, key):
        if len(self._built) == self._built.maxlen:
            self._built_keys.discard(self._built[0])
        self._built.append(key)
        self._built_keys.add(key)
