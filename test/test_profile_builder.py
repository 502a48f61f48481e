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

"""Tests for the cell buffer, its completion policy and profile aggregates."""
import logging
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from core.errors import ProfileAlreadyBuilt
from core.profile_builder import CellBuffer, ProfileSlot, build_profile
from core.structures import (
    CoordinateSystem,
    CurrentCellData,
    InstrumentConfig,
    QualityGrade,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


def make_config(cell_count=3):
    return InstrumentConfig(
        instrument_type=4,
        head_id="Signature1000",
        beam_count=4,
        cell_count=cell_count,
        blanking_distance=0.5,
        cell_size=1.0,
        coordinate_system=CoordinateSystem.ENU,
    )


def make_cell(date, cell_number, east=0.1, north=0.1, speed=0.14, valid=True):
    return CurrentCellData(
        date=date,
        cell_number=cell_number,
        depth=0.5 + (cell_number - 1),
        east_velocity=east,
        north_velocity=north,
        up_velocity1=0.0,
        up_velocity2=None,
        speed=speed,
        direction=45.0,
        amplitude=(100.0, 100.0, 100.0, 100.0),
        correlation=(80.0, 80.0, 80.0, 80.0) if valid else (20.0, 20.0, 20.0, 20.0),
        is_valid=valid,
        quality_grade=QualityGrade.EXCELLENT if valid else QualityGrade.POOR,
    )


def test_complete_profile_is_built_on_cell_count():
    cfg = make_config(cell_count=3)
    buffer = CellBuffer()
    for number in (1, 2):
        buffer.buffer_cell(make_cell(T0, number))
        assert buffer.tick(instrument_config=cfg) == []

    buffer.buffer_cell(make_cell(T0, 3))
    profiles = buffer.tick(instrument_config=cfg)

    assert len(profiles) == 1
    profile = profiles[0]
    assert profile.date == T0
    assert profile.sequence == 0
    assert profile.is_complete
    assert profile.instrument_config is cfg
    assert [cell.cell_number for cell in profile.cells] == [1, 2, 3]
    assert len(buffer) == 0


def test_out_of_range_cell_does_not_complete_profile():
    cfg = make_config(cell_count=3)
    buffer = CellBuffer()
    for number in (1, 2, 9):
        buffer.buffer_cell(make_cell(T0, number))
    assert buffer.tick(instrument_config=cfg) == []

    buffer.buffer_cell(make_cell(T0, 3))
    profiles = buffer.tick(instrument_config=cfg)
    assert len(profiles) == 1
    assert profiles[0].is_complete


def test_cells_are_ordered_by_cell_number():
    buffer = CellBuffer()
    for number in (3, 1, 2):
        buffer.buffer_cell(make_cell(T0, number))
    profile = buffer.build(T0)
    assert [cell.cell_number for cell in profile.cells] == [1, 2, 3]


def test_profile_aggregates_use_valid_cells_only():
    buffer = CellBuffer()
    buffer.buffer_cell(make_cell(T0, 1, east=1.0, north=0.0, speed=1.0))
    buffer.buffer_cell(make_cell(T0, 2, east=0.0, north=1.0, speed=1.0))
    buffer.buffer_cell(make_cell(T0, 3, east=-5.0, north=-5.0, speed=7.0, valid=False))

    profile = buffer.build(T0)

    assert profile.valid_cell_count == 2
    assert len(profile.valid_cells) == 2
    assert profile.mean_speed == pytest.approx(1.0)
    assert profile.mean_direction == pytest.approx(45.0)
    assert not profile.aggregates_flagged


def test_profile_without_valid_cells_is_flagged():
    buffer = CellBuffer()
    buffer.buffer_cell(make_cell(T0, 1, valid=False))
    buffer.buffer_cell(make_cell(T0, 2, valid=False))

    profile = buffer.build(T0)

    assert profile.valid_cell_count == 0
    assert profile.mean_speed == 0.0
    assert profile.mean_direction == 0.0
    assert profile.aggregates_flagged


def test_stale_profile_is_flushed_incomplete():
    cfg = make_config(cell_count=5)
    buffer = CellBuffer(stale_seconds=30.0)
    buffer.buffer_cell(make_cell(T0, 1))
    buffer.buffer_cell(make_cell(T0, 2))

    # exactly at the threshold the slot is still open
    buffer.buffer_cell(make_cell(T0 + timedelta(seconds=30), 1))
    assert buffer.tick(instrument_config=cfg) == []

    buffer.buffer_cell(make_cell(T0 + timedelta(seconds=31), 1))
    profiles = buffer.tick(instrument_config=cfg)

    assert [p.date for p in profiles] == [T0]
    assert not profiles[0].is_complete
    assert len(profiles[0].cells) == 2
    assert buffer.open_keys() == [T0 + timedelta(seconds=30), T0 + timedelta(seconds=31)]


def test_too_many_open_profiles_flushes_oldest():
    buffer = CellBuffer(stale_seconds=3600, max_open=2)
    for offset in range(3):
        buffer.buffer_cell(make_cell(T0 + timedelta(seconds=offset), 1))
    profiles = buffer.tick()

    assert [p.date for p in profiles] == [T0]
    assert len(buffer) == 2


def test_profiles_are_not_completed_without_config():
    buffer = CellBuffer()
    for number in range(1, 30):
        buffer.buffer_cell(make_cell(T0, number))
    assert buffer.tick() == []
    assert buffer.cell_count(T0) == 29


def test_duplicate_cell_last_wins(caplog):
    buffer = CellBuffer()
    buffer.buffer_cell(make_cell(T0, 1, speed=0.1))
    with caplog.at_level(logging.WARNING):
        buffer.buffer_cell(make_cell(T0, 1, speed=0.3))

    profile = buffer.build(T0)

    assert len(profile.cells) == 1
    assert profile.cells[0].speed == pytest.approx(0.3)
    assert profile.duplicate_cells == 1
    assert any("Duplicate cell" in record.message for record in caplog.records)


def test_profile_is_built_once():
    buffer = CellBuffer()
    buffer.buffer_cell(make_cell(T0, 1))
    assert buffer.build(T0) is not None
    assert buffer.was_built(T0)

    with pytest.raises(ProfileAlreadyBuilt):
        buffer.build(T0)
    with pytest.raises(ProfileAlreadyBuilt):
        buffer.buffer_cell(make_cell(T0, 2))


def test_build_unknown_key_returns_none():
    buffer = CellBuffer()
    assert buffer.build(T0) is None
    assert not buffer.was_built(T0)


def test_built_key_memory_is_bounded():
    buffer = CellBuffer(built_memory=2)
    for offset in range(3):
        key = T0 + timedelta(seconds=offset)
        buffer.buffer_cell(make_cell(key, 1))
        buffer.build(key)
    assert not buffer.was_built(T0)
    assert buffer.was_built(T0 + timedelta(seconds=2))


def test_sequence_numbers_increase():
    buffer = CellBuffer()
    for offset in range(3):
        buffer.buffer_cell(make_cell(T0 + timedelta(seconds=offset), 1))
    profiles = buffer.flush()
    assert [p.sequence for p in profiles] == [0, 1, 2]
    assert len(buffer) == 0


def test_build_profile_from_slot():
    slot = ProfileSlot(7, T0)
    slot.cells[2] = make_cell(T0, 2, east=0.0, north=-1.0, speed=1.0)
    profile = build_profile(slot, is_complete=True)
    assert profile.sequence == 7
    assert profile.mean_direction == pytest.approx(180.0)
    assert profile.environmental is None
    assert profile.instrument_config is None


def test_clear_forgets_everything():
    buffer = CellBuffer()
    buffer.buffer_cell(make_cell(T0, 1))
    buffer.build(T0)
    buffer.buffer_cell(make_cell(T0 + timedelta(seconds=1), 1))
    buffer.clear()
    assert len(buffer) == 0
    assert buffer.newest_instant is None
    assert not buffer.was_built(T0)
