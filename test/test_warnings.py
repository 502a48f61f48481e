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

"""Tests for operator warnings and cautions."""
import os
import sys
from datetime import datetime

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from core.dataset import DatasetStore
from core.profile_builder import CellBuffer
from core.warnings import compute_warnings
from parsers.nmea_handler import build_sentence, decode_line

T0 = "090715"
DATE = "102115"


def wave_sentence(hm0="0.55", hmax="0.82", tm02="2.76"):
    return build_sentence(["$PNORW", DATE, T0, "3", "4", hm0, "0.51", "0.63", hmax, tm02,
                           "3.33", "2.97", "55.06", "78.91", "51.52", "0.44", "4.95",
                           "0", "1", "0.27", "129.36", "0000"])


def environmental_sentence(pitch="2.0", roll="1.0", battery="12.5", error_status="00000000"):
    return build_sentence(["$PNORS", DATE, T0, error_status, "2A4C0000", battery, "1500.0",
                           "275.9", pitch, roll, "8.123", "15.80"])


def config_sentence(cell_count="4"):
    return build_sentence(["$PNORI", "4", "Signature1000", "4", cell_count, "0.50", "1.00", "0"])


def cell_sentence(cell_number, correlation="80"):
    return build_sentence(["$PNORC", DATE, T0, str(cell_number), "0.10", "0.10", "0.00", "0.00",
                           "0.14", "45.0", "C", "120", "118", "119", "121",
                           correlation, correlation, correlation, correlation])


def profile_from(cells, instrument_config):
    """Decode cells and assemble them into one profile through the cell buffer."""
    buffer = CellBuffer()
    for cell_number, correlation in cells:
        buffer.buffer_cell(decode_line(cell_sentence(cell_number, correlation), instrument_config))
    return buffer.build(datetime(2015, 10, 21, 9, 7, 15), instrument_config=instrument_config)


def test_quiet_dataset_has_no_warnings():
    store = DatasetStore()
    store.record("wave", decode_line(wave_sentence()))
    store.record("environmental", decode_line(environmental_sentence()))
    assert compute_warnings(store) == ({}, {})


def test_empty_dataset_has_no_warnings():
    assert compute_warnings(DatasetStore()) == ({}, {})


def test_wave_limits():
    store = DatasetStore()
    store.record("wave", decode_line(wave_sentence(hm0="3.5", hmax="4.0", tm02="13.0")))

    warnings, _ = compute_warnings(store)
    assert set(warnings) == {"hm0", "tm02"}
    assert "3.50" in warnings["hm0"]

    warnings, _ = compute_warnings(store, alert_limits={"hmax": 3.9, "hm0": 4.0})
    assert set(warnings) == {"hmax", "tm02"}


def test_environmental_cautions():
    store = DatasetStore()
    store.record("environmental", decode_line(
        environmental_sentence(pitch="18.0", roll="12.0", battery="10.1", error_status="00000010")
    ))
    warnings, cautions = compute_warnings(store)
    assert warnings == {}
    assert set(cautions) == {"high_tilt", "low_battery", "instrument_error"}


def test_poor_cells_in_latest_profile():
    cfg = decode_line(config_sentence(cell_count="4"))
    store = DatasetStore()
    store.record("config", cfg)

    store.record("profile", profile_from([(1, "80"), (2, "20"), (3, "20"), (4, "20")], cfg))
    warnings, _ = compute_warnings(store)
    assert "poor_cells" in warnings

    store.record("profile", profile_from([(1, "80"), (2, "80"), (3, "80"), (4, "20")], cfg))
    warnings, cautions = compute_warnings(store)
    assert "poor_cells" not in warnings
    assert "poor_cells" in cautions


def test_profile_without_valid_cells():
    cfg = decode_line(config_sentence(cell_count="2"))
    store = DatasetStore()
    store.record("profile", profile_from([(1, "20"), (2, "20")], cfg))
    warnings, _ = compute_warnings(store, instrument_config=cfg)
    assert "no_valid_cells" in warnings
    assert "poor_cells" in warnings


def test_incomplete_profile_caution():
    cfg = decode_line(config_sentence(cell_count="4"))
    store = DatasetStore()
    store.record("config", cfg)
    store.record("profile", profile_from([(1, "80"), (2, "80")], cfg))
    _, cautions = compute_warnings(store)
    assert "2 of 4" in cautions["incomplete_profile"]


def test_missing_config_caution():
    store = DatasetStore()
    store.record("profile", profile_from([(1, "80"), (2, "80")], None))
    _, cautions = compute_warnings(store)
    assert "missing_config" in cautions
    assert "incomplete_profile" not in cautions
