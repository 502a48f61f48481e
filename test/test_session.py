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
Tests for the instrument session using the sample capture in test/resources.

The capture holds a $PNORI for 5 cells, a complete profile at 09:07:15, a
wave record, one line with a bad checksum, one foreign GGA sentence and a
3-cell profile at 09:17:15 that is only built when the session is flushed.
"""
import logging
import math
import os
import sys
import threading
from datetime import datetime

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from core.errors import (
    ChecksumError,
    FieldParseError,
    MissingInstrumentConfig,
    ProfileAlreadyBuilt,
    UnknownMessageType,
)
from core.session import AdcpSession
from core.structures import CurrentProfile, InstrumentConfig, QualityGrade
from parsers.nmea_handler import build_sentence, read_sentence_file

RESOURCES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "resources")
SAMPLE_CAPTURE = os.path.join(RESOURCES_DIR, "sample_session.nmea")

FIRST_INSTANT = datetime(2015, 10, 21, 9, 7, 15)
SECOND_INSTANT = datetime(2015, 10, 21, 9, 17, 15)


def replay(session=None):
    session = session or AdcpSession()
    results = [session.process_line(line) for _, line in read_sentence_file(SAMPLE_CAPTURE)]
    return session, results


def test_complete_profile_is_emitted_by_the_last_cell():
    session, results = replay()

    # line 7 is the fifth cell of the first instant
    assert [len(r.profiles) for r in results[:7]] == [0, 0, 0, 0, 0, 0, 1]
    profile = results[6].profiles[0]
    assert isinstance(profile, CurrentProfile)
    assert profile.date == FIRST_INSTANT
    assert profile.is_complete
    assert profile.valid_cell_count == 4
    assert profile.mean_speed == pytest.approx(0.215)
    assert profile.mean_direction == pytest.approx(math.degrees(math.atan2(0.1, 0.15)))
    assert profile.environmental.date == FIRST_INSTANT
    assert [cell.depth for cell in profile.cells] == pytest.approx([0.5, 1.5, 2.5, 3.5, 4.5])
    assert [cell.quality_grade for cell in profile.cells] == [
        QualityGrade.EXCELLENT, QualityGrade.GOOD, QualityGrade.FAIR, QualityGrade.POOR, QualityGrade.GOOD,
    ]


def test_rejected_lines_are_returned_not_raised():
    session, results = replay()

    assert isinstance(results[8].error, ChecksumError)
    assert isinstance(results[9].error, UnknownMessageType)
    assert results[9].error.line.startswith("$GPGGA")
    assert session.statistics['errors'] == {'ChecksumError': 1, 'UnknownMessageType': 1}
    # a rejected $PNORS must not replace the stored one
    assert len(session.dataset.history("environmental")) == 2


def test_flush_builds_incomplete_profile():
    session, _ = replay()
    assert session.query_latest("profile").date == FIRST_INSTANT

    profiles = session.flush()

    assert [p.date for p in profiles] == [SECOND_INSTANT]
    assert not profiles[0].is_complete
    assert profiles[0].valid_cell_count == 3
    assert profiles[0].mean_speed == pytest.approx((0.15 + 0.18 + 0.28) / 3)
    assert session.statistics['profiles_built'] == 2
    assert session.statistics['incomplete_profiles'] == 1
    assert session.flush() == []


def test_statistics_after_replay():
    session, _ = replay()
    session.flush()
    assert session.statistics['lines'] == 14
    assert session.statistics['decoded'] == {
        'config': 1, 'environmental': 2, 'current': 8, 'wave': 1,
    }
    assert session.statistics['estimated_depth_cells'] == 0


def test_queries_after_replay():
    session, _ = replay()
    session.flush()

    speeds = session.query_series("current", "speed", since="1h")
    assert [t for t, _ in speeds] == [FIRST_INSTANT, SECOND_INSTANT]

    assert len(session.query_series("environmental", "tilt", since="24h")) == 2
    assert session.query_series("wave", "hm0", since="1h") == [(FIRST_INSTANT, pytest.approx(0.55))]

    grid = session.query_grid("speed", since="1h")
    assert len(grid) == 7

    times, depths, values = session.query_matrix("speed", since="1h")
    assert times == [FIRST_INSTANT, SECOND_INSTANT]
    assert list(depths) == pytest.approx([0.5, 1.5, 2.5, 4.5])
    assert values.shape == (2, 4)

    assert isinstance(session.query_latest("config"), InstrumentConfig)


def test_cells_without_config_carry_a_notice():
    session = AdcpSession()
    sentence = build_sentence(["$PNORC", "102115", "090715", "3", "0.10", "0.10", "0.00", "0.00",
                               "0.14", "45.0", "120", "118", "119", "121", "80", "82", "85", "88"])
    result = session.process_line(sentence)

    assert result.error is None
    assert isinstance(result.notice, MissingInstrumentConfig)
    assert result.message.depth_is_estimated
    assert session.statistics['estimated_depth_cells'] == 1


def test_late_cell_is_a_protocol_anomaly(caplog):
    session, _ = replay()
    late = build_sentence(["$PNORC", "102115", "090715", "2", "0.20", "0.00", "0.01", "",
                           "0.20", "90.0", "C", "110", "108", "100", "104", "75", "72", "70", "71"])
    with caplog.at_level(logging.WARNING):
        result = session.process_line(late)

    assert isinstance(result.error, ProfileAlreadyBuilt)
    assert result.error.line == late
    assert session.statistics['errors']['ProfileAlreadyBuilt'] == 1
    assert any("Protocol anomaly" in record.message for record in caplog.records)


def test_ingest_rejects_foreign_objects():
    with pytest.raises(TypeError):
        AdcpSession().ingest("not a record")


def test_reset_replaces_state():
    session, _ = replay()
    session.reset()

    assert session.instrument_config is None
    assert session.query_latest("profile") is None
    assert len(session.cell_buffer) == 0
    assert session.statistics['lines'] == 0

    # the same capture replays cleanly after a reset
    _, results = replay(session)
    assert not any(isinstance(r.error, ProfileAlreadyBuilt) for r in results)


def test_concurrent_queries_during_replay():
    session = AdcpSession()
    lines = [line for _, line in read_sentence_file(SAMPLE_CAPTURE)]
    failures = []

    def query():
        try:
            for _ in range(200):
                session.query_series("current", "speed", since="24h")
                session.query_grid("speed", since="24h")
        except Exception as e:
            failures.append(e)

    reader = threading.Thread(target=query)
    reader.start()
    for _ in range(20):
        session.reset()
        for line in lines:
            session.process_line(line)
    reader.join()

    assert failures == []


def test_cell_beyond_configured_count_is_rejected():
    session, _ = replay()
    results = {}
    for cell_number in (1, 2, 3, 4, 9, 5):
        sentence = build_sentence(["$PNORC", "102115", "092715", str(cell_number), "0.10", "0.10",
                                   "0.00", "0.00", "0.14", "45.0", "C", "120", "118", "119", "121",
                                   "80", "82", "85", "88"])
        results[cell_number] = session.process_line(sentence)

    assert isinstance(results[9].error, FieldParseError)
    assert results[5].error is None
    built = [p for p in results[5].profiles if p.date == datetime(2015, 10, 21, 9, 27, 15)]
    assert len(built) == 1
    assert built[0].is_complete
    assert len(built[0].cells) == 5
