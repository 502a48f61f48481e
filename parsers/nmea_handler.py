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
NMEA sentence handler - framing, checksum validation and field decoding
for the Nortek $PNOR* sentence family, plus capture-file helpers.

Decoders are pure: they read their inputs, return a typed record or raise a
``DecodeError`` subclass, and never log.
"""
import logging
import math
import os
import string
import sys
from datetime import datetime, time
from typing import Iterator, List, Optional, Tuple

import pynmea2

# Add parent directory to path for config import
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

import config
from core.derived import (
    QualityThresholds,
    calculate_cell_depth,
    calculate_tilt,
    extract_orientation,
    finite_mean,
    grade_quality,
    is_valid_reading,
)
from core.errors import (
    ChecksumError,
    DecodeError,
    FieldParseError,
    FormatError,
    UnknownMessageType,
)
from core.structures import (
    MISSING,
    PNORC_BEAM_BLOCK,
    PNORC_CELL,
    PNORC_DATE,
    PNORC_DIRECTION,
    PNORC_SPEED,
    PNORC_TIME,
    PNORC_VEL1,
    PNORC_VEL2,
    PNORC_VEL3,
    PNORC_VEL4,
    PNORI_BEAM_COUNT,
    PNORI_BLANKING,
    PNORI_CELL_COUNT,
    PNORI_CELL_SIZE,
    PNORI_COORD_SYSTEM,
    PNORI_FIELD_COUNT,
    PNORI_HEAD_ID,
    PNORI_INSTRUMENT_TYPE,
    PNORS_ANALOG1,
    PNORS_ANALOG2,
    PNORS_BATTERY,
    PNORS_DATE,
    PNORS_ERROR_STATUS,
    PNORS_HEADING,
    PNORS_MAX_FIELD_COUNT,
    PNORS_MIN_FIELD_COUNT,
    PNORS_PITCH,
    PNORS_PRESSURE,
    PNORS_ROLL,
    PNORS_SOUND_SPEED,
    PNORS_STATUS_CODE,
    PNORS_TEMPERATURE,
    PNORS_TIME,
    PNORW_BAD_DETECTS,
    PNORW_BASIS,
    PNORW_DATE,
    PNORW_ERROR_CODE,
    PNORW_FIELD_COUNT,
    PNORW_HM0,
    PNORW_METHOD,
    PNORW_NO_DETECTS,
    PNORW_TIME,
    TAG_CONFIG,
    TAG_CURRENT,
    TAG_ENVIRONMENTAL,
    TAG_WAVE,
    CoordinateSystem,
    CurrentCellData,
    EnvironmentalData,
    InstrumentConfig,
    OrientationCode,
    ProcessingMethod,
    SpectrumBasis,
    WaveData,
)

logger = logging.getLogger('nmea_handler')


def calculate_checksum(body: str) -> int:
    """XOR of all characters between the leading '$' and the '*'."""
    return pynmea2.NMEASentence.checksum(body)


def build_sentence(fields: List[str]) -> str:
    """
    Frame a field list into a sentence with its checksum.

    Args:
        fields: list of field strings, tag first (with or without '$')

    Returns:
        str: "$TAG,f1,...,fN*CK"
    """
    start = getattr(config, 'SENTENCE_START', '$')
    body = getattr(config, 'FIELD_DELIMITER', ',').join(str(f) for f in fields)
    if body.startswith(start):
        body = body[len(start):]
    return f"{start}{body}*{calculate_checksum(body):02X}"


def _sentence_fields(msg, start):
    """Tag and field list of a parsed sentence, tag at index 0."""
    identifier = msg.identifier().rstrip(',').upper()
    data = list(msg.data)
    if type(msg) is pynmea2.ProprietarySentence and data:
        # no registered type for this manufacturer, the sentence code is still in data[0]
        identifier += data.pop(0).upper()
    tag = start + identifier
    return tag, [tag] + data


def validate_sentence(line: str) -> Tuple[str, List[str]]:
    """
    Check framing and checksum and split a sentence into fields.

    Trailing CR/LF and surrounding whitespace are ignored. The returned field
    list keeps the tag at index 0 so indices match sentence positions.

    pynmea2 does the matching and the checksum; it tolerates a missing '$'
    or '*' and non-ASCII word characters, so those are checked first.

    Returns:
        tuple: (message_type, fields)

    Raises:
        FormatError: framing is broken (no '$', not exactly one '*',
            checksum not two hex digits, non-ASCII characters)
        ChecksumError: checksum does not match the body
        UnknownMessageType: talker sentence type pynmea2 does not know
    """
    start = getattr(config, 'SENTENCE_START', '$')
    delimiter = getattr(config, 'CHECKSUM_DELIMITER', '*')

    if not isinstance(line, str):
        raise FormatError("sentence is not text", line=line, expected='str', actual=type(line).__name__)

    stripped = line.strip()
    if not stripped.startswith(start):
        raise FormatError("missing sentence start", line=line, expected=start, actual=stripped[:1])

    delimiter_count = stripped.count(delimiter)
    if delimiter_count != 1:
        raise FormatError("expected exactly one checksum delimiter", line=line,
                          expected=1, actual=delimiter_count)

    try:
        stripped.encode('ascii')
    except UnicodeEncodeError:
        raise FormatError("sentence contains non-ASCII characters", line=line) from None

    body, checksum_text = stripped[len(start):].split(delimiter)
    try:
        msg = pynmea2.parse(stripped, check=True)
    except pynmea2.ChecksumError:
        raise ChecksumError("checksum mismatch", line=line,
                            expected=f"{calculate_checksum(body):02X}",
                            actual=checksum_text.upper()) from None
    except pynmea2.SentenceTypeError:
        raise UnknownMessageType("unknown message type", line=line, field_index=0,
                                 actual=start + body.split(getattr(config, 'FIELD_DELIMITER', ','))[0]) from None
    except pynmea2.ParseError:
        if len(checksum_text) != 2 or any(c not in string.hexdigits for c in checksum_text):
            raise FormatError("checksum must be two hex digits", line=line,
                              expected='HH', actual=checksum_text) from None
        raise FormatError("malformed sentence", line=line, actual=body[:6]) from None

    return _sentence_fields(msg, start)


def _check_field_count(fields, expected, tag):
    if len(fields) != expected:
        raise FormatError(f"{tag} field count mismatch", expected=expected, actual=len(fields))


def _parse_float(fields, index, allow_empty=False):
    text = fields[index].strip()
    if not text:
        if allow_empty:
            return MISSING
        raise FieldParseError("missing numeric value", field_index=index, expected='number', actual=text)
    try:
        value = float(text)
    except ValueError:
        raise FieldParseError("not a number", field_index=index, expected='number', actual=text) from None
    if not math.isfinite(value):
        raise FieldParseError("not a finite number", field_index=index, expected='number', actual=text)
    return value


def _parse_optional_float(fields, index):
    if index >= len(fields) or not fields[index].strip():
        return None
    return _parse_float(fields, index)


def _parse_int(fields, index):
    text = fields[index].strip()
    try:
        return int(text)
    except ValueError:
        raise FieldParseError("not an integer", field_index=index, expected='integer', actual=text) from None


def _parse_count(fields, index):
    """Integer counter that the instrument may print as a float (e.g. 3.00)."""
    value = _parse_float(fields, index)
    if not value.is_integer():
        raise FieldParseError("not an integer count", field_index=index,
                              expected='integer', actual=fields[index])
    return int(value)


def _parse_hex(fields, index):
    text = fields[index].strip()
    if not text or any(c not in string.hexdigits for c in text):
        raise FieldParseError("not a hex value", field_index=index, expected='hex', actual=text)
    return text


def _parse_enum(enum_cls, value, index, text):
    try:
        return enum_cls(value)
    except ValueError:
        raise FieldParseError(f"unknown {enum_cls.__name__} code", field_index=index,
                              expected=[m.value for m in enum_cls], actual=text) from None


def parse_date_time(fields, date_index, time_index) -> datetime:
    """
    Decode MMDDYY and HHMMSS fields by positional slicing.

    Raises:
        FieldParseError: naming the date or time field that is malformed
    """
    date_text = fields[date_index].strip()
    time_text = fields[time_index].strip()

    if len(date_text) != 6 or not date_text.isdigit():
        raise FieldParseError("malformed date", field_index=date_index, expected='MMDDYY', actual=date_text)
    if len(time_text) != 6 or not time_text.isdigit():
        raise FieldParseError("malformed time", field_index=time_index, expected='HHMMSS', actual=time_text)

    month = int(date_text[0:2])
    day = int(date_text[2:4])
    year = getattr(config, 'CENTURY_BASE', 2000) + int(date_text[4:6])
    hours = int(time_text[0:2])
    minutes = int(time_text[2:4])
    seconds = int(time_text[4:6])

    try:
        day_start = datetime(year, month, day)
    except ValueError:
        raise FieldParseError("date out of range", field_index=date_index,
                              expected='MMDDYY', actual=date_text) from None
    try:
        return datetime.combine(day_start.date(), time(hours, minutes, seconds))
    except ValueError:
        raise FieldParseError("time out of range", field_index=time_index,
                              expected='HHMMSS', actual=time_text) from None


def decode_config(fields: List[str]) -> InstrumentConfig:
    """Decode $PNORI - instrument configuration."""
    _check_field_count(fields, PNORI_FIELD_COUNT, TAG_CONFIG)

    beam_count = _parse_int(fields, PNORI_BEAM_COUNT)
    if beam_count not in (3, 4):
        raise FieldParseError("beam count must be 3 or 4", field_index=PNORI_BEAM_COUNT,
                              expected=(3, 4), actual=beam_count)

    cell_count = _parse_int(fields, PNORI_CELL_COUNT)
    if cell_count < 1:
        raise FieldParseError("cell count must be positive", field_index=PNORI_CELL_COUNT,
                              expected='>= 1', actual=cell_count)

    cell_size = _parse_float(fields, PNORI_CELL_SIZE)
    if cell_size <= 0:
        raise FieldParseError("cell size must be positive", field_index=PNORI_CELL_SIZE,
                              expected='> 0', actual=cell_size)

    coordinate_code = _parse_int(fields, PNORI_COORD_SYSTEM)

    return InstrumentConfig(
        instrument_type=_parse_int(fields, PNORI_INSTRUMENT_TYPE),
        head_id=fields[PNORI_HEAD_ID].strip(),
        beam_count=beam_count,
        cell_count=cell_count,
        blanking_distance=_parse_float(fields, PNORI_BLANKING),
        cell_size=cell_size,
        coordinate_system=_parse_enum(CoordinateSystem, coordinate_code, PNORI_COORD_SYSTEM,
                                      fields[PNORI_COORD_SYSTEM]),
    )


def decode_environmental(fields: List[str]) -> EnvironmentalData:
    """Decode $PNORS - sensor data. Tilt and orientation are derived here."""
    if not PNORS_MIN_FIELD_COUNT <= len(fields) <= PNORS_MAX_FIELD_COUNT:
        raise FormatError(f"{TAG_ENVIRONMENTAL} field count mismatch",
                          expected=f"{PNORS_MIN_FIELD_COUNT}-{PNORS_MAX_FIELD_COUNT}",
                          actual=len(fields))

    date = parse_date_time(fields, PNORS_DATE, PNORS_TIME)
    error_status = _parse_hex(fields, PNORS_ERROR_STATUS)
    status_code = _parse_hex(fields, PNORS_STATUS_CODE)
    orientation = _parse_enum(OrientationCode, extract_orientation(status_code),
                              PNORS_STATUS_CODE, status_code)

    pitch = _parse_float(fields, PNORS_PITCH)
    roll = _parse_float(fields, PNORS_ROLL)

    return EnvironmentalData(
        date=date,
        error_status=error_status,
        status_code=status_code,
        battery_voltage=_parse_float(fields, PNORS_BATTERY),
        sound_speed=_parse_float(fields, PNORS_SOUND_SPEED),
        heading=_parse_float(fields, PNORS_HEADING),
        pitch=pitch,
        roll=roll,
        pressure=_parse_float(fields, PNORS_PRESSURE),
        temperature=_parse_float(fields, PNORS_TEMPERATURE),
        tilt=calculate_tilt(pitch, roll),
        orientation=orientation,
        analog_input1=_parse_optional_float(fields, PNORS_ANALOG1),
        analog_input2=_parse_optional_float(fields, PNORS_ANALOG2),
    )


def decode_wave(fields: List[str]) -> WaveData:
    """Decode $PNORW - wave data (DF=501). Any unparsable number rejects the sentence."""
    _check_field_count(fields, PNORW_FIELD_COUNT, TAG_WAVE)

    date = parse_date_time(fields, PNORW_DATE, PNORW_TIME)
    basis_code = _parse_count(fields, PNORW_BASIS)
    method_code = _parse_count(fields, PNORW_METHOD)

    # hm0 .. mean_pressure are contiguous, as are the near-surface current fields
    (hm0, h3, h10, hmax, tm02, tp, tz, dir_tp, spr_tp, main_direction,
     unidirectivity_index, mean_pressure) = [
        _parse_float(fields, index) for index in range(PNORW_HM0, PNORW_NO_DETECTS)
    ]
    near_speed, near_direction = [
        _parse_float(fields, index) for index in range(PNORW_BAD_DETECTS + 1, PNORW_ERROR_CODE)
    ]

    return WaveData(
        date=date,
        spectrum_basis=_parse_enum(SpectrumBasis, basis_code, PNORW_BASIS, fields[PNORW_BASIS]),
        processing_method=_parse_enum(ProcessingMethod, method_code, PNORW_METHOD, fields[PNORW_METHOD]),
        hm0=hm0,
        h3=h3,
        h10=h10,
        hmax=hmax,
        tm02=tm02,
        tp=tp,
        tz=tz,
        dir_tp=dir_tp,
        spr_tp=spr_tp,
        main_direction=main_direction,
        unidirectivity_index=unidirectivity_index,
        mean_pressure=mean_pressure,
        no_detects=_parse_count(fields, PNORW_NO_DETECTS),
        bad_detects=_parse_count(fields, PNORW_BAD_DETECTS),
        near_surface_current_speed=near_speed,
        near_surface_current_direction=near_direction,
        error_code=fields[PNORW_ERROR_CODE].strip(),
    )


def decode_current_cell(fields: List[str],
                        instrument_config: Optional[InstrumentConfig] = None,
                        thresholds: Optional[QualityThresholds] = None) -> CurrentCellData:
    """
    Decode $PNORC - current data for one cell.

    The instrument configuration is an explicit input: it supplies the beam
    count (amplitude and correlation block sizes) and the cell geometry.
    Without it DEFAULT_BEAM_COUNT beams are assumed and the depth is
    estimated from the cell number.

    The amplitude block may be preceded by an amplitude unit column ('C'),
    so both 10 + 2*beams and 11 + 2*beams fields are accepted.
    """
    if instrument_config is not None:
        beam_count = instrument_config.beam_count
    else:
        beam_count = getattr(config, 'DEFAULT_BEAM_COUNT', 4)

    without_unit = PNORC_BEAM_BLOCK + 2 * beam_count
    if len(fields) == without_unit:
        amplitude_start = PNORC_BEAM_BLOCK
    elif len(fields) == without_unit + 1:
        amplitude_start = PNORC_BEAM_BLOCK + 1
    else:
        raise FormatError(f"{TAG_CURRENT} field count mismatch for {beam_count} beams",
                          expected=(without_unit, without_unit + 1), actual=len(fields))
    correlation_start = amplitude_start + beam_count

    date = parse_date_time(fields, PNORC_DATE, PNORC_TIME)
    cell_number = _parse_int(fields, PNORC_CELL)
    if cell_number < 1:
        raise FieldParseError("cell number must be positive", field_index=PNORC_CELL,
                              expected='>= 1', actual=cell_number)
    if instrument_config is not None and cell_number > instrument_config.cell_count:
        raise FieldParseError("cell number beyond configured cell count", field_index=PNORC_CELL,
                              expected=f"<= {instrument_config.cell_count}", actual=cell_number)

    speed = _parse_float(fields, PNORC_SPEED, allow_empty=True)
    amplitude = tuple(_parse_float(fields, amplitude_start + i, allow_empty=True)
                      for i in range(beam_count))
    correlation = tuple(_parse_float(fields, correlation_start + i, allow_empty=True)
                        for i in range(beam_count))

    mean_amplitude = finite_mean(amplitude)
    mean_correlation = finite_mean(correlation)

    up_velocity2 = _parse_float(fields, PNORC_VEL4, allow_empty=True)

    return CurrentCellData(
        date=date,
        cell_number=cell_number,
        depth=calculate_cell_depth(cell_number, instrument_config),
        east_velocity=_parse_float(fields, PNORC_VEL1, allow_empty=True),
        north_velocity=_parse_float(fields, PNORC_VEL2, allow_empty=True),
        up_velocity1=_parse_float(fields, PNORC_VEL3, allow_empty=True),
        up_velocity2=None if up_velocity2 is MISSING else up_velocity2,
        speed=speed,
        direction=_parse_float(fields, PNORC_DIRECTION, allow_empty=True),
        amplitude=amplitude,
        correlation=correlation,
        is_valid=is_valid_reading(mean_correlation, speed),
        quality_grade=grade_quality(mean_amplitude, mean_correlation, thresholds),
        depth_is_estimated=instrument_config is None,
    )


_DECODERS = {
    TAG_CONFIG: decode_config,
    TAG_ENVIRONMENTAL: decode_environmental,
    TAG_WAVE: decode_wave,
}


def decode_line(line: str,
                instrument_config: Optional[InstrumentConfig] = None,
                thresholds: Optional[QualityThresholds] = None):
    """
    Validate a raw sentence and decode it by tag.

    Args:
        line: raw sentence, CR/LF allowed
        instrument_config: configuration in effect (used for $PNORC only)
        thresholds: quality thresholds (used for $PNORC only)

    Returns:
        InstrumentConfig | EnvironmentalData | WaveData | CurrentCellData

    Raises:
        DecodeError: one of its subclasses, with ``line`` attached
    """
    message_type, fields = validate_sentence(line)
    try:
        if message_type == TAG_CURRENT:
            return decode_current_cell(fields, instrument_config, thresholds)
        decoder = _DECODERS.get(message_type)
        if decoder is None:
            raise UnknownMessageType("unknown message type", field_index=0,
                                     expected=sorted(list(_DECODERS) + [TAG_CURRENT]),
                                     actual=message_type)
        return decoder(fields)
    except DecodeError as e:
        raise e.with_line(line)


def read_sentence_file(file_path: str) -> Iterator[Tuple[int, str]]:
    """
    Yields (line_number, sentence) for non-empty lines of a capture file.

    Bytes outside ASCII are replaced so that the validator rejects the line
    instead of the whole file failing to decode.
    """
    with open(file_path, 'r', encoding='ascii', errors='replace') as f:
        for line_number, line in enumerate(f, start=1):
            stripped = line.strip()
            if stripped:
                yield line_number, stripped


def analyze_sentence_quality(file_path: str) -> Optional[dict]:
    """
    Decode every sentence of a capture file and tally accepted and rejected lines.

    The most recent $PNORI is used for subsequent $PNORC lines, as during
    live decoding.

    Returns:
        dict: {
            'total_lines': int,
            'accepted': {tag: count},
            'rejected': {error class name: count},
            'reject_ratio': float,
            'issues': [{'line_number', 'line', 'error', 'message'}, ...]
        }
        or None if the file cannot be read
    """
    accepted = {}
    rejected = {}
    issues = []
    total = 0
    instrument_config = None

    try:
        for line_number, line in read_sentence_file(file_path):
            total += 1
            try:
                record = decode_line(line, instrument_config)
            except DecodeError as e:
                name = type(e).__name__
                rejected[name] = rejected.get(name, 0) + 1
                issues.append({
                    'line_number': line_number,
                    'line': line,
                    'error': name,
                    'message': str(e),
                })
                logger.debug(f"Rejected line {line_number}: {e}")
                continue
            if isinstance(record, InstrumentConfig):
                instrument_config = record
            tag = line.split(',', 1)[0]
            accepted[tag] = accepted.get(tag, 0) + 1
    except OSError as e:
        logger.error(f"Error reading capture file: {e}")
        return None

    rejected_total = sum(rejected.values())
    return {
        'total_lines': total,
        'accepted': accepted,
        'rejected': rejected,
        'reject_ratio': (rejected_total / total) if total else 0.0,
        'issues': issues,
    }
