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
ADCP Telemetry CLI entry point.

Replays a captured $PNOR* sentence file through a decoding session and
prints a JSON summary.
"""
import argparse
import dataclasses
import json
import logging
import math
import os
import sys
from datetime import datetime
from enum import Enum

# Add script directory to path for imports
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from core.session import AdcpSession
from core.structures import (
    CELL_PARAMETERS,
    KIND_CONFIG,
    KIND_CURRENT,
    KIND_ENVIRONMENTAL,
    KIND_PROFILE,
    KIND_WAVE,
)
from core.warnings import compute_warnings
from parsers.nmea_handler import analyze_sentence_quality, read_sentence_file
import config
from locales.strings import ERRORS

# Configure logging (basicConfig is sufficient, no need for duplicate handler)
logging.basicConfig(
    level=logging.ERROR,
    format='%(levelname)s: %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger('adcp_telemetry')


def to_json_value(value):
    """Convert records, enums, datetimes and NaN into JSON-friendly values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json_value(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def summarize_profile(profile):
    """Compact profile summary without the per-cell payload."""
    if profile is None:
        return None
    return {
        "date": profile.date.isoformat(),
        "sequence": profile.sequence,
        "cells": len(profile.cells),
        "valid_cells": profile.valid_cell_count,
        "mean_speed": profile.mean_speed,
        "mean_direction": profile.mean_direction,
        "aggregates_flagged": profile.aggregates_flagged,
        "is_complete": profile.is_complete,
    }


def replay_capture(file_path, session=None):
    """
    Feed every line of a capture file through a session and flush open profiles.

    Args:
        file_path: path to capture file
        session: AdcpSession to use (default: a new one)

    Returns:
        AdcpSession
    """
    if session is None:
        session = AdcpSession()

    for line_number, line in read_sentence_file(file_path):
        result = session.process_line(line)
        if result.error is not None:
            logger.debug(f"Line {line_number}: {result.error}")

    session.flush()
    return session


def format_json_response(session, file_path, warnings_dict=None, cautions_dict=None,
                         series=None, grid=None, quality=None):
    """
    Format JSON response for CLI output.

    Args:
        session: replayed AdcpSession
        file_path: capture file
        warnings_dict: warnings
        cautions_dict: cautions
        series: dict with kind, parameter and points (optional)
        grid: dict with parameter and points (optional)
        quality: capture quality metrics (optional)

    Returns:
        dict with JSON response
    """
    speed, direction = session.query_averaged_current()

    response = {
        "success": True,
        "file": os.path.basename(file_path),
        "statistics": session.statistics,
        "latest": {
            "config": to_json_value(session.query_latest(KIND_CONFIG)),
            "environmental": to_json_value(session.query_latest(KIND_ENVIRONMENTAL)),
            "wave": to_json_value(session.query_latest(KIND_WAVE)),
            "profile": summarize_profile(session.query_latest(KIND_PROFILE)),
        },
        "averaged_current": {
            "speed": speed,
            "direction": direction,
            "window": getattr(config, 'AVERAGING_WINDOW', 5),
        },
        "history": session.dataset.counts(),
    }

    if quality:
        response["capture_quality"] = {
            "total_lines": quality['total_lines'],
            "accepted": quality['accepted'],
            "rejected": quality['rejected'],
            "reject_ratio": quality['reject_ratio'],
        }

    if series is not None:
        response["series"] = series
    if grid is not None:
        response["grid"] = grid

    if warnings_dict:
        response["warnings"] = warnings_dict
    if cautions_dict:
        response["cautions"] = cautions_dict

    return response


def _print_error(message):
    error_response = {
        "success": False,
        "error": message
    }
    print(json.dumps(error_response, ensure_ascii=False, indent=2))
    sys.exit(1)


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(description='ADCP telemetry replay from $PNOR* sentence captures')
    parser.add_argument('capture_file', help='Path to capture file')
    parser.add_argument('--since', help='Query window: 1h, 6h, 24h, 7d or 30d',
                        default=getattr(config, 'DEFAULT_TIME_RANGE', '1h'))
    parser.add_argument('--kind', help='Series kind: current, environmental or wave', default=KIND_CURRENT,
                        choices=[KIND_CURRENT, KIND_ENVIRONMENTAL, KIND_WAVE])
    parser.add_argument('--parameter', help='Parameter to extract as a time series (e.g. speed, hm0)', default=None)
    parser.add_argument('--smooth', action='store_true', help='Smooth the series (Savitzky-Golay)')
    parser.add_argument('--grid', action='store_true', help='Include the depth x time grid of --parameter')
    parser.add_argument('--hm0-limit', dest='hm0_limit', type=float, help='Hm0 alert limit in m', default=None)
    parser.add_argument('--hmax-limit', dest='hmax_limit', type=float, help='Hmax alert limit in m', default=None)
    parser.add_argument('--tm02-limit', dest='tm02_limit', type=float, help='Tm02 alert limit in s', default=None)
    parser.add_argument('--verbose', action='store_true', help='Log rejected sentences to stderr')
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if not os.path.exists(args.capture_file):
            _print_error(ERRORS['file_not_found'].format(file_path=args.capture_file))

        session = replay_capture(args.capture_file)
        if not session.statistics['decoded']:
            _print_error(ERRORS['empty_capture'].format(file_path=args.capture_file))

        alert_limits = {
            name: value for name, value in (
                ('hm0', args.hm0_limit), ('hmax', args.hmax_limit), ('tm02', args.tm02_limit)
            ) if value is not None
        }
        warnings_dict, cautions_dict = compute_warnings(
            session.dataset,
            alert_limits,
            session.instrument_config,
        )

        series = None
        grid = None
        if args.parameter:
            if args.grid:
                if args.parameter not in CELL_PARAMETERS:
                    _print_error(ERRORS['unknown_parameter'].format(parameter=args.parameter))
                points = session.query_grid(args.parameter, since=args.since)
                grid = {
                    "parameter": args.parameter,
                    "points": [[t.isoformat(), depth, value] for t, depth, value in points],
                }
            else:
                points = session.query_series(args.kind, args.parameter, since=args.since, smooth=args.smooth)
                series = {
                    "kind": args.kind,
                    "parameter": args.parameter,
                    "points": [[t.isoformat(), value] for t, value in points],
                }

        response = format_json_response(
            session,
            args.capture_file,
            warnings_dict,
            cautions_dict,
            series=series,
            grid=grid,
            quality=analyze_sentence_quality(args.capture_file),
        )

        print(json.dumps(to_json_value(response), ensure_ascii=False, indent=2))

    except (ValueError, OSError) as e:
        _print_error(f"Error: {str(e)}")


if __name__ == "__main__":
    main()
