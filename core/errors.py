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
Decode error taxonomy.

Every error concerns a single sentence and is recoverable: callers catch
``DecodeError``, report it and continue with the next line.
"""


class DecodeError(ValueError):
    """Base class for per-sentence failures.

    Attributes:
        line: raw sentence (or None when not known at raise time)
        field_index: offending field index, when applicable
        expected: what the decoder expected
        actual: what it found
    """

    def __init__(self, message, line=None, field_index=None, expected=None, actual=None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.field_index = field_index
        self.expected = expected
        self.actual = actual

    def with_line(self, line):
        """Attach the raw sentence if the raising decoder did not know it."""
        if self.line is None:
            self.line = line
        return self

    def __str__(self):
        parts = [self.message]
        if self.field_index is not None:
            parts.append(f"field {self.field_index}")
        if self.expected is not None or self.actual is not None:
            parts.append(f"expected {self.expected!r}, got {self.actual!r}")
        return '; '.join(parts)


class ChecksumError(DecodeError):
    """XOR checksum does not match the trailing hex digits."""


class FormatError(DecodeError):
    """Malformed framing or wrong field count."""


class FieldParseError(DecodeError):
    """A field could not be parsed into the expected type or range."""


class UnknownMessageType(DecodeError):
    """Well-formed sentence with a tag this decoder does not handle."""


class MissingInstrumentConfig(DecodeError):
    """No $PNORI seen yet; cell depths are estimated (degraded mode)."""


class ProfileAlreadyBuilt(DecodeError):
    """A profile for this sampling instant was already emitted."""
