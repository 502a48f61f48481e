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
Shared record types and field layouts.

Sentence field layouts
----------------------
Produced by the instrument and consumed by ``parsers.nmea_handler``. Index 0
is always the tag::

    $PNORI,type,head_id,beams,cells,blanking,cell_size,coord_system*CS
    $PNORS,MMDDYY,HHMMSS,error,status,battery,sound_speed,heading,
           pitch,roll,pressure,temperature[,analog1[,analog2]]*CS
    $PNORC,MMDDYY,HHMMSS,cell,v1,v2,v3,v4,speed,direction[,amp_unit],
           amp1..ampN,corr1..corrN*CS
    $PNORW,MMDDYY,HHMMSS,basis,method,hm0,h3,h10,hmax,tm02,tp,tz,
           dir_tp,spr_tp,main_dir,uni_index,mean_pressure,no_detects,
           bad_detects,ns_speed,ns_direction,error_code*CS

Records
-------
Decoded records are frozen dataclasses. ``received_at`` is the wall-clock
processing time and does not take part in equality, so decoding the same
sentence twice yields equal records. Missing numeric values are the
``math.nan`` singleton.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import ClassVar, NamedTuple, Optional, Tuple

# Message kinds (routing keys for the dataset store)
KIND_CONFIG = 'config'
KIND_ENVIRONMENTAL = 'environmental'
KIND_WAVE = 'wave'
KIND_CURRENT = 'current'
KIND_PROFILE = 'profile'

# Sentence tags
TAG_CONFIG = '$PNORI'
TAG_ENVIRONMENTAL = '$PNORS'
TAG_CURRENT = '$PNORC'
TAG_WAVE = '$PNORW'

# Indices for fields of $PNORI
PNORI_INSTRUMENT_TYPE = 1
PNORI_HEAD_ID = 2
PNORI_BEAM_COUNT = 3
PNORI_CELL_COUNT = 4
PNORI_BLANKING = 5
PNORI_CELL_SIZE = 6
PNORI_COORD_SYSTEM = 7
PNORI_FIELD_COUNT = 8

# Indices for fields of $PNORS
PNORS_DATE = 1
PNORS_TIME = 2
PNORS_ERROR_STATUS = 3
PNORS_STATUS_CODE = 4
PNORS_BATTERY = 5
PNORS_SOUND_SPEED = 6
PNORS_HEADING = 7
PNORS_PITCH = 8
PNORS_ROLL = 9
PNORS_PRESSURE = 10
PNORS_TEMPERATURE = 11
PNORS_ANALOG1 = 12
PNORS_ANALOG2 = 13
PNORS_MIN_FIELD_COUNT = 12
PNORS_MAX_FIELD_COUNT = 14

# Indices for fields of $PNORC
PNORC_DATE = 1
PNORC_TIME = 2
PNORC_CELL = 3
PNORC_VEL1 = 4
PNORC_VEL2 = 5
PNORC_VEL3 = 6
PNORC_VEL4 = 7
PNORC_SPEED = 8
PNORC_DIRECTION = 9
PNORC_BEAM_BLOCK = 10  # amplitude unit column or first amplitude

# Indices for fields of $PNORW
PNORW_DATE = 1
PNORW_TIME = 2
PNORW_BASIS = 3
PNORW_METHOD = 4
PNORW_HM0 = 5
PNORW_NO_DETECTS = 17
PNORW_BAD_DETECTS = 18
PNORW_ERROR_CODE = 21
PNORW_FIELD_COUNT = 22

# Status code bits 27-25 carry the instrument orientation
ORIENTATION_SHIFT = 25
ORIENTATION_MASK = 0b111

# Angle constants
FULL_CIRCLE_DEG = 360.0


class OrientationCode(IntEnum):
    XUP = 0
    XDOWN = 1
    YUP = 2
    YDOWN = 3
    ZUP = 4     # bottom-mounted, looking to the surface
    ZDOWN = 5   # surface-mounted, looking down
    AHRS = 7    # arbitrary orientation reported by the AHRS unit


class SpectrumBasis(IntEnum):
    PRESSURE = 0
    VELOCITY = 1
    AST = 3  # Acoustic Surface Tracking


class ProcessingMethod(IntEnum):
    PUV = 1
    SUV = 2
    MLM = 3
    MLMST = 4


class CoordinateSystem(IntEnum):
    ENU = 0
    XYZ = 1
    BEAM = 2


class QualityGrade(IntEnum):
    """Ordered so that ``min()`` of two grades is the worse one."""
    POOR = 0
    FAIR = 1
    GOOD = 2
    EXCELLENT = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class InstrumentConfig:
    """$PNORI - static per session, needed to place cells in depth."""
    kind: ClassVar[str] = KIND_CONFIG

    instrument_type: int
    head_id: str
    beam_count: int
    cell_count: int
    blanking_distance: float
    cell_size: float
    coordinate_system: CoordinateSystem
    received_at: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class EnvironmentalData:
    """$PNORS - sensor readings with derived tilt and orientation."""
    kind: ClassVar[str] = KIND_ENVIRONMENTAL

    date: datetime
    error_status: str
    status_code: str
    battery_voltage: float
    sound_speed: float
    heading: float
    pitch: float
    roll: float
    pressure: float
    temperature: float
    tilt: float
    orientation: OrientationCode
    analog_input1: Optional[float] = None
    analog_input2: Optional[float] = None
    received_at: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class WaveData:
    """$PNORW - wave statistics (DF=501)."""
    kind: ClassVar[str] = KIND_WAVE

    date: datetime
    spectrum_basis: SpectrumBasis
    processing_method: ProcessingMethod
    hm0: float
    h3: float
    h10: float
    hmax: float
    tm02: float
    tp: float
    tz: float
    dir_tp: float
    spr_tp: float
    main_direction: float
    unidirectivity_index: float
    mean_pressure: float
    no_detects: int
    bad_detects: int
    near_surface_current_speed: float
    near_surface_current_direction: float
    error_code: str
    received_at: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class CurrentCellData:
    """$PNORC - one depth cell of one sampling instant."""
    kind: ClassVar[str] = KIND_CURRENT

    date: datetime
    cell_number: int
    depth: float
    east_velocity: float
    north_velocity: float
    up_velocity1: float
    up_velocity2: Optional[float]
    speed: float
    direction: float
    amplitude: Tuple[float, ...]
    correlation: Tuple[float, ...]
    is_valid: bool
    quality_grade: QualityGrade
    depth_is_estimated: bool = False
    received_at: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class CurrentProfile:
    """All cells of one sampling instant plus profile-level aggregates."""
    kind: ClassVar[str] = KIND_PROFILE

    date: datetime
    sequence: int
    instrument_config: Optional[InstrumentConfig]
    environmental: Optional[EnvironmentalData]
    cells: Tuple[CurrentCellData, ...]
    mean_speed: float
    mean_direction: float
    valid_cell_count: int
    aggregates_flagged: bool
    is_complete: bool
    duplicate_cells: int = 0
    received_at: datetime = field(default_factory=datetime.now, compare=False)

    @property
    def valid_cells(self) -> Tuple[CurrentCellData, ...]:
        return tuple(cell for cell in self.cells if cell.is_valid)


class ParameterMetadata(NamedTuple):
    label: str
    unit: str
    description: str
    value_range: Tuple[float, float]
    decimal_places: int

    @property
    def is_bearing(self):
        """Compass angle that wraps at 360 degrees."""
        return tuple(self.value_range) == (0, 360)


ENVIRONMENTAL_PARAMETERS = {
    'battery_voltage': ParameterMetadata('Battery Voltage', 'V', 'Instrument battery voltage', (0, 20), 1),
    'sound_speed': ParameterMetadata('Sound Speed', 'm/s', 'Speed of sound in water', (1400, 1600), 1),
    'heading': ParameterMetadata('Heading', '°', 'Compass heading', (0, 360), 1),
    'pitch': ParameterMetadata('Pitch', '°', 'Instrument pitch angle', (-30, 30), 1),
    'roll': ParameterMetadata('Roll', '°', 'Instrument roll angle', (-30, 30), 1),
    'tilt': ParameterMetadata('Tilt', '°', 'Total instrument tilt', (0, 45), 1),
    'pressure': ParameterMetadata('Pressure', 'dBar', 'Hydrostatic pressure', (0, 1000), 1),
    'temperature': ParameterMetadata('Temperature', '°C', 'Water temperature', (0, 35), 1),
}

CELL_PARAMETERS = {
    'east_velocity': ParameterMetadata('East Velocity', 'm/s', 'Eastward velocity component', (-2, 2), 3),
    'north_velocity': ParameterMetadata('North Velocity', 'm/s', 'Northward velocity component', (-2, 2), 3),
    'up_velocity1': ParameterMetadata('Up Velocity 1', 'm/s', 'Upward velocity component 1', (-1, 1), 3),
    'up_velocity2': ParameterMetadata('Up Velocity 2', 'm/s', 'Upward velocity component 2', (-1, 1), 3),
    'speed': ParameterMetadata('Speed', 'm/s', 'Current speed magnitude', (0, 3), 3),
    'direction': ParameterMetadata('Direction', '°', 'Current direction', (0, 360), 1),
    'amplitude': ParameterMetadata('Amplitude', 'counts', 'Mean echo intensity over beams', (0, 255), 0),
    'correlation': ParameterMetadata('Correlation', '%', 'Mean signal correlation over beams', (0, 100), 0),
}

# Profile-level series exposed under the "current" kind
PROFILE_PARAMETERS = {
    'speed': CELL_PARAMETERS['speed'],
    'direction': CELL_PARAMETERS['direction'],
    'valid_cell_count': ParameterMetadata('Valid Cells', 'count', 'Cells passing validity check', (0, 200), 0),
}

WAVE_PARAMETERS = {
    'hm0': ParameterMetadata('Significant Wave Height', 'm', 'Hm0 - Significant wave height', (0, 10), 2),
    'h3': ParameterMetadata('H1/3', 'm', 'Mean height of highest 1/3 waves', (0, 15), 2),
    'h10': ParameterMetadata('H1/10', 'm', 'Mean height of highest 1/10 waves', (0, 20), 2),
    'hmax': ParameterMetadata('Maximum Wave Height', 'm', 'Maximum wave height', (0, 25), 2),
    'tm02': ParameterMetadata('Mean Energy Period', 's', 'Tm02 - Mean energy period', (0, 25), 1),
    'tp': ParameterMetadata('Peak Period', 's', 'Tp - Peak period', (0, 30), 1),
    'tz': ParameterMetadata('Zero-Crossing Period', 's', 'Tz - Mean zero-crossing period', (0, 20), 1),
    'dir_tp': ParameterMetadata('Peak Direction', '°', 'Direction at spectral peak', (0, 360), 1),
    'spr_tp': ParameterMetadata('Directional Spreading', '°', 'Directional spreading at peak', (0, 180), 1),
    'main_direction': ParameterMetadata('Mean Direction', '°', 'Principal wave direction', (0, 360), 1),
    'unidirectivity_index': ParameterMetadata('Unidirectionality', '', 'Unidirectionality index', (0, 1), 3),
    'mean_pressure': ParameterMetadata('Mean Pressure', 'dBar', 'Mean pressure during wave measurement', (0, 1000), 1),
    'no_detects': ParameterMetadata('No Detects', 'count', 'Number of no detections', (0, 100), 0),
    'bad_detects': ParameterMetadata('Bad Detects', 'count', 'Number of bad detections', (0, 100), 0),
    'near_surface_current_speed': ParameterMetadata('Surface Current Speed', 'm/s', 'Near-surface current speed', (0, 3), 3),
    'near_surface_current_direction': ParameterMetadata('Surface Current Direction', '°', 'Near-surface current direction', (0, 360), 1),
}

MISSING = math.nan
