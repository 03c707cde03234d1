"""
CSV loaders for calibration input files.

Formats:
    TAG_CONFIG.csv                NAME,POSITION_X,POSITION_Y
    INITIAL_ANTENNA_CONFIG.csv    NAME,POSITION_X,POSITION_Y,ANGLE|ROTATION
    measurements CSV              ANTENNA,TAG,X,Y[,Z]

Headers are matched case-insensitively. Blank lines are skipped. Line
numbers in errors count the header as line 1.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple, Union
import csv
import logging

from ace_core.geometry import Point3D

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CSVFormatError(ValueError):
    """Malformed CSV header or row."""

    def __init__(self, message: str, line: int = 0):
        self.line = line
        location = f" (line {line})" if line else ""
        super().__init__(f"{message}{location}")


@dataclass(frozen=True)
class InitialAntennaConfig:
    """Surveyed starting placement of an antenna."""

    name: str
    position: Point3D
    rotation_degrees: float


def _read_rows(path: PathLike) -> Tuple[List[str], List[Tuple[int, List[str]]]]:
    """
    Read a CSV file into (upper-cased header, numbered data rows).

    Raises:
        FileNotFoundError: If the file does not exist
        CSVFormatError: If the file has no data rows
    """
    with open(path, newline='', encoding='utf-8') as f:
        rows = [
            (number, [cell.strip() for cell in row])
            for number, row in enumerate(csv.reader(f), start=1)
            if any(cell.strip() for cell in row)
        ]
    if len(rows) < 2:
        raise CSVFormatError(f"{Path(path).name} has no data rows")
    header = [cell.upper() for cell in rows[0][1]]
    return header, rows[1:]


def _parse_float(value: str, column: str, line: int) -> float:
    try:
        return float(value)
    except ValueError:
        raise CSVFormatError(f"invalid {column} value '{value}'", line) from None


def _require_columns(row: List[str], count: int, line: int):
    if len(row) < count:
        raise CSVFormatError(f"expected at least {count} columns, got {len(row)}", line)


def load_tag_config(path: PathLike) -> Dict[str, Point3D]:
    """
    Load surveyed tag positions.

    Args:
        path: TAG_CONFIG.csv path

    Returns:
        Tag name -> position (z = 0), in file order
    """
    header, rows = _read_rows(path)
    if (len(header) < 3 or header[0] != 'NAME'
            or 'POSITION_X' not in header[1] or 'POSITION_Y' not in header[2]):
        raise CSVFormatError("header must be NAME,POSITION_X,POSITION_Y", 1)

    tags: Dict[str, Point3D] = {}
    for line, row in rows:
        _require_columns(row, 3, line)
        tags[row[0]] = Point3D(
            _parse_float(row[1], 'POSITION_X', line),
            _parse_float(row[2], 'POSITION_Y', line),
            0.0,
        )
    logger.info(f"Loaded {len(tags)} tag positions from {Path(path).name}")
    return tags


def load_antenna_config(path: PathLike) -> Dict[str, InitialAntennaConfig]:
    """
    Load initial antenna placements.

    Args:
        path: INITIAL_ANTENNA_CONFIG.csv path

    Returns:
        Antenna name -> InitialAntennaConfig, in file order
    """
    header, rows = _read_rows(path)
    if (len(header) < 4 or header[0] != 'NAME'
            or 'POSITION_X' not in header[1] or 'POSITION_Y' not in header[2]):
        raise CSVFormatError("header must start with NAME,POSITION_X,POSITION_Y", 1)
    angle_columns = [i for i, name in enumerate(header) if name in ('ANGLE', 'ROTATION')]
    if not angle_columns:
        raise CSVFormatError("missing ANGLE or ROTATION column", 1)
    angle_index = angle_columns[0]

    antennas: Dict[str, InitialAntennaConfig] = {}
    for line, row in rows:
        _require_columns(row, angle_index + 1, line)
        antennas[row[0]] = InitialAntennaConfig(
            name=row[0],
            position=Point3D(
                _parse_float(row[1], 'POSITION_X', line),
                _parse_float(row[2], 'POSITION_Y', line),
                0.0,
            ),
            rotation_degrees=_parse_float(row[angle_index], header[angle_index], line),
        )
    logger.info(f"Loaded {len(antennas)} antenna placements from {Path(path).name}")
    return antennas


def load_tag_measurements(path: PathLike) -> Dict[str, Dict[str, List[Point3D]]]:
    """
    Load antenna-local tag samples.

    Args:
        path: CSV with columns ANTENNA,TAG,X,Y[,Z]

    Returns:
        antenna id -> tag id -> samples, in file order
    """
    header, rows = _read_rows(path)
    if len(header) < 4 or header[:4] != ['ANTENNA', 'TAG', 'X', 'Y']:
        raise CSVFormatError("header must be ANTENNA,TAG,X,Y[,Z]", 1)
    has_z = len(header) >= 5 and header[4] == 'Z'

    measurements: Dict[str, Dict[str, List[Point3D]]] = {}
    for line, row in rows:
        _require_columns(row, 5 if has_z else 4, line)
        z = _parse_float(row[4], 'Z', line) if has_z else 0.0
        point = Point3D(_parse_float(row[2], 'X', line), _parse_float(row[3], 'Y', line), z)
        measurements.setdefault(row[0], {}).setdefault(row[1], []).append(point)

    total = sum(len(s) for tags in measurements.values() for s in tags.values())
    logger.info(
        f"Loaded {total} samples for {len(measurements)} antennas from {Path(path).name}"
    )
    return measurements
