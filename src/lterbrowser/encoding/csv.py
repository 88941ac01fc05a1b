# lterbrowser: redact, assemble and export LTER station time series
# Copyright (C) 2025 Ruaraidh Dobson, South London Scientific

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.

# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Tidy CSV layout: one row per timestamp and station.

The output starts with a header row (time, station, landuse, elevation,
latitude, longitude and one column per measurement label, in order of first
appearance) and a row with the unit of each measurement column. Cells
without a reading hold NaN.

Example output:

    time,station,landuse,elevation,latitude,longitude,air_t_avg,air_rh_avg
    ,,,,,,°C,%
    2020-01-01 00:00:00,s1,me,1000,46.6,10.5,1.5,80
    2020-01-01 00:15:00,s1,me,1000,46.6,10.5,NaN,81
"""

from ..exceptions import DataNotFoundError
from ..types import Measurement, Point, TimeSeries
from . import NAN, encode_rows, format_number, format_time, register_writer

FIXED_COLUMNS = ["time", "station", "landuse", "elevation", "latitude", "longitude"]


def _new_line(m: Measurement, p: Point, width: int, column: int) -> list[str]:
    line = [NAN] * width
    line[0] = format_time(p.timestamp)
    line[1] = m.station
    line[2] = m.landuse
    line[3] = format_number(m.elevation)
    line[4] = format_number(m.latitude)
    line[5] = format_number(m.longitude)
    line[column] = format_number(p.value)
    return line


def rows(series: TimeSeries) -> list[list[str]]:
    """
    Lay out series as a table, header and unit rows included.

    Measurements are grouped by station name. The n-th point of every
    measurement of a station lands in the n-th row of that station; a
    measurement longer than the ones before it adds rows.

    Raises:
        DataNotFoundError: If series is empty
    """
    if not series:
        raise DataNotFoundError()

    ordered = sorted(series, key=lambda m: m.station)

    header = list(FIXED_COLUMNS)
    units = [""] * len(FIXED_COLUMNS)
    position: dict[str, int] = {}
    for m in ordered:
        if m.label not in position:
            header.append(m.label)
            units.append(m.unit)
            position[m.label] = len(header) - 1

    width = len(header)
    lines: list[list[str]] = []
    first_line: dict[str, int] = {}

    for m in ordered:
        column = position[m.label]
        start = first_line.get(m.station)

        for i, p in enumerate(m.points):
            if start is None:
                lines.append(_new_line(m, p, width, column))
                if i == 0:
                    first_line[m.station] = len(lines) - 1
                continue

            if start + i >= len(lines):
                lines.append(_new_line(m, p, width, column))
            else:
                lines[start + i][column] = format_number(p.value)

    return [header, units] + lines


def write(series: TimeSeries) -> bytes:
    """
    Encode series in the tidy layout.

    The input is not modified.

    Raises:
        DataNotFoundError: If series is empty
    """
    return encode_rows(rows(series))


register_writer(
    "tidy",
    {
        "name": "tidy",
        "write": write,
        "extension": "csv",
        "content_type": "text/csv",
    },
)
