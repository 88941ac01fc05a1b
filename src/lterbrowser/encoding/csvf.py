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
Wide CSV layout: one column per station measurement.

A vertical header block describes each column, followed by an empty line
and the data:

    station,s1,s1,s2
    landuse,me,me,pa
    latitude,46.6,46.6,46.7
    longitude,10.5,10.5,10.6
    elevation,1000,1000,1500
    aggregation,avg,avg,avg
    unit,°C,%,°C

    time,air_t,air_rh,air_t
    2020-01-01 00:00:00,1.5,80,0.5

All measurements must share the timestamps of the first one. Shorter
measurements are padded with NaN.
"""

from ..exceptions import DataNotFoundError, EncodingError
from ..types import TimeSeries
from . import NAN, encode_rows, format_number, format_time, register_writer

HEADER = ["station", "landuse", "latitude", "longitude", "elevation", "aggregation", "unit"]

SEPARATOR_ROW = len(HEADER)
NAMES_ROW = SEPARATOR_ROW + 1
FIRST_DATA_ROW = NAMES_ROW + 1


def rows(series: TimeSeries) -> list[list[str]]:
    """
    Lay out series as the wide table, header block included.

    Raises:
        DataNotFoundError: If series is empty
        EncodingError: If a measurement's timestamps differ from those
            already written
    """
    if not series:
        raise DataNotFoundError()

    ordered = sorted(series, key=lambda m: m.station)

    table: list[list[str]] = [[name] for name in HEADER]
    table.append([])
    table.append(["time"])

    width = 1
    for m in ordered:
        meta = [
            m.station,
            m.landuse,
            format_number(m.latitude),
            format_number(m.longitude),
            format_number(m.elevation),
            m.aggregation,
            m.unit,
        ]
        for n, value in enumerate(meta):
            table[n].append(value)
        table[NAMES_ROW].append(m.name())
        width = len(table[NAMES_ROW])

        for i, p in enumerate(sorted(m.points, key=lambda p: p.timestamp)):
            current = FIRST_DATA_ROW + i
            stamp = format_time(p.timestamp)

            if current >= len(table):
                table.append([stamp])
            elif table[current][0] != stamp:
                raise EncodingError("non-continuous timerange")

            row = table[current]
            row.extend([NAN] * (width - 1 - len(row)))
            row.append(format_number(p.value))

    for row in table[FIRST_DATA_ROW:]:
        row.extend([NAN] * (width - len(row)))

    return table


def write(series: TimeSeries) -> bytes:
    """
    Encode series in the wide layout.

    The input is not modified.

    Raises:
        DataNotFoundError: If series is empty
        EncodingError: If the measurements do not share one time range
    """
    return encode_rows(rows(series))


register_writer(
    "wide",
    {
        "name": "wide",
        "write": write,
        "extension": "csv",
        "content_type": "text/csv",
    },
)
