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
Core type definitions for lterbrowser.

This module defines the domain types shared by the access control, query,
assembly and export layers, the collaborator interfaces the core depends on,
and the shape of raw InfluxDB responses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Protocol, TypedDict

import pandas as pd

# Interval with which LTER stations aggregate measured points
COLLECTION_INTERVAL = timedelta(minutes=15)

# Time location of the LTER stations (UTC+1, no daylight saving)
LOCATION = timezone(timedelta(hours=1), "+0100")

# Roles
PUBLIC = "Public"
FULL_ACCESS = "FullAccess"
DEFAULT_ROLE = PUBLIC
ROLES = [PUBLIC, FULL_ACCESS]


# =============================================================================
# Stations
# =============================================================================


@dataclass
class Station:
    """
    A meteorological station of the LTER network with its metadata.

    Stations are supplied by the station-metadata collaborator and are
    read-only to the core.
    """

    id: str
    name: str
    landuse: str = ""
    elevation: int = 0
    latitude: float = 0.0
    longitude: float = 0.0
    image: str = ""
    dashboard: str = ""
    measurements: list[str] = field(default_factory=list)


class Stations(list):
    """A group of stations."""

    def get(self, id: str) -> Station | None:
        """Return the station with the given id, or None."""
        for station in self:
            if station.id == id:
                return station
        return None

    def landuse(self) -> list[str]:
        """Sorted land-use codes of all stations without duplicates."""
        return sorted({station.landuse for station in self})

    def measurements(self) -> list[str]:
        """Sorted measurement labels of all stations without duplicates."""
        return sorted({m for station in self for m in station.measurements})

    def with_measurements(self) -> "Stations":
        """Return only the stations producing at least one measurement."""
        return Stations(s for s in self if s.measurements)


# =============================================================================
# Time series
# =============================================================================


@dataclass
class Point:
    """A single measured point. A NaN value marks a slot without a reading."""

    timestamp: datetime
    value: float


@dataclass
class Measurement:
    """One sensor channel of one station over the queried window."""

    label: str
    station: str
    aggregation: str = ""
    unit: str = ""
    landuse: str = ""
    elevation: int = 0
    latitude: float = 0.0
    longitude: float = 0.0
    depth: int = 0
    points: list[Point] = field(default_factory=list)

    def name(self) -> str:
        """
        Return the label without its aggregation (and depth) suffix.

        Example:
            >>> Measurement("air_t_avg", "s1", aggregation="avg").name()
            'air_t'
            >>> Measurement("st_05_avg", "s1", aggregation="avg", depth=5).name()
            'st'
        """
        if self.depth > 0:
            return self.label.replace(f"_{self.depth:02d}_{self.aggregation}", "")
        return self.label.replace(f"_{self.aggregation}", "")

    def depth_str(self) -> str:
        """Depth as text, empty when the measurement has no depth."""
        if self.depth == 0:
            return ""
        return str(self.depth)


FRAME_COLUMNS = [
    "time",
    "station",
    "landuse",
    "elevation",
    "latitude",
    "longitude",
    "measurement",
    "aggregation",
    "unit",
    "depth",
    "value",
]


class TimeSeries(list):
    """
    A group of measurements.

    No ordering is implied; the CSV writers sort by station before
    serialising.
    """

    def to_frame(self) -> pd.DataFrame:
        """
        Return the series as a long-format DataFrame, one row per point.

        Returns:
            pd.DataFrame: Columns as in FRAME_COLUMNS. Gaps stay as NaN.

        Example:
            >>> df = ts.to_frame()
            >>> df.groupby("measurement")["value"].mean()
        """
        records = [
            {
                "time": p.timestamp,
                "station": m.station,
                "landuse": m.landuse,
                "elevation": m.elevation,
                "latitude": m.latitude,
                "longitude": m.longitude,
                "measurement": m.label,
                "aggregation": m.aggregation,
                "unit": m.unit,
                "depth": m.depth,
                "value": p.value,
            }
            for m in self
            for p in m.points
        ]
        if not records:
            return pd.DataFrame(columns=FRAME_COLUMNS)
        return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)


# =============================================================================
# Requests and access control
# =============================================================================


@dataclass
class Filter:
    """
    A data request.

    start and end are calendar dates in local time (UTC+1), both inclusive.
    """

    measurements: list[str] = field(default_factory=list)
    stations: list[str] = field(default_factory=list)
    landuse: list[str] = field(default_factory=list)
    start: date | None = None
    end: date | None = None
    limit: int | None = None

    def is_empty(self) -> bool:
        return not (
            self.measurements
            or self.stations
            or self.landuse
            or self.start
            or self.end
        )


@dataclass(frozen=True)
class AccessControlList:
    """
    Allow-lists for each filter dimension. An empty list means no restriction.
    """

    measurements: tuple[str, ...] = ()
    stations: tuple[str, ...] = ()
    landuse: tuple[str, ...] = ()

    def __post_init__(self):
        # accept any iterable, store tuples
        for name in ("measurements", "stations", "landuse"):
            object.__setattr__(self, name, tuple(_as_strings(getattr(self, name))))


def _as_strings(values: Iterable[Any] | None) -> list[str]:
    if values is None:
        return []
    return [str(v) for v in values]


@dataclass(frozen=True)
class Rule:
    """An access rule: a role name and its access control list."""

    name: str
    acl: AccessControlList | None = None


@dataclass(frozen=True)
class Stmt:
    """A rendered but unexecuted query and the database it targets."""

    query: str
    database: str


# =============================================================================
# Collaborator interfaces
# =============================================================================


class Database(Protocol):
    """A backend for retrieving time series data."""

    def series(self, filter: Filter | None) -> TimeSeries:
        """Return a TimeSeries whose points have a continuous time range."""
        ...

    def query(self, filter: Filter | None) -> Stmt:
        """Return the statement series() would execute."""
        ...


class Metadata(Protocol):
    """A backend for retrieving station metadata."""

    def stations(self, filter: Filter | None) -> Stations: ...


class Client(Protocol):
    """Executes raw InfluxQL and returns the decoded JSON response."""

    def query(self, command: str, database: str) -> "Response": ...


# =============================================================================
# Raw InfluxDB 1.x response schema
# =============================================================================


class SeriesRecord(TypedDict, total=False):
    """
    One series of a query result.

    Fields:
        name: Measurement name
        tags: Tag set of the series when the query used GROUP BY
        columns: Column names, "time" first
        values: Rows, aligned with columns
    """

    name: str
    tags: dict[str, str]
    columns: list[str]
    values: list[list[Any]]


class ResultRecord(TypedDict, total=False):
    """The result of a single statement."""

    statement_id: int
    series: list[SeriesRecord]
    error: str


class Response(TypedDict, total=False):
    """A full /query response, one result per statement."""

    results: list[ResultRecord]
    error: str


# =============================================================================
# Writers
# =============================================================================


class WriterSpec(TypedDict):
    """
    A registered CSV writer.

    Fields:
        name: Format name used to select the writer
        write: Function serialising a TimeSeries to bytes
        extension: File extension of the output
        content_type: Media type of the output
    """

    name: str
    write: Callable[[TimeSeries], bytes]
    extension: str
    content_type: str
