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
Time series assembly on top of an InfluxDB 1.x backend.

InfluxDatastore renders one SELECT per requested measurement, runs the
statements through a Client and decodes every returned series into a
Measurement whose points cover the requested window at the collection
interval without gaps. Slots without a reading hold NaN.

Example:
    >>> store = InfluxDatastore(InfluxClient("http://localhost:8086"), "lter")
    >>> ts = store.series(Filter(
    ...     measurements=["air_t_avg"],
    ...     stations=["s1"],
    ...     start=date(2020, 1, 1),
    ...     end=date(2020, 1, 1),
    ... ))
    >>> len(ts[0].points)
    96
"""

import math
from datetime import datetime, time, timezone
from logging import getLogger
from typing import Any, Iterable

from . import ql
from .exceptions import BackendError, DataNotFoundError
from .filters import utc_range
from .types import (
    COLLECTION_INTERVAL,
    LOCATION,
    Client,
    Filter,
    Measurement,
    Point,
    Response,
    SeriesRecord,
    Stmt,
    TimeSeries,
)

logger = getLogger(__name__)

# Metadata columns selected before the measurement column
SERIES_COLUMNS = (
    "station",
    "landuse",
    "altitude as elevation",
    "latitude",
    "longitude",
    "unit",
    "aggr",
    "depth",
)

# Tag holding the station identifier
STATION_TAG = "snipeit_location_ref"

# Timezone clause matching LOCATION (POSIX sign convention)
ZONE = "Etc/GMT-1"


def _measurement_statement(measurement: str | None, filter: Filter) -> str:
    columns = list(SERIES_COLUMNS)
    measurements = []
    if measurement:
        columns.append(measurement)
        measurements.append(measurement)

    fragments: list[ql.Querier] = [ql.eq(ql.or_(), STATION_TAG, *filter.stations)]
    if filter.start is not None and filter.end is not None:
        start, end = utc_range(filter)
        fragments += [ql.and_(), ql.time_range(start, end)]

    q, _ = (
        ql.select(*columns)
        .from_(*measurements)
        .where(*fragments)
        .group_by(f"station,{STATION_TAG}")
        .order_by("time")
        .asc()
        .limit(filter.limit)
        .tz(ZONE)
        .query()
    )
    return q + ";"


def _first_value(rows: list[dict[str, Any]], tags: dict[str, str], key: str) -> Any:
    for row in rows:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return tags.get(key)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _depth(value: Any) -> int:
    if value in (None, ""):
        return 0
    return _as_int(value, -1)


def _reading(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return math.nan
    return _as_float(value, math.nan)


def _aggregation(value: Any, label: str) -> str:
    if value not in (None, ""):
        return str(value)
    if "_" in label:
        return label.rsplit("_", 1)[-1]
    return ""


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an RFC 3339 timestamp into station time.

    Naive timestamps are taken as UTC. Returns None if value is not a
    timestamp.
    """
    if not isinstance(value, str):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        t = datetime.fromisoformat(value)
    except ValueError:
        return None
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return t.astimezone(LOCATION)


def fill_gaps(
    readings: Iterable[tuple[datetime, float]],
    start: datetime,
    end: datetime,
) -> list[Point]:
    """
    Place readings on the collection grid between start and end.

    Every slot from start up to the last slot not after end gets exactly one
    point; slots without a reading get NaN. Readings must be in ascending
    time order. Readings before the current slot, after end, or not aligned
    to the grid are dropped.

    Args:
        readings: (timestamp, value) pairs in ascending order
        start: First slot, inclusive
        end: Upper bound of the window, inclusive

    Returns:
        list[Point]: Points at a fixed interval starting at start

    Example:
        >>> points = fill_gaps([(start + COLLECTION_INTERVAL, 1.0)], start, end)
        >>> [p.value for p in points[:3]]
        [nan, 1.0, nan]
    """
    points = []
    cursor = start

    for t, value in readings:
        if t < cursor:
            logger.debug(f"series: skip reading at {t}, expected {cursor}")
            continue
        if t > end:
            logger.debug(f"series: skip reading at {t} after end of window {end}")
            continue
        if (t - start) % COLLECTION_INTERVAL:
            logger.debug(f"series: skip reading at {t}, not on collection interval")
            continue

        while cursor < t:
            points.append(Point(cursor, math.nan))
            cursor += COLLECTION_INTERVAL

        points.append(Point(t, value))
        cursor = t + COLLECTION_INTERVAL

    while cursor <= end:
        points.append(Point(cursor, math.nan))
        cursor += COLLECTION_INTERVAL

    return points


def decode_series(record: SeriesRecord, start: datetime, end: datetime) -> Measurement:
    """
    Decode one InfluxDB series into a gap-free Measurement.

    Metadata fields are decoded best effort: a malformed or missing value
    gets a sentinel (elevation -1, latitude and longitude -1.0, depth 0 when
    missing and -1 when malformed) instead of dropping the reading.
    """
    label = record.get("name", "")
    tags = record.get("tags") or {}
    columns = record.get("columns") or []
    rows = [dict(zip(columns, values)) for values in record.get("values") or []]

    value_column = label if label in columns else (columns[-1] if columns else label)

    readings = []
    for row in rows:
        t = parse_timestamp(row.get("time"))
        if t is None:
            logger.warning(
                f"series: cannot convert timestamp {row.get('time')!r} of {label!r}, skipping"
            )
            continue
        readings.append((t, _reading(row.get(value_column))))

    station = _first_value(rows, tags, "station") or tags.get(STATION_TAG, "")

    return Measurement(
        label=label,
        station=str(station),
        aggregation=_aggregation(_first_value(rows, tags, "aggr"), label),
        unit=str(_first_value(rows, tags, "unit") or ""),
        landuse=str(_first_value(rows, tags, "landuse") or ""),
        elevation=_as_int(_first_value(rows, tags, "elevation"), -1),
        latitude=_as_float(_first_value(rows, tags, "latitude"), -1.0),
        longitude=_as_float(_first_value(rows, tags, "longitude"), -1.0),
        depth=_depth(_first_value(rows, tags, "depth")),
        points=fill_gaps(readings, start, end),
    )


def _check(response: Response) -> None:
    if response.get("error"):
        raise BackendError(f"influx: {response['error']}")
    for result in response.get("results") or []:
        if result.get("error"):
            raise BackendError(f"influx: {result['error']}")


class InfluxDatastore:
    """
    A Database reading LTER measurements from InfluxDB.

    Args:
        client: Executes the rendered statements
        database: Name of the InfluxDB database
    """

    def __init__(self, client: Client, database: str):
        self.client = client
        self.database = database

    def series_query(self, filter: Filter) -> ql.Querier:
        """
        Return a Querier rendering one statement per distinct measurement.

        Without measurements a single statement over all measurements is
        rendered.
        """
        measurements = list(dict.fromkeys(filter.measurements)) or [None]

        def render() -> tuple[str, list[Any]]:
            return "".join(_measurement_statement(m, filter) for m in measurements), []

        return ql.query_func(render)

    def query(self, filter: Filter | None) -> Stmt:
        """Return the statement series() would run for filter."""
        if filter is None:
            filter = Filter()
        q, _ = self.series_query(filter).query()
        return Stmt(query=q, database=self.database)

    def series(self, filter: Filter | None) -> TimeSeries:
        """
        Run the query for filter and return the gap-free time series.

        Raises:
            DataNotFoundError: If the filter is empty, lacks measurements or
                dates, or the backend returned no series
            BackendError: If the backend could not run the query
        """
        if (
            filter is None
            or not filter.measurements
            or filter.start is None
            or filter.end is None
        ):
            raise DataNotFoundError()

        stmt = self.query(filter)
        try:
            response = self.client.query(stmt.query, stmt.database)
        except OSError as e:
            raise BackendError(f"influx: {e}") from e
        _check(response)

        start = datetime.combine(filter.start, time(0, 0, 0), LOCATION)
        end = datetime.combine(filter.end, time(23, 59, 59), LOCATION)

        ts = TimeSeries()
        for result in response.get("results") or []:
            for record in result.get("series") or []:
                ts.append(decode_series(record, start, end))

        if not ts:
            raise DataNotFoundError()

        return ts
