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
Decoding and validation of export requests.

A request arrives as a mapping of form values, each a string or a list of
strings. parse_filter() turns it into a Filter and rejects anything the
export pipeline cannot serve. utc_range() converts the local calendar dates
of a Filter into the UTC instants used in queries.

Example:
    >>> f = parse_filter({
    ...     "startDate": "2020-01-01",
    ...     "endDate": "2020-01-31",
    ...     "measurements": ["air_t_avg", "air_rh_avg"],
    ...     "stations": "s1",
    ... })
    >>> utc_range(f)
    (datetime(2019, 12, 31, 23, 0, tzinfo=utc), datetime(2020, 1, 31, 22, 59, 59, tzinfo=utc))
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping

from .exceptions import ValidationError
from .types import LOCATION, Filter

DATE_FORMAT = "%Y-%m-%d"

# Offset between the station time (UTC+1) and the UTC based store
UTC_OFFSET = timedelta(hours=1)


def _values(form: Mapping[str, Any], *keys: str) -> list[str]:
    """All non-empty values of the first key present in form."""
    for key in keys:
        raw = form.get(key)
        if raw is None:
            continue
        if isinstance(raw, str):
            raw = [raw]
        values = [str(v) for v in raw if v not in (None, "")]
        if values:
            return values
    return []


def _first(form: Mapping[str, Any], key: str) -> str:
    values = _values(form, key)
    return values[0] if values else ""


def _parse_date(value: str, what: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(f"could not parse {what} date {value!r}") from e


def _one_year_before(d: date) -> date:
    try:
        return d.replace(year=d.year - 1)
    except ValueError:
        # 29 February
        return d.replace(year=d.year - 1, day=28)


def parse_filter(form: Mapping[str, Any], today: date | None = None) -> Filter:
    """
    Build a validated Filter from form values.

    Recognised keys are startDate and endDate (YYYY-MM-DD), measurements
    (alias fields), stations, landuse and limit.

    Args:
        form: Form values, strings or lists of strings
        today: Reference date for the future check, defaults to the current
            station date

    Returns:
        Filter: The decoded request

    Raises:
        ValidationError: If a date is malformed, the range is reversed, ends
            in the future or exceeds one year, no measurement or station is
            given, or limit is not a non-negative integer
    """
    if today is None:
        today = datetime.now(LOCATION).date()

    start = _parse_date(_first(form, "startDate"), "start")
    end = _parse_date(_first(form, "endDate"), "end")

    if end > today:
        raise ValidationError("end date is in the future")

    if start > end:
        raise ValidationError("start date is after end date")

    # Limit download of data to one year
    if start < _one_year_before(end):
        raise ValidationError("time range is greater then a year")

    measurements = _values(form, "measurements", "fields")
    if not measurements:
        raise ValidationError("at least one field must be given")

    stations = _values(form, "stations")
    if not stations:
        raise ValidationError("at least one station must be given")

    limit = None
    raw_limit = _first(form, "limit")
    if raw_limit:
        try:
            limit = int(raw_limit)
        except ValueError as e:
            raise ValidationError(f"limit must be an integer, got {raw_limit!r}") from e
        if limit < 0:
            raise ValidationError("limit must not be negative")

    return Filter(
        measurements=measurements,
        stations=stations,
        landuse=_values(form, "landuse"),
        start=start,
        end=end,
        limit=limit,
    )


def utc_range(filter: Filter) -> tuple[datetime, datetime]:
    """
    Return the UTC instants covering the local days of filter.

    The start is local midnight of the start date, the end is 23:59:59 local
    of the end date, both expressed in UTC (one hour earlier).

    Raises:
        ValidationError: If the filter has no start or end date
    """
    if filter.start is None or filter.end is None:
        raise ValidationError("start and end date must be given")

    start = datetime.combine(filter.start, time(0, 0, 0), timezone.utc) - UTC_OFFSET
    end = datetime.combine(filter.end, time(23, 59, 59), timezone.utc) - UTC_OFFSET
    return start, end
