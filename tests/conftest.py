"""
Pytest configuration and shared fixtures.

This module provides common fixtures and builders used across all tests.
"""

import json
import math
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from lterbrowser.types import (
    COLLECTION_INTERVAL,
    LOCATION,
    Filter,
    Measurement,
    Point,
    TimeSeries,
)

# ============================================================================
# Builders
# ============================================================================


def local(*args) -> datetime:
    """Return a datetime in station time."""
    return datetime(*args, tzinfo=LOCATION)


def make_points(start: datetime, values, interval: timedelta = COLLECTION_INTERVAL):
    """Points at a fixed interval from start, one per value."""
    return [Point(start + i * interval, float(v)) for i, v in enumerate(values)]


def make_measurement(label="air_t_avg", station="s1", values=(), start=None, **kwargs):
    """Measurement with sensible metadata and points built from values."""
    if start is None:
        start = local(2020, 1, 1)
    defaults = {
        "aggregation": label.rsplit("_", 1)[-1],
        "unit": "°C",
        "landuse": "me",
        "elevation": 1000,
        "latitude": 46.6,
        "longitude": 10.5,
    }
    defaults.update(kwargs)
    return Measurement(
        label=label,
        station=station,
        points=make_points(start, values),
        **defaults,
    )


def influx_series(name, rows, station="s1", ref="1", columns=None):
    """
    Build a series record as returned by InfluxDB for the series query.

    rows are (time, value) pairs or full rows when columns is given.
    """
    if columns is None:
        columns = [
            "time",
            "station",
            "landuse",
            "elevation",
            "latitude",
            "longitude",
            "unit",
            "aggr",
            "depth",
            name,
        ]
        rows = [
            [t, station, "me", 1000, 46.6, 10.5, "°C", "avg", None, v] for t, v in rows
        ]
    return {
        "name": name,
        "tags": {"station": station, "snipeit_location_ref": ref},
        "columns": columns,
        "values": rows,
    }


def influx_response(*series):
    """Wrap series records in a single-statement /query response."""
    return {"results": [{"statement_id": 0, "series": list(series)}]}


def is_nan(value) -> bool:
    return isinstance(value, float) and math.isnan(value)


# ============================================================================
# Filter Fixtures
# ============================================================================


@pytest.fixture
def one_day_filter():
    """Filter for a single local day at one station."""
    return Filter(
        measurements=["air_t_avg"],
        stations=["s1"],
        start=date(2020, 1, 1),
        end=date(2020, 1, 1),
    )


# ============================================================================
# Time Series Fixtures
# ============================================================================


@pytest.fixture
def two_station_series():
    """Two stations with two measurements each, unsorted by station."""
    return TimeSeries(
        [
            make_measurement("air_t_avg", "s2", [5, 6], unit="°C", landuse="pa"),
            make_measurement("air_t_avg", "s1", [1, 2], unit="°C"),
            make_measurement("air_rh_avg", "s1", [80, 81], unit="%"),
            make_measurement("air_rh_avg", "s2", [90, 91], unit="%", landuse="pa"),
        ]
    )


# ============================================================================
# Access Fixtures
# ============================================================================


@pytest.fixture
def rules():
    """Rules as they appear in an access file."""
    return [
        {
            "Name": "Public",
            "ACL": {
                "Measurements": ["air_t_avg", "air_rh_avg"],
                "Stations": ["s1", "s2"],
                "Landuse": ["me"],
            },
        },
        {
            "name": "Researcher",
            "acl": {"measurements": [], "stations": ["s1"], "landuse": []},
        },
        {"name": "Broken"},
    ]


@pytest.fixture
def access_file(tmp_path, rules):
    """Write rules to a temporary access file and return its path."""
    path = tmp_path / "access.json"
    path.write_text(json.dumps(rules), encoding="utf-8")
    return path


# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def mock_client():
    """A Client whose query() returns an empty response by default."""
    client = MagicMock()
    client.query.return_value = influx_response()
    return client
