"""
Tests for series.py - query rendering and gap-free series assembly.
"""

import math
from datetime import date, timedelta

import pytest
import requests

from conftest import influx_response, influx_series, is_nan, local
from lterbrowser.exceptions import BackendError, DataNotFoundError
from lterbrowser.series import InfluxDatastore, fill_gaps, parse_timestamp
from lterbrowser.types import COLLECTION_INTERVAL, LOCATION, Filter, Stmt

SLOTS_PER_DAY = 96

COLUMNS = "station, landuse, altitude as elevation, latitude, longitude, unit, aggr, depth"


@pytest.fixture
def datastore(mock_client):
    return InfluxDatastore(mock_client, "lter")


# ============================================================================
# Query rendering
# ============================================================================


class TestQuery:
    """Tests for the statements sent to the backend."""

    def test_one_statement_per_measurement(self, datastore):
        f = Filter(
            measurements=["A", "B", "A"],
            stations=["s1", "s2"],
            start=date(2020, 1, 1),
            end=date(2020, 1, 1),
        )
        where = (
            "WHERE snipeit_location_ref='s1' OR snipeit_location_ref='s2' "
            "AND time >= '2019-12-31T23:00:00Z' AND time <= '2020-01-01T22:59:59Z' "
            "GROUP BY station,snipeit_location_ref ORDER BY time ASC TZ('Etc/GMT-1');"
        )

        stmt = datastore.query(f)

        assert stmt == Stmt(
            query=f"SELECT {COLUMNS}, A FROM A {where}SELECT {COLUMNS}, B FROM B {where}",
            database="lter",
        )

    def test_limit(self, datastore):
        f = Filter(
            measurements=["A"],
            stations=["s1"],
            start=date(2020, 1, 1),
            end=date(2020, 1, 1),
            limit=5,
        )
        assert "ORDER BY time ASC LIMIT 5 TZ('Etc/GMT-1');" in datastore.query(f).query

    def test_empty_filter_renders_wildcard(self, datastore, mock_client):
        stmt = datastore.query(None)

        assert stmt.query == (
            f"SELECT {COLUMNS} FROM /.*/ "
            "GROUP BY station,snipeit_location_ref ORDER BY time ASC TZ('Etc/GMT-1');"
        )
        mock_client.query.assert_not_called()

    def test_query_matches_executed_statement(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series("air_t_avg", [("2020-01-01T00:00:00+01:00", 1.0)])
        )

        datastore.series(one_day_filter)

        mock_client.query.assert_called_once_with(
            datastore.query(one_day_filter).query, "lter"
        )

    def test_series_query_is_repeatable(self, datastore, one_day_filter):
        q = datastore.series_query(one_day_filter)
        assert q.query() == q.query()


# ============================================================================
# Series assembly
# ============================================================================


class TestSeries:
    """Tests for decoding rows into gap-free measurements."""

    @pytest.mark.parametrize(
        "f",
        [
            None,
            Filter(stations=["s1"], start=date(2020, 1, 1), end=date(2020, 1, 1)),
            Filter(measurements=["air_t_avg"], stations=["s1"]),
        ],
    )
    def test_incomplete_filter(self, datastore, mock_client, f):
        with pytest.raises(DataNotFoundError):
            datastore.series(f)
        mock_client.query.assert_not_called()

    def test_no_series(self, datastore, one_day_filter):
        with pytest.raises(DataNotFoundError, match="no data points"):
            datastore.series(one_day_filter)

    def test_gaps_are_filled_with_nan(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series(
                "air_t_avg",
                [
                    ("2020-01-01T00:00:00+01:00", 1.0),
                    ("2020-01-01T00:30:00+01:00", 2.0),
                    ("2020-01-01T01:00:00+01:00", 3.0),
                ],
            )
        )

        (m,) = datastore.series(one_day_filter)
        values = [p.value for p in m.points]

        assert len(m.points) == SLOTS_PER_DAY
        assert values[0] == 1.0
        assert is_nan(values[1])
        assert values[2] == 2.0
        assert is_nan(values[3])
        assert values[4] == 3.0
        assert all(is_nan(v) for v in values[5:])

    def test_points_cover_the_window(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series("air_t_avg", [("2020-01-01T12:00:00+01:00", 1.0)])
        )

        (m,) = datastore.series(one_day_filter)

        assert m.points[0].timestamp == local(2020, 1, 1, 0, 0)
        assert m.points[-1].timestamp == local(2020, 1, 1, 23, 45)
        for prev, cur in zip(m.points, m.points[1:]):
            assert cur.timestamp - prev.timestamp == COLLECTION_INTERVAL

    def test_utc_timestamps_are_converted(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series("air_t_avg", [("2019-12-31T23:15:00Z", 7.0)])
        )

        (m,) = datastore.series(one_day_filter)

        assert m.points[1].value == 7.0
        assert m.points[1].timestamp == local(2020, 1, 1, 0, 15)

    def test_unusable_rows_are_skipped(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series(
                "air_t_avg",
                [
                    ("2019-12-31T23:45:00+01:00", 99.0),  # before the window
                    ("2020-01-01T00:00:00+01:00", 1.0),
                    ("2020-01-01T00:00:00+01:00", 98.0),  # duplicate
                    ("2020-01-01T00:07:00+01:00", 97.0),  # off the grid
                    ("not a time", 96.0),
                    ("2020-01-01T00:15:00+01:00", 2.0),
                    ("2020-01-02T00:00:00+01:00", 95.0),  # after the window
                ],
            )
        )

        (m,) = datastore.series(one_day_filter)
        values = [p.value for p in m.points]

        assert len(values) == SLOTS_PER_DAY
        assert values[:2] == [1.0, 2.0]
        assert all(is_nan(v) for v in values[2:])

    def test_multiple_days(self, datastore, mock_client):
        f = Filter(
            measurements=["air_t_avg"],
            stations=["s1"],
            start=date(2020, 1, 1),
            end=date(2020, 1, 3),
        )
        mock_client.query.return_value = influx_response(
            influx_series("air_t_avg", [("2020-01-02T00:00:00+01:00", 1.0)])
        )

        (m,) = datastore.series(f)

        assert len(m.points) == 3 * SLOTS_PER_DAY
        assert m.points[SLOTS_PER_DAY].value == 1.0

    def test_metadata(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = influx_response(
            influx_series(
                "air_t_avg", [("2020-01-01T00:00:00+01:00", 1.5)], station="Station 1"
            ),
            influx_series(
                "air_rh_avg", [("2020-01-01T00:00:00+01:00", 80)], station="Station 1"
            ),
        )

        first, second = datastore.series(one_day_filter)

        assert first.label == "air_t_avg"
        assert first.station == "Station 1"
        assert first.landuse == "me"
        assert first.unit == "°C"
        assert first.aggregation == "avg"
        assert first.elevation == 1000
        assert first.latitude == 46.6
        assert first.longitude == 10.5
        assert first.depth == 0
        assert second.label == "air_rh_avg"
        assert second.points[0].value == 80.0

    def test_best_effort_decoding(self, datastore, mock_client, one_day_filter):
        columns = [
            "time",
            "station",
            "elevation",
            "latitude",
            "longitude",
            "aggr",
            "depth",
            "st_05_avg",
        ]
        rows = [
            ["2020-01-01T00:00:00+01:00", "s1", "high", None, "east", "", "deep", None],
            ["2020-01-01T00:15:00+01:00", "s1", "high", None, "east", "", "deep", "bad"],
            ["2020-01-01T00:30:00+01:00", "s1", "high", None, "east", "", "deep", 4.0],
        ]
        mock_client.query.return_value = influx_response(
            influx_series("st_05_avg", rows, columns=columns)
        )

        (m,) = datastore.series(one_day_filter)

        assert m.elevation == -1
        assert m.latitude == -1.0
        assert m.longitude == -1.0
        assert m.depth == -1
        assert m.aggregation == "avg"
        assert m.unit == ""
        assert is_nan(m.points[0].value)
        assert is_nan(m.points[1].value)
        assert m.points[2].value == 4.0

    def test_depth(self, datastore, mock_client, one_day_filter):
        columns = ["time", "station", "aggr", "depth", "st_05_avg"]
        rows = [["2020-01-01T00:00:00+01:00", "s1", "avg", "5", 1.0]]
        mock_client.query.return_value = influx_response(
            influx_series("st_05_avg", rows, columns=columns)
        )

        (m,) = datastore.series(one_day_filter)

        assert m.depth == 5
        assert m.name() == "st"

    def test_station_falls_back_to_tags(self, datastore, mock_client, one_day_filter):
        record = {
            "name": "air_t_avg",
            "tags": {"snipeit_location_ref": "7"},
            "columns": ["time", "air_t_avg"],
            "values": [["2020-01-01T00:00:00+01:00", 1.0]],
        }
        mock_client.query.return_value = influx_response(record)

        (m,) = datastore.series(one_day_filter)

        assert m.station == "7"


class TestBackendErrors:
    """Tests for surfacing backend failures."""

    def test_transport_error_is_wrapped(self, datastore, mock_client, one_day_filter):
        mock_client.query.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(BackendError, match="refused") as excinfo:
            datastore.series(one_day_filter)
        assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)

    def test_backend_error_propagates(self, datastore, mock_client, one_day_filter):
        mock_client.query.side_effect = BackendError("influx: boom")

        with pytest.raises(BackendError, match="boom"):
            datastore.series(one_day_filter)

    def test_result_error(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = {
            "results": [{"statement_id": 0, "error": "measurement not found"}]
        }

        with pytest.raises(BackendError, match="measurement not found"):
            datastore.series(one_day_filter)

    def test_response_error(self, datastore, mock_client, one_day_filter):
        mock_client.query.return_value = {"error": "database not found"}

        with pytest.raises(BackendError, match="database not found"):
            datastore.series(one_day_filter)

    def test_not_retried(self, datastore, mock_client, one_day_filter):
        mock_client.query.side_effect = TimeoutError("slow")

        with pytest.raises(BackendError):
            datastore.series(one_day_filter)
        assert mock_client.query.call_count == 1


# ============================================================================
# Helpers
# ============================================================================


class TestFillGaps:
    """Tests for placing readings on the collection grid."""

    def test_no_readings(self):
        start = local(2020, 1, 1)
        points = fill_gaps([], start, start + timedelta(hours=1))

        assert [p.timestamp for p in points] == [
            start + i * COLLECTION_INTERVAL for i in range(5)
        ]
        assert all(math.isnan(p.value) for p in points)

    def test_reading_at_end(self):
        start = local(2020, 1, 1)
        end = start + timedelta(hours=1)
        points = fill_gaps([(end, 1.0)], start, end)

        assert len(points) == 5
        assert points[-1].value == 1.0


class TestParseTimestamp:
    """Tests for timestamp decoding."""

    @pytest.mark.parametrize(
        "value",
        ["2020-01-01T00:00:00+01:00", "2019-12-31T23:00:00Z", "2019-12-31T23:00:00"],
    )
    def test_formats(self, value):
        t = parse_timestamp(value)
        assert t == local(2020, 1, 1)
        assert t.utcoffset() == LOCATION.utcoffset(None)

    @pytest.mark.parametrize("value", [None, 1577833200, "yesterday"])
    def test_invalid(self, value):
        assert parse_timestamp(value) is None
