"""
Tests for influx.py - the InfluxDB HTTP client.

HTTP is mocked with responses; sleeping between retries is disabled.
"""

import pytest
import requests
import responses

from conftest import influx_response, influx_series
from lterbrowser.exceptions import BackendError
from lterbrowser.influx import InfluxClient

ADDR = "http://influx.example:8086"
QUERY_URL = ADDR + "/query"


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Do not wait between retries."""
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def client():
    return InfluxClient(ADDR + "/", "reader", "secret")


class TestQuery:
    """Tests for running InfluxQL."""

    @responses.activate
    def test_success(self, client):
        body = influx_response(
            influx_series("air_t_avg", [("2020-01-01T00:00:00+01:00", 1.0)])
        )
        responses.add(responses.GET, QUERY_URL, json=body, status=200)

        assert client.query("SELECT * FROM air_t_avg", "lter") == body

        assert len(responses.calls) == 1
        request = responses.calls[0].request
        assert "db=lter" in request.url
        assert "q=SELECT" in request.url
        assert request.headers["Authorization"].startswith("Basic ")

    @responses.activate
    def test_no_auth_without_username(self):
        responses.add(responses.GET, QUERY_URL, json={"results": []}, status=200)

        InfluxClient(ADDR).query("SHOW MEASUREMENTS", "lter")

        assert "Authorization" not in responses.calls[0].request.headers

    @responses.activate
    def test_statement_error(self, client):
        responses.add(
            responses.GET,
            QUERY_URL,
            json={"results": [{"statement_id": 0, "error": "measurement not found"}]},
            status=200,
        )

        with pytest.raises(BackendError, match="measurement not found"):
            client.query("SELECT * FROM x", "lter")

    @responses.activate
    def test_client_error_is_not_retried(self, client):
        responses.add(
            responses.GET,
            QUERY_URL,
            json={"error": "error parsing query: found EOF"},
            status=400,
        )

        with pytest.raises(BackendError, match="error parsing query"):
            client.query("SELECT", "lter")
        assert len(responses.calls) == 1

    @responses.activate
    def test_server_error_is_retried(self, client):
        responses.add(responses.GET, QUERY_URL, status=503)

        with pytest.raises(BackendError):
            client.query("SELECT * FROM x", "lter")
        assert len(responses.calls) == 3

    @responses.activate
    def test_recovers_after_server_error(self, client):
        responses.add(responses.GET, QUERY_URL, status=500)
        responses.add(responses.GET, QUERY_URL, json={"results": []}, status=200)

        assert client.query("SELECT * FROM x", "lter") == {"results": []}
        assert len(responses.calls) == 2

    @responses.activate
    def test_connection_error(self, client):
        responses.add(
            responses.GET,
            QUERY_URL,
            body=requests.exceptions.ConnectionError("connection refused"),
        )

        with pytest.raises(BackendError, match="connection refused"):
            client.query("SELECT * FROM x", "lter")
        assert len(responses.calls) == 3

    @responses.activate
    def test_invalid_json(self, client):
        responses.add(responses.GET, QUERY_URL, body="<html>", status=200)

        with pytest.raises(BackendError, match="invalid response"):
            client.query("SELECT * FROM x", "lter")


class TestPing:
    """Tests for the health check."""

    @responses.activate
    def test_version(self, client):
        responses.add(
            responses.GET,
            ADDR + "/ping",
            status=204,
            headers={"X-Influxdb-Version": "1.8.10"},
        )

        assert client.ping() == "1.8.10"

    @responses.activate
    def test_unreachable(self, client):
        responses.add(
            responses.GET,
            ADDR + "/ping",
            body=requests.exceptions.ConnectionError("no route to host"),
        )

        with pytest.raises(BackendError, match="ping failed"):
            client.ping()
