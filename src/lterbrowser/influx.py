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
Minimal client for the InfluxDB 1.x HTTP API.

Only reading is supported: query() runs InfluxQL through GET /query and
returns the decoded JSON body. Transient failures are retried with
exponential backoff; anything still failing surfaces as BackendError.

Example:
    >>> client = InfluxClient("http://localhost:8086", "user", "secret")
    >>> client.ping()
    '1.8.10'
    >>> client.query("SHOW MEASUREMENTS", "lter")["results"]
"""

from logging import getLogger

import requests

from .decorators import retry_on_network_error
from .exceptions import BackendError
from .types import Response

logger = getLogger(__name__)

DEFAULT_TIMEOUT = 30


class InfluxClient:
    """
    HTTP client for one InfluxDB 1.x server.

    Args:
        addr: Base URL of the server, e.g. http://127.0.0.1:8086
        username: Username for basic authentication (optional)
        password: Password for basic authentication (optional)
        timeout: Request timeout in seconds
        session: requests.Session to use, a new one if None
    """

    def __init__(
        self,
        addr: str,
        username: str = "",
        password: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.addr = addr.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if username:
            self.session.auth = (username, password)

    @retry_on_network_error
    def _get(self, path: str, params: dict | None = None) -> requests.Response:
        response = self.session.get(
            f"{self.addr}{path}", params=params, timeout=self.timeout
        )
        # InfluxDB reports query errors as JSON with a 4xx status; only
        # server errors are raised here so they can be retried
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    def query(self, command: str, database: str) -> Response:
        """
        Run command against database.

        Raises:
            BackendError: On transport failure, a non JSON body, or an error
                reported by the server for the request or any statement
        """
        logger.debug(f"influx: query {database!r}: {command}")

        try:
            response = self._get("/query", params={"q": command, "db": database})
        except requests.exceptions.RequestException as e:
            raise BackendError(f"influx: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(
                f"influx: invalid response (status {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise BackendError("influx: unexpected response body")

        if body.get("error"):
            raise BackendError(f"influx: {body['error']}")

        for result in body.get("results") or []:
            if result.get("error"):
                raise BackendError(f"influx: {result['error']}")

        if not response.ok:
            raise BackendError(f"influx: HTTP {response.status_code}")

        return body

    def ping(self) -> str:
        """
        Check that the server is reachable.

        Returns:
            str: Server version from the X-Influxdb-Version header

        Raises:
            BackendError: If the server cannot be reached
        """
        try:
            response = self._get("/ping")
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise BackendError(f"influx: ping failed: {e}") from e
        return response.headers.get("X-Influxdb-Version", "")

    def close(self) -> None:
        self.session.close()
