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
Runtime configuration from the environment.

All settings are read from BROWSER_ prefixed environment variables when
Settings.from_env() is called:

    BROWSER_INFLUX_ADDR       InfluxDB URL (default http://127.0.0.1:8086)
    BROWSER_INFLUX_USERNAME   InfluxDB user (optional)
    BROWSER_INFLUX_PASSWORD   InfluxDB password (optional)
    BROWSER_INFLUX_DATABASE   InfluxDB database (required)
    BROWSER_ACCESS_FILE       Access rules file (default access.json)
    BROWSER_ACCESS_REFRESH    Seconds between rule reloads (default 600)
    BROWSER_LOG_LEVEL         Logging level for scripts (default INFO)

Example:
    >>> settings = Settings.from_env()
    >>> configure_logging(settings.log_level)
    >>> db = build_datastore(settings)
"""

import logging
import os
from dataclasses import dataclass

from .access import DEFAULT_REFRESH_INTERVAL, AccessControl, GuardedDatabase
from .exceptions import ConfigurationError
from .influx import InfluxClient
from .series import InfluxDatastore

ENV_PREFIX = "BROWSER_"

DEFAULT_INFLUX_ADDR = "http://127.0.0.1:8086"
DEFAULT_ACCESS_FILE = "access.json"
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default)


@dataclass(frozen=True)
class Settings:
    """Settings needed to wire up the export pipeline."""

    influx_database: str
    influx_addr: str = DEFAULT_INFLUX_ADDR
    influx_username: str = ""
    influx_password: str = ""
    access_file: str = DEFAULT_ACCESS_FILE
    access_refresh: float = DEFAULT_REFRESH_INTERVAL
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Read settings from the environment.

        Raises:
            ConfigurationError: If BROWSER_INFLUX_DATABASE is missing, or
                BROWSER_ACCESS_REFRESH or BROWSER_LOG_LEVEL is malformed
        """
        database = _env("INFLUX_DATABASE")
        if not database:
            raise ConfigurationError(f"{ENV_PREFIX}INFLUX_DATABASE must be set")

        raw_refresh = _env("ACCESS_REFRESH", str(DEFAULT_REFRESH_INTERVAL))
        try:
            refresh = float(raw_refresh)
        except ValueError:
            raise ConfigurationError(
                f"{ENV_PREFIX}ACCESS_REFRESH must be a number of seconds, got {raw_refresh!r}"
            ) from None
        if refresh <= 0:
            raise ConfigurationError(f"{ENV_PREFIX}ACCESS_REFRESH must be positive")

        log_level = _env("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigurationError(f"{ENV_PREFIX}LOG_LEVEL: unknown level {log_level!r}")

        return cls(
            influx_database=database,
            influx_addr=_env("INFLUX_ADDR", DEFAULT_INFLUX_ADDR),
            influx_username=_env("INFLUX_USERNAME"),
            influx_password=_env("INFLUX_PASSWORD"),
            access_file=_env("ACCESS_FILE", DEFAULT_ACCESS_FILE),
            access_refresh=refresh,
            log_level=log_level,
        )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Set up root logging for scripts. Library code never calls this."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_datastore(settings: Settings) -> GuardedDatabase:
    """
    Wire the Influx client, datastore and access control together.

    The access rules are loaded immediately; call .access.start() on the
    result to reload them in the background.

    Raises:
        ConfigurationError: If the access file cannot be parsed
    """
    client = InfluxClient(
        settings.influx_addr,
        username=settings.influx_username,
        password=settings.influx_password,
    )
    access = AccessControl(settings.access_file, refresh_interval=settings.access_refresh)
    return GuardedDatabase(access, InfluxDatastore(client, settings.influx_database))
