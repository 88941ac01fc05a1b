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

"""Redact, assemble and export LTER station time series"""

from .access import AccessControl, GuardedDatabase, clear
from .api import code_template, export_csv, export_filename
from .config import Settings, build_datastore, configure_logging
from .exceptions import (
    BackendError,
    BrowserError,
    ConfigurationError,
    DataNotFoundError,
    EncodingError,
    InternalError,
    ValidationError,
)
from .filters import parse_filter, utc_range
from .influx import InfluxClient
from .series import InfluxDatastore
from .types import (
    FULL_ACCESS,
    PUBLIC,
    Filter,
    Measurement,
    Point,
    Rule,
    Station,
    Stations,
    Stmt,
    TimeSeries,
)

__version__ = "0.1.0"
