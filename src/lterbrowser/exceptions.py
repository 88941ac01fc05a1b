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
Exceptions raised by lterbrowser.

The classes map onto the failure classes of the export pipeline:

- ConfigurationError: broken configuration, fatal at startup
- ValidationError: bad user input, reported back to the caller
- DataNotFoundError: the requested series is empty
- BackendError: the time-series database could not run a query
- EncodingError: a CSV writer could not serialise a series
- InternalError: the generic message shown to callers for the two above
"""


class BrowserError(Exception):
    """Base exception for all lterbrowser errors."""

    pass


class ConfigurationError(BrowserError):
    """Invalid or malformed configuration (rules file, settings)."""

    pass


class ValidationError(BrowserError):
    """A request filter failed validation."""

    pass


class DataNotFoundError(BrowserError):
    """No data points for the requested filter."""

    def __init__(self, message: str = "no data points"):
        super().__init__(message)


class BackendError(BrowserError):
    """Error executing a query against the time-series backend."""

    pass


class EncodingError(BrowserError):
    """Error serialising a time series."""

    pass


class InternalError(BrowserError):
    """Caller-visible error hiding backend or encoding details."""

    def __init__(self, message: str = "internal error"):
        super().__init__(message)
