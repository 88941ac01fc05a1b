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
Export operations offered to the request layer.

These functions sit where an HTTP handler would: they fetch the series for
a role, encode it and translate internal failures into InternalError, so
that backend and encoder details never reach the caller. Errors the caller
can act on (ValidationError, DataNotFoundError) pass through unchanged.

Example:
    >>> db = GuardedDatabase(AccessControl("access.json"), datastore)
    >>> data = export_csv(db, "Public", parse_filter(form))
    >>> filename = export_filename("csv")
"""

import time
from logging import getLogger

from . import codegen
from .access import GuardedDatabase
from .decorators import with_logging
from .encoding import get_writer, list_writers
from .exceptions import BackendError, EncodingError, InternalError, ValidationError
from .types import Database, Filter, Stmt, TimeSeries

logger = getLogger(__name__)

DEFAULT_FORMAT = "tidy"

FILENAME_PREFIX = "LTSER_IT25_Matsch_Mazia"


def _series(db: GuardedDatabase | Database, role: str | None, filter: Filter) -> TimeSeries:
    if isinstance(db, GuardedDatabase):
        return db.series(role, filter)
    return db.series(filter)


def _query(db: GuardedDatabase | Database, role: str | None, filter: Filter) -> Stmt:
    if isinstance(db, GuardedDatabase):
        return db.query(role, filter)
    return db.query(filter)


@with_logging()
def export_csv(
    db: GuardedDatabase | Database,
    role: str | None,
    filter: Filter,
    format: str = DEFAULT_FORMAT,
) -> bytes:
    """
    Return the series selected by filter, visible to role, as CSV.

    Args:
        db: A GuardedDatabase (filter redacted for role) or any Database
            (role ignored)
        role: Role of the requesting user
        filter: Requested data
        format: Registered writer name, "tidy" or "wide"

    Returns:
        bytes: UTF-8 encoded CSV

    Raises:
        ValidationError: If format is unknown
        DataNotFoundError: If there is no data for the request
        InternalError: If the backend or the encoder failed
    """
    writer = get_writer(format)
    if writer is None:
        raise ValidationError(
            f"unknown format {format!r}, expected one of {list_writers()}"
        )

    try:
        ts = _series(db, role, filter)
        return writer["write"](ts)
    except (BackendError, EncodingError) as e:
        logger.error(f"export: {type(e).__name__}: {e}")
        raise InternalError() from e


@with_logging()
def code_template(
    db: GuardedDatabase | Database,
    role: str | None,
    filter: Filter,
    language: str,
) -> str:
    """
    Return a script in language that runs the export query for role.

    Raises:
        ValidationError: If language is not supported
    """
    if language.lower() not in codegen.LANGUAGES:
        raise ValidationError(f"unsupported language {language!r}")

    return codegen.render(_query(db, role, filter), language)


def export_filename(ext: str, now: float | None = None) -> str:
    """
    Name of a downloaded file.

    Example:
        >>> export_filename("csv", now=1577836800)
        'LTSER_IT25_Matsch_Mazia_1577836800.csv'
    """
    if now is None:
        now = time.time()
    return f"{FILENAME_PREFIX}_{int(now)}.{ext}"
