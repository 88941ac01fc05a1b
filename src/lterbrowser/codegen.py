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
Downloadable scripts that run an export query directly against InfluxDB.

Users with direct database access can fetch the same data the export would
produce. The script embeds the rendered statement and database name of a
Stmt.
"""

from string import Template

from .exceptions import ValidationError
from .types import Stmt

PYTHON_TEMPLATE = Template(
    '''\
# Query LTER station data from InfluxDB.
#
# Requirements: pip install influxdb pandas

from influxdb import InfluxDBClient
import pandas as pd

HOST = "localhost"
PORT = 8086
USERNAME = ""
PASSWORD = ""

DATABASE = $database
QUERY = $query

client = InfluxDBClient(HOST, PORT, USERNAME, PASSWORD, DATABASE)
result = client.query(QUERY)

frames = []
for (measurement, tags), points in result.items():
    df = pd.DataFrame(points)
    df["measurement"] = measurement
    frames.append(df)

data = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
print(data.head())
'''
)

R_TEMPLATE = Template(
    """\
# Query LTER station data from InfluxDB.
#
# Requirements: install.packages("influxdbr")

library(influxdbr)

con <- influx_connection(host = "localhost", port = 8086, user = "", pass = "")

database <- $database
query <- $query

data <- influx_query(con, db = database, query = query, return_xts = FALSE)
print(head(data))
"""
)


def _python_string(s: str) -> str:
    return repr(s)


def _r_string(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


# language -> (template, string literal quoting, file extension)
_TEMPLATES = {
    "python": (PYTHON_TEMPLATE, _python_string, "py"),
    "r": (R_TEMPLATE, _r_string, "r"),
}

# Supported languages and the extension of their scripts
LANGUAGES = {name: ext for name, (_, _, ext) in _TEMPLATES.items()}


def render(stmt: Stmt, language: str) -> str:
    """
    Render a script for language running stmt.

    Args:
        stmt: Statement and database to embed
        language: "python" or "r" (case-insensitive)

    Returns:
        str: Script source

    Raises:
        ValidationError: If language is not supported
    """
    try:
        template, quote, _ = _TEMPLATES[language.lower()]
    except KeyError:
        raise ValidationError(f"unsupported language {language!r}") from None

    return template.substitute(
        query=quote(stmt.query), database=quote(stmt.database)
    )
