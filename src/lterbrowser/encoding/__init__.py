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
CSV encodings of a TimeSeries and the registry of available writers.

Two layouts are provided:

- "tidy" (lterbrowser.encoding.csv): one row per timestamp and station, one
  column per measurement label.
- "wide" (lterbrowser.encoding.csvf): a vertical metadata header and one
  column per station measurement, one row per timestamp.

Writers register themselves when their modules are imported, so importing
this package is enough to make both available.

Example:
    >>> from lterbrowser.encoding import get_writer, list_writers
    >>> list_writers()
    ['tidy', 'wide']
    >>> data = get_writer("tidy")["write"](ts)
"""

import csv as _csv
import io
import math
import warnings
from datetime import datetime
from typing import Dict, Iterable

from ..types import LOCATION, WriterSpec

# Layout of timestamps in every CSV output
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marker of a slot without a reading
NAN = "NaN"

_WRITERS: Dict[str, WriterSpec] = {}


def format_time(t: datetime) -> str:
    """Format t in station time. Naive datetimes are printed unchanged."""
    if t.tzinfo is not None:
        t = t.astimezone(LOCATION)
    return t.strftime(TIME_FORMAT)


def format_number(v: float | int) -> str:
    """
    Format a number for CSV output.

    Integral floats lose their fractional part and NaN prints as NaN.

    Example:
        >>> format_number(1.0), format_number(0.25), format_number(float("nan"))
        ('1', '0.25', 'NaN')
    """
    if isinstance(v, int):
        return str(v)
    if math.isnan(v):
        return NAN
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v.is_integer() and abs(v) < 1e21:
        return str(int(v))
    return repr(float(v))


def encode_rows(rows: Iterable[list[str]]) -> bytes:
    """Serialise rows with csv.writer, newline terminated, as UTF-8."""
    buf = io.StringIO()
    writer = _csv.writer(buf, lineterminator="\n")
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def register_writer(name: str, spec: WriterSpec) -> None:
    """
    Register a CSV writer under name (case-insensitive).

    An existing writer with the same name is replaced with a warning.

    Example:
        >>> register_writer("tidy", {
        ...     "name": "tidy",
        ...     "write": write,
        ...     "extension": "csv",
        ...     "content_type": "text/csv",
        ... })
    """
    normalized_name = name.lower()

    if normalized_name in _WRITERS:
        warnings.warn(
            f"Writer '{normalized_name}' is already registered and will be replaced",
            UserWarning,
            stacklevel=2,
        )

    _WRITERS[normalized_name] = spec


def get_writer(name: str) -> WriterSpec | None:
    """Return the writer registered under name, or None."""
    return _WRITERS.get(name.lower())


def list_writers() -> list[str]:
    """Names of all registered writers, sorted."""
    return sorted(_WRITERS.keys())


# Writers register themselves on import
from . import csv, csvf  # noqa: E402,F401
