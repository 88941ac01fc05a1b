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
Composable builders for InfluxQL queries.

Supports 'SELECT', 'SHOW TAG VALUES' and 'SHOW MEASUREMENTS' statements. The
builders only compose text: they do not check that a query is complete and
they do not escape values. Values reaching them must already be validated
(see lterbrowser.access).

Every builder is an immutable value. Chaining methods return a new builder
and query() has no side effects, so a builder can be rendered any number of
times.

All builders and fragments follow the Querier pattern:
    - query() returns a (text, args) tuple
    - fragments are joined verbatim, without implicit parentheses

Example:
    >>> q = select("a", "b").from_("c").where(eq(or_(), "x", "p", "q"))
    >>> q.order_by("time").asc().query()[0]
    "SELECT a, b FROM c WHERE x='p' OR x='q' ORDER BY time ASC"
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

# Measurement matcher used when no measurement is given
WILDCARD = "/.*/"

# Timestamp layout of time range fragments
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Operators for SHOW MEASUREMENTS ... WITH MEASUREMENT
EQ = "="
NEQ = "!="
EQ_REGEX = "=~"
NEQ_REGEX = "!~"


class Querier(Protocol):
    """Anything that renders to a query fragment."""

    def query(self) -> tuple[str, list[Any]]: ...


@dataclass(frozen=True)
class QueryFunc:
    """Adapter to use an ordinary function as a Querier."""

    fn: Callable[[], tuple[str, list[Any]]]

    def query(self) -> tuple[str, list[Any]]:
        return self.fn()


def query_func(fn: Callable[[], tuple[str, list[Any]]]) -> QueryFunc:
    """
    Wrap a function returning (text, args) as a Querier.

    Example:
        >>> q = query_func(lambda: ("SELECT 1", []))
        >>> q.query()
        ('SELECT 1', [])
    """
    return QueryFunc(fn)


# =============================================================================
# Operators and comparison fragments
# =============================================================================


@dataclass(frozen=True)
class Operator:
    """A logical operator joining WHERE fragments."""

    text: str

    def query(self) -> tuple[str, list[Any]]:
        return self.text, []


def and_() -> Operator:
    """Return the AND operator fragment."""
    return Operator(" AND ")


def or_() -> Operator:
    """Return the OR operator fragment."""
    return Operator(" OR ")


def _comp(join: Operator, operator: str, column: str, values: tuple[str, ...]) -> str:
    sep, _ = join.query()
    return sep.join(f"{column}{operator}'{v}'" for v in values if v)


def eq(join: Operator, column: str, *values: str) -> Querier:
    """
    Return a fragment comparing column to each value, joined by join.

    Empty values are skipped, so no dangling operator is ever rendered.

    Example:
        >>> eq(and_(), "a", "b", "", "c").query()[0]
        "a='b' AND a='c'"
    """
    return query_func(lambda: (_comp(join, "=", column, values), []))


def lte(join: Operator, column: str, *values: str) -> Querier:
    """Like eq() with the <= comparison."""
    return query_func(lambda: (_comp(join, "<=", column, values), []))


def gte(join: Operator, column: str, *values: str) -> Querier:
    """Like eq() with the >= comparison."""
    return query_func(lambda: (_comp(join, ">=", column, values), []))


def _utc(t: datetime) -> datetime:
    # naive datetimes are taken as UTC
    if t.tzinfo is None:
        return t
    return t.astimezone(timezone.utc)


def time_range(start: datetime, end: datetime) -> Querier:
    """
    Return a fragment selecting the closed interval [start, end].

    Timestamps are rendered in UTC.

    Example:
        >>> time_range(datetime(2020, 1, 1), datetime(2020, 1, 2)).query()[0]
        "time >= '2020-01-01T00:00:00Z' AND time <= '2020-01-02T00:00:00Z'"
    """
    text = (
        f"time >= '{_utc(start).strftime(TIME_FORMAT)}' "
        f"AND time <= '{_utc(end).strftime(TIME_FORMAT)}'"
    )
    return query_func(lambda: (text, []))


# =============================================================================
# WHERE
# =============================================================================


@dataclass(frozen=True)
class WhereBuilder:
    """
    Builder for the condition of a WHERE clause.

    Fragments are concatenated in order. None fragments are ignored and
    operators are dropped while nothing has been rendered yet, so an empty
    optional term cannot leave a leading AND/OR behind.
    """

    queries: tuple[Querier | None, ...] = ()

    def query(self) -> tuple[str, list[Any]]:
        text = ""
        args: list[Any] = []
        for q in self.queries:
            if q is None:
                continue
            if not text and isinstance(q, Operator):
                continue
            s, a = q.query()
            text += s
            args.extend(a)
        return text, args


def where(*queries: Querier | None) -> WhereBuilder:
    """Return a WHERE condition builder over the given fragments."""
    return WhereBuilder(tuple(queries))


def _quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


# =============================================================================
# SELECT
# =============================================================================


@dataclass(frozen=True)
class SelectBuilder:
    """Builder for a SELECT statement."""

    columns: tuple[str, ...] = ("*",)
    measurements: tuple[str, ...] = ()
    condition: WhereBuilder | None = None
    group: str = ""
    order: str = ""
    order_dir: str = ""
    max_rows: int | None = None
    zone: str = ""

    def from_(self, *measurements: str) -> "SelectBuilder":
        return replace(self, measurements=measurements or (WILDCARD,))

    def where(self, *queries: Querier | None) -> "SelectBuilder":
        if not queries:
            return self
        return replace(self, condition=where(*queries))

    def group_by(self, column: str) -> "SelectBuilder":
        return replace(self, group=column)

    def order_by(self, column: str) -> "SelectBuilder":
        return replace(self, order=column)

    def asc(self) -> "SelectBuilder":
        return replace(self, order_dir=" ASC")

    def desc(self) -> "SelectBuilder":
        return replace(self, order_dir=" DESC")

    def limit(self, n: int | None) -> "SelectBuilder":
        return replace(self, max_rows=n)

    def tz(self, zone: str) -> "SelectBuilder":
        return replace(self, zone=zone)

    def query(self) -> tuple[str, list[Any]]:
        text = "SELECT " + ", ".join(self.columns)
        args: list[Any] = []

        if self.measurements:
            text += " FROM " + ", ".join(self.measurements)

        if self.condition is not None:
            w, a = self.condition.query()
            if w:
                text += " WHERE " + w
                args.extend(a)

        if self.group:
            text += " GROUP BY " + self.group

        if self.order:
            text += " ORDER BY " + self.order
            text += self.order_dir

        if self.max_rows:
            text += f" LIMIT {self.max_rows}"

        if self.zone:
            text += f" TZ('{self.zone}')"

        return text, args


def select(*columns: str) -> SelectBuilder:
    """
    Return the base of a SELECT statement. Without columns it selects *.

    Example:
        >>> select("a").tz("Etc/GMT-1").query()[0]
        "SELECT a TZ('Etc/GMT-1')"
    """
    return SelectBuilder(columns=columns or ("*",))


# =============================================================================
# SHOW TAG VALUES
# =============================================================================


@dataclass(frozen=True)
class ShowTagValuesBuilder:
    """Builder for a SHOW TAG VALUES statement."""

    measurements: tuple[str, ...] = ()
    keys: tuple[str, ...] = ()
    condition: WhereBuilder | None = None

    def from_(self, *measurements: str) -> "ShowTagValuesBuilder":
        return replace(self, measurements=measurements or (WILDCARD,))

    def with_key_in(self, *keys: str) -> "ShowTagValuesBuilder":
        return replace(self, keys=keys)

    def where(self, *queries: Querier | None) -> "ShowTagValuesBuilder":
        if not queries:
            return self
        return replace(self, condition=where(*queries))

    def query(self) -> tuple[str, list[Any]]:
        text = "SHOW TAG VALUES "

        if self.measurements:
            text += "FROM " + ", ".join(self.measurements)

        if self.keys:
            text += " WITH KEY IN (" + ", ".join(_quote(k) for k in self.keys) + ")"

        if self.condition is not None:
            w, _ = self.condition.query()
            if w:
                text += " WHERE " + w

        return text, []


def show_tag_values() -> ShowTagValuesBuilder:
    """
    Return the base of a SHOW TAG VALUES statement.

    Example:
        >>> show_tag_values().from_("a").with_key_in("unit").query()[0]
        'SHOW TAG VALUES FROM a WITH KEY IN ("unit")'
    """
    return ShowTagValuesBuilder()


# =============================================================================
# SHOW MEASUREMENTS
# =============================================================================


@dataclass(frozen=True)
class ShowMeasurementsBuilder:
    """Builder for a SHOW MEASUREMENTS statement."""

    operator: str = ""
    regex: str = ""
    condition: WhereBuilder | None = None

    def with_(self, operator: str, regex: str) -> "ShowMeasurementsBuilder":
        return replace(self, operator=operator, regex=regex)

    def where(self, *queries: Querier | None) -> "ShowMeasurementsBuilder":
        if not queries:
            return self
        return replace(self, condition=where(*queries))

    def query(self) -> tuple[str, list[Any]]:
        text = "SHOW MEASUREMENTS"

        if self.operator and self.regex:
            text += f" WITH MEASUREMENT {self.operator} /{self.regex}/"

        if self.condition is not None:
            w, _ = self.condition.query()
            if w:
                text += " WHERE " + w

        return text, []


def show_measurements() -> ShowMeasurementsBuilder:
    """Return the base of a SHOW MEASUREMENTS statement."""
    return ShowMeasurementsBuilder()
