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
Composable transformations over the DataFrame view of a TimeSeries.

TimeSeries.to_frame() gives one row per point. The functions here narrow and
reshape that frame for analysis. Each factory takes its configuration and
returns a function DataFrame -> DataFrame; pipe() and compose() chain them.

Example:
    >>> daily = compose(
    ...     select_measurements("air_t_avg"),
    ...     drop_missing(),
    ...     resample_mean("1D"),
    ... )
    >>> df = daily(ts.to_frame())
"""

from functools import reduce
from typing import Callable

import pandas as pd

Transformer = Callable[[pd.DataFrame], pd.DataFrame]


def pipe(df: pd.DataFrame, *functions: Transformer) -> pd.DataFrame:
    """Apply functions to df in order."""
    return reduce(lambda data, func: func(data), functions, df)


def compose(*functions: Transformer) -> Transformer:
    """Return a single transformer applying functions in order."""

    def composed(df: pd.DataFrame) -> pd.DataFrame:
        return pipe(df, *functions)

    return composed


def filter_rows(predicate: Callable[[pd.DataFrame], pd.Series]) -> Transformer:
    """
    Return a function keeping the rows where predicate is True.

    Example:
        >>> above_zero = filter_rows(lambda df: df["value"] > 0)
    """

    def transform(df: pd.DataFrame) -> pd.DataFrame:
        return df[predicate(df)]

    return transform


def select_measurements(*labels: str) -> Transformer:
    """Return a function keeping only the given measurement labels."""
    return filter_rows(lambda df: df["measurement"].isin(labels))


def select_stations(*stations: str) -> Transformer:
    """Return a function keeping only the given stations."""
    return filter_rows(lambda df: df["station"].isin(stations))


def drop_missing() -> Transformer:
    """Return a function dropping the NaN points inserted for gaps."""
    return filter_rows(lambda df: df["value"].notna())


def resample_mean(rule: str) -> Transformer:
    """
    Return a function averaging values per station and measurement over
    windows of rule (a pandas offset alias such as "1h" or "1D").

    The result keeps the columns time, station, measurement and value. Windows
    without any reading get NaN.
    """

    def transform(df: pd.DataFrame) -> pd.DataFrame:
        if df.empty:
            return pd.DataFrame(columns=["time", "station", "measurement", "value"])

        data = df.assign(
            time=pd.to_datetime(df["time"]),
            value=pd.to_numeric(df["value"]),
        )
        return (
            data.set_index("time")
            .groupby(["station", "measurement"])["value"]
            .resample(rule)
            .mean()
            .reset_index()[["time", "station", "measurement", "value"]]
        )

    return transform


def pivot_wide() -> Transformer:
    """
    Return a function reshaping the long frame into one column per
    (station, measurement) pair, indexed by time.

    Example:
        >>> wide = pivot_wide()(ts.to_frame())
        >>> wide[("s1", "air_t_avg")]
    """

    def transform(df: pd.DataFrame) -> pd.DataFrame:
        return df.pivot_table(
            index="time",
            columns=["station", "measurement"],
            values="value",
            aggfunc="first",
            dropna=False,
        )

    return transform
