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
Role based access control for data requests.

An access file is a JSON array of rules. A rule has a unique name (the role)
and an access control list restricting the measurements, stations and land
use a role may request:

    [
        {
            "name": "Public",
            "acl": {
                "measurements": ["air_t_avg"],
                "stations": ["1", "2"],
                "landuse": ["me"]
            }
        },
        {
            "name": "FullAccess",
            "acl": {"measurements": [], "stations": [], "landuse": []}
        }
    ]

An empty list means no restriction on that dimension. The built-in Public and
FullAccess rules always exist; rules from the file add to them or replace
them by name.

Example:
    >>> access = AccessControl("access.json")
    >>> redacted = access.redact("Public", Filter(measurements=["air_t_avg"]))
    >>> with access:  # refresh rules in the background
    ...     serve()
"""

import json
import re
import threading
from dataclasses import replace
from logging import getLogger
from os import PathLike
from pathlib import Path
from typing import Any, Iterable

from .exceptions import ConfigurationError
from .types import (
    FULL_ACCESS,
    PUBLIC,
    AccessControlList,
    Database,
    Filter,
    Metadata,
    Rule,
    Stations,
    Stmt,
    TimeSeries,
)

logger = getLogger(__name__)

# Seconds between two checks of the access file
DEFAULT_REFRESH_INTERVAL = 10 * 60

# Valid InfluxQL identifier; everything else is dropped before a value can
# reach the query builder
IDENTIFIER = re.compile(r"\w+", re.ASCII)

# Returned whenever no usable rule exists for a role
DEFAULT_RULE = Rule(
    name=PUBLIC,
    acl=AccessControlList(
        measurements=(
            "air_t_avg",
            "air_rh_avg",
            "wind_dir",
            "wind_speed_avg",
            "wind_speed_max",
            "wind_speed",
            "nr_up_sw_avg",
            "precip_rt_nrt_tot",
            "snow_height",
        )
    ),
)

BUILTIN_RULES = (
    DEFAULT_RULE,
    Rule(name=FULL_ACCESS, acl=AccessControlList()),
)


def is_identifier(value: Any) -> bool:
    """Return True if value is a string made only of word characters."""
    return isinstance(value, str) and IDENTIFIER.fullmatch(value) is not None


def clear(input: Iterable[str], allowed: Iterable[str]) -> list[str]:
    """
    Narrow input to the values permitted by allowed.

    - An empty input yields allowed.
    - Otherwise only values that are valid identifiers and present in
      allowed are kept. An empty allowed permits every valid identifier.
    - If nothing survives, allowed is returned.

    Args:
        input: Values requested by the user
        allowed: Allow-list of the user's role

    Returns:
        list[str]: A new list; neither argument is modified

    Example:
        >>> clear(["a", "x", "b;--"], ["a", "b"])
        ['a']
        >>> clear(["x"], ["a", "b"])
        ['a', 'b']
    """
    allowed = list(allowed)
    input = list(input)
    if not input:
        return allowed

    permitted = set(allowed)
    cleared = [
        v for v in input if is_identifier(v) and (not permitted or v in permitted)
    ]

    if not cleared:
        return allowed
    return cleared


def _lower_keys(obj: Any, what: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigurationError(f"access: {what} must be a JSON object")
    return {str(k).lower(): v for k, v in obj.items()}


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"access: {what} must be a JSON array")
    return [str(v) for v in value]


def parse_rules(data: Any) -> list[Rule]:
    """
    Build rules from decoded JSON.

    Keys are matched case-insensitively. A rule without an ACL is kept but
    never matched by AccessControl.rule_for().

    Raises:
        ConfigurationError: If the data does not have the expected shape
    """
    if not isinstance(data, list):
        raise ConfigurationError("access: rules must be a JSON array")

    rules = []
    for entry in data:
        entry = _lower_keys(entry, "rule")

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigurationError("access: every rule needs a non-empty name")

        raw_acl = entry.get("acl")
        if raw_acl is None:
            rules.append(Rule(name=name, acl=None))
            continue

        raw_acl = _lower_keys(raw_acl, f"acl of rule {name!r}")
        acl = AccessControlList(
            measurements=_string_list(raw_acl.get("measurements"), "measurements"),
            stations=_string_list(raw_acl.get("stations"), "stations"),
            landuse=_string_list(raw_acl.get("landuse"), "landuse"),
        )
        rules.append(Rule(name=name, acl=acl))

    return rules


def merge_rules(rules: Iterable[Rule]) -> list[Rule]:
    """Return the built-in rules overridden and extended by rules."""
    merged = {r.name: r for r in BUILTIN_RULES}
    merged.update({r.name: r for r in rules})
    return list(merged.values())


class AccessControl:
    """
    Holds the access rules and redacts filters with them.

    The rule list is swapped as a whole under a lock, so readers see either
    the old or the new rule set.

    Args:
        file: Path of the JSON access file. None uses the built-in rules.
        refresh_interval: Seconds between background reloads (see start())

    Raises:
        ConfigurationError: If the access file exists but cannot be parsed
    """

    def __init__(
        self,
        file: str | PathLike | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        self.file = Path(file) if file is not None else None
        self.refresh_interval = refresh_interval

        self._lock = threading.Lock()
        self._rules: list[Rule] = list(BUILTIN_RULES)
        self._mtime: int | None = None
        self._refresher: RuleRefresher | None = None

        self.reload()

    @property
    def rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def names(self) -> list[str]:
        """Names of all known rules."""
        return [r.name for r in self.rules]

    def rule_for(self, role: str | None) -> Rule:
        """
        Return the rule for role.

        An empty or unknown role, or a rule without an ACL, yields
        DEFAULT_RULE. This never fails, so redaction always happens.
        """
        if not role:
            return DEFAULT_RULE

        with self._lock:
            rules = self._rules

        for r in rules:
            if r.name == role and r.acl is not None:
                return r

        return DEFAULT_RULE

    def redact(self, role: str | None, filter: Filter | None) -> Filter:
        """
        Return a copy of filter narrowed to what role may see.

        Args:
            role: Role of the requesting user
            filter: Requested filter; None counts as an empty filter

        Returns:
            Filter: A new filter, dates and limit copied unchanged
        """
        if filter is None:
            filter = Filter()

        acl = self.rule_for(role).acl
        return replace(
            filter,
            measurements=clear(filter.measurements, acl.measurements),
            stations=clear(filter.stations, acl.stations),
            landuse=clear(filter.landuse, acl.landuse),
        )

    def reload(self) -> bool:
        """
        Load rules from the access file if it changed since the last load.

        A missing file is not an error: the built-in rules stay in place.

        Returns:
            bool: True if a new rule set was installed

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        if self.file is None:
            return False

        try:
            mtime = self.file.stat().st_mtime_ns
        except FileNotFoundError:
            logger.info(f"access: no access file {str(self.file)!r} found, use built-in rules")
            return False
        except OSError as e:
            raise ConfigurationError(f"access: {e}") from e

        if self._mtime is not None and mtime <= self._mtime:
            return False  # no changes to rules file

        try:
            data = json.loads(self.file.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(
                f"access: error in opening {str(self.file)!r}: {e}"
            ) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"access: error in JSON decoding rules file {str(self.file)!r}: {e}"
            ) from e

        rules = merge_rules(parse_rules(data))

        with self._lock:
            self._rules = rules
            self._mtime = mtime

        logger.info(f"access: update access rules from file {str(self.file)!r}")
        return True

    def start(self) -> "AccessControl":
        """Start reloading the access file in the background."""
        if self._refresher is None or not self._refresher.is_alive():
            self._refresher = RuleRefresher(self, self.refresh_interval)
            self._refresher.start()
        return self

    def stop(self, timeout: float | None = None) -> None:
        """Stop the background reload and wait for it to finish."""
        if self._refresher is not None:
            self._refresher.stop(timeout)
            self._refresher = None

    def __enter__(self) -> "AccessControl":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()


class RuleRefresher(threading.Thread):
    """
    Calls AccessControl.reload() every interval seconds until stopped.

    Errors are logged and the previous rule set stays active.
    """

    def __init__(self, access: AccessControl, interval: float):
        super().__init__(name="lterbrowser-rule-refresher", daemon=True)
        self.access = access
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.access.reload()
            except ConfigurationError as e:
                logger.error(str(e))

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout)


class GuardedDatabase:
    """
    Redacts every filter before handing it to the wrapped collaborators.

    Example:
        >>> db = GuardedDatabase(AccessControl("access.json"), datastore)
        >>> ts = db.series("Public", Filter(measurements=["air_t_avg"], ...))
    """

    def __init__(
        self,
        access: AccessControl,
        database: Database,
        metadata: Metadata | None = None,
    ):
        self.access = access
        self.database = database
        self.metadata = metadata

    def series(self, role: str | None, filter: Filter | None) -> TimeSeries:
        return self.database.series(self.access.redact(role, filter))

    def query(self, role: str | None, filter: Filter | None) -> Stmt:
        return self.database.query(self.access.redact(role, filter))

    def stations(self, role: str | None, filter: Filter | None) -> Stations:
        if self.metadata is None:
            raise ConfigurationError("no station metadata backend configured")
        return self.metadata.stations(self.access.redact(role, filter))
