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
Example usage of the lterbrowser export pipeline.

This script demonstrates how to:
1. Configure the pipeline from the environment
2. Turn a download form into a validated filter
3. Export CSV in both layouts for a role
4. Generate a query script for Python or R
5. Analyse the series with composable transformations

Set BROWSER_INFLUX_DATABASE (and BROWSER_INFLUX_ADDR if InfluxDB is not
local) before running.
"""

from datetime import date, timedelta

from lterbrowser import (
    FULL_ACCESS,
    PUBLIC,
    BrowserError,
    Settings,
    build_datastore,
    code_template,
    configure_logging,
    export_csv,
    export_filename,
    parse_filter,
)
from lterbrowser.transforms import compose, drop_missing, resample_mean, select_measurements

YESTERDAY = date.today() - timedelta(days=1)

FORM = {
    "startDate": (YESTERDAY - timedelta(days=6)).isoformat(),
    "endDate": YESTERDAY.isoformat(),
    "measurements": ["air_t_avg", "air_rh_avg", "secret_sensor_avg"],
    "stations": ["1", "2"],
}


def example_1_parse_form():
    """Example 1: Validate a download form."""
    print("=" * 60)
    print("Example 1: Parse a Download Form")
    print("=" * 60)

    f = parse_filter(FORM)
    print(f"Measurements: {', '.join(f.measurements)}")
    print(f"Stations:     {', '.join(f.stations)}")
    print(f"Dates:        {f.start} to {f.end}\n")
    return f


def example_2_export(db, f):
    """Example 2: Export CSV as a public user and with full access."""
    print("=" * 60)
    print("Example 2: Export CSV")
    print("=" * 60)

    for role in (PUBLIC, FULL_ACCESS):
        redacted = db.access.redact(role, f)
        print(f"{role}: may read {', '.join(redacted.measurements)}")

    for layout in ("tidy", "wide"):
        data = export_csv(db, PUBLIC, f, format=layout)
        filename = export_filename("csv")
        print(f"✓ {layout}: {len(data)} bytes, would be saved as {filename}")
        print("\n".join(data.decode("utf-8").splitlines()[:4]))
        print()


def example_3_code_template(db, f):
    """Example 3: Scripts reproducing the export."""
    print("=" * 60)
    print("Example 3: Query Scripts")
    print("=" * 60)

    for language, ext in (("python", "py"), ("r", "r")):
        script = code_template(db, PUBLIC, f, language)
        print(f"--- {export_filename(ext)} ---")
        print(script)


def example_4_transforms(db, f):
    """Example 4: Daily mean air temperature per station."""
    print("=" * 60)
    print("Example 4: Composable Transformations")
    print("=" * 60)

    daily_temperature = compose(
        select_measurements("air_t_avg"),
        drop_missing(),
        resample_mean("1D"),
    )

    df = daily_temperature(db.series(PUBLIC, f).to_frame())
    for (station, day), value in df.set_index(["station", "time"])["value"].items():
        print(f"  • station {station} {day:%Y-%m-%d}: {value:.1f} °C")
    print()


def main():
    """Run all examples."""
    print("\n")
    print("╔" + "=" * 58 + "╗")
    print("║" + "  lterbrowser - Examples".center(58) + "║")
    print("╚" + "=" * 58 + "╝")
    print("\n")

    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)

        db = build_datastore(settings)

        with db.access.start():
            f = example_1_parse_form()
            example_2_export(db, f)
            example_3_code_template(db, f)
            example_4_transforms(db, f)

        print("=" * 60)
        print("All examples completed successfully! ✓")
        print("=" * 60)
        print()

    except BrowserError as e:
        print(f"\n✗ Example failed with error: {e}")
        import traceback

        traceback.print_exc()


if __name__ == "__main__":
    main()
