"""
Tests for per-driver reception intervals
File: tests/test_intervals.py
"""

import math
from datetime import datetime, timedelta, timezone

from guidetrack.constants import NO_CARGO_TYPE, UNREGISTERED_DRIVER
from guidetrack.models import Closing, DriverCargo, Gap
from guidetrack.services.intervals import (
    build_driver_catalog,
    column_totals,
    compute_intervals,
    interval_columns,
)
from guidetrack.services.normalizer import normalize

BASE_TIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

def at(minutes):
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()

def receipt(guide, minutes=None, **extra):
    row = {"guideNumber": guide, **extra}
    if minutes is not None:
        row["date"] = at(minutes)
    return normalize(row)

class TestComputeIntervals:
    """Grouping, ordering and gap computation."""

    def setup_method(self):
        self.drivers = {"1": "Juan", "2": "Juan", "3": "Juan", "10": "Ana", "11": "Beto", "12": "Beto"}

    def test_driver_grouping_and_gap(self):
        entries = compute_intervals([receipt("1", 0), receipt("2", 90)], self.drivers)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.driver == "Juan"
        assert [g.guide_number for g in entry.receptions] == ["1", "2"]
        assert len(entry.intervals) == 2
        gap, closing = entry.intervals
        assert isinstance(gap, Gap)
        assert gap.minutes == 90
        assert (gap.from_guide, gap.to_guide) == ("1", "2")
        assert isinstance(closing, Closing)
        assert closing.guide_number == "2"

    def test_receptions_are_sorted(self):
        entry = compute_intervals([receipt("3", 50), receipt("1", 0), receipt("2", 20)], self.drivers)[0]

        times = [g.timestamp for g in entry.receptions]
        assert times == sorted(times)
        assert [i.minutes for i in entry.intervals if isinstance(i, Gap)] == [20, 30]
        assert all(i.minutes >= 0 for i in entry.intervals if isinstance(i, Gap))

    def test_equal_timestamps_keep_input_order(self):
        entry = compute_intervals([receipt("2", 10), receipt("1", 10)], self.drivers)[0]
        assert [g.guide_number for g in entry.receptions] == ["2", "1"]
        assert entry.intervals[0].minutes == 0

    def test_unparseable_timestamp_dropped(self):
        records = [receipt("1", 0), receipt("2", date="not a date"), receipt("3", 45)]
        entry = compute_intervals(records, self.drivers)[0]

        assert [g.guide_number for g in entry.receptions] == ["1", "3"]
        assert len(entry.intervals) == 2

    def test_driver_without_valid_receptions(self):
        entry = compute_intervals([receipt("1")], self.drivers)[0]
        assert entry.receptions == []
        assert entry.intervals == []

    def test_interval_count_matches_receptions(self):
        records = [receipt(str(i), i * 15) for i in range(1, 4)] + [receipt("10", 5)]
        for entry in compute_intervals(records, self.drivers):
            assert len(entry.intervals) == len(entry.receptions)

    def test_unregistered_driver(self):
        entries = compute_intervals([receipt("999", 0)], self.drivers)
        assert entries[0].driver == UNREGISTERED_DRIVER

    def test_lookup_uses_normalized_key(self):
        entries = compute_intervals([receipt("0001", 0)], self.drivers)
        assert entries[0].driver == "Juan"

    def test_empty_guide_numbers_skipped(self):
        assert compute_intervals([receipt("", 0)], self.drivers) == []

    def test_ordering_by_receptions_then_name(self):
        drivers = {"1": "Beto", "2": "Beto", "3": "ángel", "4": "Ana", "5": "carla"}
        records = [receipt(str(i), i) for i in range(1, 6)]
        names = [e.driver for e in compute_intervals(records, drivers)]
        assert names == ["Beto", "Ana", "ángel", "carla"]

class TestLoadsAndTotals:
    """Capacity attribution and cargo-type totals."""

    def test_gap_load_falls_back_to_first_seen_capacity(self):
        cargo = {"1": DriverCargo("Juan", "Árido", 10.0), "2": DriverCargo("Juan", "Árido", None)}
        entry = compute_intervals([receipt("1", 0), receipt("2", 30)], {"1": "Juan", "2": "Juan"}, cargo)[0]

        assert entry.intervals[0].load_value == 10.0
        assert entry.intervals[1].load_value == 10.0
        assert entry.totals_by_type == {"Árido": 10.0}
        assert entry.total_transported == 10.0
        assert entry.capacity_label == "10 m³"

    def test_later_record_capacity_wins(self):
        cargo = {"1": DriverCargo(cargo_capacity=10.0), "2": DriverCargo(cargo_capacity=14.0)}
        entry = compute_intervals([receipt("1", 0), receipt("2", 30)], {"1": "Juan", "2": "Juan"}, cargo)[0]
        assert entry.intervals[0].load_value == 14.0

    def test_totals_by_type_from_raw_fields(self):
        records = [
            receipt("1", 0, capacidad="12", tipo_carga="Arena"),
            receipt("2", 10, capacidad="8", tipo_carga="Ripio"),
            receipt("3", 20, capacidad="12", tipo_carga="Arena"),
        ]
        entry = compute_intervals(records, {"1": "Juan", "2": "Juan", "3": "Juan"})[0]

        assert entry.totals_by_type == {"Arena": 24.0, "Ripio": 8.0}
        assert entry.total_transported == sum(entry.totals_by_type.values())

    def test_missing_type_and_non_positive_totals(self):
        records = [receipt("1", 0, capacidad="6"), receipt("2", 5, capacidad="-4", tipo_carga="Ripio")]
        entry = compute_intervals(records, {"1": "Ana", "2": "Ana"})[0]
        assert entry.totals_by_type == {NO_CARGO_TYPE: 6.0}
        assert entry.total_transported == 6.0

    def test_no_capacity_anywhere(self):
        entry = compute_intervals([receipt("1", 0)], {"1": "Ana"})[0]
        assert entry.intervals[0].load_value is None
        assert entry.totals_by_type == {}
        assert entry.total_transported == 0
        assert entry.capacity_label is None

class TestCatalogAndColumns:
    """Driver catalog from origin rows and per-column totals."""

    def test_build_driver_catalog(self):
        origin = [
            normalize({"guia": "00042", "conductor": "Juan", "tipo_carga": "Arena"}),
            normalize({"guia": "42", "conductor": "Pedro", "capacidad": "12"}),
            normalize({"guia": "", "conductor": "Nadie"}),
        ]
        drivers, cargo = build_driver_catalog(origin)

        assert drivers == {"42": "Juan"}
        assert cargo["42"] == DriverCargo("Juan", "Arena", 12.0)

    def test_column_totals(self):
        drivers = {"1": "A", "2": "A", "3": "B"}
        cargo = {"1": DriverCargo(cargo_capacity=10.0), "2": DriverCargo(cargo_capacity=10.0),
                 "3": DriverCargo(cargo_capacity=5.0)}
        entries = compute_intervals([receipt("1", 0), receipt("2", 10), receipt("3", 3)], drivers, cargo)

        assert column_totals(entries) == [15.0, 10.0]
        assert interval_columns(entries) == ["Intervalo 1", "Intervalo 2"]

    def test_column_totals_skip_unusable_loads(self):
        cargo = {"1": DriverCargo(cargo_capacity=float("inf")), "2": DriverCargo(cargo_capacity=0.0)}
        entries = compute_intervals([receipt("1", 0), receipt("2", 1)], {"1": "A", "2": "B"}, cargo)
        totals = column_totals(entries)
        assert totals == [0.0]
        assert all(math.isfinite(v) for v in totals)

    def test_empty(self):
        assert column_totals([]) == []
        assert interval_columns([]) == []
