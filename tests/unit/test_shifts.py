from datetime import datetime, time, timedelta, timezone

import pytest

from conftest import ART, FrozenClock, local
from optimeal.config import Settings
from optimeal.core.shifts import ALL_SHIFTS, Shift, ShiftCalendar, as_utc, parse_shift, parse_shifts
from optimeal.exceptions import ConfigError, NotFound


@pytest.mark.unit
class TestParseShift:
    def test_parses_label_and_bounds(self):
        shift = parse_shift("11:00-11:30")

        assert shift == Shift(label="11:00-11:30", start=time(11, 0), end=time(11, 30))

    def test_minutes_are_optional(self):
        shift = parse_shift("11-12")

        assert shift.start == time(11, 0)
        assert shift.end == time(12, 0)

    def test_midnight_end(self):
        shift = parse_shift("22:00-24:00")

        assert shift.end == time.max
        assert shift.contains(time(23, 59, 59))

    @pytest.mark.parametrize(
        "spec",
        ["1100", "-12:00", "11:00-", "aa:00-12:00", "11:xx-12:00", "25:00-26:00", "11:60-12:00"],
    )
    def test_malformed_spec(self, spec):
        with pytest.raises(ConfigError):
            parse_shift(spec)

    @pytest.mark.parametrize("spec", ["12:00-11:00", "11:00-11:00"])
    def test_start_must_precede_end(self, spec):
        with pytest.raises(ConfigError, match="start must be before end"):
            parse_shift(spec)

    def test_overlapping_shifts_rejected(self):
        with pytest.raises(ConfigError, match="overlap"):
            parse_shifts(["11:00-12:00", "11:30-12:30"])

    def test_adjacent_shifts_allowed(self):
        shifts = parse_shifts(["11:30-12:00", "11:00-11:30"])

        assert [s.label for s in shifts] == ["11:30-12:00", "11:00-11:30"]

    def test_default_settings_shifts(self):
        settings = Settings(DATABASE_URL="sqlite+aiosqlite://")

        shifts = parse_shifts(settings.shift_specs)

        assert len(shifts) == 8
        assert shifts[0].start == time(11, 0)
        assert shifts[-1].end == time(15, 0)
        assert settings.shift_timezone.utcoffset(None) == timedelta(hours=-3)


@pytest.mark.unit
class TestShiftCalendar:
    def test_valid_labels_end_with_all(self, calendar):
        labels = calendar.valid_labels()

        assert labels[0] == "11:00-11:30"
        assert labels[-1] == ALL_SHIFTS
        assert len(labels) == 9

    def test_windows_are_half_open(self, calendar):
        assert calendar.label_for(local(11, 0)) == "11:00-11:30"
        assert calendar.label_for(local(11, 29)) == "11:00-11:30"
        assert calendar.label_for(local(11, 30)) == "11:30-12:00"
        assert calendar.label_for(local(14, 59)) == "14:30-15:00"
        assert calendar.label_for(local(15, 0)) == ALL_SHIFTS

    def test_outside_shifts(self, calendar):
        assert not calendar.is_within_any_shift(local(10, 59))
        assert calendar.is_within_any_shift(local(11, 0))
        assert not calendar.is_within_any_shift(local(15, 0))

    def test_instants_are_read_in_kitchen_timezone(self, calendar):
        # 14:00 UTC == 11:00 UTC-3
        assert calendar.label_for(datetime(2026, 10, 18, 14, 0, tzinfo=timezone.utc)) == "11:00-11:30"

    def test_naive_timestamps_are_utc(self, calendar):
        assert calendar.label_for(datetime(2026, 10, 18, 14, 0)) == "11:00-11:30"
        assert calendar.localize(datetime(2026, 10, 18, 14, 0)) == local(11, 0)

    def test_window_round_trip(self, calendar):
        for shift in calendar.shifts:
            window = calendar.window_for(shift.label)
            assert calendar.label_for(window.start) == shift.label
            assert calendar.label_for(window.end - timedelta(microseconds=1)) == shift.label
            assert not window.contains(window.end)

    def test_window_in_utc(self, calendar):
        window = calendar.window_for("11:00-11:30")

        assert as_utc(window.start) == datetime(2026, 10, 18, 14, 0, tzinfo=timezone.utc)
        assert as_utc(window.end) == datetime(2026, 10, 18, 14, 30, tzinfo=timezone.utc)

    def test_all_covers_the_whole_day(self, calendar):
        window = calendar.window_for(ALL_SHIFTS)

        assert window.start == local(0, 0)
        assert window.end == local(0, 0, day=19)
        assert window.contains(local(23, 59))
        assert not window.contains(local(0, 0, day=19))

    def test_unknown_label(self, calendar):
        with pytest.raises(NotFound):
            calendar.window_for("09:00-09:30")
        assert calendar.get_shift("bogus") is None

    @pytest.mark.parametrize("label", ["11:00 - 11:30", "11-11:30", " 11:00-11:30 "])
    def test_label_variants_resolve_to_configured_shift(self, calendar, label):
        shift = calendar.get_shift(label)

        assert shift is not None
        assert shift.label == "11:00-11:30"

    def test_pickup_time_is_shift_start_today(self, calendar):
        assert calendar.pickup_time_for("12:00-12:30") == local(12, 0)

    def test_pickup_time_for_all_is_rejected(self, calendar):
        with pytest.raises(NotFound):
            calendar.pickup_time_for(ALL_SHIFTS)

    def test_today_follows_kitchen_timezone(self):
        # 01:00 UTC 19-го, в UTC-3 ещё 18-е
        clock = FrozenClock(datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc))
        calendar = ShiftCalendar(parse_shifts(["11:00-11:30"]), ART, clock=clock)

        assert calendar.today().day == 18
        assert calendar.window_for("11:00-11:30").start == local(11, 0)

    def test_midnight_shift_window_ends_next_day(self, clock):
        calendar = ShiftCalendar(parse_shifts(["22:00-24:00"]), ART, clock=clock)

        window = calendar.window_for("22:00-24:00")

        assert window.end == local(0, 0, day=19)
        assert calendar.label_for(local(23, 59)) == "22:00-24:00"
