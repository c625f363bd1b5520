"""
Календарь смен выдачи.

Смена: полуоткрытый интервал времени суток [start, end) в опорном часовом
поясе кухни. Смещение пояса фиксированное (из конфигурации), без базы tz.
Метка "all" означает объединение всех смен за сегодня.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Iterable, List, Optional

from optimeal.exceptions import ConfigError, NotFound

ALL_SHIFTS = "all"


@dataclass(frozen=True)
class Shift:
    label: str
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class ShiftWindow:
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


def _parse_clock(value: str, spec: str) -> time:
    hour_str, _, minute_str = value.strip().partition(":")
    minute_str = minute_str or "0"
    if not hour_str.strip().isdigit() or not minute_str.strip().isdigit():
        raise ConfigError(f"Invalid shift spec {spec!r}: non-numeric time {value!r}")
    hour, minute = int(hour_str), int(minute_str)
    if hour == 24 and minute == 0:
        # конец суток
        return time.max
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigError(f"Invalid shift spec {spec!r}: time {value!r} out of range")
    return time(hour, minute)


def parse_shift(spec: str) -> Shift:
    label = spec.strip()
    start_str, sep, end_str = label.partition("-")
    if not sep or not start_str.strip() or not end_str.strip():
        raise ConfigError(f"Invalid shift spec {spec!r}: expected 'HH:MM-HH:MM'")
    start = _parse_clock(start_str, spec)
    end = _parse_clock(end_str, spec)
    if start >= end:
        raise ConfigError(f"Invalid shift spec {spec!r}: start must be before end")
    return Shift(label=label, start=start, end=end)


def parse_shifts(specs: Iterable[str]) -> List[Shift]:
    """
    Разбирает упорядоченный список "HH:MM-HH:MM" в смены.
    Пересекающиеся смены считаются ошибкой конфигурации.
    """
    shifts = [parse_shift(spec) for spec in specs]
    ordered = sorted(shifts, key=lambda s: s.start)
    for prev, nxt in zip(ordered, ordered[1:]):
        if nxt.start < prev.end:
            raise ConfigError(f"Shifts {prev.label!r} and {nxt.label!r} overlap")
    return shifts


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShiftCalendar:
    """Единственный источник арифметики окон смен."""

    def __init__(
        self,
        shifts: List[Shift],
        tz: tzinfo,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.shifts = list(shifts)
        self.tz = tz
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], datetime] = _utc_now) -> "ShiftCalendar":
        return cls(parse_shifts(settings.shift_specs), settings.shift_timezone, clock=clock)

    def now(self) -> datetime:
        return self.localize(self._clock())

    def today(self) -> date:
        return self.now().date()

    def localize(self, ts: datetime) -> datetime:
        # naive считаем UTC
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(self.tz)

    def valid_labels(self) -> List[str]:
        return [s.label for s in self.shifts] + [ALL_SHIFTS]

    def get_shift(self, label: str) -> Optional[Shift]:
        for shift in self.shifts:
            if shift.label == label:
                return shift
        # фронт может прислать тот же интервал в другом формате ("11:00 - 11:30")
        try:
            parsed = parse_shift(label)
        except ConfigError:
            return None
        for shift in self.shifts:
            if shift.start == parsed.start and shift.end == parsed.end:
                return shift
        return None

    def label_for(self, ts: datetime) -> str:
        moment = self.localize(ts).time()
        for shift in self.shifts:
            if shift.contains(moment):
                return shift.label
        return ALL_SHIFTS

    def is_within_any_shift(self, ts: datetime) -> bool:
        moment = self.localize(ts).time()
        return any(shift.contains(moment) for shift in self.shifts)

    def _at(self, day: date, moment: time) -> datetime:
        if moment == time.max:
            return datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return datetime.combine(day, moment, tzinfo=self.tz)

    def window_for(self, label: str, day: Optional[date] = None) -> ShiftWindow:
        day = day or self.today()
        if label == ALL_SHIFTS:
            start = datetime.combine(day, time.min, tzinfo=self.tz)
            return ShiftWindow(start=start, end=start + timedelta(days=1))

        shift = self.get_shift(label)
        if shift is None:
            raise NotFound(f"Unknown shift: {label}", details={"shift": label})
        return ShiftWindow(start=self._at(day, shift.start), end=self._at(day, shift.end))

    def pickup_time_for(self, label: str) -> datetime:
        """Время выдачи для заказа на смену: начало смены сегодня."""
        if label == ALL_SHIFTS:
            raise NotFound(f"Unknown shift: {label}", details={"shift": label})
        return self.window_for(label).start


def as_utc(ts: datetime) -> datetime:
    """Приводит время к UTC для хранения и фильтров в базе (naive считаем UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
