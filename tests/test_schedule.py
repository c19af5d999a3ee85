import pytest

from grow_automation.domain.errors import ConfigurationError
from grow_automation.domain.schedule import (
    TimeWindow,
    format_clock_time,
    parse_clock_time,
    parse_duration_hours,
)

from conftest import at


@pytest.mark.parametrize(
    "text,minute",
    [
        ("7:00 AM", 420),
        ("12:00 AM", 0),
        ("12:30 PM", 750),
        ("07:05pm", 1145),
        (" 11:59 PM ", 1439),
        ("9:15 am", 555),
    ],
)
def test_parse_clock_time(text, minute):
    assert parse_clock_time(text) == minute


@pytest.mark.parametrize(
    "text",
    ["13:00 PM", "0:30 AM", "7:60 AM", "7:00", "7:00 XM", "7:00  AM", "", "7 AM", "19:00"],
)
def test_parse_clock_time_rejects_malformed(text):
    with pytest.raises(ConfigurationError):
        parse_clock_time(text)


def test_format_clock_time():
    assert format_clock_time(0) == "12:00 AM"
    assert format_clock_time(720) == "12:00 PM"
    assert format_clock_time(1140) == "7:00 PM"
    assert format_clock_time(65) == "1:05 AM"


def test_parse_duration_hours():
    assert parse_duration_hours("12") == 12.0
    assert parse_duration_hours("1.5") == 1.5
    assert parse_duration_hours(24) == 24.0


@pytest.mark.parametrize("value", [0, "-1", "nan", "inf", "abc", None, True, 25])
def test_parse_duration_rejects_invalid(value):
    with pytest.raises(ConfigurationError) as exc:
        parse_duration_hours(value)
    assert exc.value.field == "duration_hours"


def test_day_window_end_and_progress():
    w = TimeWindow.parse("7:00 AM", "12")
    assert w.end_label == "7:00 PM"
    assert not w.is_overnight
    assert w.progress_percent(at(13)) == pytest.approx(50.0)


def test_overnight_window():
    w = TimeWindow(start_minute=1320, duration_minutes=480)
    assert w.is_overnight
    assert w.end_label == "6:00 AM"
    assert w.is_active(at(23))
    assert w.is_active(at(2))
    assert not w.is_active(at(7))
    assert w.elapsed_minutes(at(2)) == pytest.approx(240)
    assert w.progress_percent(at(2)) == pytest.approx(50.0)


@pytest.mark.parametrize("start", [0, 1, 420, 719, 1320, 1439])
@pytest.mark.parametrize("duration", [1, 60, 480, 1000, 1439])
def test_window_is_start_inclusive_end_exclusive(start, duration):
    w = TimeWindow(start_minute=start, duration_minutes=duration)
    s_h, s_m = divmod(start, 60)
    e_h, e_m = divmod((start + duration) % 1440, 60)
    assert w.is_active(at(s_h, s_m))
    assert not w.is_active(at(e_h, e_m))


def test_progress_outside_window():
    w = TimeWindow.parse("7:00 AM", 12)
    assert w.progress_percent(at(6)) == 0.0
    assert w.progress_percent(at(20)) == 100.0

    overnight = TimeWindow.parse("10:00 PM", 8)
    assert overnight.progress_percent(at(7)) == 0.0


def test_progress_monotonic_while_active():
    w = TimeWindow.parse("10:00 PM", 8)
    last = -1.0
    minutes = list(range(1320, 1440)) + list(range(0, 360))
    for m in minutes:
        h, mm = divmod(m, 60)
        now = at(h, mm)
        assert w.is_active(now)
        pct = w.progress_percent(now)
        assert pct >= last
        last = pct
    assert w.progress_percent(at(22)) == 0.0


def test_full_day_window():
    w = TimeWindow.parse("6:00 AM", 24)
    for h in range(24):
        assert w.is_active(at(h, 30))
    assert w.progress_percent(at(6)) == 0.0
    assert w.progress_percent(at(18)) == pytest.approx(50.0)
    assert w.progress_percent(at(5, 59)) == pytest.approx(1439 / 1440 * 100)


def test_window_closing_at_midnight():
    w = TimeWindow.parse("12:00 PM", 12)
    assert not w.is_overnight
    assert w.is_active(at(23, 59))
    assert not w.is_active(at(0))


def test_fractional_duration():
    w = TimeWindow.parse("7:00 AM", 1.5)
    assert w.duration_minutes == 90
    assert w.end_label == "8:30 AM"
    assert w.is_active(at(8, 29))
    assert not w.is_active(at(8, 30))


def test_between_start_and_end():
    assert TimeWindow.between("6:00 AM", "7:00 AM").duration_minutes == 60
    overnight = TimeWindow.between("10:00 PM", "6:00 AM")
    assert overnight.duration_minutes == 480
    assert overnight.is_overnight


def test_between_rejects_equal_and_malformed_end():
    with pytest.raises(ConfigurationError) as exc:
        TimeWindow.between("6:00 AM", "6:00 AM")
    assert exc.value.field == "end_time"

    with pytest.raises(ConfigurationError) as exc:
        TimeWindow.between("6:00 AM", "25:00")
    assert exc.value.field == "end_time"


def test_start_is_normalized_and_duration_validated():
    assert TimeWindow(start_minute=1500, duration_minutes=60).start_minute == 60
    with pytest.raises(ConfigurationError):
        TimeWindow(start_minute=0, duration_minutes=0)
    with pytest.raises(ConfigurationError):
        TimeWindow(start_minute=0, duration_minutes=1441)
