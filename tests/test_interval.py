import random
from datetime import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from conftest import CPH, local_ts
from wildbutton.errors import InvalidScheduleError
from wildbutton.interval import (
    format_clock,
    format_weekdays,
    next_fire_time,
    parse_interval,
    parse_weekdays,
    weekday_bit,
)


def cfg(weekdays=0b1111100, start=32400, end=57600, tz="Europe/Copenhagen"):
    return SimpleNamespace(weekdays=weekdays, interval_start=start, interval_end=end, timezone=tz)


def local(ts, tz=CPH):
    return datetime.fromtimestamp(ts, tz)


def seconds_of_day(dt):
    return dt.hour * 3600 + dt.minute * 60 + dt.second


def test_after_window_moves_to_next_weekday():
    # Wednesday 18:37, window already over
    ref = local_ts(2020, 2, 26, 18, 37)
    fire = local(next_fire_time(cfg(), ref, rng=random.Random(1)))
    assert fire.date().isoformat() == "2020-02-27"
    assert 32400 <= seconds_of_day(fire) < 57600


def test_friday_evening_skips_weekend():
    ref = local_ts(2020, 2, 28, 17, 0)
    fire = local(next_fire_time(cfg(), ref, rng=random.Random(1)))
    assert fire.date().isoformat() == "2020-03-02"
    assert fire.weekday() == 0


def test_before_window_fires_today():
    ref = local_ts(2020, 2, 26, 6, 0)
    fire = local(next_fire_time(cfg(), ref, rng=random.Random(1)))
    assert fire.date().isoformat() == "2020-02-26"


def test_inside_window_fires_later_today():
    ref = local_ts(2020, 2, 26, 15, 59, 30)
    for seed in range(50):
        fire = next_fire_time(cfg(), ref, rng=random.Random(seed))
        assert ref < fire < local_ts(2020, 2, 26, 16, 0)


def test_skip_today():
    ref = local_ts(2020, 2, 26, 6, 0)
    fire = local(next_fire_time(cfg(), ref, rng=random.Random(1), skip_today=True))
    assert fire.date().isoformat() == "2020-02-27"


def test_only_today_weekday_waits_a_week():
    wednesday = 1 << (6 - 2)
    ref = local_ts(2020, 2, 26, 17, 0)
    fire = local(next_fire_time(cfg(weekdays=wednesday), ref, rng=random.Random(1)))
    assert fire.date().isoformat() == "2020-03-04"


def test_empty_mask_is_invalid():
    with pytest.raises(InvalidScheduleError):
        next_fire_time(cfg(weekdays=0), local_ts(2020, 2, 26, 6, 0))


@pytest.mark.parametrize("start,end", [(57600, 32400), (100, 100), (-1, 3600), (0, 86401)])
def test_bad_interval_is_invalid(start, end):
    with pytest.raises(InvalidScheduleError):
        next_fire_time(cfg(start=start, end=end), local_ts(2020, 2, 26, 6, 0))


def test_unknown_timezone_is_invalid():
    with pytest.raises(InvalidScheduleError):
        next_fire_time(cfg(tz="Mars/Olympus_Mons"), local_ts(2020, 2, 26, 6, 0))


def test_dst_start_keeps_local_window():
    # Copenhagen moves to CEST on Sunday 2020-03-29
    ref = local_ts(2020, 3, 28, 20, 0)
    for seed in range(50):
        fire = local(next_fire_time(cfg(weekdays=0b1111111), ref, rng=random.Random(seed)))
        assert fire.date().isoformat() == "2020-03-29"
        assert 32400 <= seconds_of_day(fire) < 57600
        assert fire.utcoffset().total_seconds() == 7200


def test_full_day_window_across_dst_end():
    # the night the clocks go back has 25 hours
    ref = local_ts(2020, 10, 24, 23, 59)
    for seed in range(50):
        fire = next_fire_time(cfg(weekdays=0b1111111, start=0, end=86400), ref, rng=random.Random(seed))
        assert fire > ref


def test_random_configs_fire_inside_window_on_enabled_day():
    rng = random.Random(2024)
    zones = ["Europe/Copenhagen", "America/New_York", "Asia/Kolkata", "Australia/Lord_Howe", "UTC"]
    start_of_2020 = local_ts(2020, 1, 1, 0, 0)
    for _ in range(500):
        mask = rng.randrange(1, 128)
        start = rng.randrange(0, 86399)
        end = rng.randrange(start + 1, 86401)
        tz = rng.choice(zones)
        ref = start_of_2020 + rng.randrange(0, 366 * 86400) + rng.random()
        fire = next_fire_time(cfg(mask, start, end, tz), ref, rng=rng)
        assert fire > ref
        when = local(fire, ZoneInfo(tz))
        assert mask & weekday_bit(when.date())
        # wall-clock offsets only shift inside the window on DST days
        if when.utcoffset() == local(ref, ZoneInfo(tz)).utcoffset():
            assert start <= seconds_of_day(when) < end


def test_parse_weekdays():
    assert parse_weekdays("mon-fri") == 0b1111100
    assert parse_weekdays("sat, sun") == 0b0000011
    assert parse_weekdays("Monday,wed") == 0b1010000
    with pytest.raises(ValueError):
        parse_weekdays("funday")
    with pytest.raises(ValueError):
        parse_weekdays("fri-mon")


def test_format_weekdays():
    assert format_weekdays(0b1111100) == "Mon, Tue, Wed, Thu, Fri"
    assert format_weekdays(0) == "no days"


def test_parse_interval():
    assert parse_interval("09:00-16:00") == (32400, 57600)
    assert parse_interval("0:00-24:00") == (0, 86400)
    for bad in ("16:00-09:00", "9-16", "09:00", "25:00-26:00", "09:61-10:00"):
        with pytest.raises(ValueError):
            parse_interval(bad)
    assert format_clock(57600) == "16:00"
