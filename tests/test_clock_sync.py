import pytest

from hostcharts.clock_sync import ClockSync, format_duration, format_elapsed_label, format_time_ago


def test_offset_and_extrapolation():
    clock = ClockSync()
    assert clock.update(server_now=1000, local_now=1500) == 500
    assert clock.offset_ms == 500
    assert clock.server_time(2500) == 2000


def test_unsynced_clock_is_identity():
    clock = ClockSync()
    assert not clock.synced
    assert clock.server_time(123) == 123


def test_offset_recomputed_on_every_update():
    clock = ClockSync()
    clock.update(1000, 1500)
    clock.update(5000, 4000)
    assert clock.offset_ms == -1000
    assert clock.server_time(4500) == 5500


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s ago"),
        (59, "59s ago"),
        (60, "1min ago"),
        (3599, "59min ago"),
        (3600, "1h ago"),
        (86399, "23h ago"),
        (86400, "1d ago"),
        (3 * 86400 + 5, "3d ago"),
    ],
)
def test_format_time_ago(seconds, expected):
    assert format_time_ago(seconds) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s"),
        (59, "59s"),
        (60, "1min"),
        (3600, "1h"),
        (86400, "1d"),
        (3661, "1h1min1s"),
        (90061, "1d1h1min1s"),
        (86400 + 30, "1d30s"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_elapsed_label():
    assert format_elapsed_label(1000, 6000) == "5s"
    assert format_elapsed_label(0, 120000) == "2m"
    assert format_elapsed_label(0, 2 * 3600 * 1000) == "2h"
    assert format_elapsed_label(0, 2 * 86400 * 1000) == "2d"
    assert format_elapsed_label(9000, 1000) == "0s"
