from __future__ import annotations

from datetime import datetime, timedelta, timezone

from model_library.domain.ticks import datetime_to_ticks, now_ticks, parse_iso_to_ticks, ticks_to_datetime

# 2000-01-01T00:00:00Z as written by existing catalogs
Y2K_TICKS = 630822816000000000


def test_known_epoch_value() -> None:
    assert datetime_to_ticks(datetime(2000, 1, 1, tzinfo=timezone.utc)) == Y2K_TICKS
    assert ticks_to_datetime(Y2K_TICKS) == datetime(2000, 1, 1, tzinfo=timezone.utc)


def test_naive_datetimes_are_utc() -> None:
    assert datetime_to_ticks(datetime(2000, 1, 1)) == Y2K_TICKS


def test_offsets_are_normalised() -> None:
    plus_two = datetime(2000, 1, 1, 2, tzinfo=timezone(timedelta(hours=2)))
    assert datetime_to_ticks(plus_two) == Y2K_TICKS


def test_parse_iso() -> None:
    assert parse_iso_to_ticks("2000-01-01T00:00:00Z") == Y2K_TICKS
    assert parse_iso_to_ticks("not a date") is None


def test_now_is_after_2020() -> None:
    assert now_ticks() > datetime_to_ticks(datetime(2020, 1, 1, tzinfo=timezone.utc))
