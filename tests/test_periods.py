from datetime import date

import pytest

from app.reporting.periods import (
    DateRange,
    elapsed_months,
    month_range,
    resolve_period,
    same_day_last_year,
    shift_month,
)


def _bounds(pair):
    return (pair.current.start, pair.current.end, pair.previous.start, pair.previous.end)


def test_this_month_runs_to_today_against_full_previous_month() -> None:
    pair = resolve_period("this_month", date(2024, 6, 15))

    assert _bounds(pair) == (
        date(2024, 6, 1),
        date(2024, 6, 15),
        date(2024, 5, 1),
        date(2024, 5, 31),
    )
    assert pair.is_year_scoped is False


def test_last_month_crosses_year_boundary() -> None:
    pair = resolve_period("last_month", date(2024, 1, 10))

    assert _bounds(pair) == (
        date(2023, 12, 1),
        date(2023, 12, 31),
        date(2023, 11, 1),
        date(2023, 11, 30),
    )


def test_ytd_compares_with_same_window_last_year() -> None:
    pair = resolve_period("ytd", date(2024, 6, 15))

    assert _bounds(pair) == (
        date(2024, 1, 1),
        date(2024, 6, 15),
        date(2023, 1, 1),
        date(2023, 6, 15),
    )
    assert pair.is_year_scoped is True


def test_ytd_on_leap_day_clamps_comparator_to_february_28() -> None:
    pair = resolve_period("this_year", date(2024, 2, 29))

    assert pair.previous.end == date(2023, 2, 28)
    assert pair.is_year_scoped is True


def test_this_quarter_is_compared_with_preceding_full_quarter() -> None:
    pair = resolve_period("this_quarter", date(2024, 5, 20))

    assert _bounds(pair) == (
        date(2024, 4, 1),
        date(2024, 5, 20),
        date(2024, 1, 1),
        date(2024, 3, 31),
    )


def test_last_quarter_in_first_quarter_reaches_into_previous_year() -> None:
    pair = resolve_period("last_quarter", date(2024, 2, 10))

    assert _bounds(pair) == (
        date(2023, 10, 1),
        date(2023, 12, 31),
        date(2023, 7, 1),
        date(2023, 9, 30),
    )


def test_last_year_against_the_year_before() -> None:
    pair = resolve_period("last_year", date(2024, 3, 1))

    assert _bounds(pair) == (
        date(2023, 1, 1),
        date(2023, 12, 31),
        date(2022, 1, 1),
        date(2022, 12, 31),
    )


@pytest.mark.parametrize("token", [None, "", "fortnight", "THIS_MONTH"])
def test_unknown_tokens_resolve_as_ytd(token) -> None:
    pair = resolve_period(token, date(2024, 6, 15))

    assert pair.token == "ytd"
    assert pair.current.start == date(2024, 1, 1)


def test_as_dict_uses_wire_names() -> None:
    pair = resolve_period("last_month", date(2024, 3, 5))

    assert pair.as_dict() == {
        "start": "2024-02-01",
        "end": "2024-02-29",
        "prevStart": "2024-01-01",
        "prevEnd": "2024-01-31",
    }


@pytest.mark.parametrize(
    "start, delta, expected",
    [
        ((2024, 1), -1, (2023, 12)),
        ((2024, 12), 1, (2025, 1)),
        ((2024, 3), -15, (2022, 12)),
        ((2024, 6), 0, (2024, 6)),
    ],
)
def test_shift_month(start, delta, expected) -> None:
    assert shift_month(*start, delta) == expected


def test_elapsed_months_caps_running_month_at_today() -> None:
    months = elapsed_months(date(2024, 3, 10))

    assert [m.start for m in months] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
    assert months[1].end == date(2024, 2, 29)
    assert months[-1].end == date(2024, 3, 10)


def test_date_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        DateRange(date(2024, 2, 2), date(2024, 2, 1))


def test_month_range_and_day_count() -> None:
    february = month_range(2023, 2)

    assert february.end == date(2023, 2, 28)
    assert february.days == 28
    assert same_day_last_year(date(2024, 7, 4)) == date(2023, 7, 4)
