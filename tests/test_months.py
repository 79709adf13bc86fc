import pytest

from errors import ValidationError
from months import month_in_range, month_sort_key, normalize_month_label


@pytest.mark.parametrize(
    "raw",
    [
        "January 2025",
        "january 2025",
        "JANUARY 2025",
        "  January   2025 ",
        "January-2025",
        "january/2025",
        "January, 2025",
        "jAnUaRy.2025",
    ],
)
def test_month_labels_normalize_to_canonical_form(raw: str) -> None:
    assert normalize_month_label(raw) == "January 2025"


@pytest.mark.parametrize(
    "raw",
    ["", "2025-01", "Jan 2025", "Janvier 2025", "January 25", "January2025", None, 202501],
)
def test_invalid_month_labels_are_rejected(raw) -> None:
    with pytest.raises(ValidationError):
        normalize_month_label(raw)


def test_month_sort_key_is_chronological() -> None:
    labels = ["December 2024", "April 2025", "February 2025", "January 2025"]
    assert sorted(labels, key=month_sort_key) == [
        "December 2024",
        "January 2025",
        "February 2025",
        "April 2025",
    ]


def test_month_in_range_is_inclusive() -> None:
    assert month_in_range("March 2025", "March 2025", "March 2025")
    assert month_in_range("March 2025", None, "April 2025")
    assert not month_in_range("February 2025", "March 2025", None)
    assert not month_in_range("May 2025", "March 2025", "April 2025")
