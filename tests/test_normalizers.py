"""
Normalizer tests: advisory severities, rating bands and vote-count expansion.

Run with: `pytest -q`.
"""

import pytest

from favorite.catalog.normalizers import (normalize_popularity,
                                          normalize_rating,
                                          normalize_severity)


def test_severity_labels_map_to_codes():
    assert normalize_severity("None") == 0
    assert normalize_severity("Mild") == 1
    assert normalize_severity("Moderate") == 2
    assert normalize_severity("Severe") == 3


def test_unknown_or_missing_severity_is_four():
    assert normalize_severity("") == 4
    assert normalize_severity(None) == 4
    assert normalize_severity("Extreme") == 4
    assert normalize_severity("mild") == 4


def test_rating_bands():
    assert normalize_rating("9.3") == 3
    assert normalize_rating("8.8") == 2
    assert normalize_rating("7.8") == 2
    assert normalize_rating("7.7") == 1
    assert normalize_rating("5") == 1


def test_rating_rejects_non_numeric_text():
    with pytest.raises(ValueError):
        normalize_rating("")
    with pytest.raises(ValueError):
        normalize_rating("n/a")


def test_popularity_expands_magnitude_suffixes():
    assert normalize_popularity("1.2M") == 1_200_000
    assert normalize_popularity("500") == 500
    assert normalize_popularity("2B") == 2_000_000_000
    assert normalize_popularity("45k") == 45_000
    assert normalize_popularity("1,234") == 1234


def test_popularity_rejects_text_without_number():
    with pytest.raises(ValueError):
        normalize_popularity("")
    with pytest.raises(ValueError):
        normalize_popularity("K")
