"""Unit tests for the shared rounding, relative-error and severity helpers."""

import pytest

from approx_solver import (
    ERROR_LEVEL_LABELS,
    ValidationError,
    classify_error,
    relative_error,
    round_value,
    validate_iterations,
    validate_precision,
    validate_step,
)


def test_round_value():
    assert round_value(2.718281828, 6) == 2.718282
    assert round_value(None, 6) is None


def test_relative_error_percent():
    assert relative_error(5.01, 5.0) == pytest.approx(0.2)
    assert relative_error(4.99, 5.0) == pytest.approx(0.2)


def test_relative_error_without_reference():
    assert relative_error(1.0, None) is None
    assert relative_error(1.0, 0.0) is None


def test_relative_error_floor():
    """Test that references smaller than the floor give no error."""
    assert relative_error(1e-12, 1e-11, floor=1e-10) is None
    assert relative_error(2.0, 1e-10, floor=1e-10) is not None


@pytest.mark.parametrize(
    "error, level",
    [
        (None, "unknown"),
        (0.0, "low"),
        (0.99, "low"),
        (1.0, "medium"),
        (9.99, "medium"),
        (10.0, "high"),
        (250.0, "high"),
    ],
)
def test_classify_error(error, level):
    assert classify_error(error) == level
    assert level in ERROR_LEVEL_LABELS


def test_bounds_are_inclusive():
    assert validate_iterations(1) == 1
    assert validate_iterations(1000) == 1000
    assert validate_precision(1) == 1
    assert validate_precision(15) == 15
    assert validate_step(1e-9) == 1e-9


def test_bool_is_not_an_integer():
    with pytest.raises(ValidationError):
        validate_precision(True)
