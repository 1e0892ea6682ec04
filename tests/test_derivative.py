"""Unit tests for the finite-difference derivative approximator."""

import math

import pytest

import approx_solver
from approx_solver import (
    DerivativeResult,
    DifferentiationError,
    EvaluationError,
    ExpressionParseError,
    ValidationError,
    approximate_derivative,
)


def test_quadratic_against_symbolic():
    """Test f(x) = x^2 + 3x + 2 at x = 1 with h = 0.01."""
    result = approximate_derivative("x^2 + 3x + 2", 1, 0.01, 6)
    assert result.symbolic == 5.0
    assert result.centered == pytest.approx(5.0, abs=1e-6)
    assert result.centered_error == pytest.approx(0.0, abs=1e-6)
    # forward/backward are off by exactly h for a quadratic
    assert result.forward == pytest.approx(5.01, abs=1e-6)
    assert result.backward == pytest.approx(4.99, abs=1e-6)
    assert result.forward_error == pytest.approx(0.2, abs=1e-6)
    assert result.backward_error == pytest.approx(0.2, abs=1e-6)


def test_sin_centered_is_more_accurate():
    result = approximate_derivative("sin(x)", 1, 0.1, 10)
    assert result.symbolic == pytest.approx(math.cos(1), abs=1e-10)
    assert result.centered_error < result.forward_error
    assert result.centered_error < result.backward_error


def test_evaluation_failure_at_x_minus_h():
    """Test that sqrt(x) at 0.005 - 0.01 raises instead of returning NaN."""
    with pytest.raises(EvaluationError, match="x=-0.005"):
        approximate_derivative("sqrt(x)", 0.005, 0.01, 6)


def test_parse_failure_is_evaluation_error():
    with pytest.raises(ExpressionParseError):
        approximate_derivative("x +", 1, 0.01, 6)


def test_missing_symbolic_nulls_all_errors(monkeypatch):
    """Test that a failed symbolic derivative only drops the reference value."""

    def fail(expr):
        raise DifferentiationError(f"Cannot differentiate expression: {expr}")

    monkeypatch.setattr(approx_solver, "build_derivative", fail)
    result = approximate_derivative("x^2 + 3x + 2", 1, 0.01, 6)
    assert result.symbolic is None
    assert result.forward_error is None
    assert result.backward_error is None
    assert result.centered_error is None
    assert result.centered == pytest.approx(5.0, abs=1e-6)


def test_cusp_has_no_symbolic_reference():
    """Test a point where f is finite but f' is not."""
    result = approximate_derivative("(x^2)^(1/3)", 0, 0.01, 6)
    assert result.symbolic is None
    assert (result.forward_error, result.backward_error, result.centered_error) == (
        None,
        None,
        None,
    )
    assert result.centered == 0.0
    assert result.forward > 0


def test_zero_symbolic_value_has_no_errors():
    """Test that a near-zero exact derivative yields no percentage errors."""
    result = approximate_derivative("x^2", 0, 0.01, 6)
    assert result.symbolic == 0.0
    assert result.forward == pytest.approx(0.01)
    assert result.backward == pytest.approx(-0.01)
    assert result.centered == 0.0
    assert result.forward_error is None
    assert result.centered_error is None


def test_outputs_are_rounded():
    result = approximate_derivative("exp(x)", 0.3, 0.001, 3)
    for value in (
        result.forward,
        result.backward,
        result.centered,
        result.symbolic,
        result.forward_error,
        result.backward_error,
        result.centered_error,
    ):
        assert value == round(value, 3)


@pytest.mark.parametrize("h", [0, -0.01, 1e-11, 1e-10, math.nan, math.inf])
def test_invalid_step_raises(h):
    with pytest.raises(ValidationError):
        approximate_derivative("x^2", 1, h, 6)


def test_invalid_point_and_precision_raise():
    with pytest.raises(ValidationError):
        approximate_derivative("x^2", math.nan, 0.01, 6)
    with pytest.raises(ValidationError):
        approximate_derivative("x^2", 1, 0.01, 16)


def test_as_rows_order():
    result = DerivativeResult(1.0, 2.0, 3.0, 0.1, None, 0.3, 4.0)
    assert list(result.as_rows()) == [
        ("Forward Difference", 1.0, 0.1),
        ("Backward Difference", 2.0, None),
        ("Centered Difference", 3.0, 0.3),
    ]


def test_idempotent():
    first = approximate_derivative("x^2 + 3x + 2", 1, 0.01, 6)
    second = approximate_derivative("x^2 + 3x + 2", 1, 0.01, 6)
    assert first == second


def test_undifferentiable_expression_has_no_symbolic_reference():
    """Test that floor(x), which sympy cannot differentiate, only drops the reference."""
    result = approximate_derivative("floor(x)", 0.5, 0.01, 6)
    assert result.symbolic is None
    assert (result.forward_error, result.backward_error, result.centered_error) == (
        None,
        None,
        None,
    )
    assert result.centered == 0.0


@pytest.mark.parametrize("expr", ["sign(x)", "Heaviside(x)"])
def test_step_functions_have_zero_symbolic_derivative(expr):
    """Test that DiracDelta in the exact derivative evaluates away from 0."""
    result = approximate_derivative(expr, 1, 0.01, 6)
    assert result.symbolic == 0.0
    assert result.centered == 0.0


def test_gamma_symbolic_derivative():
    """Test that polygamma in the exact derivative of gamma evaluates."""
    result = approximate_derivative("gamma(x)", 2, 0.001, 6)
    assert result.symbolic == pytest.approx(1 - 0.5772156649015329, abs=1e-6)
    assert result.centered_error < 0.01
