"""
Core numerical methods and helpers for the numerical approximation toolkit.

This module centralizes:
    - Parsing user-provided expressions into safe callables and symbolic
      derivatives.
    - Three root-finding algorithms (Fixed Point, Newton-Raphson, Secant)
      used to approximate constants such as e via ln(x) - 1 = 0.
    - Forward, backward and centered finite-difference derivative estimates
      compared against the exact symbolic derivative.
    - Shared rounding, relative-error and error-severity helpers.
    - A thin façade (`run_method`) that normalizes inputs/outputs so the CLI
      and any other front-end consume the same API.

Each root-finder returns a list of `IterationRecord`:
    iteration: int               # 1-based
    approximation: float         # rounded to the requested precision
    relative_error: Optional[float]  # percent, rounded, or None
"""

from __future__ import annotations

import logging
import math
import numbers
from decimal import Decimal
from dataclasses import dataclass, field
from tokenize import TokenError
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

import mpmath
import sympy as sp
from sympy.core.function import AppliedUndef
from sympy.parsing.sympy_parser import (
    convert_xor,
    implicit_multiplication_application,
    parse_expr,
    standard_transformations,
)

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Configuration
# --------------------------------------------------------------------------- #

MIN_ITERATIONS = 1
MAX_ITERATIONS = 1000
MIN_PRECISION = 1
MAX_PRECISION = 15
# Step sizes at or below this lose every significant digit to cancellation.
MIN_STEP = 1e-10
# Derivatives, secant denominators and symbolic references smaller than this
# are treated as zero.
DEGENERACY_THRESHOLD = 1e-10


# --------------------------------------------------------------------------- #
# Errors
# --------------------------------------------------------------------------- #


class ValidationError(ValueError):
    """Raised when an input falls outside the accepted range."""


class EvaluationError(ValueError):
    """Raised when an expression cannot produce a finite real number."""


class ExpressionParseError(EvaluationError):
    """Raised when a user-supplied expression cannot be parsed."""


class DifferentiationError(EvaluationError):
    """Raised when the symbolic engine cannot differentiate an expression."""


# --------------------------------------------------------------------------- #
# Expression parsing helpers
# --------------------------------------------------------------------------- #

X_SYMBOL = sp.Symbol("x", real=True)

# Calculator-style input: "3x", "x^2", "ln(x)", "e".
TRANSFORMATIONS = standard_transformations + (
    implicit_multiplication_application,
    convert_xor,
)

PARSE_LOCALS = {
    "x": X_SYMBOL,
    "e": sp.E,
    "E": sp.E,
    "pi": sp.pi,
    "ln": sp.log,
    "log": sp.log,
}


def _dirac_delta(value, k=0):
    if value == 0:
        raise ValueError("DiracDelta is undefined at x=0")
    return 0.0


def _heaviside(value, h0=0.5):
    if value == 0:
        return float(h0)
    return 1.0 if value > 0 else 0.0


def _polygamma(n, value):
    return float(mpmath.polygamma(int(n), value))


# Functions missing from the math module that derivatives of sign, Heaviside
# and gamma produce.
SPECIAL_FUNCTIONS = {
    "DiracDelta": _dirac_delta,
    "Heaviside": _heaviside,
    "polygamma": _polygamma,
    "digamma": lambda value: _polygamma(0, value),
}


def _sympy_to_float(value) -> float:
    """Convert sympy/complex numbers into a safe, finite float."""
    if isinstance(value, complex):
        if abs(value.imag) > 1e-9:
            raise EvaluationError("Expression evaluated to a complex number.")
        value = value.real
    try:
        number = float(value)
    except TypeError as exc:
        raise EvaluationError("Unable to convert expression result to float.") from exc
    if not math.isfinite(number):
        raise EvaluationError("Expression evaluated to a non-finite value.")
    return number


def parse_expression(expr: str) -> sp.Expr:
    """
    Parse an expression in the single variable ``x``.

    Both Python and calculator notation are accepted, so ``x**2 - 3*x`` and
    ``x^2 - 3x`` are the same expression.
    """
    if not expr or not expr.strip():
        raise ExpressionParseError("Function expression cannot be empty.")
    try:
        parsed = parse_expr(
            expr.strip(),
            local_dict=dict(PARSE_LOCALS),
            transformations=TRANSFORMATIONS,
        )
    except (sp.SympifyError, SyntaxError, TokenError, TypeError, ValueError) as exc:
        raise ExpressionParseError(f"Invalid function expression: {expr}") from exc

    if not isinstance(parsed, sp.Expr):
        raise ExpressionParseError(f"Invalid function expression: {expr}")
    unknown = sorted(str(symbol) for symbol in parsed.free_symbols - {X_SYMBOL})
    if unknown:
        raise ExpressionParseError(
            f"Unknown symbol(s) {', '.join(unknown)}; use x as the only variable."
        )
    undefined = sorted(str(func.func) for func in parsed.atoms(AppliedUndef))
    if undefined:
        raise ExpressionParseError(f"Unknown function(s): {', '.join(undefined)}.")
    return parsed


def _compile(sympy_expr: sp.Expr, label: str) -> Callable[[float], float]:
    func = sp.lambdify(X_SYMBOL, sympy_expr, ["math", SPECIAL_FUNCTIONS])

    def wrapper(value: float) -> float:
        try:
            evaluated = func(value)
        except (ArithmeticError, ValueError, TypeError, NameError) as exc:
            raise EvaluationError(
                f"Error evaluating {label} at x={value}: {exc}"
            ) from exc
        try:
            return _sympy_to_float(evaluated)
        except EvaluationError as exc:
            raise EvaluationError(f"Error evaluating {label} at x={value}: {exc}") from exc

    return wrapper


def build_function(expr: str) -> Callable[[float], float]:
    """
    Convert an input string into a callable f(x).

    Users can enter expressions such as:
        "ln(x) - 1", "x^2 + 3x + 2", "sin(x) - x/2", etc.
    """
    return _compile(parse_expression(expr), "f(x)")


def _symbolic_derivative(expr: str) -> sp.Expr:
    derivative = sp.diff(parse_expression(expr), X_SYMBOL)
    if derivative.has(sp.Derivative):
        raise DifferentiationError(f"Cannot differentiate expression: {expr}")
    return derivative


def build_derivative(expr: str) -> Callable[[float], float]:
    """Automatically differentiate the expression for Newton-based methods."""
    return _compile(_symbolic_derivative(expr), "f'(x)")


def evaluate(expression: str, bindings: Mapping[str, float]) -> float:
    """Evaluate ``expression`` with ``bindings`` such as ``{"x": 2.0}``."""
    if "x" not in bindings:
        raise EvaluationError("No value bound for x.")
    return build_function(expression)(bindings["x"])


def differentiate(expression: str, variable: str = "x") -> str:
    """Return the symbolic derivative of ``expression`` as a string."""
    if variable != str(X_SYMBOL):
        raise DifferentiationError(
            f"Cannot differentiate with respect to {variable}; only x is supported."
        )
    return str(_symbolic_derivative(expression))


# --------------------------------------------------------------------------- #
# Result containers
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class IterationRecord:
    iteration: int
    approximation: float
    relative_error: Optional[float]


@dataclass(frozen=True)
class DerivativeResult:
    """Finite-difference estimates and their errors against ``symbolic``."""

    forward: float
    backward: float
    centered: float
    forward_error: Optional[float]
    backward_error: Optional[float]
    centered_error: Optional[float]
    symbolic: Optional[float]

    def as_rows(self) -> Iterator[Tuple[str, float, Optional[float]]]:
        yield "Forward Difference", self.forward, self.forward_error
        yield "Backward Difference", self.backward, self.backward_error
        yield "Centered Difference", self.centered, self.centered_error


@dataclass
class MethodResult:
    method: str
    iterations: List[IterationRecord] = field(default_factory=list)
    terminated_early: bool = False
    message: str = ""

    @property
    def root(self) -> Optional[float]:
        return self.iterations[-1].approximation if self.iterations else None

    @property
    def final_error(self) -> Optional[float]:
        return self.iterations[-1].relative_error if self.iterations else None


# --------------------------------------------------------------------------- #
# Rounding, error and validation helpers
# --------------------------------------------------------------------------- #


def round_value(value: Optional[float], precision: int) -> Optional[float]:
    if value is None:
        return None
    return round(value, precision)


def relative_error(
    approx: float,
    reference: Optional[float],
    floor: float = 0.0,
) -> Optional[float]:
    """
    Percentage error of ``approx`` against ``reference``.

    Returns None when there is no usable reference: it is missing, exactly
    zero, or smaller in magnitude than ``floor``.
    """
    if reference is None or reference == 0 or abs(reference) < floor:
        return None
    error = abs((approx - reference) / reference) * 100
    return error if math.isfinite(error) else None


def classify_error(error: Optional[float]) -> str:
    """Bucket a percentage error into low / medium / high severity."""
    if error is None:
        return "unknown"
    if error < 1:
        return "low"
    if error < 10:
        return "medium"
    return "high"


def _is_real(value) -> bool:
    return isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool)


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def validate_guess(value, name: str = "Initial guess") -> float:
    if value is None:
        raise ValidationError(f"{name} is required.")
    if not _is_real(value) or not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number.")
    return float(value)


def validate_iterations(iterations) -> int:
    if not _is_integer(iterations) or not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
        raise ValidationError(
            f"Iterations must be an integer between {MIN_ITERATIONS} and {MAX_ITERATIONS}."
        )
    return int(iterations)


def validate_precision(precision) -> int:
    if not _is_integer(precision) or not MIN_PRECISION <= precision <= MAX_PRECISION:
        raise ValidationError(
            f"Precision must be an integer between {MIN_PRECISION} and {MAX_PRECISION}."
        )
    return int(precision)


def validate_step(h) -> float:
    if not _is_real(h) or not math.isfinite(h):
        raise ValidationError("Step size h must be a finite number.")
    if h <= MIN_STEP:
        raise ValidationError(f"Step size h must be greater than {MIN_STEP:g}.")
    return float(h)


def _record(
    iteration: int,
    approximation: float,
    error: Optional[float],
    precision: int,
) -> IterationRecord:
    return IterationRecord(
        iteration=iteration,
        approximation=round_value(approximation, precision),
        relative_error=round_value(error, precision),
    )


def _ensure_finite(value: float, method: str, iteration: int) -> float:
    if not math.isfinite(value):
        raise EvaluationError(
            f"{method} diverged to a non-finite value at iteration {iteration}."
        )
    return value


# --------------------------------------------------------------------------- #
# Root-finding methods
# --------------------------------------------------------------------------- #


def fixed_point_iteration(
    g_expr: str,
    x0: float,
    iterations: int,
    precision: int,
) -> List[IterationRecord]:
    """
    Iterate x_{k+1} = g(x_k) exactly ``iterations`` times.

    There is no convergence test. The first record has no relative error
    because there is no earlier approximation to compare against.
    """
    x = validate_guess(x0)
    validate_iterations(iterations)
    validate_precision(precision)
    g = build_function(g_expr)

    records: List[IterationRecord] = []
    for i in range(1, iterations + 1):
        x_next = g(x)
        # An iterate of exactly 0.0 has no relative error either.
        error = relative_error(x, x_next) if i > 1 else None
        records.append(_record(i, x_next, error, precision))
        x = x_next

    logger.debug("Fixed point ran %d iterations of g(x)=%s", len(records), g_expr)
    return records


def newton_raphson(
    expr: str,
    x0: float,
    iterations: int,
    precision: int,
) -> List[IterationRecord]:
    """
    Newton-Raphson with an exact symbolic derivative.

    Stops early, without raising, once |f'(x)| drops below
    ``DEGENERACY_THRESHOLD``; the records produced so far are returned.
    """
    x = validate_guess(x0)
    validate_iterations(iterations)
    validate_precision(precision)
    f = build_function(expr)
    df = build_derivative(expr)

    records: List[IterationRecord] = []
    for i in range(1, iterations + 1):
        fx = f(x)
        dfx = df(x)
        if abs(dfx) < DEGENERACY_THRESHOLD:
            logger.info(
                "Newton-Raphson stopped at iteration %d: |f'(%r)| = %.3e", i, x, abs(dfx)
            )
            break
        x_new = _ensure_finite(x - fx / dfx, "Newton-Raphson", i)
        records.append(_record(i, x_new, relative_error(x, x_new), precision))
        x = x_new

    logger.debug("Newton-Raphson produced %d records for f(x)=%s", len(records), expr)
    return records


def secant(
    expr: str,
    x0: float,
    x1: float,
    iterations: int,
    precision: int,
) -> List[IterationRecord]:
    """Secant method; stops early when |f(x1) - f(x0)| is below the threshold."""
    x0 = validate_guess(x0, "First initial guess (x0)")
    if x1 is None:
        raise ValidationError("Second initial guess (x1) is required for the Secant method.")
    x1 = validate_guess(x1, "Second initial guess (x1)")
    validate_iterations(iterations)
    validate_precision(precision)
    f = build_function(expr)

    records: List[IterationRecord] = []
    fx0 = f(x0)
    for i in range(1, iterations + 1):
        fx1 = f(x1)
        denominator = fx1 - fx0
        if abs(denominator) < DEGENERACY_THRESHOLD:
            logger.info(
                "Secant stopped at iteration %d: |f(x1) - f(x0)| = %.3e",
                i,
                abs(denominator),
            )
            break
        x2 = _ensure_finite(x1 - fx1 * (x1 - x0) / denominator, "Secant", i)
        records.append(_record(i, x2, relative_error(x1, x2), precision))
        x0, fx0 = x1, fx1
        x1 = x2

    logger.debug("Secant produced %d records for f(x)=%s", len(records), expr)
    return records


def fixed_point_g(function_expr: str) -> str:
    """Auxiliary transform g(x) = x - f(x); its fixed points are roots of f."""
    parse_expression(function_expr)
    return f"x - ({function_expr})"


# --------------------------------------------------------------------------- #
# Derivative approximation
# --------------------------------------------------------------------------- #


def _symbolic_value(expr: str, x: float) -> Optional[float]:
    try:
        return build_derivative(expr)(x)
    except EvaluationError as exc:
        logger.info("No symbolic reference for f(x)=%s at x=%r: %s", expr, x, exc)
        return None


def approximate_derivative(
    expr: str,
    x: float,
    h: float,
    precision: int,
) -> DerivativeResult:
    """
    Forward, backward and centered differences of f at ``x`` with step ``h``.

    Each estimate is compared with the exact derivative when sympy can provide
    one; otherwise ``symbolic`` and every error are None. Failing to evaluate
    f itself at x, x + h or x - h raises EvaluationError.
    """
    x = validate_guess(x, "Value of x")
    h = validate_step(h)
    validate_precision(precision)
    f = build_function(expr)

    f_x = f(x)
    f_plus = f(x + h)
    f_minus = f(x - h)

    forward = (f_plus - f_x) / h
    backward = (f_x - f_minus) / h
    centered = (f_plus - f_minus) / (2 * h)

    symbolic = _symbolic_value(expr, x)

    def error_of(approx: float) -> Optional[float]:
        return round_value(
            relative_error(approx, symbolic, floor=DEGENERACY_THRESHOLD), precision
        )

    return DerivativeResult(
        forward=round_value(forward, precision),
        backward=round_value(backward, precision),
        centered=round_value(centered, precision),
        forward_error=error_of(forward),
        backward_error=error_of(backward),
        centered_error=error_of(centered),
        symbolic=round_value(symbolic, precision),
    )


# --------------------------------------------------------------------------- #
# Public runner
# --------------------------------------------------------------------------- #

MethodParams = Dict[str, float]


def run_method(
    method: str,
    *,
    function_expr: str,
    params: MethodParams,
    g_expr: Optional[str] = None,
) -> MethodResult:
    """
    Dispatch helper that evaluates the chosen root-finding method.

    Parameters
    ----------
    method : Literal key identifying the algorithm (see ``METHOD_LABELS``).
    function_expr : f(x) expression supplied by the user.
    params : ``initial_guess``, ``iterations``, ``precision`` and, for the
        Secant method, ``x1``.
    g_expr : optional g(x) for Fixed Point; defaults to x - f(x).
    """

    method = method.lower()
    iterations = params["iterations"]
    precision = params["precision"]

    if method == "fixed_point":
        records = fixed_point_iteration(
            g_expr or fixed_point_g(function_expr),
            x0=params["initial_guess"],
            iterations=iterations,
            precision=precision,
        )
        return MethodResult(
            method, records, message=f"Completed {len(records)} iterations."
        )
    if method == "newton_raphson":
        records = newton_raphson(
            function_expr,
            x0=params["initial_guess"],
            iterations=iterations,
            precision=precision,
        )
        stop_reason = "Derivative too small; Newton-Raphson cannot proceed."
    elif method == "secant":
        records = secant(
            function_expr,
            x0=params["initial_guess"],
            x1=params.get("x1"),
            iterations=iterations,
            precision=precision,
        )
        stop_reason = "f(x1) - f(x0) too small; Secant method cannot proceed."
    else:
        raise ValueError(f"Unknown method: {method}")

    if len(records) < iterations:
        return MethodResult(
            method,
            records,
            terminated_early=True,
            message=f"{stop_reason} Stopped after {len(records)} iterations.",
        )
    return MethodResult(method, records, message=f"Completed {len(records)} iterations.")


# Mapping useful for UI layers
METHOD_LABELS = {
    "fixed_point": "Fixed Point Iteration",
    "newton_raphson": "Newton–Raphson Method",
    "secant": "Secant Method",
}

ERROR_LEVEL_LABELS = {
    "low": "below 1%",
    "medium": "1% to 10%",
    "high": "10% or more",
    "unknown": "no reference value",
}
