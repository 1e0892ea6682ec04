"""
Command-Line Interface for the numerical approximation toolkit.

The CLI walks beginners through:
    1. Choosing a root-finding method (to approximate e via ln(x) - 1 = 0, or
       any other root) or the finite-difference derivative approximator.
    2. Entering the expression and numeric parameters (defaults are offered).
    3. Viewing the per-iteration table or the derivative comparison, and
       optionally saving the results as CSV.

All numerical work happens in `approx_solver`; this module only prompts,
prints and exports.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import os
from typing import Dict, List, Optional, Sequence

from approx_solver import (
    ERROR_LEVEL_LABELS,
    MAX_ITERATIONS,
    MAX_PRECISION,
    METHOD_LABELS,
    MIN_ITERATIONS,
    MIN_PRECISION,
    DerivativeResult,
    EvaluationError,
    IterationRecord,
    MethodResult,
    ValidationError,
    approximate_derivative,
    classify_error,
    run_method,
)

DERIVATIVE_KEY = "derivative"
DERIVATIVE_LABEL = "Derivative Approximation (finite differences)"

DEFAULTS = {
    "function_expr": "ln(x) - 1",
    "x0": 2.0,
    "x1": 3.0,
    "iterations": 10,
    "precision": 6,
    "derivative_expr": "x^2 + 3x + 2",
    "point": 1.0,
    "h": 0.01,
}

ITERATION_HEADERS = ["Iteration", "Approximation", "Relative Error (%)"]
DERIVATIVE_HEADERS = ["Method", "Approximation", "Relative Error (%)", "Symbolic Value"]
MISSING = "N/A"


# --------------------------------------------------------------------------- #
# CSV export
# --------------------------------------------------------------------------- #


def _csv_text(headers: Sequence[str], rows: List[List[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def _or_missing(value):
    return MISSING if value is None else value


def iterations_to_csv(records: Sequence[IterationRecord]) -> str:
    rows = [
        [r.iteration, r.approximation, _or_missing(r.relative_error)] for r in records
    ]
    return _csv_text(ITERATION_HEADERS, rows)


def derivative_to_csv(result: DerivativeResult) -> str:
    rows = [
        [label, approx, _or_missing(error), _or_missing(result.symbolic)]
        for label, approx, error in result.as_rows()
    ]
    return _csv_text(DERIVATIVE_HEADERS, rows)


def save_csv(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(content)


# --------------------------------------------------------------------------- #
# Output helpers
# --------------------------------------------------------------------------- #


def _format_value(value) -> str:
    if value is None:
        return "--"
    if isinstance(value, float) and math.isnan(value):
        return "--"
    return str(value)


def _print_table(columns: List[str], rows: List[List[str]]) -> None:
    widths = [
        max(len(col), *(len(row[idx]) for row in rows))
        for idx, col in enumerate(columns)
    ]
    rule = "-" * (sum(widths) + 3 * (len(columns) - 1))

    def print_row(values: List[str]) -> None:
        line = " | ".join(value.ljust(widths[idx]) for idx, value in enumerate(values))
        print(line)

    print(rule)
    print_row(columns)
    print(rule)
    for row in rows:
        print_row(row)
    print(rule)


def _print_iterations(result: MethodResult) -> None:
    if not result.iterations:
        print("No iteration details to display.")
        return
    rows = [
        [str(r.iteration), _format_value(r.approximation), _format_value(r.relative_error)]
        for r in result.iterations
    ]
    print("\nDetailed Iterations")
    _print_table(ITERATION_HEADERS, rows)


def _display_summary(result: MethodResult) -> None:
    print("\nSummary")
    print("-------")
    print(f"Method        : {METHOD_LABELS[result.method]}")
    print(f"Status        : {'Stopped early' if result.terminated_early else 'Completed'}")
    print(f"Approximation : {_format_value(result.root)}")
    print(f"Final error   : {_format_value(result.final_error)}")
    print(f"Iterations    : {len(result.iterations)}")
    print(f"Message       : {result.message}")


def _display_derivative(result: DerivativeResult) -> None:
    print(f"\nSymbolic derivative value: {_format_value(result.symbolic)}")
    rows = []
    for label, approx, error in result.as_rows():
        level = classify_error(error)
        rows.append(
            [
                label,
                _format_value(approx),
                _format_value(error),
                f"{level} ({ERROR_LEVEL_LABELS[level]})",
            ]
        )
    _print_table(["Method", "Approximation", "Relative Error (%)", "Accuracy"], rows)


# --------------------------------------------------------------------------- #
# Prompts
# --------------------------------------------------------------------------- #


def _prompt_float(message: str, *, default: Optional[float] = None) -> float:
    while True:
        raw = input(f"{message} " + (f"[default: {default}] " if default is not None else ""))
        if not raw.strip():
            if default is not None:
                return default
            print("Value is required. Please try again.")
            continue
        try:
            value = float(raw)
        except ValueError:
            print("Invalid number. Please enter a numeric value.")
            continue
        if not math.isfinite(value):
            print("Invalid number. Please enter a finite value.")
            continue
        return value


def _prompt_int(
    message: str,
    *,
    default: Optional[int] = None,
    minimum: int,
    maximum: int,
) -> int:
    while True:
        raw = input(f"{message} " + (f"[default: {default}] " if default is not None else ""))
        if not raw.strip():
            if default is not None:
                return default
            print("Value is required. Please try again.")
            continue
        try:
            value = int(raw)
        except ValueError:
            print("Invalid integer. Please enter a whole number.")
            continue
        if not minimum <= value <= maximum:
            print(f"Please enter a whole number between {minimum} and {maximum}.")
            continue
        return value


def _prompt_function(prompt: str, *, default: Optional[str] = None) -> str:
    while True:
        expr = input(f"{prompt} " + (f"[default: {default}] " if default else "")).strip()
        if expr:
            return expr
        if default:
            return default
        print("Expression cannot be empty. Please try again.")


def _prompt_iterations() -> int:
    return _prompt_int(
        "Enter number of iterations:",
        default=DEFAULTS["iterations"],
        minimum=MIN_ITERATIONS,
        maximum=MAX_ITERATIONS,
    )


def _prompt_precision() -> int:
    return _prompt_int(
        "Enter precision (decimal places):",
        default=DEFAULTS["precision"],
        minimum=MIN_PRECISION,
        maximum=MAX_PRECISION,
    )


def _offer_csv(content: str, default_name: str) -> None:
    answer = input("\nSave results to CSV? (y/n): ").strip().lower()
    if answer not in {"y", "yes"}:
        return
    path = input(f"File name [default: {default_name}]: ").strip() or default_name
    try:
        save_csv(path, content)
    except OSError as exc:
        print(f"Could not save CSV: {exc}")
        return
    print(f"Saved results to {path}")


# --------------------------------------------------------------------------- #
# Workflows
# --------------------------------------------------------------------------- #


def _run_root_method(method_key: str) -> None:
    function_expr = _prompt_function("Enter f(x):", default=DEFAULTS["function_expr"])

    g_expr = None
    if method_key == "fixed_point":
        g_expr = input("Enter g(x) for Fixed Point [default: x - f(x)]: ").strip() or None

    params: Dict[str, float] = {
        "initial_guess": _prompt_float(
            "Enter initial guess (x0):", default=DEFAULTS["x0"]
        ),
    }
    if method_key == "secant":
        params["x1"] = _prompt_float(
            "Enter second initial guess (x1):", default=DEFAULTS["x1"]
        )
    params["iterations"] = _prompt_iterations()
    params["precision"] = _prompt_precision()

    result = run_method(
        method_key,
        function_expr=function_expr,
        params=params,
        g_expr=g_expr,
    )
    _print_iterations(result)
    _display_summary(result)
    if result.iterations:
        _offer_csv(iterations_to_csv(result.iterations), f"e_approximation_{method_key}.csv")


def _run_derivative() -> None:
    expr = _prompt_function("Enter f(x):", default=DEFAULTS["derivative_expr"])
    point = _prompt_float("Enter the value of x:", default=DEFAULTS["point"])
    h = _prompt_float("Enter step size (h):", default=DEFAULTS["h"])
    precision = _prompt_precision()

    result = approximate_derivative(expr, point, h, precision)
    _display_derivative(result)
    _offer_csv(derivative_to_csv(result), f"derivative_approximation_{point}.csv")


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("APPROX_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


def main() -> None:
    _configure_logging()
    print("=" * 70)
    print("Numerical Approximation Toolkit - CLI")
    print("Enter equations using the variable x. Example: ln(x) - 1 or x^2 + 3x + 2")
    print("=" * 70)

    options = list(METHOD_LABELS.items()) + [(DERIVATIVE_KEY, DERIVATIVE_LABEL)]

    while True:
        print("\nAvailable Options:")
        for idx, (_, label) in enumerate(options, start=1):
            print(f"  {idx}. {label}")
        print("  0. Exit")

        choice_raw = input("\nSelect an option by number: ").strip()
        if choice_raw == "0":
            print("Goodbye!")
            break
        try:
            choice = int(choice_raw)
            if choice < 1:
                raise IndexError(choice)
            key = options[choice - 1][0]
        except (ValueError, IndexError):
            print("Invalid selection. Please choose a valid option number.")
            continue

        try:
            if key == DERIVATIVE_KEY:
                _run_derivative()
            else:
                _run_root_method(key)
        except (ValidationError, EvaluationError) as exc:
            print(f"Input error: {exc}")
            continue

        again = input("\nWould you like to run another approximation? (y/n): ").strip()
        if again.lower() not in {"y", "yes"}:
            print("Thanks for using the Numerical Approximation Toolkit!")
            break


if __name__ == "__main__":
    main()
