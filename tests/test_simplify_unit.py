import pytest
import sympy
from sympy import symbols, sympify

from symcalc.expressions import Equation
from symcalc.parsing import parse
from symcalc.results import DisplayPattern
from symcalc.simplify import SimplificationSolver, simplify
from symcalc.terms import SortOrder

X, Y = symbols("x y")

SAMPLE_POINTS = [(0.5, -1.25), (2.0, 3.0), (-1.5, 0.75)]


def _sympy_value(text: str, x: float, y: float) -> float:
    return float(sympify(text.replace("^", "**")).subs({X: x, Y: y}))


def test_reference_scenario() -> None:
    result = SimplificationSolver().process(parse("2*x + 3*y + x*(x+y) - 3*x"))
    assert str(result.final) == "x² + x * y - x + 3 * y"
    descriptions = [step.description for step in result.steps]
    assert descriptions[0] == ""
    assert "apply the distributive law" in descriptions
    assert "combine like terms (merged 2 terms)" in descriptions
    assert descriptions[-1] == "sort terms"
    assert [step.index for step in result.steps] == list(range(len(result.steps)))


@pytest.mark.parametrize(
    "text",
    [
        "2*x + 3*y + x*(x+y) - 3*x",
        "(x + 1)^2 - (x - 1)^2",
        "(x - y)^2 + 2*x*y",
        "(x + y)*(x - y) + y^2",
        "-(x - 3)*(2*y + 1)",
        "x/2 + x/4",
        "3*x^2*y - x*y*x + 4",
        "(2 + 3)*x - x^1 + y^0",
        "-x*-y + 2",
    ],
)
def test_simplify_matches_sympy(text: str) -> None:
    final = simplify(parse(text))
    for x, y in SAMPLE_POINTS:
        assert final.evaluate({"x": x, "y": y}) == pytest.approx(_sympy_value(text, x, y))


@pytest.mark.parametrize(
    "text",
    [
        "2*x + 3*y + x*(x+y) - 3*x",
        "(x + 1)^2",
        "x - x",
        "4*y - 2*(y + x)",
    ],
)
def test_simplify_is_idempotent(text: str) -> None:
    once = simplify(parse(text))
    assert str(simplify(once)) == str(once)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("-x - y - abs(y)", "-x - y - abs(y)"),
        ("sin(x) + x + 1", "x + sin(x) + 1"),
        ("2*x + 3*y + x*(x+y) - 3*x", "x² + x * y - x + 3 * y"),
    ],
)
def test_simplified_result_needs_no_further_steps(text: str, expected: str) -> None:
    once = simplify(parse(text))
    assert str(once) == expected
    again = SimplificationSolver().process(once)
    assert len(again.steps) == 1
    assert again.final == once


def test_expanded_form_matches_sympy_expand() -> None:
    final = simplify(parse("(x + 1)^2"))
    expected = sympy.expand((X + 1) ** 2)
    assert sympify(str(final).replace("²", "**2").replace(" ", "")) == expected


class TestRules:
    def test_constant_folding(self) -> None:
        result = SimplificationSolver().process(parse("2 + 3"))
        assert str(result.final) == "5"
        assert result.steps[-1].description == "constant addition: 2 + 3 = 5"

    def test_power_rules(self) -> None:
        result = SimplificationSolver().process(parse("x^0"))
        assert str(result.final) == "1"
        assert result.steps[-1].description == "power rule: x^0 = 1"
        assert str(simplify(parse("x^1"))) == "x"

    def test_square_of_square_root(self) -> None:
        result = SimplificationSolver().process(parse("sqrt(x + 1)^2"))
        assert str(result.final) == "x + 1"
        assert "square of a square root" in [s.description for s in result.steps]

    def test_function_evaluation(self) -> None:
        result = SimplificationSolver().process(parse("sqrt(16) + x"))
        assert str(result.final) == "x + 4"
        assert "evaluate function: sqrt(16) = 4" in [s.description for s in result.steps]

    def test_constant_division(self) -> None:
        final = simplify(parse("x / 4"))
        assert str(final) == "0.25 * x"

    def test_cancelling_terms_give_zero(self) -> None:
        assert str(simplify(parse("x - x"))) == "0"

    def test_reverse_sort_order(self) -> None:
        result = SimplificationSolver().process(parse("1 + x + x^2"), SortOrder.REVERSED)
        assert str(result.final) == "x + x² + 1"
        assert result.steps[-1].description == "sort terms in reverse order"

    def test_normal_sort_order(self) -> None:
        assert str(simplify(parse("1 + x + x^2"))) == "x² + x + 1"


class TestEquations:
    def test_both_sides_simplified(self) -> None:
        result = SimplificationSolver().process(parse("2x + 3x = 10 - 4"))
        assert result.final == Equation(parse("5 * x"), parse("6"))

    def test_unchanged_expression_has_single_step(self) -> None:
        result = SimplificationSolver().process(parse("x + 1"))
        assert len(result.steps) == 1
        assert result.final == parse("x + 1")


def test_step_display_patterns() -> None:
    result = SimplificationSolver().process(parse("2 + 3"))
    assert result.steps[0].display() == "2 + 3"
    assert result.steps[1].display() == "    => 5  // constant addition: 2 + 3 = 5"
    assert result.steps[1].display(DisplayPattern.LATEX).startswith("    => 5")
    assert result.steps[1].to_dict() == {
        "index": 1,
        "description": "constant addition: 2 + 3 = 5",
        "expression": "5",
        "latex": "5",
    }


def test_negation_is_distributed() -> None:
    result = SimplificationSolver().process(parse("-(x - 3)"))
    assert str(result.final) == "-x + 3"
    assert "distribute the negation" in [s.description for s in result.steps]
