import numpy as np
import pytest

from symcalc.errors import InconsistentSystemError, NoSolutionError, UnsupportedOperationError
from symcalc.expressions import Equation, EquationSystem, Number, Variable
from symcalc.parsing import parse
from symcalc.systems import EquationSystemSolver, solve_system, system_from_augmented


def test_two_unknowns() -> None:
    result = solve_system(parse("x + y = 10, x - y = 2"))
    assert result.final == EquationSystem((
        Equation(Variable("x"), Number(6)),
        Equation(Variable("y"), Number(4)),
    ))
    descriptions = [step.description for step in result.steps]
    assert descriptions[0] == "original system"
    assert descriptions[-1] == "unique solution"


def test_three_unknowns_match_numpy() -> None:
    result = solve_system(parse("2x + y - z = 8; -3x - y + 2z = -11; -2x + y + 2z = -3"))
    coefficients = np.array([[2, 1, -1], [-3, -1, 2], [-2, 1, 2]], dtype=float)
    expected = np.linalg.solve(coefficients, np.array([8, -11, -3], dtype=float))
    values = [equation.right.value for equation in result.solutions]
    assert values == pytest.approx(expected.tolist())
    assert [str(equation.left) for equation in result.solutions] == ["x", "y", "z"]


def test_infinitely_many_solutions() -> None:
    result = solve_system(parse("x + y = 2; 2x + 2y = 4"))
    assert result.solutions == [
        Equation(Variable("x"), parse("2 - y")),
        Equation(Variable("y"), Variable("y")),
    ]
    assert "free: y" in result.steps[-1].description


def test_inconsistent_system() -> None:
    with pytest.raises(InconsistentSystemError, match="inconsistent") as info:
        solve_system(parse("x + y = 1; x + y = 2"))
    assert isinstance(info.value, NoSolutionError)
    assert info.value.to_dict()["code"] == "inconsistent_system"


def test_non_linear_term_is_rejected() -> None:
    with pytest.raises(UnsupportedOperationError, match="linear"):
        solve_system(parse("x*y = 1; x + y = 2"))


def test_single_equation_is_rejected() -> None:
    with pytest.raises(UnsupportedOperationError):
        EquationSystemSolver().process(parse("x = 1"))


def test_system_from_augmented_renders_rows() -> None:
    augmented = np.array([[1.0, -2.0, 3.0], [0.0, 0.0, 0.0]])
    system = system_from_augmented(augmented, ["x", "y"])
    assert str(system) == "x - 2 * y = 3; 0 = 0"


def test_solution_satisfies_every_equation() -> None:
    system = parse("2x + 3y - z = 5; x - y + 2z = 5; 3x + y + z = 8")
    result = solve_system(system)
    bindings = {str(equation.left): equation.right.value for equation in result.solutions}
    assert bindings == {"x": 1, "y": 2, "z": 3}
    for equation in system.equations:
        assert equation.left.evaluate(bindings) == pytest.approx(equation.right.evaluate(bindings))


def test_round_off_snaps_to_integers() -> None:
    augmented = np.array([[1.0, 0.0, 1.9999999999999996], [0.0, 1.0, -1e-17]])
    system = system_from_augmented(augmented, ["x", "y"])
    assert [equation.right.value for equation in system.equations] == [2.0, 0.0]
    assert str(system) == "x = 2; y = 0"
    assert system_from_augmented(np.array([[1.0, 0.5]]), ["x"]).equations[0].right.value == 0.5
