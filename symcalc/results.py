"""Derivation trace: steps and the result every solver returns."""

from dataclasses import dataclass, field
from enum import Enum

from symcalc.expressions import Matrix


class DisplayPattern(Enum):
    TEXT = "text"
    LATEX = "latex"


@dataclass(frozen=True)
class CalculationStep:
    """One recorded intermediate state of a transformation."""

    expression: object
    index: int = 0
    description: str = ""
    description_behind: bool = True

    def display(self, pattern: DisplayPattern = DisplayPattern.TEXT) -> str:
        prefix = "    => " if self.index > 0 else ""
        if pattern is DisplayPattern.LATEX:
            body = self.expression.to_latex()
        else:
            body = self.expression.to_display_text()
        if not self.description:
            return f"{prefix}{body}"
        if self.description_behind or pattern is DisplayPattern.LATEX:
            return f"{prefix}{body}  // {self.description}"
        return f"// {self.description}\n{prefix}{body}"

    def __str__(self) -> str:
        return self.display(DisplayPattern.TEXT)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "description": self.description,
            "expression": self.expression.to_display_text(),
            "latex": self.expression.to_latex(),
        }


@dataclass
class CalculationResult:
    original: object
    final: object
    steps: list = field(default_factory=list)
    solutions: list = field(default_factory=list)

    @property
    def answer_text(self) -> str:
        return self.final.to_display_text()


def step_text(expression) -> str:
    """Text used to detect a step that repeats the previous one."""
    if isinstance(expression, Matrix):
        return f"{expression.name}\n{expression}"
    return str(expression)


class StepRecorder:
    """Append-only step list that drops a step repeating the previous text."""

    def __init__(self, start_index: int = 0):
        self.steps = []
        self.next_index = start_index

    def add(self, expression, description: str = "",
            description_behind: bool = True) -> bool:
        if self.steps and step_text(self.steps[-1].expression) == step_text(expression):
            return False
        self.steps.append(CalculationStep(expression, self.next_index,
                                          description, description_behind))
        self.next_index += 1
        return True

    def extend(self, steps) -> None:
        """Re-index and append steps produced by a nested solver."""
        for step in steps:
            self.add(step.expression, step.description, step.description_behind)

    @property
    def last(self):
        return self.steps[-1] if self.steps else None

    def __len__(self) -> int:
        return len(self.steps)
