import math
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from app.config import BaseConfig
from app.log import get_logger
from symcalc import matrix_ops
from symcalc.engine import (
    CalculateType,
    apply_matrix_operation,
    calculate,
    calculate_matrix,
    parse_values,
    result_to_dict,
)
from symcalc.errors import AlgebraError, DimensionMismatchError, UnsupportedOperationError
from symcalc.expressions import Equation
from symcalc.matrix_formula import MatrixFormatter
from symcalc.matrix_solver import MatrixOperation
from symcalc.terms import SortOrder


class CalculateRequest(BaseModel):
    text: str
    mode: str = "auto"
    sort_order: str = "normal"
    variable: str | None = None
    latex: bool = False


class MatrixRequest(BaseModel):
    matrices: dict[str, str]
    formula: str = ""
    operation: str | None = None
    power: int = 2
    scalar: float | None = None


class MatrixEditRequest(BaseModel):
    formula: str = ""
    token: str = ""
    action: str = "add"


class EvaluateRequest(BaseModel):
    text: str
    values: str


class ExpressionInfo(BaseModel):
    text: str
    latex: str


class StepInfo(BaseModel):
    index: int
    description: str
    expression: str
    latex: str


class Summary(BaseModel):
    runtime_ms: float | None = None
    total_steps: int
    timestamp: str


class CalculateResponse(BaseModel):
    original: ExpressionInfo
    final: ExpressionInfo
    final_answer: str
    solutions: list[ExpressionInfo] = Field(default_factory=list)
    steps: list[StepInfo]
    summary: Summary


class MatrixEditResponse(BaseModel):
    success: bool
    formula: str
    error: str | None = None


class EvaluateResponse(BaseModel):
    expression: str
    values: dict[str, float]
    value: float | None
    validation_status: str | None = None


def _enum_value(enum_type, value: str, what: str):
    try:
        return enum_type(value.lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise UnsupportedOperationError(
            f"Unknown {what} '{value}'. Expected one of: {choices}.") from None


def _finite(value: float) -> float | None:
    return None if math.isnan(value) or math.isinf(value) else value


def create_app(config=BaseConfig) -> FastAPI:
    logger = get_logger("symcalc.api", config.LOG_LEVEL)
    formatter = MatrixFormatter()

    app = FastAPI(title="SymCalc API")
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def check_length(*texts: str) -> None:
        for text in texts:
            if text and len(text) > config.MAX_INPUT_LENGTH:
                logger.warning("rejected input of %d characters", len(text))
                raise HTTPException(status_code=400, detail={
                    "code": "input_too_long",
                    "message": f"Input is limited to {config.MAX_INPUT_LENGTH} characters.",
                    "details": {},
                })

    def run(name: str, func):
        """Call *func*, mapping engine errors to HTTP 400 and the rest to 500."""
        t_start = time.perf_counter()
        try:
            result = func()
        except AlgebraError as e:
            logger.warning("%s rejected: %s", name, e.message)
            raise HTTPException(status_code=400, detail=e.to_dict())
        except HTTPException:
            raise
        except Exception as e:
            logger.exception("%s failed", name)
            raise HTTPException(status_code=500, detail=f"Solver error: {str(e)}")
        runtime_ms = round((time.perf_counter() - t_start) * 1000, 2)
        logger.info("%s handled in %.2f ms", name, runtime_ms)
        return result, runtime_ms

    def load_matrices(matrices: dict) -> dict:
        loaded = {}
        for name, text in matrices.items():
            check_length(text)
            matrix = matrix_ops.matrix_from_text(text, name)
            if max(matrix.rows, matrix.columns) > config.MAX_MATRIX_ORDER:
                raise DimensionMismatchError(
                    f"Matrix {name} is {matrix.rows}×{matrix.columns}; the limit is "
                    f"{config.MAX_MATRIX_ORDER}×{config.MAX_MATRIX_ORDER}.")
            loaded[name] = matrix
        return loaded

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/calculate", response_model=CalculateResponse)
    def calculate_endpoint(req: CalculateRequest):
        text = req.text.strip()
        if not text:
            raise HTTPException(status_code=400, detail="Expression cannot be empty.")
        check_length(text)

        def solve():
            mode = _enum_value(CalculateType, req.mode, "mode")
            sort_order = _enum_value(SortOrder, req.sort_order, "sort order")
            return calculate(text, mode, sort_order, req.variable or None, req.latex)

        result, runtime_ms = run("calculate", solve)
        return result_to_dict(result, runtime_ms)

    @app.post("/api/matrix", response_model=CalculateResponse)
    def matrix_endpoint(req: MatrixRequest):
        check_length(req.formula)

        def solve():
            matrices = load_matrices(req.matrices)
            if req.operation:
                operation = _enum_value(MatrixOperation, req.operation, "matrix operation")
                if not matrices:
                    raise DimensionMismatchError("No matrix was provided.")
                name, matrix = next(iter(matrices.items()))
                return apply_matrix_operation(matrix, operation, req.power, req.scalar, name)
            return calculate_matrix(req.formula, matrices, formatter)

        result, runtime_ms = run("matrix", solve)
        return result_to_dict(result, runtime_ms)

    @app.post("/api/matrix/edit", response_model=MatrixEditResponse)
    def matrix_edit_endpoint(req: MatrixEditRequest):
        check_length(req.formula, req.token)
        action = req.action.lower()
        if action == "add":
            outcome = formatter.add_and_format(req.formula, req.token)
        elif action == "remove":
            outcome = formatter.remove_last_element(req.formula)
        elif action == "validate":
            outcome = formatter.validate_completeness(req.formula)
            if outcome.success:
                outcome = formatter.validate_expression(req.formula)
        else:
            raise HTTPException(status_code=400, detail={
                "code": "unsupported_operation",
                "message": f"Unknown edit action '{req.action}'.",
                "details": {},
            })
        if not outcome.success:
            logger.warning("formula edit rejected: %s", outcome.error)
        return MatrixEditResponse(success=outcome.success, formula=outcome.formatted,
                                  error=outcome.error)

    @app.post("/api/evaluate", response_model=EvaluateResponse)
    def evaluate_endpoint(req: EvaluateRequest):
        check_length(req.text, req.values)

        def evaluate():
            values = parse_values(req.values)
            final = calculate(req.text, CalculateType.SIMPLIFY).final
            if isinstance(final, Equation):
                # equation value: LHS - RHS
                left = final.left.evaluate(values)
                right = final.right.evaluate(values)
                holds = math.isclose(left, right, rel_tol=1e-9, abs_tol=1e-9)
                return final, values, left - right, "pass" if holds else "fail"
            return final, values, final.evaluate(values), None

        (final, values, value, status), _ = run("evaluate", evaluate)
        return EvaluateResponse(expression=final.to_display_text(), values=values,
                                value=_finite(value), validation_status=status)

    return app


app = create_app()
