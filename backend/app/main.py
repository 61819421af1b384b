from typing import Any, Literal, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from algebra import EngineError
from app import service

app = FastAPI(title="SymCore API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ExpressionRequest(BaseModel):
    expression: str


class EvaluateRequest(BaseModel):
    expression: str
    bindings: dict[str, Union[int, float, str]] = {}


class CalculusRequest(BaseModel):
    expression: str
    variable: Optional[str] = None


class EquationRequest(BaseModel):
    equation: str
    variable: Optional[str] = None


class LimitRequest(BaseModel):
    expression: str
    point: Union[int, float, str] = 0
    variable: Optional[str] = None
    direction: Literal["both", "left", "right"] = "both"


class DefiniteIntegralRequest(BaseModel):
    expression: str
    lower: Union[int, float, str] = 0
    upper: Union[int, float, str] = 1
    variable: Optional[str] = None
    method: Literal["auto", "symbolic", "numeric"] = "auto"


class SystemRequest(BaseModel):
    equations: list[str]
    variables: Optional[list[str]] = None


class Summary(BaseModel):
    runtime_ms: float
    timestamp: str
    engine: str


class ExpressionResponse(BaseModel):
    expression: str
    result: str
    summary: Summary


class EvaluateResponse(ExpressionResponse):
    value: Any = None
    symbolic: bool


class CalculusResponse(ExpressionResponse):
    variable: str


class IntegrateResponse(CalculusResponse):
    integrated: bool


class ValueResponse(CalculusResponse):
    value: Any = None


class SolveResponse(BaseModel):
    equation: str
    variable: str
    solutions: list
    summary: Summary


class SystemResponse(BaseModel):
    equations: list[str]
    solution: Optional[dict] = None
    consistent: bool
    summary: Summary


def _require(text: str, what: str) -> str:
    text = text.strip()
    if not text:
        raise HTTPException(status_code=400, detail=f"{what} cannot be empty.")
    return text


def _run(operation, *args):
    try:
        return operation(*args)
    except EngineError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Engine error: {str(e)}")


@app.post("/api/simplify", response_model=ExpressionResponse)
def simplify(req: ExpressionRequest):
    return _run(service.simplify_expression, _require(req.expression, "Expression"))


@app.post("/api/expand", response_model=ExpressionResponse)
def expand(req: ExpressionRequest):
    return _run(service.expand_expression, _require(req.expression, "Expression"))


@app.post("/api/evaluate", response_model=EvaluateResponse)
def evaluate(req: EvaluateRequest):
    return _run(service.evaluate_expression, _require(req.expression, "Expression"), req.bindings)


@app.post("/api/differentiate", response_model=CalculusResponse)
def differentiate(req: CalculusRequest):
    return _run(service.differentiate_expression, _require(req.expression, "Expression"), req.variable)


@app.post("/api/integrate", response_model=IntegrateResponse)
def integrate(req: CalculusRequest):
    return _run(service.integrate_expression, _require(req.expression, "Expression"), req.variable)


@app.post("/api/solve", response_model=SolveResponse)
def solve(req: EquationRequest):
    return _run(service.solve_equation, _require(req.equation, "Equation"), req.variable)


@app.post("/api/solve-system", response_model=SystemResponse)
def solve_system(req: SystemRequest):
    equations = [e.strip() for e in req.equations if e.strip()]
    if not equations:
        raise HTTPException(status_code=400, detail="Provide at least one equation.")
    return _run(service.solve_equations, equations, req.variables)


@app.post("/api/limit", response_model=ValueResponse)
def limit(req: LimitRequest):
    return _run(service.limit_expression, _require(req.expression, "Expression"), req.point,
                req.variable, req.direction)


@app.post("/api/definite-integral", response_model=ValueResponse)
def definite_integral(req: DefiniteIntegralRequest):
    return _run(service.definite_integral_expression, _require(req.expression, "Expression"),
                req.lower, req.upper, req.variable, req.method)
