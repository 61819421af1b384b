"""Typed errors raised by the expression engine."""

"""
Every error carries a human readable ``message`` and a stable ``code``.
Codes are four characters: a family letter followed by three digits.

    P1xx  parsing
    E2xx  evaluation
    U3xx  unsupported transform
    S4xx  equation solving

All classes derive from ``ValueError`` so callers that only know about the
built-in exception keep working (the HTTP layer maps ``ValueError`` to 400).
"""

from typing import Optional


ERROR_MESSAGES = {
    "P100": "Syntax error.",
    "P101": "Unexpected character.",
    "P102": "Unexpected token.",
    "P103": "Missing closing bracket.",
    "P104": "Unterminated string literal.",
    "P105": "Unknown escape sequence.",
    "P106": "Expression is empty.",
    "P107": "Expression nests too deeply.",
    "P108": "Equation must contain exactly one '='.",

    "E200": "Evaluation error.",
    "E201": "Unbound variable.",
    "E202": "Division by zero.",
    "E203": "Zero raised to a non-positive power.",
    "E204": "Math domain error.",
    "E205": "Unknown function.",
    "E206": "Lookup failed.",
    "E207": "Operands are not comparable.",
    "E208": "Limit does not exist.",

    "U300": "Unsupported operation.",
    "U301": "No differentiation rule.",
    "U302": "No integration rule.",
    "U303": "Ambiguous variable.",
    "U304": "No SymPy equivalent.",
    "U305": "Not a polynomial.",

    "S400": "Equation could not be solved.",
    "S401": "Root finding did not converge.",
    "S402": "Infinitely many solutions.",
    "S403": "Not an equation.",
}


class EngineError(ValueError):
    """Base class of every engine error."""

    default_code = "E200"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message or ERROR_MESSAGES.get(self.code, "Engine error.")
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ParseError(EngineError):
    """Malformed input. ``position`` is the 0-based offset of the problem."""

    default_code = "P100"

    def __init__(self, message: Optional[str] = None, position: int = 0,
                 source: str = "", code: Optional[str] = None):
        super().__init__(message, code)
        self.position = position
        self.source = source

    def __str__(self) -> str:
        return f"{self.message} (at position {self.position})"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["position"] = self.position
        return data


class EvaluationError(EngineError):
    default_code = "E200"


class UnsupportedOperationError(EngineError):
    default_code = "U300"


class SolverFailure(EngineError):
    default_code = "S400"
