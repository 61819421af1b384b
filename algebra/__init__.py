"""SymCore: a symbolic expression engine.

Parse text into an expression tree, then evaluate, simplify, expand,
differentiate, integrate or solve it::

    >>> from algebra import parse, solve
    >>> str(parse("2x + 3x").simplify())
    '5 * x'
    >>> solve("x^2 = 9")
    [-3, 3]
"""

__version__ = "1.0.0"

from algebra.config import DEFAULT_CONFIG, EngineConfig, load_config
from algebra.errors import (
    EngineError, EvaluationError, ParseError, SolverFailure,
    UnsupportedOperationError,
)
from algebra.nodes import (
    Add, ArrayLiteral, BinaryOperation, Call, Conditional, Divide, Expression,
    Group, Index, Literal, MapLiteral, Member, Modulo, Multiply, Pow,
    Relational, Subtract, Unary, Variable, var,
)
from algebra.parser import parse, parse_equation
from algebra.evaluator import evaluate
from algebra.simplifier import simplify
from algebra.transforms import expand, substitute
from algebra.polynomial import Polynomial, as_polynomial
from algebra.calculus import differentiate, integrate
from algebra.solver import solve, solve_system
from algebra.analysis import cross_check, definite_integral, limit, numeric_derivative

__all__ = [
    "__version__",
    "DEFAULT_CONFIG", "EngineConfig", "load_config",
    "EngineError", "EvaluationError", "ParseError", "SolverFailure",
    "UnsupportedOperationError",
    "Add", "ArrayLiteral", "BinaryOperation", "Call", "Conditional", "Divide",
    "Expression", "Group", "Index", "Literal", "MapLiteral", "Member", "Modulo",
    "Multiply", "Pow", "Relational", "Subtract", "Unary", "Variable", "var",
    "Polynomial", "as_polynomial",
    "parse", "parse_equation", "evaluate", "simplify", "expand", "substitute",
    "differentiate", "integrate", "solve", "solve_system",
    "limit", "numeric_derivative", "definite_integral", "cross_check",
]
