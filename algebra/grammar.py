"""Operator tables, function names and token classes of the expression grammar."""

import math
import re

# ── Binary operators ─────────────────────────────────────────────────────
# Higher binds tighter.  '^' is power here; with ``caret_is_xor`` it becomes
# bitwise xor at XOR_PRECEDENCE and only '**' means power.
BINARY_PRECEDENCE = {
    "=": -1,
    "??": 0,
    "||": 1, "or": 1,
    "&&": 2, "and": 2,
    "|": 3,
    "&": 5,
    "==": 6, "!=": 6,
    "<": 7, "<=": 7, ">": 7, ">=": 7,
    "<<": 8, ">>": 8,
    "+": 9, "-": 9,
    "*": 10, "/": 10, "%": 10, "~/": 10,
    "P": 11,
    "C": 12,
    "^": 13, "**": 13,
}

POWER_PRECEDENCE = 13
XOR_PRECEDENCE = 4
MULTIPLICATIVE_PRECEDENCE = 10
ADDITIVE_PRECEDENCE = 9
# prefix operators sit between multiplication and power: -x^2 is -(x^2)
UNARY_PRECEDENCE = 12.5
POSTFIX_PRECEDENCE = 14
ATOM_PRECEDENCE = 15

RIGHT_ASSOCIATIVE = frozenset({"^", "**"})

# Operators spelled like identifiers; they only count in infix position.
WORD_OPERATORS = frozenset({"or", "and", "P", "C"})

# Symbolic operators, longest first so '<=' never lexes as '<' then '='.
SYMBOL_OPERATORS = sorted(
    ["??", "||", "&&", "==", "!=", "<=", ">=", "<<", ">>", "~/", "**",
     "+", "-", "*", "/", "%", "^", "&", "|", "<", ">", "!", "~", "=", "?", ":"],
    key=len,
    reverse=True,
)

PREFIX_OPERATORS = frozenset({"-", "+", "!", "~"})
POSTFIX_OPERATORS = frozenset({"!", "%"})

PUNCTUATION = frozenset("()[]{},.")

OPENING = {"(": ")", "[": "]", "{": "}"}

# ── Literals and identifiers ─────────────────────────────────────────────
NUMBER_RE = re.compile(
    r"""
    0[xX][0-9a-fA-F]+
  | 0[oO][0-7]+
  | 0[bB][01]+
  | (?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?
    """,
    re.VERBOSE,
)
IDENTIFIER_RE = re.compile(r"[A-Za-z_$][\w$]*")

STRING_ESCAPES = {
    "n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f", "v": "\v",
    '"': '"', "'": "'", "\\": "\\",
}

KEYWORDS = {"true": True, "false": False, "null": None}

# ── Functions and constants ──────────────────────────────────────────────
# name -> number of accepted arguments (min, max)
FUNCTIONS = {
    "sin": (1, 1), "cos": (1, 1), "tan": (1, 1),
    "asin": (1, 1), "acos": (1, 1), "atan": (1, 1),
    "sinh": (1, 1), "cosh": (1, 1), "tanh": (1, 1),
    "sec": (1, 1), "csc": (1, 1), "cot": (1, 1),
    "exp": (1, 1), "ln": (1, 1), "log": (1, 2),
    "sqrt": (1, 1), "abs": (1, 1),
}

CONSTANTS = {"pi": math.pi, "e": math.e}
