"""Tokenizer and precedence-climbing parser for expression text."""

"""
``parse("2x^2 + sin x")`` turns text into a tree of :mod:`algebra.nodes`.

The grammar handles implicit multiplication (``2x``, ``3(x+1)``), implicit
function application (``sin x``), prefix and postfix unary operators, the
``? :`` conditional, calls, member access, indexing and list/map literals.
Binary operator precedence comes from :mod:`algebra.grammar`.
"""

import logging
from collections import namedtuple
from decimal import Decimal
from typing import Optional

from algebra import grammar, numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import ParseError
from algebra.nodes import (
    ARITHMETIC, ArrayLiteral, Call, Conditional, Expression, Group, Index,
    Literal, MapLiteral, Member, Multiply, Relational, Subtract, Unary,
    Variable,
)

logger = logging.getLogger(__name__)

Token = namedtuple("Token", "kind text value pos")

NUMBER, STRING, IDENT, OP, PUNCT, EOF = "number", "string", "ident", "op", "punct", "eof"


# ── Tokenizer ───────────────────────────────────────────────────────────

def _number_value(lexeme: str, config: EngineConfig):
    lower = lexeme.lower()
    if lower.startswith("0x"):
        return int(lexeme[2:], 16)
    if lower.startswith("0o"):
        return int(lexeme[2:], 8)
    if lower.startswith("0b"):
        return int(lexeme[2:], 2)
    if "." in lexeme or "e" in lower:
        if config.precise_decimals:
            return numeric.to_decimal(lexeme, config.decimal_precision)
        return float(lexeme)
    return int(lexeme)


def _read_string(text: str, start: int) -> tuple:
    """Read the quoted string starting at *start*; return (value, end)."""
    quote = text[start]
    chars = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == quote:
            return "".join(chars), i + 1
        if ch == "\\":
            if i + 1 >= len(text):
                break
            code = text[i + 1]
            if code not in grammar.STRING_ESCAPES:
                raise ParseError(f"Unknown escape sequence '\\{code}'.", i, text, "P105")
            chars.append(grammar.STRING_ESCAPES[code])
            i += 2
            continue
        chars.append(ch)
        i += 1
    raise ParseError("Unterminated string literal.", start, text, "P104")


def tokenize(text: str, config: Optional[EngineConfig] = None) -> list:
    """Split *text* into tokens, ending with an ``eof`` token."""
    config = resolve(config)
    tokens = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            m = grammar.NUMBER_RE.match(text, i)
            lexeme, end = m.group(), m.end()
            value = _number_value(lexeme, config)
            # imaginary suffix, unless it starts an identifier (2jx)
            if end < n and text[end] in "jJ" and not (
                    end + 1 < n and (text[end + 1].isalnum() or text[end + 1] in "_$")):
                value = complex(0, float(value) if isinstance(value, Decimal) else value)
                lexeme += text[end]
                end += 1
            tokens.append(Token(NUMBER, lexeme, value, i))
            i = end
            continue

        if ch in "\"'":
            value, end = _read_string(text, i)
            tokens.append(Token(STRING, text[i:end], value, i))
            i = end
            continue

        m = grammar.IDENTIFIER_RE.match(text, i)
        if m:
            tokens.append(Token(IDENT, m.group(), m.group(), i))
            i = m.end()
            continue

        for op in grammar.SYMBOL_OPERATORS:
            if text.startswith(op, i):
                tokens.append(Token(OP, op, op, i))
                i += len(op)
                break
        else:
            if ch in grammar.PUNCTUATION:
                tokens.append(Token(PUNCT, ch, ch, i))
                i += 1
                continue
            raise ParseError(f"Unexpected character '{ch}'.", i, text, "P101")
    tokens.append(Token(EOF, "", None, n))
    return tokens


# ── Parser ──────────────────────────────────────────────────────────────

class _Parser:
    """Recursive precedence climbing over a token list."""

    def __init__(self, text: str, config: EngineConfig):
        self.text = text
        self.config = config
        self.tokens = tokenize(text, config)
        self.index = 0
        self.nesting = 0
        self.functions = set(grammar.FUNCTIONS) | set(config.functions)

    # ── token helpers ───────────────────────────────────────────────────

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.peek()
        self.index += 1
        return tok

    def at(self, kind: str, text: Optional[str] = None, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return tok.kind == kind and (text is None or tok.text == text)

    def expect(self, text: str, opener: Token) -> Token:
        if self.at(PUNCT, text) or self.at(OP, text):
            return self.advance()
        tok = self.peek()
        if tok.kind == EOF:
            raise ParseError(f"Missing '{text}' for '{opener.text}' at position {opener.pos}.",
                             tok.pos, self.text, "P103")
        raise ParseError(f"Expected '{text}' but found '{tok.text}'.", tok.pos, self.text, "P102")

    def error(self, tok: Token) -> ParseError:
        if tok.kind == EOF:
            return ParseError("Unexpected end of input.", tok.pos, self.text, "P102")
        return ParseError(f"Unexpected token '{tok.text}'.", tok.pos, self.text, "P102")

    def enter(self, tok: Token) -> None:
        self.nesting += 1
        if self.nesting > self.config.max_depth:
            raise ParseError("Expression nests too deeply.", tok.pos, self.text, "P107")

    def leave(self) -> None:
        self.nesting -= 1

    def starts_operand(self, offset: int = 0) -> bool:
        tok = self.peek(offset)
        if tok.kind in (NUMBER, STRING):
            return True
        if tok.kind == IDENT:
            return True
        return tok.kind == PUNCT and tok.text in grammar.OPENING

    def word_operator_here(self) -> bool:
        """An identifier such as ``and`` or ``C`` used in infix position."""
        tok = self.peek()
        if tok.kind != IDENT or tok.text not in grammar.WORD_OPERATORS:
            return False
        nxt = self.peek(1)
        return self.starts_operand(1) or (nxt.kind == OP and nxt.text in grammar.PREFIX_OPERATORS)

    def binary_operator(self) -> Optional[tuple]:
        """Return (op, precedence) when the next token is an infix operator."""
        tok = self.peek()
        if tok.kind == OP:
            if tok.text == "^" and self.config.caret_is_xor:
                return "^", grammar.XOR_PRECEDENCE
            if tok.text in grammar.BINARY_PRECEDENCE:
                return tok.text, grammar.BINARY_PRECEDENCE[tok.text]
            return None
        if self.word_operator_here():
            return tok.text, grammar.BINARY_PRECEDENCE[tok.text]
        return None

    def percent_is_postfix(self) -> bool:
        nxt = self.peek(1)
        if nxt.kind == EOF:
            return True
        if nxt.kind == PUNCT:
            return nxt.text in ")]},"
        if nxt.kind == OP:
            return nxt.text not in grammar.PREFIX_OPERATORS
        if nxt.kind == IDENT and nxt.text in grammar.WORD_OPERATORS:
            return self.starts_operand(2)
        return False

    # ── grammar ─────────────────────────────────────────────────────────

    def parse(self) -> Expression:
        if self.at(EOF):
            raise ParseError("Expression is empty.", 0, self.text, "P106")
        expr = self.parse_conditional(allow_equation=True)
        if not self.at(EOF):
            raise self.error(self.peek())
        return expr

    def parse_conditional(self, allow_equation: bool = False) -> Expression:
        test = self.parse_binary(-1 if allow_equation else 0)
        if not self.at(OP, "?"):
            return test
        question = self.advance()
        self.enter(question)
        if_true = self.parse_conditional()
        self.expect(":", question)
        if_false = self.parse_conditional()
        self.leave()
        return Conditional(test, if_true, if_false)

    def parse_binary(self, min_prec: float) -> Expression:
        left = self.parse_unary()
        while True:
            found = self.binary_operator()
            if found is None:
                # adjacency without an operator: implicit multiplication
                if self.starts_operand() and grammar.MULTIPLICATIVE_PRECEDENCE >= min_prec:
                    self.enter(self.peek())
                    right = self.parse_binary(grammar.MULTIPLICATIVE_PRECEDENCE + 1)
                    self.leave()
                    left = Multiply(left, right)
                    continue
                return left
            op, prec = found
            if prec < min_prec:
                return left
            tok = self.advance()
            right_assoc = op in grammar.RIGHT_ASSOCIATIVE and not (op == "^" and self.config.caret_is_xor)
            # right-associative chains recurse once per operator
            self.enter(tok)
            right = self.parse_binary(prec if right_assoc else prec + 1)
            self.leave()
            left = self.make_binary(op, left, right)

    def make_binary(self, op: str, left: Expression, right: Expression) -> Expression:
        if op == "^" and self.config.caret_is_xor:
            return Relational("^", left, right)
        if op in ARITHMETIC:
            return ARITHMETIC[op](left, right)
        return Relational(op, left, right)

    def parse_unary(self) -> Expression:
        tok = self.peek()
        if tok.kind == OP and tok.text in grammar.PREFIX_OPERATORS:
            self.advance()
            self.enter(tok)
            # the operand takes powers first, so -x^2 is -(x^2)
            operand = self.parse_binary(grammar.POWER_PRECEDENCE)
            self.leave()
            return Unary(tok.text, operand)
        return self.parse_postfix()

    def parse_postfix(self) -> Expression:
        node = self.parse_atom()
        while True:
            tok = self.peek()
            if tok.kind == PUNCT and tok.text == "." and self.at(IDENT, offset=1):
                self.advance()
                node = Member(node, self.advance().text)
            elif tok.kind == PUNCT and tok.text == "[":
                self.advance()
                self.enter(tok)
                key = self.parse_conditional()
                self.expect("]", tok)
                self.leave()
                node = Index(node, key)
            elif (tok.kind == OP and tok.text in grammar.POSTFIX_OPERATORS
                  and (tok.text != "%" or self.percent_is_postfix())):
                self.advance()
                node = Unary(tok.text, node, prefix=False)
            else:
                return node

    def parse_atom(self) -> Expression:
        tok = self.peek()
        if tok.kind == NUMBER:
            self.advance()
            return Literal(tok.value)
        if tok.kind == STRING:
            self.advance()
            return Literal(tok.value)
        if tok.kind == IDENT:
            self.advance()
            if tok.text in grammar.KEYWORDS:
                return Literal(grammar.KEYWORDS[tok.text])
            if tok.text in self.functions:
                return self.parse_function(tok)
            return Variable(tok.text)
        if tok.kind == PUNCT and tok.text == "(":
            self.advance()
            self.enter(tok)
            inner = self.parse_conditional()
            self.expect(")", tok)
            self.leave()
            return Group(inner)
        if tok.kind == PUNCT and tok.text == "[":
            self.advance()
            self.enter(tok)
            items = self.parse_list("]", tok)
            self.leave()
            return ArrayLiteral(tuple(items))
        if tok.kind == PUNCT and tok.text == "{":
            self.advance()
            self.enter(tok)
            entries = self.parse_entries(tok)
            self.leave()
            return MapLiteral(tuple(entries))
        raise self.error(tok)

    def parse_function(self, name_tok: Token) -> Expression:
        name = name_tok.text
        if self.at(PUNCT, "("):
            opener = self.advance()
            self.enter(opener)
            args = self.parse_list(")", opener)
            self.leave()
        elif self.starts_operand() or (self.at(OP) and self.peek().text in "-+"):
            self.enter(name_tok)
            args = [self.parse_implicit_argument()]
            self.leave()
        else:
            # a bare function name is just a variable
            return Variable(name)
        low, high = grammar.FUNCTIONS.get(name, (0, len(args)))
        if not low <= len(args) <= high:
            raise ParseError(f"{name}() takes {low if low == high else f'{low} to {high}'} "
                             f"argument(s), got {len(args)}.", name_tok.pos, self.text, "P102")
        return Call(name, tuple(args))

    def parse_implicit_argument(self) -> Expression:
        """Argument of ``sin x``: the juxtaposed product that follows."""
        arg = self.parse_binary(grammar.POWER_PRECEDENCE)
        while self.starts_operand() and not (
                self.at(IDENT) and (self.peek().text in self.functions
                                    or self.word_operator_here())):
            arg = Multiply(arg, self.parse_binary(grammar.POWER_PRECEDENCE))
        return arg

    def parse_list(self, closer: str, opener: Token) -> list:
        items = []
        if self.at(PUNCT, closer):
            self.advance()
            return items
        while True:
            items.append(self.parse_conditional())
            if self.at(PUNCT, ","):
                self.advance()
                continue
            self.expect(closer, opener)
            return items

    def parse_entries(self, opener: Token) -> list:
        entries = []
        if self.at(PUNCT, "}"):
            self.advance()
            return entries
        while True:
            key = self.parse_binary(0)
            self.expect(":", opener)
            value = self.parse_conditional()
            entries.append((key, value))
            if self.at(PUNCT, ","):
                self.advance()
                continue
            self.expect("}", opener)
            return entries


# ── Public API ──────────────────────────────────────────────────────────

def parse(text: str, config: Optional[EngineConfig] = None) -> Expression:
    """Parse *text* into an expression tree.

    Raises ``ParseError`` (with ``position``) on malformed input or when the
    tree would be deeper than ``config.max_depth``.
    """
    config = resolve(config)
    if not isinstance(text, str):
        raise TypeError("parse() expects a string")
    expr = _Parser(text, config).parse()
    depth = expr.depth()
    if depth > config.max_depth:
        raise ParseError(f"Expression nests too deeply ({depth} levels).", 0, text, "P107")
    logger.debug("Parsed %r -> %s", text, expr)
    return expr


def parse_equation(text: str, config: Optional[EngineConfig] = None) -> Expression:
    """Parse ``lhs = rhs`` and return ``lhs - rhs``."""
    expr = parse(text, config)
    equals = [n for n in expr.walk() if isinstance(n, Relational) and n.op == "="]
    if len(equals) != 1 or not (isinstance(expr, Relational) and expr.op == "="):
        raise ParseError("Equation must contain exactly one '='.",
                         text.find("=") if "=" in text else len(text), text, "P108")
    return Subtract(expr.left, expr.right)
