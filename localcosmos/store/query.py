"""
Query Engine.

Parses and evaluates the parameterised SQL subset used against a
container:

    SELECT [TOP n] * FROM c [WHERE c.a = @a AND c.b.c = 'x'] [ORDER BY c.f [ASC|DESC]]

A bare filter (``name = @n AND kind = 'x'``) is accepted too; its
property references carry no alias.

Example:
    >>> compiled = compile_query(
    ...     "SELECT * FROM c WHERE c.name = @name",
    ...     {"@name": "Alex Turner"},
    ... )
    >>> compiled.matches({"id": "1", "name": "Alex Turner"})
    True

Author: LocalCosmos Team
Date: 2026-10-19
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from functools import lru_cache
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .documents import get_value, is_missing, json_equals, sort_key
from .exceptions import BadRequestError, InvalidQueryError
from .models import normalize_parameters

logger = logging.getLogger(__name__)


class TokenType(Enum):
    """Query token types."""

    # Literals
    STRING = auto()
    NUMBER = auto()
    TRUE = auto()
    FALSE = auto()
    NULL = auto()

    # Names
    IDENTIFIER = auto()
    PARAMETER = auto()     # @name

    # Keywords
    SELECT = auto()
    TOP = auto()
    VALUE = auto()
    FROM = auto()
    WHERE = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    ORDER = auto()
    BY = auto()
    ASC = auto()
    DESC = auto()

    # Operators and punctuation
    EQ = auto()            # =
    COMPARE = auto()       # != <> < > <= >=
    STAR = auto()
    DOT = auto()
    COMMA = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LPAREN = auto()
    RPAREN = auto()

    EOF = auto()


KEYWORDS = {
    "select": TokenType.SELECT,
    "top": TokenType.TOP,
    "value": TokenType.VALUE,
    "from": TokenType.FROM,
    "where": TokenType.WHERE,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
    "order": TokenType.ORDER,
    "by": TokenType.BY,
    "asc": TokenType.ASC,
    "desc": TokenType.DESC,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "null": TokenType.NULL,
}

PUNCTUATION = {
    "*": TokenType.STAR,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
}

ESCAPES = {"\\": "\\", "'": "'", '"': '"', "/": "/", "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f"}

# ASCII only; str.isdigit() also accepts characters such as superscripts
DIGITS = frozenset("0123456789")


@dataclass(frozen=True)
class Token:
    """Lexical token with its offset in the query text."""
    type: TokenType
    value: Any
    position: int

    def describe(self) -> str:
        if self.type == TokenType.EOF:
            return "end of query"
        return f"'{self.value}'"


class QueryLexer:
    """Tokenizer for the query subset.

    Keywords are case-insensitive; identifiers and parameter names are
    case-sensitive.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _error(self, message: str, position: Optional[int] = None) -> InvalidQueryError:
        where = self.pos if position is None else position
        return InvalidQueryError(f"{message} at position {where}", query=self.text, position=where)

    def _peek(self, offset: int = 0) -> Optional[str]:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else None

    def tokenize(self) -> List[Token]:
        """Split the query into tokens, ending with EOF.

        Raises:
            InvalidQueryError: On characters or literals that cannot be read
        """
        tokens: List[Token] = []
        while True:
            char = self._peek()
            while char is not None and char.isspace():
                self.pos += 1
                char = self._peek()

            if char is None:
                tokens.append(Token(TokenType.EOF, None, self.pos))
                return tokens

            start = self.pos
            if char in ("'", '"'):
                tokens.append(Token(TokenType.STRING, self._read_string(char), start))
            elif char in DIGITS or (char == "-" and self._peek(1) in DIGITS):
                tokens.append(Token(TokenType.NUMBER, self._read_number(), start))
            elif char == "@":
                self.pos += 1
                name = self._read_name()
                if not name:
                    raise self._error("Parameter name expected after '@'", start)
                tokens.append(Token(TokenType.PARAMETER, f"@{name}", start))
            elif char.isalpha() or char == "_":
                name = self._read_name()
                token_type = KEYWORDS.get(name.lower(), TokenType.IDENTIFIER)
                tokens.append(Token(token_type, name, start))
            elif char == "=":
                self.pos += 1
                tokens.append(Token(TokenType.EQ, "=", start))
            elif char in "!<>":
                operator = char
                self.pos += 1
                if self._peek() in ("=", ">") and operator + self._peek() in ("!=", "<>", "<=", ">="):
                    operator += self._peek()
                    self.pos += 1
                elif operator == "!":
                    raise self._error("Unexpected character '!'", start)
                tokens.append(Token(TokenType.COMPARE, operator, start))
            elif char in PUNCTUATION:
                self.pos += 1
                tokens.append(Token(PUNCTUATION[char], char, start))
            else:
                raise self._error(f"Unexpected character {char!r}", start)

    def _read_name(self) -> str:
        start = self.pos
        char = self._peek()
        while char is not None and (char.isalnum() or char == "_"):
            self.pos += 1
            char = self._peek()
        return self.text[start:self.pos]

    def _read_string(self, quote: str) -> str:
        start = self.pos
        self.pos += 1
        chars = []
        while True:
            char = self._peek()
            if char is None:
                raise self._error("Unclosed string literal", start)
            self.pos += 1
            if char == quote:
                return "".join(chars)
            if char == "\\":
                escaped = self._peek()
                if escaped == "u":
                    digits = self.text[self.pos + 1:self.pos + 5]
                    if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                        raise self._error("Invalid unicode escape", self.pos - 1)
                    chars.append(chr(int(digits, 16)))
                    self.pos += 5
                    continue
                if escaped not in ESCAPES:
                    raise self._error(f"Invalid escape sequence '\\{escaped or ''}'", self.pos - 1)
                chars.append(ESCAPES[escaped])
                self.pos += 1
            else:
                chars.append(char)

    def _read_number(self) -> Union[int, float]:
        start = self.pos
        if self._peek() == "-":
            self.pos += 1
        while self._peek() in DIGITS:
            self.pos += 1
        is_float = False
        if self._peek() == "." and self._peek(1) in DIGITS:
            is_float = True
            self.pos += 1
            while self._peek() in DIGITS:
                self.pos += 1
        if (self._peek() or "") in ("e", "E"):
            is_float = True
            self.pos += 1
            if self._peek() in ("+", "-"):
                self.pos += 1
            if self._peek() not in DIGITS:
                raise self._error("Invalid number literal", start)
            while self._peek() in DIGITS:
                self.pos += 1
        literal = self.text[start:self.pos]
        try:
            value = float(literal) if is_float else int(literal)
        except ValueError:
            raise self._error("Invalid number literal", start) from None
        if isinstance(value, float) and not math.isfinite(value):
            raise self._error("Number literal out of range", start)
        return value


# ========== Syntax tree ==========

@dataclass(frozen=True)
class Parameter:
    """Reference to a bound parameter."""
    name: str


@dataclass(frozen=True)
class Literal:
    """Inline constant."""
    value: Any


@dataclass(frozen=True)
class EqualityClause:
    """``property = operand``."""
    path: Tuple[str, ...]
    operand: Union[Parameter, Literal]


@dataclass(frozen=True)
class ParsedQuery:
    """Parsed query structure."""
    alias: Optional[str]
    clauses: Tuple[EqualityClause, ...] = ()
    top: Optional[int] = None
    order_by: Optional[Tuple[Tuple[str, ...], bool]] = None

    @property
    def parameter_names(self) -> List[str]:
        names = [c.operand.name for c in self.clauses if isinstance(c.operand, Parameter)]
        return list(dict.fromkeys(names))


class QueryParser:
    """Recursive-descent parser producing a ParsedQuery."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = QueryLexer(text).tokenize()
        self.index = 0
        self.alias: Optional[str] = None

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.current
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def _accept(self, token_type: TokenType) -> Optional[Token]:
        if self.current.type == token_type:
            return self._advance()
        return None

    def _error(self, message: str, token: Optional[Token] = None) -> InvalidQueryError:
        token = token or self.current
        return InvalidQueryError(
            f"{message} at position {token.position}",
            query=self.text,
            position=token.position
        )

    def _expect(self, token_type: TokenType, what: str) -> Token:
        token = self._accept(token_type)
        if token is None:
            raise self._error(f"Expected {what}, found {self.current.describe()}")
        return token

    def parse(self) -> ParsedQuery:
        """Parse the full query text.

        Raises:
            InvalidQueryError: If the text is not in the supported subset
        """
        if self.current.type == TokenType.EOF:
            raise self._error("Query is empty")

        top = None
        if self._accept(TokenType.SELECT):
            top = self._parse_select_list()
            self._expect(TokenType.FROM, "FROM")
            self.alias = self._expect(TokenType.IDENTIFIER, "a collection alias").value
            where_required = False
        else:
            where_required = True

        clauses: List[EqualityClause] = []
        if self._accept(TokenType.WHERE) or where_required:
            clauses = self._parse_filter()

        order_by = None
        if self._accept(TokenType.ORDER):
            self._expect(TokenType.BY, "BY after ORDER")
            path = self._parse_reference()
            descending = False
            if self._accept(TokenType.DESC):
                descending = True
            else:
                self._accept(TokenType.ASC)
            if self.current.type == TokenType.COMMA:
                raise self._error("ORDER BY supports a single property")
            order_by = (path, descending)

        if self.current.type != TokenType.EOF:
            raise self._error(f"Unexpected {self.current.describe()}")

        return ParsedQuery(alias=self.alias, clauses=tuple(clauses), top=top, order_by=order_by)

    def _parse_select_list(self) -> Optional[int]:
        top = None
        if self._accept(TokenType.TOP):
            token = self._expect(TokenType.NUMBER, "a row count after TOP")
            if not isinstance(token.value, int) or token.value < 0:
                raise self._error("TOP requires a non-negative integer", token)
            top = token.value
        if self._accept(TokenType.STAR) is None:
            raise self._error("Only 'SELECT *' projections are supported")
        return top

    def _parse_filter(self) -> List[EqualityClause]:
        clauses = [self._parse_clause()]
        while True:
            if self._accept(TokenType.AND):
                clauses.append(self._parse_clause())
            elif self.current.type in (TokenType.OR, TokenType.NOT):
                raise self._error(f"Operator {self.current.value.upper()} is not supported; combine clauses with AND")
            else:
                return clauses

    def _parse_clause(self) -> EqualityClause:
        if self.current.type in (TokenType.LPAREN, TokenType.NOT):
            raise self._error("Only 'property = value' clauses joined by AND are supported")

        if self.current.type == TokenType.IDENTIFIER:
            path = self._parse_reference()
            self._expect_equals()
            operand = self._parse_operand()
        else:
            operand = self._parse_operand()
            self._expect_equals()
            path = self._parse_reference()
        return EqualityClause(path=path, operand=operand)

    def _expect_equals(self) -> None:
        if self.current.type == TokenType.COMPARE:
            raise self._error(f"Operator '{self.current.value}' is not supported; only '=' is")
        self._expect(TokenType.EQ, "'='")

    def _parse_operand(self) -> Union[Parameter, Literal]:
        token = self._advance()
        if token.type == TokenType.PARAMETER:
            return Parameter(token.value)
        if token.type in (TokenType.STRING, TokenType.NUMBER):
            return Literal(token.value)
        if token.type == TokenType.TRUE:
            return Literal(True)
        if token.type == TokenType.FALSE:
            return Literal(False)
        if token.type == TokenType.NULL:
            return Literal(None)
        raise self._error(f"Expected a parameter or literal, found {token.describe()}", token)

    def _parse_reference(self) -> Tuple[str, ...]:
        """Parse a property reference into path segments.

        With an alias: ``c.a.b`` or ``c["a"]["b"]``; without: ``a.b``.
        """
        head = self._expect(TokenType.IDENTIFIER, "a property reference")
        segments: List[str] = []
        if self.alias is not None:
            if head.value != self.alias:
                raise self._error(f"Unknown alias '{head.value}'; expected '{self.alias}'", head)
        else:
            segments.append(head.value)

        while True:
            if self._accept(TokenType.DOT):
                name = self._accept(TokenType.IDENTIFIER)
                if name is None:
                    # keywords are valid property names after a dot
                    if self.current.type in KEYWORDS.values():
                        name = self._advance()
                    else:
                        raise self._error("Malformed property path: property name expected after '.'")
                segments.append(name.value)
            elif self._accept(TokenType.LBRACKET):
                token = self._advance()
                if token.type == TokenType.STRING:
                    segments.append(token.value)
                elif token.type == TokenType.NUMBER and isinstance(token.value, int) and token.value >= 0:
                    segments.append(str(token.value))
                else:
                    raise self._error("Malformed property path: expected a quoted name or index in brackets", token)
                self._expect(TokenType.RBRACKET, "']'")
            else:
                break

        if not segments:
            raise self._error("Malformed property path: a property of the alias is required", head)
        return tuple(segments)


def parse_query(text: str) -> ParsedQuery:
    """Parse query text (cached by text).

    Raises:
        InvalidQueryError: If the query is malformed or unsupported
    """
    if not isinstance(text, str):
        raise InvalidQueryError("Query text must be a string")
    return _parse_cached(text)


@lru_cache(maxsize=256)
def _parse_cached(text: str) -> ParsedQuery:
    return QueryParser(text).parse()


# ========== Evaluation ==========

@dataclass
class CompiledQuery:
    """A parsed query with its parameters bound."""
    parsed: ParsedQuery
    bindings: List[Tuple[Tuple[str, ...], Any]] = field(default_factory=list)

    def matches(self, document: Mapping[str, Any]) -> bool:
        """True if every clause holds for ``document``."""
        for path, expected in self.bindings:
            actual = get_value(document, list(path))
            if is_missing(actual) or not json_equals(actual, expected):
                return False
        return True

    @property
    def top(self) -> Optional[int]:
        return self.parsed.top

    def sort(self, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Apply ORDER BY, if any. Documents lacking the property are dropped."""
        if self.parsed.order_by is None:
            return documents
        path, descending = self.parsed.order_by
        keyed = [(get_value(doc, list(path)), doc) for doc in documents]
        keyed = [(value, doc) for value, doc in keyed if not is_missing(value)]
        keyed.sort(key=lambda pair: sort_key(pair[0]), reverse=descending)
        return [doc for _, doc in keyed]


def compile_query(
    query: str,
    parameters: Optional[Union[Mapping[str, Any], Sequence[Any]]] = None
) -> CompiledQuery:
    """Parse a query and bind its parameters.

    Args:
        query: Query text
        parameters: Mapping or list of named parameters

    Returns:
        CompiledQuery ready for evaluation

    Raises:
        InvalidQueryError: If the query is malformed or a parameter is unbound
    """
    parsed = parse_query(query)
    values = normalize_parameters(parameters)

    unbound = [name for name in parsed.parameter_names if name not in values]
    if unbound:
        raise InvalidQueryError(
            f"Unbound query parameter(s): {', '.join(unbound)}",
            query=query
        )

    bindings = []
    for clause in parsed.clauses:
        if isinstance(clause.operand, Parameter):
            bindings.append((clause.path, values[clause.operand.name]))
        else:
            bindings.append((clause.path, clause.operand.value))

    return CompiledQuery(parsed=parsed, bindings=bindings)


class QueryIterator:
    """Lazy, single-pass async iterator over query results.

    Documents are pulled from ``source`` one at a time as the caller
    iterates. Queries with ORDER BY collect their matches on first use.
    """

    def __init__(
        self,
        compiled: CompiledQuery,
        source: Callable[[], AsyncIterator[Dict[str, Any]]],
        max_item_count: int = 100
    ):
        self._compiled = compiled
        self._source = source
        self._max_item_count = max_item_count
        self._results: Optional[AsyncIterator[Dict[str, Any]]] = None

    def __aiter__(self) -> "QueryIterator":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self._results is None:
            self._results = self._run()
        return await self._results.__anext__()

    async def _run(self) -> AsyncIterator[Dict[str, Any]]:
        top = self._compiled.top
        if top == 0:
            return

        if self._compiled.parsed.order_by is None:
            emitted = 0
            async for document in self._source():
                if self._compiled.matches(document):
                    yield document
                    emitted += 1
                    if top is not None and emitted >= top:
                        return
            return

        matched = [doc async for doc in self._source() if self._compiled.matches(doc)]
        ordered = self._compiled.sort(matched)
        for document in ordered[:top] if top is not None else ordered:
            yield document

    async def by_page(self, max_item_count: Optional[int] = None) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield results in pages of at most ``max_item_count`` documents."""
        size = max_item_count or self._max_item_count
        if not isinstance(size, int) or isinstance(size, bool) or size < 1:
            raise BadRequestError(f"max_item_count must be a positive integer, got {size!r}")
        page: List[Dict[str, Any]] = []
        async for document in self:
            page.append(document)
            if len(page) >= size:
                yield page
                page = []
        if page:
            yield page

    async def to_list(self) -> List[Dict[str, Any]]:
        """Drain the iterator into a list."""
        return [document async for document in self]
