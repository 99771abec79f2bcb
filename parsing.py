"""
TinyC Programming Language Parser
Tokenizer, backtracking token stream and recursive-descent parser producing
a Parse Tree that preserves every consumed token for source round-tripping
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from pyparsing import (
    Keyword, Literal, MatchFirst, ParserElement, Regex, cpp_style_comment
)

from error_handling import TinyCSyntaxError, TinyCTokenizeError
from utilities import nesting_error, recursion_limit, render_tree


# ============================================================================
# TOKENS AND SPANS
# ============================================================================

@dataclass(frozen=True)
class Span:
    """Half-open [start, end) range of code-point offsets in the source text"""
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"invalid span: start {self.start} > end {self.end}")

    @staticmethod
    def union(first: 'Span', second: 'Span') -> 'Span':
        """Smallest span covering both spans"""
        return Span(min(first.start, second.start), max(first.end, second.end))

    def __str__(self) -> str:
        return f"[{self.start} {self.end}]"


class TokenKind(Enum):
    """Closed set of token kinds; the value is the human-readable spelling"""
    # Keywords
    VOID = "'void'"
    RETURN = "'return'"
    IF = "'if'"
    WHILE = "'while'"
    FOR = "'for'"
    DO = "'do'"
    SWITCH = "'switch'"
    CASE = "'case'"
    BREAK = "'break'"
    CONTINUE = "'continue'"
    # Primitive type keywords
    BOOL = "'bool'"
    INT = "'int'"
    FLOAT = "'float'"
    STRING = "'string'"
    # Literals
    BOOL_LITERAL = "boolean literal"
    INT_LITERAL = "integer literal"
    FLOAT_LITERAL = "float literal"
    STRING_LITERAL = "string literal"
    # Punctuation and operators
    SEMICOLON = "';'"
    COMMA = "','"
    DOT = "'.'"
    EQUAL = "'='"
    EQUAL_EQUAL = "'=='"
    NOT_EQUAL = "'!='"
    LESS_EQUAL = "'<='"
    GREATER_EQUAL = "'>='"
    LESS = "'<'"
    GREATER = "'>'"
    PLUS = "'+'"
    MINUS = "'-'"
    MUL = "'*'"
    DIV = "'/'"
    PAREN_OPEN = "'('"
    PAREN_CLOSE = "')'"
    BRACE_OPEN = "'{'"
    BRACE_CLOSE = "'}'"
    SQUARE_OPEN = "'['"
    SQUARE_CLOSE = "']'"
    IDENTIFIER = "identifier"
    END = "end of input"


@dataclass(frozen=True)
class Token:
    """TinyC token with its exact source text"""
    kind: TokenKind
    text: str
    span: Span

    def __str__(self) -> str:
        return f"{self.kind.name}({self.text!r})"


KEYWORDS = {
    "void": TokenKind.VOID,
    "return": TokenKind.RETURN,
    "if": TokenKind.IF,
    "while": TokenKind.WHILE,
    "for": TokenKind.FOR,
    "do": TokenKind.DO,
    "switch": TokenKind.SWITCH,
    "case": TokenKind.CASE,
    "break": TokenKind.BREAK,
    "continue": TokenKind.CONTINUE,
    "bool": TokenKind.BOOL,
    "int": TokenKind.INT,
    "float": TokenKind.FLOAT,
    "string": TokenKind.STRING,
}

# Two-character operators come first so they win over their prefixes
OPERATORS = [
    ("==", TokenKind.EQUAL_EQUAL),
    ("!=", TokenKind.NOT_EQUAL),
    ("<=", TokenKind.LESS_EQUAL),
    (">=", TokenKind.GREATER_EQUAL),
    ("<", TokenKind.LESS),
    (">", TokenKind.GREATER),
    (";", TokenKind.SEMICOLON),
    (",", TokenKind.COMMA),
    (".", TokenKind.DOT),
    ("=", TokenKind.EQUAL),
    ("+", TokenKind.PLUS),
    ("-", TokenKind.MINUS),
    ("*", TokenKind.MUL),
    ("/", TokenKind.DIV),
    ("(", TokenKind.PAREN_OPEN),
    (")", TokenKind.PAREN_CLOSE),
    ("{", TokenKind.BRACE_OPEN),
    ("}", TokenKind.BRACE_CLOSE),
    ("[", TokenKind.SQUARE_OPEN),
    ("]", TokenKind.SQUARE_CLOSE),
]

TYPE_KINDS = (TokenKind.BOOL, TokenKind.INT, TokenKind.FLOAT, TokenKind.STRING)
LITERAL_KINDS = (TokenKind.BOOL_LITERAL, TokenKind.INT_LITERAL,
                 TokenKind.FLOAT_LITERAL, TokenKind.STRING_LITERAL)
COMPARISON_KINDS = (TokenKind.EQUAL_EQUAL, TokenKind.NOT_EQUAL, TokenKind.LESS,
                    TokenKind.GREATER, TokenKind.LESS_EQUAL, TokenKind.GREATER_EQUAL)
ADDITIVE_KINDS = (TokenKind.PLUS, TokenKind.MINUS)
MULTIPLICATIVE_KINDS = (TokenKind.MUL, TokenKind.DIV)


# ============================================================================
# TOKENIZER
# ============================================================================

def _token_action(kind: TokenKind):
    """Build a parse action turning a matched string into a Token"""
    def action(s, loc, toks):
        text = toks[0]
        return Token(kind, text, Span(loc, loc + len(text)))
    return action


def _reject_character(s, loc, toks):
    raise TinyCTokenizeError(f"unexpected character {toks[0]!r} at position {loc}",
                             Span(loc, loc + 1))


@lru_cache(maxsize=None)
def build_scanner() -> ParserElement:
    """Build the pyparsing element matching exactly one TinyC token"""
    alternatives = []

    for word, kind in KEYWORDS.items():
        alternatives.append(Keyword(word).set_parse_action(_token_action(kind)))

    alternatives.append(
        (Keyword("true") | Keyword("false")).set_parse_action(_token_action(TokenKind.BOOL_LITERAL)))
    alternatives.append(
        Regex(r"[0-9]+\.[0-9]*|\.[0-9]+").set_parse_action(_token_action(TokenKind.FLOAT_LITERAL)))
    alternatives.append(
        Regex(r"[0-9]+").set_parse_action(_token_action(TokenKind.INT_LITERAL)))
    alternatives.append(
        Regex(r'"[^"\n]*"').set_parse_action(_token_action(TokenKind.STRING_LITERAL)))

    for symbol, kind in OPERATORS:
        alternatives.append(Literal(symbol).set_parse_action(_token_action(kind)))

    alternatives.append(
        Regex(r"[a-zA-Z_][a-zA-Z0-9_]*").set_parse_action(_token_action(TokenKind.IDENTIFIER)))

    # Anything else is a tokenize error
    alternatives.append(Regex(r"\S").set_parse_action(_reject_character))

    scanner = MatchFirst(alternatives).set_name("token")
    scanner.ignore(cpp_style_comment)
    # Spans are offsets into the text as given
    scanner.parse_with_tabs()
    return scanner


def tokenize(text: str) -> List[Token]:
    """Tokenize TinyC source text; the result always ends with one END token"""
    tokens = []
    for toks, start, end in build_scanner().scan_string(text):
        tokens.append(toks[0])
    tokens.append(Token(TokenKind.END, "", Span(len(text), len(text))))
    return tokens


# ============================================================================
# TOKEN SOURCE
# ============================================================================

class TokenProvider(ABC):
    """Pull interface over a token sequence with stack-based position marks"""

    @abstractmethod
    def peek(self) -> Token:
        """Return the current token without consuming it"""

    @abstractmethod
    def consume(self) -> Token:
        """Return the current token and advance"""

    @abstractmethod
    def push_state(self) -> None:
        """Save the current position on the mark stack"""

    @abstractmethod
    def pop_state(self) -> None:
        """Rewind to the most recent mark and drop it"""

    @abstractmethod
    def yeet_state(self) -> None:
        """Drop the most recent mark, keeping the current position"""

    @abstractmethod
    def depth(self) -> int:
        """Number of outstanding marks"""


class TokenStream(TokenProvider):
    """List-backed token provider"""

    def __init__(self, tokens: List[Token]):
        if not tokens or tokens[-1].kind != TokenKind.END:
            raise ValueError("token list must end with an END token")
        self.tokens = tokens
        self.index = 0
        self.marks: List[int] = []

    @classmethod
    def from_source(cls, text: str) -> 'TokenStream':
        return cls(tokenize(text))

    def peek(self) -> Token:
        return self.tokens[self.index]

    def consume(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != TokenKind.END:
            self.index += 1
        return token

    def push_state(self) -> None:
        self.marks.append(self.index)

    def pop_state(self) -> None:
        if not self.marks:
            raise IndexError("pop_state called with an empty mark stack")
        self.index = self.marks.pop()

    def yeet_state(self) -> None:
        if not self.marks:
            raise IndexError("yeet_state called with an empty mark stack")
        self.marks.pop()

    def depth(self) -> int:
        return len(self.marks)


# ============================================================================
# PARSE TREE
# ============================================================================

def _pad(indent: int) -> str:
    return "  " * indent


def _set_span(node, first: Span, last: Span) -> None:
    """Fix a node span once at construction; nodes are frozen"""
    object.__setattr__(node, "span", Span.union(first, last))


def _body_source(body, indent: int) -> str:
    """Render a statement body on its own line; blocks align with their owner"""
    if isinstance(body, BlockNode):
        return "\n" + _pad(indent) + body.to_source(indent)
    return "\n" + _pad(indent + 1) + body.to_source(indent + 1)


@dataclass(frozen=True)
class LiteralNode:
    token: Token

    @property
    def span(self) -> Span:
        return self.token.span

    def to_source(self, indent: int = 0) -> str:
        return self.token.text

    def children(self) -> list:
        return []

    def describe(self) -> str:
        return f"Literal {self.token.text}"


@dataclass(frozen=True)
class IdentifierNode:
    token: Token

    @property
    def span(self) -> Span:
        return self.token.span

    def to_source(self, indent: int = 0) -> str:
        return self.token.text

    def children(self) -> list:
        return []

    def describe(self) -> str:
        return f"Identifier {self.token.text}"


@dataclass(frozen=True)
class UnaryExpressionNode:
    operator: Token
    operand: 'ExpressionNode'
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.operator.span, self.operand.span)

    def to_source(self, indent: int = 0) -> str:
        return self.operator.text + self.operand.to_source(indent)

    def children(self) -> list:
        return [self.operand]

    def describe(self) -> str:
        return f"UnaryExpression {self.operator.text}"


@dataclass(frozen=True)
class BinaryExpressionNode:
    left: 'ExpressionNode'
    operator: Token
    right: 'ExpressionNode'
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.left.span, self.right.span)

    def to_source(self, indent: int = 0) -> str:
        return f"{self.left.to_source(indent)} {self.operator.text} {self.right.to_source(indent)}"

    def children(self) -> list:
        return [self.left, self.right]

    def describe(self) -> str:
        return f"BinaryExpression {self.operator.text}"


@dataclass(frozen=True)
class GroupExpressionNode:
    open_paren: Token
    expression: 'ExpressionNode'
    close_paren: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.open_paren.span, self.close_paren.span)

    def to_source(self, indent: int = 0) -> str:
        return f"({self.expression.to_source(indent)})"

    def children(self) -> list:
        return [self.expression]

    def describe(self) -> str:
        return "GroupExpression"


@dataclass(frozen=True)
class FunctionCallNode:
    name: Token
    open_paren: Token
    arguments: Tuple['ExpressionNode', ...]
    close_paren: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.name.span, self.close_paren.span)

    def to_source(self, indent: int = 0) -> str:
        args = ", ".join(arg.to_source(indent) for arg in self.arguments)
        return f"{self.name.text}({args})"

    def children(self) -> list:
        return list(self.arguments)

    def describe(self) -> str:
        return f"FunctionCall {self.name.text}"


ExpressionNode = Union[LiteralNode, IdentifierNode, UnaryExpressionNode,
                       BinaryExpressionNode, GroupExpressionNode, FunctionCallNode]


@dataclass(frozen=True)
class ExpressionStatementNode:
    expression: ExpressionNode
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.expression.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        return f"{self.expression.to_source(indent)};"

    def children(self) -> list:
        return [self.expression]

    def describe(self) -> str:
        return "ExpressionStatement"


@dataclass(frozen=True)
class AssignmentNode:
    name: Token
    equal: Token
    value: ExpressionNode
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.name.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        return f"{self.name.text} = {self.value.to_source(indent)};"

    def children(self) -> list:
        return [self.value]

    def describe(self) -> str:
        return f"Assignment {self.name.text}"


@dataclass(frozen=True)
class VariableDeclarationNode:
    type_token: Token
    name: Token
    equal: Optional[Token]
    initializer: Optional[ExpressionNode]
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.type_token.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        if self.initializer is None:
            return f"{self.type_token.text} {self.name.text};"
        return f"{self.type_token.text} {self.name.text} = {self.initializer.to_source(indent)};"

    def children(self) -> list:
        return [] if self.initializer is None else [self.initializer]

    def describe(self) -> str:
        return f"VariableDeclaration {self.type_token.text} {self.name.text}"


@dataclass(frozen=True)
class BlockNode:
    open_brace: Token
    statements: Tuple['StatementNode', ...]
    close_brace: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.open_brace.span, self.close_brace.span)

    def to_source(self, indent: int = 0) -> str:
        lines = ["{"]
        for statement in self.statements:
            lines.append(_pad(indent + 1) + statement.to_source(indent + 1))
        lines.append(_pad(indent) + "}")
        return "\n".join(lines)

    def children(self) -> list:
        return list(self.statements)

    def describe(self) -> str:
        return "Block"


@dataclass(frozen=True)
class ReturnNode:
    keyword: Token
    expression: Optional[ExpressionNode]
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.keyword.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        if self.expression is None:
            return "return;"
        return f"return {self.expression.to_source(indent)};"

    def children(self) -> list:
        return [] if self.expression is None else [self.expression]

    def describe(self) -> str:
        return "Return"


@dataclass(frozen=True)
class IfNode:
    keyword: Token
    open_paren: Token
    condition: ExpressionNode
    close_paren: Token
    body: 'StatementNode'
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.keyword.span, self.body.span)

    def to_source(self, indent: int = 0) -> str:
        return f"if ({self.condition.to_source(indent)})" + _body_source(self.body, indent)

    def children(self) -> list:
        return [self.condition, self.body]

    def describe(self) -> str:
        return "If"


@dataclass(frozen=True)
class WhileNode:
    keyword: Token
    open_paren: Token
    condition: ExpressionNode
    close_paren: Token
    body: 'StatementNode'
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.keyword.span, self.body.span)

    def to_source(self, indent: int = 0) -> str:
        return f"while ({self.condition.to_source(indent)})" + _body_source(self.body, indent)

    def children(self) -> list:
        return [self.condition, self.body]

    def describe(self) -> str:
        return "While"


@dataclass(frozen=True)
class BreakNode:
    keyword: Token
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.keyword.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        return "break;"

    def children(self) -> list:
        return []

    def describe(self) -> str:
        return "Break"


@dataclass(frozen=True)
class ContinueNode:
    keyword: Token
    semicolon: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.keyword.span, self.semicolon.span)

    def to_source(self, indent: int = 0) -> str:
        return "continue;"

    def children(self) -> list:
        return []

    def describe(self) -> str:
        return "Continue"


@dataclass(frozen=True)
class ArgumentNode:
    type_token: Token
    name: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.type_token.span, self.name.span)

    def to_source(self, indent: int = 0) -> str:
        return f"{self.type_token.text} {self.name.text}"

    def children(self) -> list:
        return []

    def describe(self) -> str:
        return f"Argument {self.type_token.text} {self.name.text}"


@dataclass(frozen=True)
class ArgumentListNode:
    open_paren: Token
    arguments: Tuple[ArgumentNode, ...]
    close_paren: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.open_paren.span, self.close_paren.span)

    def to_source(self, indent: int = 0) -> str:
        return "(" + ", ".join(arg.to_source(indent) for arg in self.arguments) + ")"

    def children(self) -> list:
        return list(self.arguments)

    def describe(self) -> str:
        return "ArgumentList"


@dataclass(frozen=True)
class FunctionDeclarationNode:
    return_type: Token
    name: Token
    arguments: ArgumentListNode
    body: 'StatementNode'
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _set_span(self, self.return_type.span, self.body.span)

    def to_source(self, indent: int = 0) -> str:
        header = f"{self.return_type.text} {self.name.text}{self.arguments.to_source(indent)}"
        return header + _body_source(self.body, indent) + "\n"

    def children(self) -> list:
        return [self.arguments, self.body]

    def describe(self) -> str:
        return f"FunctionDeclaration {self.return_type.text} {self.name.text}"


StatementNode = Union[ExpressionStatementNode, AssignmentNode, VariableDeclarationNode,
                      BlockNode, ReturnNode, IfNode, WhileNode, BreakNode, ContinueNode,
                      FunctionDeclarationNode]


@dataclass(frozen=True)
class ProgramNode:
    statements: Tuple[StatementNode, ...]
    end: Token
    span: Span = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.statements:
            object.__setattr__(self, "span", Span(0, 0))
        else:
            _set_span(self, self.statements[0].span, self.statements[-1].span)

    def to_source(self, indent: int = 0) -> str:
        return "".join(statement.to_source(indent) + "\n" for statement in self.statements)

    def children(self) -> list:
        return list(self.statements)

    def describe(self) -> str:
        return "Program"


# ============================================================================
# RECURSIVE-DESCENT PARSER
# ============================================================================

class RecursiveDescentParser:
    """
    Backtracking recursive-descent parser over a TokenProvider.

    Every alternative is tried through _speculate, which saves a mark and
    rewinds when the rule reports no match (returns None). Once a rule has
    recognized its leading tokens it commits: a missing required token then
    raises TinyCSyntaxError and the whole parse is abandoned.
    """

    def __init__(self, tokens: TokenProvider, debug: bool = False):
        self.tokens = tokens
        self.debug = debug

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _trace(self, message: str) -> None:
        if self.debug:
            print(f"[parse] {'  ' * self.tokens.depth()}{message}")

    def _check(self, *kinds: TokenKind) -> bool:
        return self.tokens.peek().kind in kinds

    def _accept(self, *kinds: TokenKind) -> Optional[Token]:
        if self._check(*kinds):
            return self.tokens.consume()
        return None

    def _unexpected(self, context: str = "") -> TinyCSyntaxError:
        token = self.tokens.peek()
        text = token.text if token.kind != TokenKind.END else "end of input"
        suffix = f" {context}" if context else ""
        return TinyCSyntaxError(
            f"unexpected token '{text}' at position {token.span.start}{suffix}", token.span)

    def _expect(self, kind: TokenKind, context: str) -> Token:
        token = self.tokens.peek()
        if token.kind != kind:
            got = token.text if token.kind != TokenKind.END else "end of input"
            raise TinyCSyntaxError(
                f"expected {kind.value} {context}, got '{got}' at position {token.span.start}",
                token.span)
        return self.tokens.consume()

    def _speculate(self, rule: Callable[[], Optional[object]]):
        """Try a rule, rewinding the token source if it does not match"""
        if self.debug:
            self._trace(f"try {rule.__name__}")
        self.tokens.push_state()
        node = rule()
        if node is None:
            self.tokens.pop_state()
            return None
        self.tokens.yeet_state()
        if self.debug:
            self._trace(f"matched {rule.__name__} {node.span}")
        return node

    def _first_match(self, rules) -> Optional[object]:
        for rule in rules:
            node = self._speculate(rule)
            if node is not None:
                return node
        return None

    def _require_expression(self, context: str) -> ExpressionNode:
        expression = self.parse_expression()
        if expression is None:
            token = self.tokens.peek()
            got = token.text if token.kind != TokenKind.END else "end of input"
            raise TinyCSyntaxError(
                f"expected expression {context}, got '{got}' at position {token.span.start}",
                token.span)
        return expression

    def _require_statement(self, context: str) -> StatementNode:
        statement = self.parse_statement()
        if statement is None:
            raise self._unexpected(context)
        return statement

    # ------------------------------------------------------------------
    # Program and statements
    # ------------------------------------------------------------------

    def parse_program(self) -> ProgramNode:
        """program := statement* END"""
        statements = []
        while not self._check(TokenKind.END):
            statement = self.parse_statement()
            if statement is None:
                raise self._unexpected()
            statements.append(statement)
        return ProgramNode(tuple(statements), self.tokens.consume())

    def parse_statement(self) -> Optional[StatementNode]:
        """First matching statement alternative, or None"""
        return self._first_match((
            self.parse_block,
            self.parse_return,
            self.parse_variable_declaration,
            self.parse_if,
            self.parse_while,
            self.parse_break,
            self.parse_continue,
            self.parse_function_declaration,
            self.parse_assignment,
            self.parse_expression_statement,
        ))

    def parse_block(self) -> Optional[BlockNode]:
        """block := '{' statement* '}'"""
        open_brace = self._accept(TokenKind.BRACE_OPEN)
        if open_brace is None:
            return None
        statements = []
        while not self._check(TokenKind.BRACE_CLOSE):
            statement = self.parse_statement()
            if statement is None:
                raise self._unexpected("in block")
            statements.append(statement)
        return BlockNode(open_brace, tuple(statements), self.tokens.consume())

    def parse_return(self) -> Optional[ReturnNode]:
        """return := 'return' expression? ';'"""
        keyword = self._accept(TokenKind.RETURN)
        if keyword is None:
            return None
        expression = None
        if not self._check(TokenKind.SEMICOLON):
            expression = self._require_expression("after 'return'")
        semicolon = self._expect(TokenKind.SEMICOLON, "after return statement")
        return ReturnNode(keyword, expression, semicolon)

    def parse_variable_declaration(self) -> Optional[VariableDeclarationNode]:
        """variableDeclaration := type name (';' | '=' expression ';')"""
        type_token = self._accept(*TYPE_KINDS)
        if type_token is None:
            return None
        name = self._accept(TokenKind.IDENTIFIER)
        if name is None:
            return None
        semicolon = self._accept(TokenKind.SEMICOLON)
        if semicolon is not None:
            return VariableDeclarationNode(type_token, name, None, None, semicolon)
        equal = self._accept(TokenKind.EQUAL)
        if equal is None:
            return None
        initializer = self._require_expression(f"in declaration of '{name.text}'")
        semicolon = self._expect(TokenKind.SEMICOLON, f"after declaration of '{name.text}'")
        return VariableDeclarationNode(type_token, name, equal, initializer, semicolon)

    def _parse_conditional(self, keyword_kind: TokenKind, node_class):
        keyword = self._accept(keyword_kind)
        if keyword is None:
            return None
        open_paren = self._expect(TokenKind.PAREN_OPEN, f"after {keyword_kind.value}")
        condition = self._require_expression(f"in {keyword_kind.value} condition")
        close_paren = self._expect(TokenKind.PAREN_CLOSE, f"after {keyword_kind.value} condition")
        body = self._require_statement(f"in {keyword_kind.value} body")
        return node_class(keyword, open_paren, condition, close_paren, body)

    def parse_if(self) -> Optional[IfNode]:
        """if := 'if' '(' expression ')' statement"""
        return self._parse_conditional(TokenKind.IF, IfNode)

    def parse_while(self) -> Optional[WhileNode]:
        """while := 'while' '(' expression ')' statement"""
        return self._parse_conditional(TokenKind.WHILE, WhileNode)

    def parse_break(self) -> Optional[BreakNode]:
        keyword = self._accept(TokenKind.BREAK)
        if keyword is None:
            return None
        return BreakNode(keyword, self._expect(TokenKind.SEMICOLON, "after 'break'"))

    def parse_continue(self) -> Optional[ContinueNode]:
        keyword = self._accept(TokenKind.CONTINUE)
        if keyword is None:
            return None
        return ContinueNode(keyword, self._expect(TokenKind.SEMICOLON, "after 'continue'"))

    def parse_function_declaration(self) -> Optional[FunctionDeclarationNode]:
        """functionDeclaration := (type | 'void') name '(' arguments ')' statement"""
        return_type = self._accept(TokenKind.VOID, *TYPE_KINDS)
        if return_type is None:
            return None
        name = self._accept(TokenKind.IDENTIFIER)
        if name is None:
            return None
        open_paren = self._accept(TokenKind.PAREN_OPEN)
        if open_paren is None:
            return None

        arguments = []
        if not self._check(TokenKind.PAREN_CLOSE):
            arguments.append(self._parse_argument(name))
            while self._accept(TokenKind.COMMA) is not None:
                arguments.append(self._parse_argument(name))
        close_paren = self._expect(TokenKind.PAREN_CLOSE,
                                   f"after parameters of '{name.text}'")
        argument_list = ArgumentListNode(open_paren, tuple(arguments), close_paren)

        body = self._require_statement(f"in body of '{name.text}'")
        return FunctionDeclarationNode(return_type, name, argument_list, body)

    def _parse_argument(self, function_name: Token) -> ArgumentNode:
        token = self.tokens.peek()
        if token.kind not in TYPE_KINDS:
            raise self._unexpected(f"in parameters of '{function_name.text}', expected a type")
        type_token = self.tokens.consume()
        name = self._expect(TokenKind.IDENTIFIER, f"after parameter type '{type_token.text}'")
        return ArgumentNode(type_token, name)

    def parse_assignment(self) -> Optional[AssignmentNode]:
        """assignment := name '=' expression ';'"""
        name = self._accept(TokenKind.IDENTIFIER)
        if name is None:
            return None
        equal = self._accept(TokenKind.EQUAL)
        if equal is None:
            return None
        value = self._require_expression(f"in assignment to '{name.text}'")
        semicolon = self._expect(TokenKind.SEMICOLON, f"after assignment to '{name.text}'")
        return AssignmentNode(name, equal, value, semicolon)

    def parse_expression_statement(self) -> Optional[ExpressionStatementNode]:
        """expressionStatement := expression ';'"""
        expression = self.parse_expression()
        if expression is None:
            return None
        semicolon = self._expect(TokenKind.SEMICOLON, "after expression")
        return ExpressionStatementNode(expression, semicolon)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def parse_expression(self) -> Optional[ExpressionNode]:
        """expression := comparison"""
        return self.parse_comparison()

    def _parse_left_associative(self, operand: Callable[[], Optional[ExpressionNode]],
                                kinds: Tuple[TokenKind, ...]) -> Optional[ExpressionNode]:
        left = operand()
        if left is None:
            return None
        while self._check(*kinds):
            operator_token = self.tokens.consume()
            right = operand()
            if right is None:
                token = self.tokens.peek()
                got = token.text if token.kind != TokenKind.END else "end of input"
                raise TinyCSyntaxError(
                    f"expected operand after '{operator_token.text}', got '{got}' "
                    f"at position {token.span.start}", token.span)
            left = BinaryExpressionNode(left, operator_token, right)
        return left

    def parse_comparison(self) -> Optional[ExpressionNode]:
        """comparison := additive (compop additive)*"""
        return self._parse_left_associative(self.parse_additive, COMPARISON_KINDS)

    def parse_additive(self) -> Optional[ExpressionNode]:
        """additive := multiplicative (('+'|'-') multiplicative)*"""
        return self._parse_left_associative(self.parse_multiplicative, ADDITIVE_KINDS)

    def parse_multiplicative(self) -> Optional[ExpressionNode]:
        """multiplicative := primary (('*'|'/') primary)*"""
        return self._parse_left_associative(self.parse_primary, MULTIPLICATIVE_KINDS)

    def parse_primary(self) -> Optional[ExpressionNode]:
        """primary := group | literal | functionCall | identifier | '-' primary"""
        return self._first_match((
            self.parse_group,
            self.parse_literal,
            self.parse_function_call,
            self.parse_identifier,
            self.parse_unary,
        ))

    def parse_group(self) -> Optional[GroupExpressionNode]:
        open_paren = self._accept(TokenKind.PAREN_OPEN)
        if open_paren is None:
            return None
        expression = self._require_expression("after '('")
        close_paren = self._expect(TokenKind.PAREN_CLOSE, "to close '('")
        return GroupExpressionNode(open_paren, expression, close_paren)

    def parse_literal(self) -> Optional[LiteralNode]:
        token = self._accept(*LITERAL_KINDS)
        return LiteralNode(token) if token is not None else None

    def parse_function_call(self) -> Optional[FunctionCallNode]:
        """functionCall := name '(' (expression (',' expression)*)? ')'"""
        name = self._accept(TokenKind.IDENTIFIER)
        if name is None:
            return None
        open_paren = self._accept(TokenKind.PAREN_OPEN)
        if open_paren is None:
            return None
        arguments = []
        if not self._check(TokenKind.PAREN_CLOSE):
            arguments.append(self._require_expression(f"in call to '{name.text}'"))
            while self._accept(TokenKind.COMMA) is not None:
                arguments.append(self._require_expression(f"in call to '{name.text}'"))
        close_paren = self._expect(TokenKind.PAREN_CLOSE, f"to close call to '{name.text}'")
        return FunctionCallNode(name, open_paren, tuple(arguments), close_paren)

    def parse_identifier(self) -> Optional[IdentifierNode]:
        token = self._accept(TokenKind.IDENTIFIER)
        return IdentifierNode(token) if token is not None else None

    def parse_unary(self) -> Optional[UnaryExpressionNode]:
        operator_token = self._accept(TokenKind.MINUS)
        if operator_token is None:
            return None
        operand = self.parse_primary()
        if operand is None:
            raise self._unexpected("after unary '-'")
        return UnaryExpressionNode(operator_token, operand)


# ============================================================================
# PARSER FRONT END
# ============================================================================

class TinyCParser:
    """Main TinyC parser interface"""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def tokenize(self, text: str) -> List[Token]:
        """Tokenize TinyC source code"""
        return tokenize(text)

    def parse_tokens(self, provider: TokenProvider) -> ProgramNode:
        """Parse a whole program from any token provider"""
        with recursion_limit():
            try:
                program = RecursiveDescentParser(provider, self.debug).parse_program()
            except RecursionError:
                raise nesting_error("parsing", provider.peek().span, TinyCSyntaxError) from None
        if provider.depth() != 0:
            raise RuntimeError(
                f"parser left {provider.depth()} unbalanced mark(s) on the token stream")
        return program

    def parse_string(self, text: str) -> ProgramNode:
        """Parse TinyC source code from string"""
        return self.parse_tokens(TokenStream.from_source(text))

    def parse_file(self, filepath: str) -> ProgramNode:
        """Parse a TinyC source file"""
        return self.parse_string(Path(filepath).read_text(encoding="utf-8"))

    def parse_expression(self, text: str) -> ExpressionNode:
        """Parse a single TinyC expression"""
        stream = TokenStream.from_source(text)
        parser = RecursiveDescentParser(stream, self.debug)
        with recursion_limit():
            try:
                expression = parser.parse_expression()
            except RecursionError:
                raise nesting_error("parsing", stream.peek().span, TinyCSyntaxError) from None
        if expression is None or not parser._check(TokenKind.END):
            raise parser._unexpected("in expression")
        return expression


def create_parser(debug: bool = False) -> TinyCParser:
    """Create a TinyC parser"""
    return TinyCParser(debug=debug)


def create_debug_parser() -> TinyCParser:
    """Create a TinyC parser with debug enabled"""
    return TinyCParser(debug=True)


def pretty_print_tree(node) -> str:
    """Render a Parse Tree with branch-drawing prefixes"""
    return render_tree(node, lambda n: f"{n.describe()} {n.span}", lambda n: n.children())
