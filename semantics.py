"""
TinyC Semantic Analysis
Resolves scopes and types over the Parse Tree and produces an immutable,
type-annotated AST whose nodes remember the Scope they were created in
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from error_handling import TinyCSemanticError
from parsing import (
  ArgumentNode, AssignmentNode, BinaryExpressionNode, BlockNode, BreakNode,
  ContinueNode, ExpressionStatementNode, FunctionCallNode, FunctionDeclarationNode,
  GroupExpressionNode, IdentifierNode, IfNode, LiteralNode, ProgramNode, ReturnNode,
  Span, TokenKind, UnaryExpressionNode, VariableDeclarationNode, WhileNode
)
from utilities import (
  COMPARISON_OPERATORS, IMPLICIT_CONVERSIONS, arity_error, nesting_error, recursion_limit,
  render_tree, type_mismatch_error
)


# ============================================================================
# TYPES
# ============================================================================

VOID = "void"
BOOL = "bool"
INT = "int"
FLOAT = "float"
STRING = "string"

PRIMITIVE_TYPES = (BOOL, INT, FLOAT, STRING)

# Widening order for comparison operands
NUMERIC_RANK = {BOOL: 0, INT: 1, FLOAT: 2}

LITERAL_TYPES = {
  TokenKind.BOOL_LITERAL: BOOL,
  TokenKind.INT_LITERAL: INT,
  TokenKind.FLOAT_LITERAL: FLOAT,
  TokenKind.STRING_LITERAL: STRING,
}


def is_implicitly_convertible(source: str, target: str) -> bool:
  """True when a value of type source may be used where target is expected"""
  if source == VOID or target == VOID:
    return False
  return source == target or target in IMPLICIT_CONVERSIONS.get(source, ())


def binary_expression_type(op: str, left: str, right: str, span: Optional[Span] = None) -> Tuple[str, str]:
  """
  Resolve a binary operator application.

  Returns (result_type, operand_type): both operands are converted to
  operand_type before the operator is applied. Comparisons need operands
  from bool/int/float and widen to the larger of the two; arithmetic picks
  the first of int, float, string that one side has and the other side
  converts to, falling back to identical operand types.
  """
  if op in COMPARISON_OPERATORS:
    if left not in NUMERIC_RANK or right not in NUMERIC_RANK:
      raise TinyCSemanticError(
        f"Operator '{op}' cannot compare {left} and {right}", span)
    widest = left if NUMERIC_RANK[left] >= NUMERIC_RANK[right] else right
    return BOOL, widest

  for candidate in (INT, FLOAT, STRING):
    if (left == candidate and is_implicitly_convertible(right, candidate)) or \
       (right == candidate and is_implicitly_convertible(left, candidate)):
      return candidate, candidate

  if left == right and left != VOID:
    return left, left

  raise TinyCSemanticError(f"Operator '{op}' is not defined for {left} and {right}", span)


# ============================================================================
# SYMBOLS AND SCOPES
# ============================================================================

class SymbolCategory(Enum):
  TYPE = "type"
  VARIABLE = "variable"
  FUNCTION = "function"


@dataclass(frozen=True)
class FunctionSignature:
  """Everything a caller needs to know about a function, known before its body"""
  name: str
  return_type: str
  parameters: Tuple[Tuple[str, str], ...]  # (type, name) pairs

  @property
  def parameter_types(self) -> List[str]:
    return [param_type for param_type, _ in self.parameters]

  def __str__(self) -> str:
    params = ", ".join(f"{t} {n}" for t, n in self.parameters)
    return f"{self.return_type} {self.name}({params})"


@dataclass(frozen=True)
class Symbol:
  category: SymbolCategory
  name: str
  payload: Union[str, FunctionSignature]


class Scope:
  """Compile-time symbol table chained to its parent"""

  def __init__(self, name: str, kind: str, parent: Optional['Scope'] = None,
               signature: Optional[FunctionSignature] = None):
    self.name = name
    self.kind = kind
    self.parent = parent
    self.signature = signature
    self.symbols: Dict[str, Symbol] = {}

  def declare(self, symbol: Symbol, span: Optional[Span] = None) -> Symbol:
    if symbol.name in self.symbols:
      raise TinyCSemanticError(
        f"Redeclaration of symbol '{symbol.name}' in {self.name}", span)
    self.symbols[symbol.name] = symbol
    return symbol

  def lookup(self, name: str) -> Optional[Symbol]:
    return self.symbols.get(name)

  def lookup_recursive(self, name: str) -> Optional[Symbol]:
    scope = self
    while scope is not None:
      if name in scope.symbols:
        return scope.symbols[name]
      scope = scope.parent
    return None

  def enclosing_function(self) -> Optional[FunctionSignature]:
    scope = self
    while scope is not None:
      if scope.kind == "function":
        return scope.signature
      scope = scope.parent
    return None

  def inside_loop(self) -> bool:
    """True when a while body encloses this scope within the current function"""
    scope = self
    while scope is not None and scope.kind not in ("function", "global"):
      if scope.kind == "while":
        return True
      scope = scope.parent
    return False

  def __repr__(self) -> str:
    return f"Scope({self.name!r}, {sorted(self.symbols)})"


def create_global_scope() -> Scope:
  """Create the root scope with the built-in type symbols"""
  scope = Scope("Global Scope", "global")
  for type_name in (VOID,) + PRIMITIVE_TYPES:
    scope.declare(Symbol(SymbolCategory.TYPE, type_name, type_name))
  return scope


# ============================================================================
# AST NODES
# ============================================================================

@dataclass(frozen=True)
class Literal:
  eval_type: str
  value: Any
  scope: Scope
  span: Span


@dataclass(frozen=True)
class Identifier:
  name: str
  eval_type: str
  scope: Scope
  span: Span


@dataclass(frozen=True)
class UnaryExpression:
  operator: str
  operand: 'Expression'
  eval_type: str
  scope: Scope
  span: Span


@dataclass(frozen=True)
class BinaryExpression:
  operator: str
  left: 'Expression'
  right: 'Expression'
  eval_type: str
  operand_type: str
  scope: Scope
  span: Span


@dataclass(frozen=True)
class FunctionCall:
  name: str
  arguments: Tuple['Expression', ...]
  signature: FunctionSignature
  eval_type: str
  scope: Scope
  span: Span


Expression = Union[Literal, Identifier, UnaryExpression, BinaryExpression, FunctionCall]


@dataclass(frozen=True)
class ExpressionStatement:
  expression: Expression
  scope: Scope
  span: Span


@dataclass(frozen=True)
class VariableDeclaration:
  name: str
  var_type: str
  initializer: Optional[Expression]
  scope: Scope
  span: Span


@dataclass(frozen=True)
class Assignment:
  name: str
  var_type: str
  value: Expression
  scope: Scope
  span: Span


@dataclass(frozen=True)
class StatementList:
  statements: Tuple['Statement', ...]
  creates_scope: bool
  scope: Scope
  span: Span


@dataclass(frozen=True)
class Return:
  expression: Optional[Expression]
  return_type: str
  scope: Scope
  span: Span


@dataclass(frozen=True)
class If:
  condition: Expression
  body: 'Statement'
  scope: Scope
  span: Span


@dataclass(frozen=True)
class While:
  condition: Expression
  body: 'Statement'
  scope: Scope
  span: Span


@dataclass(frozen=True)
class Break:
  scope: Scope
  span: Span


@dataclass(frozen=True)
class Continue:
  scope: Scope
  span: Span


@dataclass(frozen=True)
class FunctionDeclaration:
  signature: FunctionSignature
  body: StatementList
  scope: Scope
  span: Span


Statement = Union[ExpressionStatement, VariableDeclaration, Assignment, StatementList,
                  Return, If, While, Break, Continue, FunctionDeclaration]


@dataclass(frozen=True)
class Program:
  statements: Tuple[Statement, ...]
  scope: Scope
  span: Span


# ============================================================================
# EXPRESSION ANALYSIS
# ============================================================================

def trace(debug: bool, message: str) -> None:
  if debug:
    print(f"[analyze] {message}")


def require_convertible(source: str, target: str, context: str, span: Span) -> None:
  if not is_implicitly_convertible(source, target):
    raise type_mismatch_error(context, target, source, span, TinyCSemanticError)


def analyze_literal(node: LiteralNode, scope: Scope, debug: bool = False) -> Literal:
  """Literals carry their fixed type; string quotes are stripped"""
  token = node.token
  eval_type = LITERAL_TYPES[token.kind]
  if eval_type == BOOL:
    value = token.text == "true"
  elif eval_type == INT:
    value = int(token.text)
  elif eval_type == FLOAT:
    value = float(token.text)
  else:
    value = token.text[1:-1]
  return Literal(eval_type, value, scope, node.span)


def analyze_identifier(node: IdentifierNode, scope: Scope, debug: bool = False) -> Identifier:
  name = node.token.text
  symbol = scope.lookup_recursive(name)
  if symbol is None:
    raise TinyCSemanticError(f"Use of undeclared identifier '{name}'", node.span)
  if symbol.category != SymbolCategory.VARIABLE:
    raise TinyCSemanticError(
      f"'{name}' is a {symbol.category.value}, not a variable", node.span)
  return Identifier(name, symbol.payload, scope, node.span)


def analyze_unary(node: UnaryExpressionNode, scope: Scope, debug: bool = False) -> UnaryExpression:
  operand = analyze_node(node.operand, scope, debug)
  if operand.eval_type == VOID:
    raise TinyCSemanticError(f"Operator '{node.operator.text}' applied to a void value", node.span)
  return UnaryExpression(node.operator.text, operand, operand.eval_type, scope, node.span)


def analyze_binary(node: BinaryExpressionNode, scope: Scope, debug: bool = False) -> BinaryExpression:
  left = analyze_node(node.left, scope, debug)
  right = analyze_node(node.right, scope, debug)
  op = node.operator.text
  result_type, operand_type = binary_expression_type(op, left.eval_type, right.eval_type, node.span)
  trace(debug, f"{left.eval_type} {op} {right.eval_type} -> {result_type}")
  return BinaryExpression(op, left, right, result_type, operand_type, scope, node.span)


def analyze_group(node: GroupExpressionNode, scope: Scope, debug: bool = False) -> Expression:
  return analyze_node(node.expression, scope, debug)


def analyze_function_call(node: FunctionCallNode, scope: Scope, debug: bool = False) -> FunctionCall:
  """Resolve the callee and check argument count and types"""
  name = node.name.text
  symbol = scope.lookup_recursive(name)
  if symbol is None:
    raise TinyCSemanticError(f"Tried to call unknown function '{name}'", node.span)
  if symbol.category != SymbolCategory.FUNCTION:
    raise TinyCSemanticError(f"'{name}' does not refer to a function", node.span)

  signature = symbol.payload
  if len(node.arguments) != len(signature.parameters):
    raise arity_error(name, len(signature.parameters), len(node.arguments),
                      node.span, TinyCSemanticError)

  arguments = []
  for i, (argument, param_type) in enumerate(zip(node.arguments, signature.parameter_types)):
    analyzed = analyze_node(argument, scope, debug)
    require_convertible(analyzed.eval_type, param_type,
                        f"argument {i + 1} of '{name}'", argument.span)
    arguments.append(analyzed)

  return FunctionCall(name, tuple(arguments), signature, signature.return_type, scope, node.span)


# ============================================================================
# STATEMENT ANALYSIS
# ============================================================================

def resolve_type(type_name: str, scope: Scope) -> Optional[str]:
  """Resolve a type name through the scope chain"""
  symbol = scope.lookup_recursive(type_name)
  if symbol is None or symbol.category != SymbolCategory.TYPE:
    return None
  return symbol.payload


def analyze_expression_statement(node: ExpressionStatementNode, scope: Scope,
                                 debug: bool = False) -> ExpressionStatement:
  return ExpressionStatement(analyze_node(node.expression, scope, debug), scope, node.span)


def analyze_variable_declaration(node: VariableDeclarationNode, scope: Scope,
                                 debug: bool = False) -> VariableDeclaration:
  """
  Declare the variable before analyzing its initializer, so a
  self-referential initializer resolves here and fails at runtime instead.
  """
  name = node.name.text
  var_type = resolve_type(node.type_token.text, scope)
  if var_type is None or var_type == VOID:
    raise TinyCSemanticError(
      f"Unknown typename '{node.type_token.text}' in declaration of '{name}'", node.span)

  scope.declare(Symbol(SymbolCategory.VARIABLE, name, var_type), node.span)
  trace(debug, f"declared variable {var_type} {name} in {scope.name}")

  initializer = None
  if node.initializer is not None:
    initializer = analyze_node(node.initializer, scope, debug)
    require_convertible(initializer.eval_type, var_type,
                        f"initializer of '{name}'", node.initializer.span)
  return VariableDeclaration(name, var_type, initializer, scope, node.span)


def analyze_assignment(node: AssignmentNode, scope: Scope, debug: bool = False) -> Assignment:
  name = node.name.text
  symbol = scope.lookup_recursive(name)
  if symbol is None:
    raise TinyCSemanticError(f"Use of undeclared identifier '{name}'", node.span)
  if symbol.category != SymbolCategory.VARIABLE:
    raise TinyCSemanticError(
      f"Cannot assign to '{name}': it is a {symbol.category.value}", node.span)
  value = analyze_node(node.value, scope, debug)
  require_convertible(value.eval_type, symbol.payload, f"assignment to '{name}'", node.value.span)
  return Assignment(name, symbol.payload, value, scope, node.span)


def analyze_block(node: BlockNode, scope: Scope, debug: bool = False,
                  creates_own_scope: bool = True) -> StatementList:
  """Analyze a block, nesting a block scope unless the caller already made one"""
  block_scope = Scope("Local Block Scope", "block", scope) if creates_own_scope else scope
  statements = tuple(analyze_node(statement, block_scope, debug) for statement in node.statements)
  return StatementList(statements, creates_own_scope, block_scope, node.span)


def analyze_return(node: ReturnNode, scope: Scope, debug: bool = False) -> Return:
  signature = scope.enclosing_function()
  if signature is None:
    raise TinyCSemanticError("Return statement outside of a function", node.span)

  if node.expression is None:
    if signature.return_type != VOID:
      raise TinyCSemanticError(
        f"Function '{signature.name}' must return a value of type {signature.return_type}",
        node.span)
    return Return(None, VOID, scope, node.span)

  if signature.return_type == VOID:
    raise TinyCSemanticError(f"Void function '{signature.name}' cannot return a value", node.span)
  expression = analyze_node(node.expression, scope, debug)
  require_convertible(expression.eval_type, signature.return_type,
                      f"return value of '{signature.name}'", node.expression.span)
  return Return(expression, signature.return_type, scope, node.span)


def analyze_condition(node, scope: Scope, debug: bool) -> Expression:
  condition = analyze_node(node, scope, debug)
  if condition.eval_type not in (BOOL, INT):
    raise TinyCSemanticError(
      f"Condition must be bool or int, got {condition.eval_type}", node.span)
  return condition


def analyze_if(node: IfNode, scope: Scope, debug: bool = False) -> If:
  condition = analyze_condition(node.condition, scope, debug)
  body = analyze_node(node.body, Scope("Local If Scope", "if", scope), debug)
  return If(condition, body, scope, node.span)


def analyze_while(node: WhileNode, scope: Scope, debug: bool = False) -> While:
  condition = analyze_condition(node.condition, scope, debug)
  body = analyze_node(node.body, Scope("Local While Scope", "while", scope), debug)
  return While(condition, body, scope, node.span)


def analyze_break(node: BreakNode, scope: Scope, debug: bool = False) -> Break:
  if not scope.inside_loop():
    raise TinyCSemanticError("'break' outside of a loop", node.span)
  return Break(scope, node.span)


def analyze_continue(node: ContinueNode, scope: Scope, debug: bool = False) -> Continue:
  if not scope.inside_loop():
    raise TinyCSemanticError("'continue' outside of a loop", node.span)
  return Continue(scope, node.span)


def analyze_parameter(argument: ArgumentNode, function_name: str, scope: Scope) -> Tuple[str, str]:
  param_type = resolve_type(argument.type_token.text, scope)
  if param_type is None or param_type == VOID:
    raise TinyCSemanticError(
      f"Unknown typename '{argument.type_token.text}' in declaration of parameter "
      f"'{argument.name.text}' of '{function_name}'", argument.span)
  return param_type, argument.name.text


def analyze_function_declaration(node: FunctionDeclarationNode, scope: Scope,
                                 debug: bool = False) -> FunctionDeclaration:
  """
  Forward-declare the signature in the enclosing scope so the body can call
  the function recursively, then analyze the body in the function scope.
  The body block reuses the function scope that holds the parameters.
  """
  name = node.name.text
  return_type = resolve_type(node.return_type.text, scope)
  if return_type is None:
    raise TinyCSemanticError(
      f"Error declaring function '{name}': Unknown return type '{node.return_type.text}'",
      node.span)

  parameters = tuple(analyze_parameter(arg, name, scope) for arg in node.arguments.arguments)
  signature = FunctionSignature(name, return_type, parameters)
  scope.declare(Symbol(SymbolCategory.FUNCTION, name, signature), node.span)
  trace(debug, f"declared function {signature} in {scope.name}")

  function_scope = Scope(f"Local Function Scope '{name}'", "function", scope, signature)
  for argument, (param_type, param_name) in zip(node.arguments.arguments, parameters):
    function_scope.declare(Symbol(SymbolCategory.VARIABLE, param_name, param_type), argument.span)

  if isinstance(node.body, BlockNode):
    body = analyze_block(node.body, function_scope, debug, creates_own_scope=False)
  else:
    statement = analyze_node(node.body, function_scope, debug)
    body = StatementList((statement,), False, function_scope, node.body.span)

  return FunctionDeclaration(signature, body, scope, node.span)


# ============================================================================
# DISPATCH
# ============================================================================

ANALYZERS = {
  LiteralNode: analyze_literal,
  IdentifierNode: analyze_identifier,
  UnaryExpressionNode: analyze_unary,
  BinaryExpressionNode: analyze_binary,
  GroupExpressionNode: analyze_group,
  FunctionCallNode: analyze_function_call,
  ExpressionStatementNode: analyze_expression_statement,
  VariableDeclarationNode: analyze_variable_declaration,
  AssignmentNode: analyze_assignment,
  BlockNode: analyze_block,
  ReturnNode: analyze_return,
  IfNode: analyze_if,
  WhileNode: analyze_while,
  BreakNode: analyze_break,
  ContinueNode: analyze_continue,
  FunctionDeclarationNode: analyze_function_declaration,
}


def analyze_node(node, scope: Scope, debug: bool = False):
  """Analyze one Parse Tree node in the given scope and return its AST node"""
  handler = ANALYZERS.get(type(node))
  if handler is None:
    raise TinyCSemanticError(f"Cannot analyze {type(node).__name__}", getattr(node, 'span', None))
  trace(debug, f"{type(node).__name__} {node.span} in {scope.name}")
  return handler(node, scope, debug)


def analyze_program(program: ProgramNode, scope: Optional[Scope] = None, debug: bool = False) -> Program:
  """Analyze a whole program; a fresh global scope is created unless one is given"""
  if scope is None:
    scope = create_global_scope()
  statements = []
  with recursion_limit():
    for statement in program.statements:
      try:
        statements.append(analyze_node(statement, scope, debug))
      except RecursionError:
        raise nesting_error("analyzing", statement.span, TinyCSemanticError) from None
  return Program(tuple(statements), scope, program.span)


# ============================================================================
# DIAGNOSTIC DUMP
# ============================================================================

def ast_label(node) -> str:
  name = type(node).__name__
  if isinstance(node, Literal):
    return f"{name} {node.value!r} : {node.eval_type} {node.span}"
  if isinstance(node, Identifier):
    return f"{name} {node.name} : {node.eval_type} {node.span}"
  if isinstance(node, (UnaryExpression, BinaryExpression)):
    return f"{name} {node.operator} : {node.eval_type} {node.span}"
  if isinstance(node, FunctionCall):
    return f"{name} {node.name} : {node.eval_type} {node.span}"
  if isinstance(node, (VariableDeclaration, Assignment)):
    return f"{name} {node.var_type} {node.name} {node.span}"
  if isinstance(node, FunctionDeclaration):
    return f"{name} {node.signature} {node.span}"
  if isinstance(node, StatementList):
    return f"{name} ({node.scope.name}) {node.span}"
  return f"{name} {node.span}"


def ast_children(node) -> list:
  if isinstance(node, (Program, StatementList)):
    return list(node.statements)
  if isinstance(node, BinaryExpression):
    return [node.left, node.right]
  if isinstance(node, UnaryExpression):
    return [node.operand]
  if isinstance(node, FunctionCall):
    return list(node.arguments)
  if isinstance(node, ExpressionStatement):
    return [node.expression]
  if isinstance(node, VariableDeclaration):
    return [] if node.initializer is None else [node.initializer]
  if isinstance(node, Assignment):
    return [node.value]
  if isinstance(node, Return):
    return [] if node.expression is None else [node.expression]
  if isinstance(node, (If, While)):
    return [node.condition, node.body]
  if isinstance(node, FunctionDeclaration):
    return [node.body]
  return []


def pretty_print_ast(node) -> str:
  """Render an AST with resolved types"""
  return render_tree(node, ast_label, ast_children)


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_analyzer(debug: bool = False):
  """Factory function returning an analyzer with its own global scope"""
  global_scope = create_global_scope()

  return type('Analyzer', (), {
    'global_scope': global_scope,
    'analyze': lambda self, program: analyze_program(program, global_scope, debug),
  })()


def create_debug_analyzer():
  """Factory function returning a debug analyzer"""
  return create_analyzer(debug=True)
