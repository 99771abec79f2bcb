"""
TinyC Interpreter
Tree-walking evaluator over the typed AST with a runtime variable scope
chain, primitive value model and control-flow signalling
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from error_handling import TinyCRuntimeError
from semantics import (
  Assignment, BinaryExpression, Break, Continue, ExpressionStatement, FunctionCall,
  FunctionDeclaration, Identifier, If, Literal, Program, Return, StatementList,
  UnaryExpression, VariableDeclaration, While
)
from utilities import (
  arity_error, build_operator_table, convert_data, format_data, nesting_error, recursion_limit
)


DEFAULT_MAX_CALL_DEPTH = 1000


# ============================================================================
# RUNTIME DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Value:
  """Runtime-tagged primitive value"""
  type: str
  data: Any

  def __str__(self) -> str:
    return format_data(self.type, self.data)


def make_value(data: Any, type_name: str) -> Value:
  """Create a runtime value"""
  return Value(type_name, data)


VOID_VALUE = make_value(None, "void")


class StatementResult(Enum):
  """Control-flow signal returned by every statement"""
  VOID = "void"
  RETURN = "return"
  BREAK = "break"
  CONTINUE = "continue"


@dataclass(frozen=True, eq=False)
class FunctionValue:
  """A declared function together with the variable scope it was declared in"""
  declaration: FunctionDeclaration
  closure: 'VariableScope'

  @property
  def name(self) -> str:
    return self.declaration.signature.name

  def __str__(self) -> str:
    return f"<function {self.declaration.signature}>"


_UNSET = object()


class VariableScope:
  """Runtime name -> Value bindings chained to a parent scope"""

  def __init__(self, name: str, parent: Optional['VariableScope'] = None):
    self.name = name
    self.parent = parent
    self.values: Dict[str, Any] = {}

  def declare(self, name: str, value: Optional[Value] = None) -> None:
    """Create a binding in this scope; without a value it stays unset"""
    self.values[name] = _UNSET if value is None else value

  def define_function(self, name: str, function: FunctionValue) -> None:
    self.values[name] = function

  def find(self, name: str) -> Optional['VariableScope']:
    scope = self
    while scope is not None:
      if name in scope.values:
        return scope
      scope = scope.parent
    return None

  def lookup(self, name: str, span=None) -> Value:
    owner = self.find(name)
    if owner is None:
      raise TinyCRuntimeError(f"Lookup of undeclared variable '{name}'", span)
    value = owner.values[name]
    if value is _UNSET:
      raise TinyCRuntimeError(f"Variable '{name}' is used before it has a value", span)
    if isinstance(value, FunctionValue):
      raise TinyCRuntimeError(f"'{name}' is a function, not a variable", span)
    return value

  def lookup_function(self, name: str, span=None) -> FunctionValue:
    owner = self.find(name)
    if owner is None or not isinstance(owner.values[name], FunctionValue):
      raise TinyCRuntimeError(f"Call of undefined function '{name}'", span)
    return owner.values[name]

  def assign(self, name: str, value: Value, span=None) -> None:
    """Update the nearest existing binding"""
    owner = self.find(name)
    if owner is None:
      raise TinyCRuntimeError(f"Assignment to undeclared variable '{name}'", span)
    if isinstance(owner.values[name], FunctionValue):
      raise TinyCRuntimeError(f"Cannot assign to function '{name}'", span)
    owner.values[name] = value

  def bindings(self) -> Dict[str, Value]:
    """Variables of this scope that currently hold a value"""
    return {name: value for name, value in self.values.items()
            if isinstance(value, Value)}

  def functions(self) -> Dict[str, FunctionValue]:
    return {name: value for name, value in self.values.items()
            if isinstance(value, FunctionValue)}


def make_execution_context(debug: bool = False, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH) -> Dict:
  """Create an execution context for call depth, return values and tracing"""
  return {
    'debug': debug,
    'max_call_depth': max_call_depth,
    'call_depth': 0,
    'return_value': VOID_VALUE,
    'last_value': VOID_VALUE,
  }


def trace(context: Dict, message: str) -> None:
  if context['debug']:
    print(f"[exec] {'  ' * context['call_depth']}{message}")


# ============================================================================
# VALUE OPERATIONS
# ============================================================================

OPERATORS = build_operator_table()


def convert_value(value: Value, target_type: str, span=None) -> Value:
  """Apply an implicit conversion to a runtime value"""
  if value.type == target_type:
    return value
  try:
    return make_value(convert_data(value.data, value.type, target_type), target_type)
  except TinyCRuntimeError as e:
    raise TinyCRuntimeError(e.message, span) from None


def condition_truth(value: Value, span=None) -> bool:
  if value.type == "bool":
    return value.data
  if value.type == "int":
    return value.data != 0
  raise TinyCRuntimeError(f"Condition must be bool or int, got {value.type}", span)


# ============================================================================
# EXPRESSION EVALUATION
# ============================================================================

def eval_literal(node: Literal, scope: VariableScope, context: Dict) -> Value:
  return make_value(node.value, node.eval_type)


def eval_identifier(node: Identifier, scope: VariableScope, context: Dict) -> Value:
  return scope.lookup(node.name, node.span)


def eval_unary(node: UnaryExpression, scope: VariableScope, context: Dict) -> Value:
  operand = eval_expression(node.operand, scope, context)
  if node.eval_type not in ("int", "float"):
    raise TinyCRuntimeError(f"Cannot negate {node.eval_type}", node.span)
  operand = convert_value(operand, node.eval_type, node.span)
  return make_value(-operand.data, node.eval_type)


def eval_binary(node: BinaryExpression, scope: VariableScope, context: Dict) -> Value:
  """Convert both operands to the resolved operand type, then apply the operator"""
  left = convert_value(eval_expression(node.left, scope, context), node.operand_type, node.span)
  right = convert_value(eval_expression(node.right, scope, context), node.operand_type, node.span)
  try:
    data = OPERATORS[node.operator](left.data, right.data, node.operand_type)
  except TinyCRuntimeError as e:
    if e.span is None:
      raise TinyCRuntimeError(e.message, node.span) from None
    raise
  return make_value(data, node.eval_type)


def eval_function_call(node: FunctionCall, scope: VariableScope, context: Dict) -> Value:
  function = scope.lookup_function(node.name, node.span)
  arguments = [eval_expression(argument, scope, context) for argument in node.arguments]
  return call_function(function, arguments, context, node.span)


def call_function(function: FunctionValue, arguments: List[Value], context: Dict, span=None) -> Value:
  """
  Call a function in a new frame chained to the scope the function was
  declared in. The value of the executed return statement is carried in
  the context and restored afterwards so nested calls do not clobber it.
  """
  signature = function.declaration.signature
  if len(arguments) != len(signature.parameters):
    raise arity_error(signature.name, len(signature.parameters), len(arguments), span)
  if context['call_depth'] >= context['max_call_depth']:
    raise TinyCRuntimeError(
      f"maximum call depth of {context['max_call_depth']} exceeded in call to '{signature.name}'",
      span)

  frame = VariableScope(f"call {signature.name}", function.closure)
  for (param_type, param_name), argument in zip(signature.parameters, arguments):
    frame.declare(param_name, convert_value(argument, param_type, span))

  trace(context, f"call {signature.name}({', '.join(str(a) for a in arguments)})")
  saved_return = context['return_value']
  context['return_value'] = VOID_VALUE
  context['call_depth'] += 1
  try:
    result = exec_statement_list(function.declaration.body, frame, context)
    returned = context['return_value']
  except RecursionError:
    raise TinyCRuntimeError(
      f"interpreter stack exhausted in call to '{signature.name}'", span) from None
  finally:
    context['call_depth'] -= 1
    context['return_value'] = saved_return

  if signature.return_type == "void":
    return VOID_VALUE
  if result != StatementResult.RETURN:
    raise TinyCRuntimeError(
      f"Function '{signature.name}' finished without returning a {signature.return_type}", span)
  returned = convert_value(returned, signature.return_type, span)
  trace(context, f"{signature.name} returned {returned}")
  return returned


EVALUATORS = {
  Literal: eval_literal,
  Identifier: eval_identifier,
  UnaryExpression: eval_unary,
  BinaryExpression: eval_binary,
  FunctionCall: eval_function_call,
}


def eval_expression(node, scope: VariableScope, context: Dict) -> Value:
  """Evaluate an expression node to a fresh Value"""
  return EVALUATORS[type(node)](node, scope, context)


# ============================================================================
# STATEMENT EXECUTION
# ============================================================================

def exec_expression_statement(node: ExpressionStatement, scope: VariableScope, context: Dict) -> StatementResult:
  context['last_value'] = eval_expression(node.expression, scope, context)
  return StatementResult.VOID


def exec_variable_declaration(node: VariableDeclaration, scope: VariableScope, context: Dict) -> StatementResult:
  # Bound before the initializer runs; a self-reference then reads an unset value
  scope.declare(node.name)
  if node.initializer is not None:
    value = eval_expression(node.initializer, scope, context)
    scope.assign(node.name, convert_value(value, node.var_type, node.span), node.span)
  return StatementResult.VOID


def exec_assignment(node: Assignment, scope: VariableScope, context: Dict) -> StatementResult:
  value = eval_expression(node.value, scope, context)
  scope.assign(node.name, convert_value(value, node.var_type, node.span), node.span)
  return StatementResult.VOID


def exec_statement_list(node: StatementList, scope: VariableScope, context: Dict) -> StatementResult:
  """Run statements in order, stopping at the first non-VOID result"""
  inner = VariableScope("block", scope) if node.creates_scope else scope
  for statement in node.statements:
    result = exec_statement(statement, inner, context)
    if result != StatementResult.VOID:
      return result
  return StatementResult.VOID


def exec_return(node: Return, scope: VariableScope, context: Dict) -> StatementResult:
  if node.expression is not None:
    context['return_value'] = eval_expression(node.expression, scope, context)
  return StatementResult.RETURN


def exec_if(node: If, scope: VariableScope, context: Dict) -> StatementResult:
  if condition_truth(eval_expression(node.condition, scope, context), node.condition.span):
    return exec_statement(node.body, VariableScope("if", scope), context)
  return StatementResult.VOID


def exec_while(node: While, scope: VariableScope, context: Dict) -> StatementResult:
  while condition_truth(eval_expression(node.condition, scope, context), node.condition.span):
    result = exec_statement(node.body, VariableScope("while", scope), context)
    if result == StatementResult.BREAK:
      break
    if result == StatementResult.RETURN:
      return result
  return StatementResult.VOID


def exec_break(node: Break, scope: VariableScope, context: Dict) -> StatementResult:
  return StatementResult.BREAK


def exec_continue(node: Continue, scope: VariableScope, context: Dict) -> StatementResult:
  return StatementResult.CONTINUE


def exec_function_declaration(node: FunctionDeclaration, scope: VariableScope, context: Dict) -> StatementResult:
  scope.define_function(node.signature.name, FunctionValue(node, scope))
  return StatementResult.VOID


EXECUTORS = {
  ExpressionStatement: exec_expression_statement,
  VariableDeclaration: exec_variable_declaration,
  Assignment: exec_assignment,
  StatementList: exec_statement_list,
  Return: exec_return,
  If: exec_if,
  While: exec_while,
  Break: exec_break,
  Continue: exec_continue,
  FunctionDeclaration: exec_function_declaration,
}


def exec_statement(node, scope: VariableScope, context: Dict) -> StatementResult:
  """Execute a statement node and report how control leaves it"""
  trace(context, f"{type(node).__name__} {node.span}")
  return EXECUTORS[type(node)](node, scope, context)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(program: Program, scope: Optional[VariableScope] = None,
                 context: Optional[Dict] = None) -> VariableScope:
  """
  Execute a program and return the global variable scope.
  An existing scope and context can be passed to continue a session.
  """
  if scope is None:
    scope = VariableScope("global")
  if context is None:
    context = make_execution_context()
  with recursion_limit():
    for statement in program.statements:
      try:
        result = exec_statement(statement, scope, context)
      except RecursionError:
        raise nesting_error("evaluating", statement.span, TinyCRuntimeError) from None
      if result != StatementResult.VOID:
        break
  return scope


def python_bindings(scope: VariableScope) -> Dict[str, Any]:
  """Global variables as plain Python values"""
  return {name: value.data for name, value in scope.bindings().items()}


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_interpreter(debug: bool = False, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH):
  """Factory function returning an interpreter with a persistent global scope"""
  global_scope = VariableScope("global")
  context = make_execution_context(debug, max_call_depth)

  def interpret(program: Program) -> Dict[str, Any]:
    scope = eval_program(program, None, make_execution_context(debug, max_call_depth))
    return python_bindings(scope)

  def run(program: Program) -> Value:
    context['last_value'] = VOID_VALUE
    eval_program(program, global_scope, context)
    return context['last_value']

  return type('Interpreter', (), {
    'global_scope': global_scope,
    'context': context,
    'interpret': lambda self, program: interpret(program),
    'run': lambda self, program: run(program),
  })()


def create_debug_interpreter():
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True)
