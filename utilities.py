"""
Utilities module for the TinyC front-end and interpreter
Contains common helper functions shared by the pipeline stages
"""

from typing import Any, Callable, Dict, List, Optional, Type
import operator
import sys
from contextlib import contextmanager

from error_handling import TinyCError, TinyCRuntimeError


# ==================== TREE RENDERING ====================

def render_tree(
  root: Any,
  describe: Callable[[Any], str],
  children: Callable[[Any], List[Any]]
) -> str:
  """
  Render any tree with branch-drawing prefixes

  Args:
    root: Root node
    describe: Returns the one-line label for a node
    children: Returns the child nodes of a node

  Returns:
    Multi-line string, one node per line

  Examples:
    Program [0 12]
    └─ VariableDeclaration int a [0 12]
       └─ Literal 1 [8 9]
  """
  lines = [describe(root)]

  def walk(node: Any, prefix: str) -> None:
    kids = children(node)
    for i, child in enumerate(kids):
      last = i == len(kids) - 1
      lines.append(prefix + ("└─ " if last else "├─ ") + describe(child))
      walk(child, prefix + ("   " if last else "│  "))

  walk(root, "")
  return "\n".join(lines)


# ==================== VALUE CONVERSION UTILITIES ====================

# Implicit conversions between primitive types, identity excluded
IMPLICIT_CONVERSIONS = {
  "bool": ("int", "float", "string"),
  "int": ("bool", "float", "string"),
  "float": ("string",),
  "string": (),
}


def format_data(type_name: str, data: Any) -> str:
  """
  Stringify raw value data the way TinyC prints it

  Args:
    type_name: Primitive type of the data
    data: Raw Python value

  Returns:
    Source-like text for the value

  Examples:
    format_data("bool", True) -> "true"
    format_data("float", 2.5) -> "2.5"
    format_data("void", None) -> "void"
  """
  if type_name == "bool":
    return "true" if data else "false"
  if type_name == "float":
    return repr(float(data))
  if type_name == "void":
    return "void"
  return str(data)


def convert_data(data: Any, source_type: str, target_type: str) -> Any:
  """
  Convert raw data along an implicit conversion

  Args:
    data: Raw Python value of source_type
    source_type: Current primitive type
    target_type: Desired primitive type

  Returns:
    Raw Python value of target_type

  Raises:
    TinyCRuntimeError if no implicit conversion exists
  """
  if source_type == target_type:
    return data
  if target_type not in IMPLICIT_CONVERSIONS.get(source_type, ()):
    raise TinyCRuntimeError(f"Cannot convert {source_type} to {target_type}")
  if target_type == "string":
    return format_data(source_type, data)
  if target_type == "bool":
    return data != 0
  if target_type == "int":
    return int(data)
  return float(data)


# ==================== ERROR MESSAGE BUILDERS ====================

def type_mismatch_error(
  context: str,
  expected: str,
  actual: str,
  span=None,
  error_class: Type[TinyCError] = TinyCRuntimeError
) -> TinyCError:
  """
  Generate type mismatch error

  Args:
    context: What was being checked (e.g. "argument 1 of 'f'")
    expected: Expected type
    actual: Actual type
    span: Source span of the offending node
    error_class: Error class to instantiate

  Returns:
    Error with formatted message
  """
  return error_class(f"{context} requires {expected}, got {actual}", span)


def arity_error(
  func_name: str,
  expected: int,
  got: int,
  span=None,
  error_class: Type[TinyCError] = TinyCRuntimeError
) -> TinyCError:
  """
  Generate arity mismatch error

  Args:
    func_name: Function name
    expected: Expected number of arguments
    got: Actual number of arguments

  Returns:
    Error with formatted message
  """
  return error_class(f"'{func_name}' requires {expected} arguments, got {got}", span)


def operation_error(
  op: str,
  left_type: str,
  right_type: str,
  error_class: Type[TinyCError] = TinyCRuntimeError
) -> TinyCError:
  """
  Generate operation error

  Args:
    op: Operation name
    left_type: Left operand type
    right_type: Right operand type

  Returns:
    Error with formatted message
  """
  return error_class(f"Cannot {op} {left_type} and {right_type}")


def nesting_error(
  stage: str,
  span=None,
  error_class: Type[TinyCError] = TinyCRuntimeError
) -> TinyCError:
  """
  Generate error for input nested deeper than the Python stack allows

  Args:
    stage: What ran out of stack (e.g. "parsing")
    span: Source span the stage was working on
    error_class: Error class to instantiate

  Returns:
    Error with formatted message
  """
  return error_class(f"Nesting too deep while {stage}", span)


# ==================== RECURSION LIMIT ====================

# Python frame budget for the recursive pipeline stages
NESTING_RECURSION_LIMIT = 25000


@contextmanager
def recursion_limit(limit: Optional[int] = None):
  """
  Raise the interpreter recursion limit for the duration of a block

  The limit is never lowered, and the previous value is restored on exit.

  Args:
    limit: Frame budget, NESTING_RECURSION_LIMIT when omitted
  """
  if limit is None:
    limit = NESTING_RECURSION_LIMIT
  previous = sys.getrecursionlimit()
  sys.setrecursionlimit(max(previous, limit))
  try:
    yield
  finally:
    sys.setrecursionlimit(previous)


# ==================== BINARY OPERATION FACTORIES ====================

def binary_comparison_op(
  op: Callable[[Any, Any], bool],
  op_name: str,
  allowed_types: Optional[List[str]] = None
) -> Callable[[Any, Any, str], bool]:
  """
  Factory for binary comparison operations

  Args:
    op: Python operator function (e.g., operator.lt)
    op_name: Name for error messages
    allowed_types: Operand types that support this operation

  Returns:
    Function (left_data, right_data, operand_type) -> bool

  Examples:
    tinyc_lt = binary_comparison_op(operator.lt, "compare")
    tinyc_lt(1, 2, "int") -> True
  """
  if allowed_types is None:
    allowed_types = ["bool", "int", "float"]

  def comparison(x: Any, y: Any, operand_type: str) -> bool:
    if operand_type not in allowed_types:
      raise operation_error(op_name, operand_type, operand_type)
    return op(x, y)

  return comparison


def binary_arithmetic_op(
  op: Callable[[Any, Any], Any],
  op_name: str,
  allowed_types: Optional[List[str]] = None
) -> Callable[[Any, Any, str], Any]:
  """
  Factory for binary arithmetic operations

  Args:
    op: Python operator function (e.g., operator.add)
    op_name: Name for error messages
    allowed_types: Operand types that support this operation

  Returns:
    Function (left_data, right_data, operand_type) -> data

  Examples:
    tinyc_add = binary_arithmetic_op(operator.add, "add", ["int", "float", "string"])
    tinyc_add("a", "1", "string") -> "a1"
  """
  if allowed_types is None:
    allowed_types = ["int", "float"]

  def arithmetic(x: Any, y: Any, operand_type: str) -> Any:
    if operand_type not in allowed_types:
      raise operation_error(op_name, operand_type, operand_type)
    return op(x, y)

  return arithmetic


def truncating_divide(x: Any, y: Any, operand_type: str) -> Any:
  """Divide two numbers; integer division truncates toward zero"""
  if operand_type not in ("int", "float"):
    raise operation_error("divide", operand_type, operand_type)
  if y == 0:
    raise TinyCRuntimeError("Division by zero")
  if operand_type == "int":
    quotient = abs(x) // abs(y)
    return quotient if (x < 0) == (y < 0) else -quotient
  return x / y


def build_operator_table() -> Dict[str, Callable[[Any, Any, str], Any]]:
  """Operator symbol -> implementation over raw data of a common operand type"""
  return {
    '+': binary_arithmetic_op(operator.add, "add", ["int", "float", "string"]),
    '-': binary_arithmetic_op(operator.sub, "subtract"),
    '*': binary_arithmetic_op(operator.mul, "multiply"),
    '/': truncating_divide,
    '==': binary_comparison_op(operator.eq, "compare"),
    '!=': binary_comparison_op(operator.ne, "compare"),
    '<': binary_comparison_op(operator.lt, "compare"),
    '>': binary_comparison_op(operator.gt, "compare"),
    '<=': binary_comparison_op(operator.le, "compare"),
    '>=': binary_comparison_op(operator.ge, "compare"),
  }


COMPARISON_OPERATORS = ('==', '!=', '<', '>', '<=', '>=')
