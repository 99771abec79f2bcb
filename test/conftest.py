"""
Test configuration for TinyC tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from semantics import create_analyzer
from interpreter import DEFAULT_MAX_CALL_DEPTH, create_interpreter


@pytest.fixture
def run_source():
  """Parse, analyze and interpret source text, returning the global bindings"""
  def run(source: str, max_call_depth: int = DEFAULT_MAX_CALL_DEPTH):
    program = create_parser().parse_string(source)
    ast = create_analyzer().analyze(program)
    return create_interpreter(max_call_depth=max_call_depth).interpret(ast)
  return run


@pytest.fixture
def analyze_source():
  """Parse and analyze source text, returning the typed AST"""
  def analyze(source: str):
    return create_analyzer().analyze(create_parser().parse_string(source))
  return analyze
